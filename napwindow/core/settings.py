"""App settings: loaded from environment variables with defaults."""

import os
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Unset → personalization lives in memory only
    DATABASE_URL: Optional[str] = os.getenv("DB_CONNECTION_STRING")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Timezone-aware timestamps are converted to this zone before any day/hour math
    LOCAL_TIMEZONE: str = os.getenv("LOCAL_TIMEZONE", "Europe/Berlin")

    SLEEP_WINDOW_CIRCADIAN_ENABLED: bool = _env_flag("SLEEP_WINDOW_CIRCADIAN_ENABLED")
    SLEEP_WINDOW_HISTORICAL_ENABLED: bool = _env_flag("SLEEP_WINDOW_HISTORICAL_ENABLED")
    SLEEP_WINDOW_DYNAMIC_BEDTIME_GAP: bool = _env_flag("SLEEP_WINDOW_DYNAMIC_BEDTIME_GAP")

    PERSONALIZATION_FLUSH_INTERVAL_SECONDS: int = int(
        os.getenv("PERSONALIZATION_FLUSH_INTERVAL_SECONDS", "300")
    )


settings = Settings()
