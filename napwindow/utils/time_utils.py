"""Timestamp parsing and minute arithmetic shared by the sleep window engine.

All engine math runs on naive local wall-clock datetimes. Aware values are
converted to ``settings.LOCAL_TIMEZONE`` first, then stripped of tzinfo.
"""

import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, Optional

import pytz

from ..core.settings import settings

logger = logging.getLogger(__name__)


def clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def round_half_up(value: float) -> int:
    """Round .5 away from zero towards +inf, like Math.round, not banker's rounding."""
    return int(math.floor(value + 0.5))


def add_minutes(moment: datetime, minutes: float) -> datetime:
    return moment + timedelta(minutes=minutes)


def minutes_between(later: datetime, earlier: datetime) -> int:
    """Whole minutes from earlier to later (negative if later is before earlier)."""
    return round_half_up((later - earlier).total_seconds() / 60.0)


def to_local_naive(moment: datetime, tz_name: Optional[str] = None) -> datetime:
    if moment.tzinfo is None:
        return moment
    zone = pytz.timezone(tz_name or settings.LOCAL_TIMEZONE)
    return moment.astimezone(zone).replace(tzinfo=None)


# Used by: sleep_entries.normalize_entries, age_profiles.get_age_in_months, api models
def parse_timestamp(value: Any, tz_name: Optional[str] = None) -> Optional[datetime]:
    """datetime / date / ISO string → naive local datetime, or None if it doesn't parse."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_local_naive(value, tz_name)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable timestamp: {value!r}")
            return None
        return to_local_naive(parsed, tz_name)
    return None


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def is_same_day(a: datetime, b: datetime) -> bool:
    return a.date() == b.date()
