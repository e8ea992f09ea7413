"""Database singleton: async connection pool via SQLAlchemy. Optional: the engine runs memory-only without it."""

import logging
from typing import Any, Iterable, Optional
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Owns the async engine for personalization persistence. connect() once at startup."""

    def __init__(self):
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    # Used by: main.py lifespan (startup), repository tests (sqlite+aiosqlite)
    async def connect(self, database_url: str, **engine_kwargs: Any) -> None:
        if self._engine is not None:
            logger.warning("Personalization database already connected")
            return

        dialect = database_url.split(":", 1)[0]
        logger.info(f"Connecting to personalization database ({dialect})...")

        self._engine = create_async_engine(database_url, echo=False, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        logger.info("Personalization database connected")

    # Used by: main.py lifespan (shutdown)
    async def disconnect(self) -> None:
        if self._engine is None:
            return

        logger.info("Disconnecting personalization database...")
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None

    # Used by: PersonalizationRepository.ensure_table
    async def run_ddl(self, statements: Iterable[str]) -> None:
        if self._engine is None:
            raise RuntimeError("Database not connected")
        async with self._engine.begin() as conn:
            for statement in statements:
                await conn.execute(text(statement))

    # Used by: personalization_repository.py
    def session(self) -> AsyncSession:
        """Use as: async with db.session() as session: ..."""
        if self._session_factory is None:
            raise RuntimeError("Database not connected")
        return self._session_factory()


_db: Optional[DatabaseManager] = None


# Used by: main.py, scheduler.py, api/sleep_window.py
def get_database() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager()
    return _db
