"""Persists personalization entries to the sleep_personalization table."""

import logging
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.exc import IntegrityError

from ..core.database import DatabaseManager, get_database
from ..db.models import SleepPersonalization, SLEEP_PERSONALIZATION_DDL
from ..utils.time_utils import parse_timestamp
from .personalization import PersonalizationEntry, PersonalizationStore, split_personalization_key

logger = logging.getLogger(__name__)

SELECT_PERSONALIZATION = '''
    SELECT personalization_key, user_id, nap_index, time_of_day_bucket,
           offset_minutes, sample_count, last_updated
    FROM sleep_personalization
'''


def _to_entry(row: SleepPersonalization) -> PersonalizationEntry:
    return PersonalizationEntry(
        offset_minutes=row.offset_minutes,
        sample_count=row.sample_count,
        last_updated=parse_timestamp(row.last_updated) or row.last_updated,
    )


class PersonalizationRepository:
    def __init__(self, database: Optional[DatabaseManager] = None):
        self.database = database or get_database()
        # key → last_updated as last seen in the DB, for optimistic concurrency
        self._known_versions: Dict[str, datetime] = {}

    # Used by: main.py lifespan (startup)
    async def ensure_table(self) -> None:
        await self.database.run_ddl(SLEEP_PERSONALIZATION_DDL)

    # Used by: hydrate
    async def load_all(self) -> Dict[str, PersonalizationEntry]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    text(SELECT_PERSONALIZATION).columns(last_updated=DateTime()),
                )
                rows = [SleepPersonalization(**row) for row in result.mappings().all()]
        except Exception as e:
            logger.error(f"Failed to load sleep personalization: {e}")
            return {}

        entries = {}
        for row in rows:
            entry = _to_entry(row)
            entries[row.personalization_key] = entry
            self._known_versions[row.personalization_key] = entry.last_updated
        return entries

    # Used by: _resolve_conflict
    async def load_one(self, key: str) -> Optional[PersonalizationEntry]:
        """Current row for one key, or None if it doesn't exist. Raises on DB errors."""
        async with self.database.session() as session:
            result = await session.execute(
                text(SELECT_PERSONALIZATION + " WHERE personalization_key = :key").columns(
                    last_updated=DateTime(),
                ),
                {"key": key},
            )
            row = result.mappings().first()
        if row is None:
            self._known_versions.pop(key, None)
            return None
        entry = _to_entry(SleepPersonalization(**row))
        self._known_versions[key] = entry.last_updated
        return entry

    # Used by: main.py lifespan (startup)
    async def hydrate(self, store: PersonalizationStore) -> int:
        entries = await self.load_all()
        store.load(entries)
        logger.info(f"Loaded {len(entries)} personalization entries")
        return len(entries)

    # Used by: flush, _resolve_conflict
    async def save(
            self,
            key: str,
            entry: PersonalizationEntry,
            expected_last_updated: Optional[datetime] = None,
    ) -> bool:
        """Insert when expected_last_updated is None, else update only if the row is unchanged."""
        user_id, nap_index, bucket = split_personalization_key(key)
        params = {
            "key": key,
            "user_id": user_id,
            "nap_index": nap_index,
            "bucket": bucket,
            "offset_minutes": entry.offset_minutes,
            "sample_count": entry.sample_count,
            "last_updated": entry.last_updated,
        }
        try:
            async with self.database.session() as session:
                if expected_last_updated is None:
                    result = await session.execute(
                        text('''
                            INSERT INTO sleep_personalization
                            (personalization_key, user_id, nap_index, time_of_day_bucket,
                             offset_minutes, sample_count, last_updated)
                            VALUES (:key, :user_id, :nap_index, :bucket,
                                    :offset_minutes, :sample_count, :last_updated)
                        ''').bindparams(bindparam("last_updated", type_=DateTime())),
                        params,
                    )
                else:
                    result = await session.execute(
                        text('''
                            UPDATE sleep_personalization
                            SET offset_minutes = :offset_minutes,
                                sample_count = :sample_count,
                                last_updated = :last_updated
                            WHERE personalization_key = :key
                              AND last_updated = :expected_last_updated
                        ''').bindparams(
                            bindparam("last_updated", type_=DateTime()),
                            bindparam("expected_last_updated", type_=DateTime()),
                        ),
                        {**params, "expected_last_updated": expected_last_updated},
                    )
                if result.rowcount != 1:
                    await session.rollback()
                    logger.warning(f"Personalization {key} changed concurrently")
                    return False
                await session.commit()
        except IntegrityError:
            logger.warning(f"Personalization {key} was created concurrently")
            return False
        except Exception as e:
            logger.error(f"Failed to save personalization {key}: {e}")
            return False

        self._known_versions[key] = entry.last_updated
        return True

    # Used by: flush
    async def _resolve_conflict(self, store: PersonalizationStore, key: str, entry: PersonalizationEntry) -> bool:
        """
        Re-read the row after a rejected write. The newer observation wins:
        a newer local entry is written over the fresh version, otherwise the
        stored row replaces the local one. Returns True if the local entry was saved.
        """
        try:
            persisted = await self.load_one(key)
        except Exception as e:
            logger.error(f"Failed to re-read personalization {key}: {e}")
            return False

        if persisted is not None and persisted.last_updated >= entry.last_updated:
            if store.adopt(key, persisted, expected=entry):
                logger.info(f"Personalization {key}: kept newer stored entry from {persisted.last_updated}")
            return False

        return await self.save(key, entry, self._known_versions.get(key))

    # Used by: scheduler.py (periodic flush), main.py lifespan (shutdown)
    async def flush(self, store: PersonalizationStore) -> int:
        """Write changed entries; returns how many were saved."""
        snapshot = store.snapshot()
        saved = []
        for key in sorted(store.dirty_keys()):
            entry = snapshot.get(key)
            if entry is None:
                continue
            if await self.save(key, entry, self._known_versions.get(key)):
                saved.append(key)
            elif await self._resolve_conflict(store, key, entry):
                saved.append(key)
        # Keys updated again while flushing stay dirty
        store.mark_clean([key for key in saved if store.get(key) is snapshot[key]])
        if saved:
            logger.info(f"Flushed {len(saved)} personalization entries")
        return len(saved)
