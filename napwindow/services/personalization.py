"""Per-child learned offsets between predicted and actual nap starts.

Keyed by (user, nap index, time-of-day bucket). Each observation moves the
stored offset toward the observed difference with an exponential moving
average. The per-key lock keeps the read-modify-write atomic when several
caregivers' devices report for the same child.
"""

import logging
import threading
from types import MappingProxyType
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterable, Mapping, Optional, Set, Tuple, Union

from ..core.constants import (
    PERSONALIZATION_ALPHA, PERSONALIZATION_CLAMP_MINUTES, PERSONALIZATION_MAX_SAMPLES,
)
from ..utils.time_utils import clamp, minutes_between
from .baseline import TimeOfDayBucket

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "::"


@dataclass(frozen=True)
class PersonalizationEntry:
    offset_minutes: float
    sample_count: int
    last_updated: datetime


def _bucket_value(bucket: Union[TimeOfDayBucket, str]) -> str:
    return bucket.value if isinstance(bucket, TimeOfDayBucket) else str(bucket)


def personalization_key(user_id: str, nap_index: int, bucket: Union[TimeOfDayBucket, str]) -> str:
    return f"{user_id}{KEY_SEPARATOR}{nap_index}{KEY_SEPARATOR}{_bucket_value(bucket)}"


def split_personalization_key(key: str) -> Tuple[str, int, str]:
    """Inverse of personalization_key. User ids may themselves contain the separator."""
    user_id, nap_index, bucket = key.rsplit(KEY_SEPARATOR, 2)
    return user_id, int(nap_index), bucket


class PersonalizationStore:
    """In-memory EMA tracker. Inject one per predictor; tests create their own."""

    def __init__(self, alpha: float = PERSONALIZATION_ALPHA):
        self.alpha = alpha
        self._entries: Dict[str, PersonalizationEntry] = {}
        self._key_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._dirty: Set[str] = set()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    # Used by: sleep_window_predictor.predict_next_sleep_window
    def get(self, key: str) -> Optional[PersonalizationEntry]:
        return self._entries.get(key)

    # Used by: SleepWindowPredictor.record_actual_start
    def update(
            self,
            user_id: str,
            nap_index: int,
            bucket: Union[TimeOfDayBucket, str],
            recommended_start: datetime,
            actual_start: datetime,
            updated_at: Optional[datetime] = None,
    ) -> PersonalizationEntry:
        diff = clamp(
            minutes_between(actual_start, recommended_start),
            -PERSONALIZATION_CLAMP_MINUTES,
            PERSONALIZATION_CLAMP_MINUTES,
        )
        key = personalization_key(user_id, nap_index, bucket)
        stamp = updated_at or datetime.now()

        with self._lock_for(key):
            existing = self._entries.get(key)
            if existing is None:
                entry = PersonalizationEntry(offset_minutes=float(diff), sample_count=1, last_updated=stamp)
            else:
                new_offset = existing.offset_minutes + self.alpha * (diff - existing.offset_minutes)
                entry = replace(
                    existing,
                    offset_minutes=clamp(new_offset, -PERSONALIZATION_CLAMP_MINUTES, PERSONALIZATION_CLAMP_MINUTES),
                    sample_count=min(existing.sample_count + 1, PERSONALIZATION_MAX_SAMPLES),
                    last_updated=stamp,
                )
            with self._registry_lock:
                self._entries[key] = entry
                self._dirty.add(key)

        logger.info(
            f"Personalization {key}: diff {diff:+.0f} min → offset {entry.offset_minutes:+.1f} "
            f"({entry.sample_count} samples)"
        )
        return entry

    # Used by: api (GET /sleep-window/personalization), repository flush
    def snapshot(self) -> Mapping[str, PersonalizationEntry]:
        """Read-only copy for diagnostics; entries are immutable."""
        with self._registry_lock:
            return MappingProxyType(dict(self._entries))

    # Used by: PersonalizationRepository.hydrate
    def load(self, entries: Mapping[str, PersonalizationEntry]) -> None:
        """Replace contents with persisted entries (offsets re-clamped). Loaded keys start clean."""
        with self._registry_lock:
            self._entries = {
                key: replace(
                    entry,
                    offset_minutes=clamp(entry.offset_minutes, -PERSONALIZATION_CLAMP_MINUTES, PERSONALIZATION_CLAMP_MINUTES),
                    sample_count=min(entry.sample_count, PERSONALIZATION_MAX_SAMPLES),
                )
                for key, entry in entries.items()
            }
            self._dirty.clear()

    # Used by: PersonalizationRepository.flush (write conflict, stored row is newer)
    def adopt(self, key: str, entry: PersonalizationEntry, expected: Optional[PersonalizationEntry]) -> bool:
        """Replace one entry with a persisted one unless it changed locally since `expected` was read."""
        with self._lock_for(key):
            with self._registry_lock:
                if self._entries.get(key) is not expected:
                    return False
                self._entries[key] = replace(
                    entry,
                    offset_minutes=clamp(entry.offset_minutes, -PERSONALIZATION_CLAMP_MINUTES, PERSONALIZATION_CLAMP_MINUTES),
                    sample_count=min(entry.sample_count, PERSONALIZATION_MAX_SAMPLES),
                )
                self._dirty.discard(key)
        return True

    def dirty_keys(self) -> Set[str]:
        with self._registry_lock:
            return set(self._dirty)

    def mark_clean(self, keys: Iterable[str]) -> None:
        with self._registry_lock:
            self._dirty.difference_update(keys)

    def reset(self) -> None:
        with self._registry_lock:
            self._entries.clear()
            self._key_locks.clear()
            self._dirty.clear()
        logger.info("Personalization store reset")

    def __len__(self) -> int:
        return len(self._entries)


_personalization_store: Optional[PersonalizationStore] = None


# Used by: api/sleep_window.py, scheduler.py, main.py
def get_personalization_store() -> PersonalizationStore:
    global _personalization_store
    if _personalization_store is None:
        _personalization_store = PersonalizationStore()
    return _personalization_store
