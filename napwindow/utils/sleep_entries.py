"""Normalizes raw sleep session records into parsed, duration-resolved entries."""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from ..core.constants import MIN_VALID_SLEEP_MINUTES
from .time_utils import parse_timestamp

logger = logging.getLogger(__name__)

# Field aliases: API names first, storage column names second
_START_KEYS = ("start", "start_time", "sleep_started_at")
_END_KEYS = ("end", "end_time", "awakened_at")
_DURATION_KEYS = ("durationMinutes", "duration_minutes", "sleep_duration_minutes")


# Used by: library callers building history in code (normalize_entries accepts it alongside mappings)
@dataclass(frozen=True)
class SleepSessionRecord:
    start: Any
    end: Any = None
    duration_minutes: Optional[float] = None


# Used by: normalize_entries() return; daily_sleep.py, adjustments.py, sleep_window_predictor.py
@dataclass(frozen=True)
class NormalizedEntry:
    start: datetime
    end: Optional[datetime]
    duration_minutes: Optional[float]
    raw: Any = None

    @property
    def is_completed(self) -> bool:
        """End known, duration known and at least MIN_VALID_SLEEP_MINUTES."""
        return (
            self.end is not None
            and self.duration_minutes is not None
            and self.duration_minutes >= MIN_VALID_SLEEP_MINUTES
        )


def _read_field(record: Any, keys: Iterable[str]) -> Any:
    if isinstance(record, Mapping):
        for key in keys:
            if record.get(key) is not None:
                return record[key]
        return None
    for key in keys:
        value = getattr(record, key, None)
        if value is not None:
            return value
    return None


def _parse_duration(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        duration = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(duration) or math.isinf(duration):
        return None
    return duration


# Used by: sleep_window_predictor.predict_next_sleep_window
def normalize_entries(records: Iterable[Any]) -> List[NormalizedEntry]:
    """Records without a parseable start are dropped; order is preserved."""
    normalized: List[NormalizedEntry] = []
    dropped = 0

    for record in records or []:
        start = parse_timestamp(_read_field(record, _START_KEYS))
        if start is None:
            dropped += 1
            continue

        end = parse_timestamp(_read_field(record, _END_KEYS))
        duration = _parse_duration(_read_field(record, _DURATION_KEYS))
        if duration is None and end is not None:
            duration = (end - start).total_seconds() / 60.0

        normalized.append(NormalizedEntry(start=start, end=end, duration_minutes=duration, raw=record))

    if dropped:
        logger.warning(f"Dropped {dropped} sleep record(s) with unparseable start")

    return normalized


# Used by: sleep_window_predictor.predict_next_sleep_window
def completed_entries(entries: Iterable[NormalizedEntry]) -> List[NormalizedEntry]:
    """Completed entries sorted by end time."""
    return sorted((e for e in entries if e.is_completed), key=lambda e: e.end)
