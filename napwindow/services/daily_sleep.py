"""Rolling 24h and since-midnight sleep totals."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from ..utils.sleep_entries import NormalizedEntry
from ..utils.time_utils import start_of_day


@dataclass(frozen=True)
class DailySleepStats:
    last24h_minutes: float
    today_minutes: float


# Used by: sleep_window_predictor.predict_next_sleep_window
def compute_daily_sleep_stats(entries: Iterable[NormalizedEntry], now: datetime) -> DailySleepStats:
    """Sums completed-entry durations by where their end lands.

    An entry counts in full toward a bucket when its end is inside it; sleep
    that started before the window or before midnight is not apportioned.
    """
    window_start = now - timedelta(hours=24)
    midnight = start_of_day(now)

    last24h = 0.0
    today = 0.0
    for entry in entries:
        if not entry.is_completed:
            continue
        if window_start <= entry.end <= now:
            last24h += entry.duration_minutes
        if entry.end >= midnight:
            today += entry.duration_minutes

    return DailySleepStats(last24h_minutes=last24h, today_minutes=today)
