"""Shifts the baseline awake window by last-nap variance, sleep debt and learned offset.

Order matters: nap-duration variance, sleep debt, (circadian factor),
(historical factor), personalization offset, then round + clamp to
[MIN_WINDOW_MINUTES, MAX_WINDOW_MINUTES]. The clamped result is the single
adjusted window used by everything downstream.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from ..core.constants import (
    NAP_DURATION_ADJUSTMENT_SCALE, NAP_DURATION_ADJUSTMENT_MAX,
    SLEEP_DEBT_THRESHOLD_MINUTES, SLEEP_DEBT_DIVISOR, SLEEP_DEBT_ADJUSTMENT_MAX,
    MIN_WINDOW_MINUTES, MAX_WINDOW_MINUTES,
    CIRCADIAN_FACTORS, CIRCADIAN_EVENING_FACTOR,
    HISTORICAL_LOOKBACK_DAYS, HISTORICAL_MIN_AGE_DAYS, HISTORICAL_MIN_SAMPLES,
    HISTORICAL_TRIM_FRACTION, HISTORICAL_MIN_WAKE_WINDOW_MINUTES,
    HISTORICAL_MAX_WAKE_WINDOW_MINUTES, HISTORICAL_FACTOR_MIN, HISTORICAL_FACTOR_MAX,
)
from ..utils.sleep_entries import NormalizedEntry
from ..utils.time_utils import clamp, minutes_between, round_half_up
from .baseline import TimeOfDayBucket, get_time_of_day_bucket

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowAdjustment:
    adjusted_window_minutes: int
    nap_duration_adjustment: float
    sleep_debt: float
    sleep_debt_adjustment: float
    circadian_adjustment: float
    circadian_hour: Optional[int]
    historical_factor: float
    historical_sample_count: int
    personalization_offset: float


# Used by: compute_adjusted_window
def nap_duration_adjustment(last_nap_duration: Optional[float], target_duration: float) -> float:
    """Positive for a short nap (window shrinks), negative for a long one."""
    if last_nap_duration is None or target_duration <= 0:
        return 0.0
    variance_ratio = clamp((target_duration - last_nap_duration) / target_duration, -1, 1)
    return clamp(
        variance_ratio * NAP_DURATION_ADJUSTMENT_SCALE,
        -NAP_DURATION_ADJUSTMENT_MAX,
        NAP_DURATION_ADJUSTMENT_MAX,
    )


# Used by: compute_adjusted_window
def sleep_debt_adjustment(sleep_debt: float) -> float:
    if abs(sleep_debt) <= SLEEP_DEBT_THRESHOLD_MINUTES:
        return 0.0
    return clamp(sleep_debt / SLEEP_DEBT_DIVISOR, -SLEEP_DEBT_ADJUSTMENT_MAX, SLEEP_DEBT_ADJUSTMENT_MAX)


def circadian_factor(hour: int) -> float:
    for upper_hour, factor in CIRCADIAN_FACTORS:
        if hour < upper_hour:
            return factor
    return CIRCADIAN_EVENING_FACTOR


def trimmed_mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    trim = int(len(ordered) * HISTORICAL_TRIM_FRACTION)
    if trim:
        ordered = ordered[trim:len(ordered) - trim]
    return sum(ordered) / len(ordered)


def collect_historical_wake_windows(
        entries: Sequence[NormalizedEntry],
        nap_index: int,
        now: datetime,
        bucket: Optional[TimeOfDayBucket] = None,
) -> List[int]:
    """Awake minutes before nap `nap_index` on each of the previous days (1–14 days back)."""
    if nap_index < 2:
        # The first nap of a day has no same-day predecessor
        return []

    oldest = now - timedelta(days=HISTORICAL_LOOKBACK_DAYS)
    newest = now - timedelta(days=HISTORICAL_MIN_AGE_DAYS)

    by_day: Dict[object, List[NormalizedEntry]] = defaultdict(list)
    for entry in entries:
        if not entry.is_completed or entry.end < oldest or entry.end > newest:
            continue
        by_day[entry.end.date()].append(entry)

    windows = []
    for day_entries in by_day.values():
        day_entries.sort(key=lambda e: e.end)
        if len(day_entries) < nap_index:
            continue

        previous = day_entries[nap_index - 2]
        current = day_entries[nap_index - 1]

        if bucket is not None and get_time_of_day_bucket(previous.end) != bucket:
            continue

        wake_window = minutes_between(current.start, previous.end)
        if HISTORICAL_MIN_WAKE_WINDOW_MINUTES <= wake_window <= HISTORICAL_MAX_WAKE_WINDOW_MINUTES:
            windows.append(wake_window)

    return windows


# Used by: sleep_window_predictor.predict_next_sleep_window
def compute_adjusted_window(
        baseline_window: int,
        target_nap_duration: int,
        daily_target_minutes: int,
        last_nap_duration: Optional[float],
        last24h_minutes: float,
        personalization_offset: float,
        *,
        last_nap_end: Optional[datetime] = None,
        circadian_enabled: bool = False,
        historical_enabled: bool = False,
        history: Sequence[NormalizedEntry] = (),
        nap_index: int = 1,
        now: Optional[datetime] = None,
        bucket: Optional[TimeOfDayBucket] = None,
) -> WindowAdjustment:
    window = float(baseline_window)

    duration_term = nap_duration_adjustment(last_nap_duration, target_nap_duration)
    window -= duration_term

    sleep_debt = daily_target_minutes - last24h_minutes
    debt_term = sleep_debt_adjustment(sleep_debt)
    window -= debt_term

    circadian = 1.0
    circadian_hour = None
    if circadian_enabled and last_nap_end is not None:
        circadian_hour = last_nap_end.hour
        circadian = circadian_factor(circadian_hour)
        window *= circadian

    historical = 1.0
    sample_count = 0
    if historical_enabled and now is not None and baseline_window > 0:
        samples = collect_historical_wake_windows(history, nap_index, now, bucket)
        if len(samples) >= HISTORICAL_MIN_SAMPLES:
            historical_window = trimmed_mean(samples)
            if historical_window > 0:
                historical = clamp(historical_window / baseline_window, HISTORICAL_FACTOR_MIN, HISTORICAL_FACTOR_MAX)
                window *= historical
                sample_count = len(samples)

    window += personalization_offset

    adjusted = int(clamp(round_half_up(window), MIN_WINDOW_MINUTES, MAX_WINDOW_MINUTES))
    logger.debug(
        f"Adjusted window {baseline_window} → {adjusted} min "
        f"(duration {-duration_term:+.1f}, debt {-debt_term:+.1f}, "
        f"circadian x{circadian:.2f}, historical x{historical:.2f}, offset {personalization_offset:+.1f})"
    )

    return WindowAdjustment(
        adjusted_window_minutes=adjusted,
        nap_duration_adjustment=duration_term,
        sleep_debt=sleep_debt,
        sleep_debt_adjustment=debt_term,
        circadian_adjustment=circadian,
        circadian_hour=circadian_hour,
        historical_factor=historical,
        historical_sample_count=sample_count,
        personalization_offset=personalization_offset,
    )
