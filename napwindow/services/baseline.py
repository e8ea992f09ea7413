"""Baseline awake window for the next nap and time-of-day bucketing."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from ..core.constants import BUCKET_MORNING_END, BUCKET_MIDDAY_END, BUCKET_AFTERNOON_END
from ..utils.time_utils import add_minutes
from .age_profiles import AgeProfile, get_age_profile


class TimeOfDayBucket(str, Enum):
    MORNING = "morning"
    MIDDAY = "midday"
    AFTERNOON = "afternoon"
    EVENING = "evening"


# Used by: get_baseline_window, sleep_window_predictor (final bucket), adjustments (historical filter)
def get_time_of_day_bucket(moment: datetime) -> TimeOfDayBucket:
    hour = moment.hour
    if hour < BUCKET_MORNING_END:
        return TimeOfDayBucket.MORNING
    if hour < BUCKET_MIDDAY_END:
        return TimeOfDayBucket.MIDDAY
    if hour < BUCKET_AFTERNOON_END:
        return TimeOfDayBucket.AFTERNOON
    return TimeOfDayBucket.EVENING


@dataclass(frozen=True)
class BaselineWindow:
    baseline_window_minutes: int
    target_nap_duration_minutes: int
    # Bucket of anchor + baseline window. Only a lookup hint; the prediction's
    # final bucket is the one personalization updates must use.
    naive_bucket: TimeOfDayBucket
    profile: AgeProfile


# Used by: sleep_window_predictor.predict_next_sleep_window
def get_baseline_window(age_months: Optional[int], nap_index: int, anchor: datetime) -> BaselineWindow:
    profile = get_age_profile(age_months)
    window, target = profile.for_nap(nap_index)
    return BaselineWindow(
        baseline_window_minutes=window,
        target_nap_duration_minutes=target,
        naive_bucket=get_time_of_day_bucket(add_minutes(anchor, window)),
        profile=profile,
    )
