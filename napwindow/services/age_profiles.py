"""Static age profile table and lookup helpers."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Tuple

from ..core.constants import (
    AGE_PROFILE_ROWS, DEFAULT_AGE_PROFILE_INDEX,
    DEFAULT_WINDOW_MINUTES, DEFAULT_TARGET_NAP_DURATION_MINUTES,
)
from ..utils.time_utils import parse_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgeProfile:
    max_age_months: float
    base_windows_minutes: Tuple[int, ...]
    nap_durations_minutes: Tuple[int, ...]
    daily_target_minutes: int

    @property
    def max_naps(self) -> int:
        return len(self.base_windows_minutes)

    # Used by: baseline.get_baseline_window
    def for_nap(self, nap_index: int) -> Tuple[int, int]:
        """(window, target duration) for a 1-based nap index; indices past the end reuse the last slot."""
        slot = max(0, min(len(self.base_windows_minutes) - 1, nap_index - 1))
        window = self.base_windows_minutes[slot] if self.base_windows_minutes else DEFAULT_WINDOW_MINUTES
        if slot < len(self.nap_durations_minutes):
            duration = self.nap_durations_minutes[slot]
        else:
            duration = DEFAULT_TARGET_NAP_DURATION_MINUTES
        return window, duration


AGE_PROFILES: List[AgeProfile] = [
    AgeProfile(
        max_age_months=max_months,
        base_windows_minutes=tuple(windows),
        nap_durations_minutes=tuple(durations),
        daily_target_minutes=target,
    )
    for max_months, windows, durations, target in AGE_PROFILE_ROWS
]

DEFAULT_AGE_PROFILE = AGE_PROFILES[DEFAULT_AGE_PROFILE_INDEX]


# Used by: baseline.get_baseline_window, window_resolver.bedtime_gap_minutes
def get_age_profile(age_months: Optional[int]) -> AgeProfile:
    if age_months is None:
        return DEFAULT_AGE_PROFILE
    for profile in AGE_PROFILES:
        if age_months <= profile.max_age_months:
            return profile
    return AGE_PROFILES[-1]


# Used by: sleep_window_predictor.predict_next_sleep_window
def get_age_in_months(birthdate: Any, reference: datetime) -> Optional[int]:
    """Whole calendar months since birth, floored at 0. None when birthdate is missing/unparseable."""
    birth = parse_timestamp(birthdate)
    if birth is None:
        if birthdate:
            logger.warning(f"Ignoring unparseable birthdate {birthdate!r}")
        return None

    months = (reference.year - birth.year) * 12 + (reference.month - birth.month)
    if reference.day < birth.day:
        months -= 1
    return max(0, months)
