"""Flex band, awake override and bedtime-anchor clamping for one prediction."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..core.constants import (
    EARLY_FLEX_MIN_MINUTES, EARLY_FLEX_MAX_MINUTES, EARLY_FLEX_RATIO,
    LATE_FLEX_MIN_MINUTES, LATE_FLEX_MAX_MINUTES, LATE_FLEX_RATIO,
    AWAKE_OVERRUN_GRACE_MINUTES, AWAKE_SOFT_OVERRIDE_LEAD_MINUTES, AWAKE_IMMEDIATE_MINUTES,
    BEDTIME_GAP_MINUTES, BEDTIME_ANCHOR_ROLLOVER_HOURS,
    DYNAMIC_BEDTIME_GAPS, DYNAMIC_BEDTIME_GAP_DEFAULT, DYNAMIC_BEDTIME_GAP_UNKNOWN_AGE,
    DYNAMIC_BEDTIME_GAP_LAST_NAP_EXTRA,
)
from ..utils.time_utils import add_minutes, minutes_between, round_half_up
from .age_profiles import get_age_profile

logger = logging.getLogger(__name__)

ANCHOR_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True)
class ResolvedWindow:
    predicted_start: datetime
    recommended_start: datetime
    earliest: datetime
    latest: datetime
    flex_early: int
    flex_late: int
    awake_minutes: Optional[int]
    awake_override_applied: bool
    anchor_date: Optional[datetime]
    anchor_constraint_applied: bool


def flex_minutes(adjusted_window: int):
    """(early, late) tolerance around the recommended start."""
    early = max(EARLY_FLEX_MIN_MINUTES, min(EARLY_FLEX_MAX_MINUTES, round_half_up(adjusted_window * EARLY_FLEX_RATIO)))
    late = max(LATE_FLEX_MIN_MINUTES, min(LATE_FLEX_MAX_MINUTES, round_half_up(adjusted_window * LATE_FLEX_RATIO)))
    return early, late


# Used by: resolve_window
def resolve_anchor_date(anchor_bedtime: Optional[str], now: datetime) -> Optional[datetime]:
    """"HH:MM" → concrete datetime near now; tomorrow if today's is over 6h past. None if malformed."""
    if not isinstance(anchor_bedtime, str):
        return None
    match = ANCHOR_PATTERN.match(anchor_bedtime.strip())
    if not match:
        logger.debug(f"Ignoring malformed bedtime anchor {anchor_bedtime!r}")
        return None

    anchor = now.replace(hour=int(match.group(1)), minute=int(match.group(2)), second=0, microsecond=0)
    if anchor < now - timedelta(hours=BEDTIME_ANCHOR_ROLLOVER_HOURS):
        anchor += timedelta(days=1)
    return anchor


# Used by: sleep_window_predictor.predict_next_sleep_window
def bedtime_gap_minutes(age_months: Optional[int], nap_index: int, dynamic: bool = False) -> int:
    if not dynamic:
        return BEDTIME_GAP_MINUTES

    if age_months is None:
        gap = DYNAMIC_BEDTIME_GAP_UNKNOWN_AGE
    else:
        gap = DYNAMIC_BEDTIME_GAP_DEFAULT
        for upper_months, minutes in DYNAMIC_BEDTIME_GAPS:
            if age_months < upper_months:
                gap = minutes
                break

    if nap_index >= get_age_profile(age_months).max_naps:
        gap += DYNAMIC_BEDTIME_GAP_LAST_NAP_EXTRA
    return gap


# Used by: sleep_window_predictor.predict_next_sleep_window
def resolve_window(
        anchor: datetime,
        now: datetime,
        adjusted_window: int,
        last_nap_end: Optional[datetime] = None,
        anchor_bedtime: Optional[str] = None,
        bedtime_gap: int = BEDTIME_GAP_MINUTES,
) -> ResolvedWindow:
    flex_early, flex_late = flex_minutes(adjusted_window)

    predicted_start = add_minutes(anchor, adjusted_window)
    recommended = predicted_start
    earliest = add_minutes(anchor, max(0, adjusted_window - flex_early))
    latest = add_minutes(anchor, adjusted_window + flex_late)

    awake_minutes = None
    override = False
    if last_nap_end is not None:
        awake_minutes = minutes_between(now, last_nap_end)
        if awake_minutes > adjusted_window + AWAKE_OVERRUN_GRACE_MINUTES:
            recommended = add_minutes(now, AWAKE_IMMEDIATE_MINUTES)
            override = True
        elif awake_minutes > adjusted_window - AWAKE_SOFT_OVERRIDE_LEAD_MINUTES:
            recommended = add_minutes(now, max(AWAKE_IMMEDIATE_MINUTES, adjusted_window - awake_minutes))
            override = True

    # Never recommend the past
    earliest = max(earliest, now)

    anchor_date = resolve_anchor_date(anchor_bedtime, now) if anchor_bedtime else None
    anchor_applied = False
    if anchor_date is not None:
        latest_allowed = anchor_date - timedelta(minutes=bedtime_gap)
        if latest > latest_allowed:
            latest = latest_allowed
            anchor_applied = True

    recommended = max(recommended, earliest)
    recommended = min(recommended, latest)

    if earliest > latest:
        earliest = latest

    if override:
        earliest = max(earliest, now)
        recommended = max(recommended, earliest)
        # Overrun past a squeezed/expired band: the band collapses onto now
        if latest < earliest:
            latest = earliest

    if override or anchor_applied:
        logger.debug(
            f"Window resolved with override={override} anchor={anchor_applied}: "
            f"{earliest:%H:%M} ≤ {recommended:%H:%M} ≤ {latest:%H:%M}"
        )

    return ResolvedWindow(
        predicted_start=predicted_start,
        recommended_start=recommended,
        earliest=earliest,
        latest=latest,
        flex_early=flex_early,
        flex_late=flex_late,
        awake_minutes=awake_minutes,
        awake_override_applied=override,
        anchor_date=anchor_date,
        anchor_constraint_applied=anchor_applied,
    )
