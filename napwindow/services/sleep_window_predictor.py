"""Predicts the next nap window from recent sleep history and feeds back actual starts."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from ..core.settings import settings
from ..utils.sleep_entries import normalize_entries, completed_entries
from ..utils.time_utils import is_same_day, minutes_between, parse_timestamp, to_local_naive
from .adjustments import compute_adjusted_window
from .age_profiles import get_age_in_months
from .baseline import TimeOfDayBucket, get_baseline_window, get_time_of_day_bucket
from .daily_sleep import compute_daily_sleep_stats
from .personalization import (
    PersonalizationEntry, PersonalizationStore, get_personalization_store, personalization_key,
)
from .window_resolver import bedtime_gap_minutes, resolve_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PredictorOptions:
    """Opt-in refinements. All off reproduces the plain heuristic model."""
    circadian_enabled: bool = False
    historical_enabled: bool = False
    dynamic_bedtime_gap: bool = False

    @classmethod
    def from_settings(cls) -> "PredictorOptions":
        return cls(
            circadian_enabled=settings.SLEEP_WINDOW_CIRCADIAN_ENABLED,
            historical_enabled=settings.SLEEP_WINDOW_HISTORICAL_ENABLED,
            dynamic_bedtime_gap=settings.SLEEP_WINDOW_DYNAMIC_BEDTIME_GAP,
        )


@dataclass
class SleepWindowPrediction:
    recommended_start: datetime
    earliest: datetime
    latest: datetime
    # Effective minutes from the baseline anchor to recommended_start. Not the
    # adjusted window: overrides can make it negative or far from it.
    window_minutes: int
    nap_index_today: int
    # Bucket of the final recommended_start; the key to report actual starts under.
    time_of_day_bucket: TimeOfDayBucket
    debug: Dict[str, Any] = field(default_factory=dict)


# Used by: SleepWindowPredictor.predict, api/sleep_window.py
def predict_next_sleep_window(
        user_id: str,
        entries: Iterable[Any],
        now: datetime,
        birthdate: Any = None,
        anchor_bedtime: Optional[str] = None,
        store: Optional[PersonalizationStore] = None,
        options: Optional[PredictorOptions] = None,
) -> SleepWindowPrediction:
    """Pure prediction for a fixed `now`. Never raises for malformed history/birthdate/anchor."""
    store = store if store is not None else get_personalization_store()
    options = options or PredictorOptions()
    now = to_local_naive(now)

    normalized = normalize_entries(entries)
    completed = completed_entries(normalized)

    last_nap = None
    for entry in reversed(completed):
        if entry.end <= now:
            last_nap = entry
            break
    last_nap_end = last_nap.end if last_nap else None
    last_nap_duration = last_nap.duration_minutes if last_nap else None

    age_months = get_age_in_months(birthdate, now)
    anchor = last_nap_end or now

    nap_count_today = sum(1 for e in completed if is_same_day(e.end, now))
    nap_index = max(1, nap_count_today + 1)

    baseline = get_baseline_window(age_months, nap_index, anchor)
    stats = compute_daily_sleep_stats(completed, now)

    # Lookup uses the naive bucket; the final bucket is only known after resolution
    lookup_key = personalization_key(user_id, nap_index, baseline.naive_bucket)
    personalization = store.get(lookup_key)
    offset = personalization.offset_minutes if personalization else 0.0

    adjustment = compute_adjusted_window(
        baseline.baseline_window_minutes,
        baseline.target_nap_duration_minutes,
        baseline.profile.daily_target_minutes,
        last_nap_duration,
        stats.last24h_minutes,
        offset,
        last_nap_end=last_nap_end,
        circadian_enabled=options.circadian_enabled,
        historical_enabled=options.historical_enabled,
        history=completed,
        nap_index=nap_index,
        now=now,
        bucket=baseline.naive_bucket,
    )
    adjusted_window = adjustment.adjusted_window_minutes

    gap = bedtime_gap_minutes(age_months, nap_index, options.dynamic_bedtime_gap)
    resolved = resolve_window(
        anchor=anchor,
        now=now,
        adjusted_window=adjusted_window,
        last_nap_end=last_nap_end,
        anchor_bedtime=anchor_bedtime,
        bedtime_gap=gap,
    )

    final_bucket = get_time_of_day_bucket(resolved.recommended_start)
    window_minutes = minutes_between(resolved.recommended_start, anchor)

    debug = {
        "now": now,
        "age_in_months": age_months,
        "baseline_anchor": anchor,
        "nap_count_today": nap_count_today,
        "baseline_window": baseline.baseline_window_minutes,
        "target_nap_duration": baseline.target_nap_duration_minutes,
        "daily_target_minutes": baseline.profile.daily_target_minutes,
        "naive_time_of_day_bucket": baseline.naive_bucket.value,
        "last24h_minutes": stats.last24h_minutes,
        "today_minutes": stats.today_minutes,
        "last_nap_end": last_nap_end,
        "last_nap_duration": last_nap_duration,
        "sleep_debt": adjustment.sleep_debt,
        "nap_duration_adjustment": adjustment.nap_duration_adjustment,
        "sleep_debt_adjustment": adjustment.sleep_debt_adjustment,
        "circadian_adjustment": adjustment.circadian_adjustment,
        "circadian_hour": adjustment.circadian_hour,
        "historical_factor": adjustment.historical_factor,
        "historical_sample_count": adjustment.historical_sample_count,
        "personalization_key": lookup_key,
        "personalization_offset": offset,
        "personalization_sample_count": personalization.sample_count if personalization else 0,
        "adjusted_window": adjusted_window,
        "flex_early": resolved.flex_early,
        "flex_late": resolved.flex_late,
        "predicted_start": resolved.predicted_start,
        "awake_since_last_nap": resolved.awake_minutes,
        "awake_override_applied": resolved.awake_override_applied,
        "anchor_bedtime": anchor_bedtime,
        "anchor_date": resolved.anchor_date,
        "bedtime_gap": gap,
        "anchor_constraint_applied": resolved.anchor_constraint_applied,
    }

    logger.info(
        f"Sleep window for {user_id}: nap {nap_index} at {resolved.recommended_start:%Y-%m-%d %H:%M} "
        f"[{resolved.earliest:%H:%M}–{resolved.latest:%H:%M}], adjusted window {adjusted_window} min"
    )

    return SleepWindowPrediction(
        recommended_start=resolved.recommended_start,
        earliest=resolved.earliest,
        latest=resolved.latest,
        window_minutes=window_minutes,
        nap_index_today=nap_index,
        time_of_day_bucket=final_bucket,
        debug=debug,
    )


class SleepWindowPredictor:
    """Engine facade with an injected personalization store."""

    def __init__(
            self,
            store: Optional[PersonalizationStore] = None,
            options: Optional[PredictorOptions] = None,
    ):
        self.store = store if store is not None else PersonalizationStore()
        self.options = options or PredictorOptions.from_settings()

    # Used by: api/sleep_window.py (POST /sleep-window/predict)
    def predict(
            self,
            user_id: str,
            entries: Iterable[Any],
            birthdate: Any = None,
            anchor_bedtime: Optional[str] = None,
            now: Optional[datetime] = None,
    ) -> SleepWindowPrediction:
        """Like predict_next_sleep_window, but `now` defaults to the system clock."""
        if now is None:
            now = datetime.now()
        return predict_next_sleep_window(
            user_id=user_id,
            entries=entries,
            now=now,
            birthdate=birthdate,
            anchor_bedtime=anchor_bedtime,
            store=self.store,
            options=self.options,
        )

    # Used by: api/sleep_window.py (POST /sleep-window/actual-start)
    def record_actual_start(
            self,
            user_id: str,
            nap_index: int,
            bucket: Union[TimeOfDayBucket, str],
            recommended_start: Union[datetime, str],
            actual_start: Union[datetime, str],
    ) -> Optional[PersonalizationEntry]:
        """Feed the observed nap start back. Pass the prediction's final bucket. None if the bucket or timestamps are invalid."""
        try:
            bucket = TimeOfDayBucket(bucket)
        except ValueError:
            logger.warning(f"Skipping personalization update for {user_id}: unknown time-of-day bucket {bucket!r}")
            return None
        recommended = parse_timestamp(recommended_start)
        actual = parse_timestamp(actual_start)
        if recommended is None or actual is None:
            logger.warning(f"Skipping personalization update for {user_id}: unparseable start times")
            return None
        return self.store.update(user_id, max(1, int(nap_index)), bucket, recommended, actual)

    def snapshot(self) -> Mapping[str, PersonalizationEntry]:
        return self.store.snapshot()

    def reset(self) -> None:
        self.store.reset()
