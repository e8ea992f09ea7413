from datetime import timedelta

import pytest

from napwindow.services.adjustments import (
    circadian_factor,
    collect_historical_wake_windows,
    compute_adjusted_window,
    nap_duration_adjustment,
    sleep_debt_adjustment,
    trimmed_mean,
)
from napwindow.utils.sleep_entries import normalize_entries

from conftest import at, nap


def test_short_nap_shrinks_window():
    assert nap_duration_adjustment(50, 100) == pytest.approx(10)
    assert nap_duration_adjustment(150, 100) == pytest.approx(-10)
    assert nap_duration_adjustment(0, 100) == pytest.approx(20)
    assert nap_duration_adjustment(1000, 100) == pytest.approx(-20)


def test_duration_adjustment_needs_known_duration_and_positive_target():
    assert nap_duration_adjustment(None, 100) == 0
    assert nap_duration_adjustment(50, 0) == 0


def test_sleep_debt_threshold_and_clamp():
    assert sleep_debt_adjustment(30) == 0
    assert sleep_debt_adjustment(-30) == 0
    assert sleep_debt_adjustment(150) == pytest.approx(10)
    assert sleep_debt_adjustment(930) == 20
    assert sleep_debt_adjustment(-600) == -20


def test_no_history_applies_clamped_debt():
    result = compute_adjusted_window(90, 75, 930, None, 0, 0)
    assert result.sleep_debt == 930
    assert result.sleep_debt_adjustment == 20
    assert result.adjusted_window_minutes == 70


def test_personalization_offset_is_additive():
    result = compute_adjusted_window(150, 100, 780, 100, 780, 12.4)
    assert result.adjusted_window_minutes == 162


def test_window_is_clamped_to_bounds():
    low = compute_adjusted_window(60, 60, 960, 0, 0, -60)
    assert low.adjusted_window_minutes == 30
    high = compute_adjusted_window(240, 120, 720, 1000, 5000, 60)
    assert high.adjusted_window_minutes == 300


def test_circadian_factor():
    assert circadian_factor(8) == 1.05
    assert circadian_factor(12) == 1.0
    assert circadian_factor(15) == 0.95
    assert circadian_factor(17) == 0.90
    assert circadian_factor(20) == 0.85


def test_circadian_only_when_enabled_and_last_nap_known():
    off = compute_adjusted_window(200, 100, 780, 100, 780, 0, last_nap_end=at(17))
    assert off.adjusted_window_minutes == 200
    on = compute_adjusted_window(200, 100, 780, 100, 780, 0, last_nap_end=at(17), circadian_enabled=True)
    assert on.circadian_hour == 17
    assert on.adjusted_window_minutes == 180
    no_nap = compute_adjusted_window(200, 100, 780, None, 780, 0, circadian_enabled=True)
    assert no_nap.circadian_adjustment == 1.0


def test_trimmed_mean():
    assert trimmed_mean([]) == 0
    assert trimmed_mean([7]) == 7
    assert trimmed_mean([1, 2, 100]) == pytest.approx(103 / 3)
    assert trimmed_mean(list(range(1, 11))) == pytest.approx(5.5)


def history_days(days, wake_minutes=120):
    records = []
    for day in days:
        records.append(nap(at(8, day=day), at(9, day=day)))
        second_start = at(9, day=day) + timedelta(minutes=wake_minutes)
        records.append(nap(second_start, second_start + timedelta(hours=1)))
    return normalize_entries(records)


def test_historical_wake_windows_for_second_nap():
    entries = history_days([2, 3, 4, 5, 6, 7])
    windows = collect_historical_wake_windows(entries, 2, at(12, day=9))
    assert windows == [120] * 6


def test_historical_windows_skip_first_nap_today_and_recent_days():
    entries = history_days([2, 3, 8, 9])
    assert collect_historical_wake_windows(entries, 1, at(12, day=9)) == []
    # day 9 is today and day 8 is less than a day old at 08:00
    assert collect_historical_wake_windows(entries, 2, at(8, day=9)) == [120, 120]


def test_historical_bucket_filter():
    entries = history_days([2, 3])
    assert collect_historical_wake_windows(entries, 2, at(12, day=9), "morning") == [120, 120]
    assert collect_historical_wake_windows(entries, 2, at(12, day=9), "evening") == []


def test_historical_factor_is_clamped():
    entries = history_days([2, 3, 4, 5, 6])
    result = compute_adjusted_window(
        105, 90, 930, 90, 930, 0,
        historical_enabled=True, history=entries, nap_index=2, now=at(12, day=9),
    )
    assert result.historical_sample_count == 5
    assert result.historical_factor == pytest.approx(1.1)
    assert result.adjusted_window_minutes == 116


def test_historical_needs_minimum_samples():
    entries = history_days([2, 3, 4])
    result = compute_adjusted_window(
        105, 90, 930, 90, 930, 0,
        historical_enabled=True, history=entries, nap_index=2, now=at(12, day=9),
    )
    assert result.historical_factor == 1.0
    assert result.historical_sample_count == 0
