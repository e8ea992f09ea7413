from datetime import date

from napwindow.services.age_profiles import AGE_PROFILES, get_age_in_months, get_age_profile

from conftest import at


def test_table_is_ordered_and_targets_descend():
    bounds = [p.max_age_months for p in AGE_PROFILES]
    assert bounds == sorted(bounds)
    assert len(AGE_PROFILES) == 6
    assert AGE_PROFILES[0].daily_target_minutes == 960
    assert AGE_PROFILES[-1].daily_target_minutes == 720
    for profile in AGE_PROFILES:
        assert 1 <= len(profile.base_windows_minutes) <= 4
        assert len(profile.base_windows_minutes) == len(profile.nap_durations_minutes)


def test_unknown_age_uses_five_month_profile():
    profile = get_age_profile(None)
    assert profile.max_age_months == 5
    assert profile.base_windows_minutes[0] == 90


def test_boundaries_are_inclusive():
    assert get_age_profile(0).max_age_months == 3
    assert get_age_profile(3).max_age_months == 3
    assert get_age_profile(4).max_age_months == 5
    assert get_age_profile(12).max_age_months == 12
    assert get_age_profile(13).max_age_months == 18
    assert get_age_profile(240).max_age_months == float("inf")


def test_nap_index_is_clamped_into_table():
    profile = get_age_profile(10)
    assert profile.for_nap(1) == (150, 100)
    assert profile.for_nap(2) == (210, 100)
    assert profile.for_nap(7) == (210, 100)
    assert profile.for_nap(0) == (150, 100)


def test_age_in_months():
    assert get_age_in_months("2023-10-15", at(12)) == 2
    assert get_age_in_months(date(2023, 10, 1), at(12)) == 3
    assert get_age_in_months("2024-06-01", at(12)) == 0
    assert get_age_in_months(None, at(12)) is None
    assert get_age_in_months("yesterday", at(12)) is None
