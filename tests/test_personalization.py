import threading

import pytest

from napwindow.services.baseline import TimeOfDayBucket
from napwindow.services.personalization import (
    PersonalizationEntry, personalization_key, split_personalization_key,
)

from conftest import at


def test_first_observation_creates_entry(store):
    entry = store.update("baby-1", 1, TimeOfDayBucket.MIDDAY, at(13, 10), at(13, 30))
    assert entry.offset_minutes == 20
    assert entry.sample_count == 1
    assert store.get("baby-1::1::midday") == entry


def test_constant_diff_converges_without_overshoot(store):
    offsets = []
    for _ in range(10):
        entry = store.update("baby-1", 2, "afternoon", at(15), at(15, 20))
        offsets.append(entry.offset_minutes)
    assert all(offset == 20 for offset in offsets)
    assert store.get("baby-1::2::afternoon").sample_count == 10


def test_ema_approaches_observed_diff_monotonically(store):
    store.update("baby-1", 1, "morning", at(9), at(9))
    offsets = [store.update("baby-1", 1, "morning", at(9), at(9, 20)).offset_minutes for _ in range(9)]
    assert offsets[0] == pytest.approx(6)
    assert all(a < b for a, b in zip(offsets, offsets[1:]))
    assert all(0 < offset < 20 for offset in offsets)


def test_diff_and_offset_are_clamped(store):
    entry = store.update("baby-1", 1, "morning", at(9), at(13))
    assert entry.offset_minutes == 60
    entry = store.update("baby-1", 1, "morning", at(13), at(9))
    assert entry.offset_minutes == 60 + 0.3 * (-60 - 60)
    for _ in range(30):
        entry = store.update("baby-1", 1, "morning", at(13), at(9))
    assert -60 <= entry.offset_minutes <= 60


def test_sample_count_is_capped(store):
    for _ in range(60):
        entry = store.update("baby-1", 1, "morning", at(9), at(9, 5))
    assert entry.sample_count == 50


def test_keys_are_independent(store):
    store.update("baby-1", 1, "morning", at(9), at(9, 30))
    store.update("baby-2", 1, "morning", at(9), at(8, 30))
    assert store.get(personalization_key("baby-1", 1, "morning")).offset_minutes == 30
    assert store.get(personalization_key("baby-2", 1, TimeOfDayBucket.MORNING)).offset_minutes == -30
    assert store.get(personalization_key("baby-1", 2, "morning")) is None


def test_adopt_replaces_unchanged_entry_only(store):
    local = store.update("baby-1", 1, "morning", at(9), at(9, 30), updated_at=at(9, 30))
    persisted = PersonalizationEntry(offset_minutes=80, sample_count=4, last_updated=at(10))

    assert store.adopt("baby-1::1::morning", persisted, expected=local)
    adopted = store.get("baby-1::1::morning")
    assert adopted.offset_minutes == 60
    assert adopted.sample_count == 4
    assert store.dirty_keys() == set()

    store.update("baby-1", 1, "morning", at(9), at(9, 30), updated_at=at(11))
    assert not store.adopt("baby-1::1::morning", persisted, expected=adopted)
    assert store.dirty_keys() == {"baby-1::1::morning"}


def test_snapshot_is_a_copy_and_reset_clears(store):
    store.update("baby-1", 1, "morning", at(9), at(9, 30))
    snapshot = store.snapshot()
    store.reset()
    assert len(store) == 0
    assert "baby-1::1::morning" in snapshot
    with pytest.raises(TypeError):
        snapshot["baby-1::1::morning"] = None


def test_concurrent_updates_are_not_lost(store):
    def report():
        for _ in range(5):
            store.update("baby-1", 1, "morning", at(9), at(9, 10))

    threads = [threading.Thread(target=report) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.get("baby-1::1::morning").sample_count == 40


def test_load_replaces_and_reclamps(store):
    store.update("baby-1", 1, "morning", at(9), at(9, 30))
    store.load({"baby-9::2::evening": PersonalizationEntry(offset_minutes=95, sample_count=70, last_updated=at(8))})
    assert store.get("baby-1::1::morning") is None
    loaded = store.get("baby-9::2::evening")
    assert loaded.offset_minutes == 60
    assert loaded.sample_count == 50
    assert store.dirty_keys() == set()


def test_dirty_tracking(store):
    store.update("baby-1", 1, "morning", at(9), at(9, 30))
    assert store.dirty_keys() == {"baby-1::1::morning"}
    store.mark_clean(["baby-1::1::morning"])
    assert store.dirty_keys() == set()


def test_key_round_trip_with_separator_in_user_id():
    key = personalization_key("family::baby", 3, TimeOfDayBucket.EVENING)
    assert key == "family::baby::3::evening"
    assert split_personalization_key(key) == ("family::baby", 3, "evening")
