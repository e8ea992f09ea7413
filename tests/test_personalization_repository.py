import asyncio

from napwindow.core.database import DatabaseManager
from napwindow.services.personalization import PersonalizationEntry, PersonalizationStore
from napwindow.services.personalization_repository import PersonalizationRepository

from conftest import at

KEY = "baby-1::1::midday"


async def _connect(tmp_path):
    db = DatabaseManager()
    await db.connect(f"sqlite+aiosqlite:///{tmp_path / 'personalization.db'}")
    return db


def test_flush_and_hydrate_round_trip(tmp_path):
    async def scenario():
        db = await _connect(tmp_path)
        try:
            repository = PersonalizationRepository(db)
            await repository.ensure_table()
            await repository.ensure_table()

            store = PersonalizationStore()
            store.update("baby-1", 1, "midday", at(13, 10), at(13, 30), updated_at=at(13, 30))
            assert await repository.flush(store) == 1
            assert store.dirty_keys() == set()
            assert await repository.flush(store) == 0

            fresh = PersonalizationStore()
            assert await PersonalizationRepository(db).hydrate(fresh) == 1
            return fresh.get(KEY)
        finally:
            await db.disconnect()

    loaded = asyncio.run(scenario())
    assert loaded.offset_minutes == 20
    assert loaded.sample_count == 1
    assert loaded.last_updated == at(13, 30)


async def _two_devices(db):
    """Device A writes first; device B hydrates the same row, then A writes again at 14:00."""
    writer = PersonalizationRepository(db)
    await writer.ensure_table()
    store = PersonalizationStore()
    store.update("baby-1", 1, "midday", at(13), at(13, 20), updated_at=at(13, 20))
    await writer.flush(store)

    other_store = PersonalizationStore()
    other = PersonalizationRepository(db)
    await other.hydrate(other_store)

    store.update("baby-1", 1, "midday", at(13), at(13, 20), updated_at=at(14))
    assert await writer.flush(store) == 1
    return other, other_store


def test_newer_local_entry_wins_after_write_conflict(tmp_path):
    async def scenario():
        db = await _connect(tmp_path)
        try:
            other, other_store = await _two_devices(db)

            other_store.update("baby-1", 1, "midday", at(13), at(12, 40), updated_at=at(14, 5))
            results = [await other.flush(other_store)]
            dirty_after_conflict = other_store.dirty_keys()

            other_store.update("baby-1", 1, "midday", at(13), at(12, 40), updated_at=at(15))
            results.append(await other.flush(other_store))

            persisted = await PersonalizationRepository(db).load_all()
            return results, dirty_after_conflict, other_store.dirty_keys(), persisted[KEY]
        finally:
            await db.disconnect()

    results, dirty_after_conflict, dirty_at_end, persisted = asyncio.run(scenario())
    assert results == [1, 1]
    assert dirty_after_conflict == set()
    assert dirty_at_end == set()
    assert persisted.sample_count == 3
    assert persisted.last_updated == at(15)


def test_newer_stored_entry_replaces_local_after_write_conflict(tmp_path):
    async def scenario():
        db = await _connect(tmp_path)
        try:
            other, other_store = await _two_devices(db)

            other_store.update("baby-1", 1, "midday", at(13), at(12, 40), updated_at=at(13, 50))
            flushed = await other.flush(other_store)

            persisted = await PersonalizationRepository(db).load_all()
            return flushed, other_store.dirty_keys(), other_store.get(KEY), persisted[KEY]
        finally:
            await db.disconnect()

    flushed, dirty, local, persisted = asyncio.run(scenario())
    assert flushed == 0
    assert dirty == set()
    assert local == persisted
    assert persisted.sample_count == 2
    assert persisted.offset_minutes == 20
    assert persisted.last_updated == at(14)


def test_concurrent_insert_recovers_on_flush(tmp_path):
    async def scenario():
        db = await _connect(tmp_path)
        try:
            first = PersonalizationRepository(db)
            await first.ensure_table()
            first_store = PersonalizationStore()
            first_store.update("baby-1", 1, "midday", at(13), at(13, 20), updated_at=at(13, 20))

            second = PersonalizationRepository(db)
            second_store = PersonalizationStore()
            second_store.update("baby-1", 1, "midday", at(13), at(13, 10), updated_at=at(13, 30))

            results = [await first.flush(first_store), await second.flush(second_store)]
            persisted = await PersonalizationRepository(db).load_all()
            return results, second_store.dirty_keys(), persisted[KEY]
        finally:
            await db.disconnect()

    results, dirty, persisted = asyncio.run(scenario())
    assert results == [1, 1]
    assert dirty == set()
    assert persisted.offset_minutes == 10
    assert persisted.last_updated == at(13, 30)


def test_save_insert_conflict_returns_false(tmp_path):
    async def scenario():
        db = await _connect(tmp_path)
        try:
            repository = PersonalizationRepository(db)
            await repository.ensure_table()
            entry = PersonalizationEntry(offset_minutes=5, sample_count=1, last_updated=at(9))
            return await repository.save(KEY, entry), await repository.save(KEY, entry)
        finally:
            await db.disconnect()

    assert asyncio.run(scenario()) == (True, False)


def test_session_requires_connection():
    db = DatabaseManager()
    assert not db.is_connected
    try:
        db.session()
    except RuntimeError as e:
        assert "not connected" in str(e)
    else:
        raise AssertionError("expected RuntimeError")
