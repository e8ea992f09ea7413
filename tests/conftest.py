from datetime import datetime

import pytest

from napwindow.services.personalization import PersonalizationStore, get_personalization_store
from napwindow.services.sleep_window_predictor import PredictorOptions, SleepWindowPredictor


def at(hour, minute=0, day=1):
    """Local wall-clock time on January `day`, 2024."""
    return datetime(2024, 1, day, hour, minute)


def nap(start, end, duration=None):
    record = {"start": start.isoformat(), "end": end.isoformat() if end else None}
    if duration is not None:
        record["durationMinutes"] = duration
    return record


@pytest.fixture
def store():
    return PersonalizationStore()


@pytest.fixture
def predictor(store):
    return SleepWindowPredictor(store=store, options=PredictorOptions())


@pytest.fixture(autouse=True)
def reset_global_store():
    get_personalization_store().reset()
    yield
    get_personalization_store().reset()
