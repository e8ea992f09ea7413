"""Pydantic models mirroring the sleep_personalization table."""

from pydantic import BaseModel, ConfigDict
from datetime import datetime


# Used by: personalization_repository.py
class SleepPersonalization(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    personalization_key: str
    user_id: str
    nap_index: int
    time_of_day_bucket: str
    offset_minutes: float
    sample_count: int
    last_updated: datetime


SLEEP_PERSONALIZATION_DDL = [
    '''
    CREATE TABLE IF NOT EXISTS sleep_personalization (
        personalization_key VARCHAR(255) PRIMARY KEY,
        user_id VARCHAR(200) NOT NULL,
        nap_index INTEGER NOT NULL,
        time_of_day_bucket VARCHAR(16) NOT NULL,
        offset_minutes DOUBLE PRECISION NOT NULL,
        sample_count INTEGER NOT NULL,
        last_updated TIMESTAMP NOT NULL
    )
    ''',
    'CREATE INDEX IF NOT EXISTS ix_sleep_personalization_user ON sleep_personalization (user_id)',
]
