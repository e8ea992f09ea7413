"""Pydantic request/response models for the sleep window endpoints."""

from pydantic import BaseModel, Field
from datetime import datetime, date
from typing import Any, Dict, List, Optional, Union

from ..services.baseline import TimeOfDayBucket


class SleepSessionIn(BaseModel):
    # Strings are accepted as-is; unparseable starts are dropped by the engine
    start: Union[datetime, str, None] = None
    end: Union[datetime, str, None] = None
    duration_minutes: Optional[float] = None


class SleepWindowRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    birthdate: Union[date, str, None] = None
    entries: List[SleepSessionIn] = Field(default_factory=list)
    anchor_bedtime: Optional[str] = None  # "19:30"
    now: Optional[datetime] = None


class SleepWindowResponse(BaseModel):
    user_id: str
    recommended_start: datetime
    earliest: datetime
    latest: datetime
    window_minutes: int
    nap_index_today: int
    time_of_day_bucket: TimeOfDayBucket
    debug: Dict[str, Any]


class ActualStartRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    nap_index: int = Field(..., ge=1)
    time_of_day_bucket: TimeOfDayBucket
    recommended_start: datetime
    actual_start: datetime


class PersonalizationEntryResponse(BaseModel):
    key: str
    offset_minutes: float
    sample_count: int
    last_updated: datetime


class PersonalizationSnapshotResponse(BaseModel):
    entries: List[PersonalizationEntryResponse]
