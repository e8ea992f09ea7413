"""
Sleep window API: next-nap prediction and personalization feedback.

Routes (/sleep-window):
  POST   /predict          - Next nap window from recent sleep history
  POST   /actual-start     - Report when the nap actually started (updates personalization)
  GET    /personalization  - Snapshot of learned offsets
  DELETE /personalization  - Clear learned offsets (diagnostics)
  GET    /status           - Persistence + scheduler status
"""

import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, status

from ..core.database import get_database
from ..services.personalization import get_personalization_store, personalization_key
from ..services.scheduler import get_scheduler_status
from ..services.sleep_window_predictor import SleepWindowPredictor
from .models import (
    SleepWindowRequest,
    SleepWindowResponse,
    ActualStartRequest,
    PersonalizationEntryResponse,
    PersonalizationSnapshotResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sleep-window", tags=["sleep-window"])


def get_predictor() -> SleepWindowPredictor:
    return SleepWindowPredictor(store=get_personalization_store())


# Used by: sleep tracker screen, reminder scheduling
@router.post("/predict", response_model=SleepWindowResponse)
async def predict_sleep_window(request: SleepWindowRequest):
    predictor = get_predictor()
    prediction = predictor.predict(
        user_id=request.user_id,
        entries=[entry.model_dump() for entry in request.entries],
        birthdate=request.birthdate,
        anchor_bedtime=request.anchor_bedtime,
        now=request.now or datetime.now(),
    )

    return SleepWindowResponse(
        user_id=request.user_id,
        recommended_start=prediction.recommended_start,
        earliest=prediction.earliest,
        latest=prediction.latest,
        window_minutes=prediction.window_minutes,
        nap_index_today=prediction.nap_index_today,
        time_of_day_bucket=prediction.time_of_day_bucket,
        debug=prediction.debug,
    )


# Used by: sleep tracker screen (sleep start)
@router.post("/actual-start", response_model=PersonalizationEntryResponse)
async def record_actual_start(request: ActualStartRequest):
    predictor = get_predictor()
    entry = predictor.record_actual_start(
        user_id=request.user_id,
        nap_index=request.nap_index,
        bucket=request.time_of_day_bucket,
        recommended_start=request.recommended_start,
        actual_start=request.actual_start,
    )
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="recommended_start and actual_start must be valid timestamps"
        )

    return PersonalizationEntryResponse(
        key=personalization_key(request.user_id, request.nap_index, request.time_of_day_bucket),
        offset_minutes=entry.offset_minutes,
        sample_count=entry.sample_count,
        last_updated=entry.last_updated,
    )


# Used by: debug screen
@router.get("/personalization", response_model=PersonalizationSnapshotResponse)
async def get_personalization_snapshot():
    snapshot = get_personalization_store().snapshot()
    return PersonalizationSnapshotResponse(entries=[
        PersonalizationEntryResponse(
            key=key,
            offset_minutes=entry.offset_minutes,
            sample_count=entry.sample_count,
            last_updated=entry.last_updated,
        )
        for key, entry in sorted(snapshot.items())
    ])


# Used by: debug screen
@router.delete("/personalization", status_code=status.HTTP_204_NO_CONTENT)
async def reset_personalization():
    get_personalization_store().reset()
    logger.warning("Personalization store cleared via API")


# Used by: health checks
@router.get("/status")
async def get_status():
    return {
        "database_connected": get_database().is_connected,
        "personalization_entries": len(get_personalization_store()),
        "scheduler": get_scheduler_status(),
    }
