"""
APScheduler setup: persists learned personalization offsets.

Jobs:
  - Personalization flush: every PERSONALIZATION_FLUSH_INTERVAL_SECONDS (only with a database)
"""

import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from .personalization import get_personalization_store
from .personalization_repository import PersonalizationRepository
from ..core.settings import settings

logger = logging.getLogger(__name__)

scheduler: Optional[AsyncIOScheduler] = None
_repository: Optional[PersonalizationRepository] = None


# Used by: start_scheduler
async def _run_personalization_flush():
    if _repository is None:
        return
    await _repository.flush(get_personalization_store())


# Used by: main (lifespan startup)
async def start_scheduler(repository: PersonalizationRepository):
    """Initialize and start APScheduler."""
    global scheduler, _repository

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return

    _repository = repository
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _run_personalization_flush,
        trigger=IntervalTrigger(seconds=settings.PERSONALIZATION_FLUSH_INTERVAL_SECONDS),
        id="personalization_flush",
        name="Persist sleep personalization offsets",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(
        f"Scheduler started: personalization flush every "
        f"{settings.PERSONALIZATION_FLUSH_INTERVAL_SECONDS} seconds"
    )


# Used by: main (lifespan shutdown)
async def stop_scheduler():
    global scheduler, _repository

    if scheduler is None:
        logger.warning("Scheduler is not running")
        return

    logger.info("Shutting down scheduler...")
    scheduler.shutdown(wait=True)
    scheduler = None
    _repository = None
    logger.info("Scheduler stopped")


# Used by: api/sleep_window.py (GET /sleep-window/status)
def get_scheduler_status() -> dict:
    status = {
        "running": False,
        "flush_interval_seconds": settings.PERSONALIZATION_FLUSH_INTERVAL_SECONDS,
        "jobs": [],
    }
    if scheduler is None:
        return status

    status["running"] = scheduler.running
    status["jobs"] = [
        {
            "id": job.id,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
        }
        for job in scheduler.get_jobs()
    ]
    return status
