"""FastAPI app: lifespan, CORS, router registration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
from .api.sleep_window import router as sleep_window_router
from .services.personalization import get_personalization_store
from .services.personalization_repository import PersonalizationRepository
from .services.scheduler import start_scheduler, stop_scheduler
from .core.database import get_database
from .core.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


# Used by: FastAPI lifespan. Loads learned offsets and starts the flush job when a DB is configured
@asynccontextmanager
async def lifespan(app: FastAPI):
    repository = None
    if settings.DATABASE_URL:
        db = get_database()
        await db.connect(settings.DATABASE_URL)
        repository = PersonalizationRepository(db)
        await repository.ensure_table()
        await repository.hydrate(get_personalization_store())
        await start_scheduler(repository)
    else:
        logger.warning("DB_CONNECTION_STRING not set: personalization is kept in memory only")

    yield

    if repository is not None:
        await stop_scheduler()
        await repository.flush(get_personalization_store())
        await get_database().disconnect()


app = FastAPI(
    title="Nap Window API",
    version="1.0.0",
    description="Next nap window prediction with per-child personalization",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sleep_window_router)
