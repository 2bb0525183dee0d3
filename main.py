from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import Optional

from fastapi import Depends, FastAPI

from app.api.api_v1.api import api_router
from app.api.deps import get_optional_reminder_scheduler
from app.core.config import settings
from app.core.logging_config import configure_logging
from app.middleware.error_handlers import JSONErrorMiddleware
from app.schemas.reminders import HealthResponse
from app.services.reminders.scheduler import ReminderScheduler, get_reminder_scheduler

# CONFIGURACIÓN DE LOGS
configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    scheduler: ReminderScheduler | None = None
    if settings.REMINDER_SCHEDULER_MODE == "inline":
        scheduler = get_reminder_scheduler()
        scheduler.start()
    else:
        logger.info(f"In-process reminder scheduler disabled (mode={settings.REMINDER_SCHEDULER_MODE})")

    yield

    # Shutdown: in-flight deliveries are allowed to finish
    if scheduler is not None:
        scheduler.stop()
    logger.info("Shutting down reminder service")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(JSONErrorMiddleware, path_prefix=settings.API_V1_STR)

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root() -> dict:
    return {
        "message": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "OK",
    }


@app.get("/health", response_model=HealthResponse)
def health_check(
    scheduler: Optional[ReminderScheduler] = Depends(get_optional_reminder_scheduler),
) -> HealthResponse:
    if scheduler is None:
        return HealthResponse(
            status="degraded",
            timestamp=datetime.now(timezone.utc),
            error="reminder engine unavailable",
        )

    engine = scheduler.engine
    try:
        dedup_entries = engine.dedup.size()
    except Exception as e:
        logger.warning(f"Could not read dedup cache size: {e}")
        dedup_entries = -1
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        dedup_entries=dedup_entries,
        push_enabled=engine.dispatcher.push_enabled,
        chat_enabled=engine.dispatcher.chat_enabled,
        scheduler_running=scheduler.is_running,
    )
