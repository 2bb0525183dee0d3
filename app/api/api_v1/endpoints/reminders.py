from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.deps import verify_trigger_secret
from app.schemas.reminders import TriggerResponse
from app.services.reminders.scheduler import ReminderScheduler, get_reminder_scheduler

logger = logging.getLogger(__name__)
router = APIRouter()


def _run_evaluation(scheduler: ReminderScheduler, message: str) -> JSONResponse:
    """Run one evaluation inline and report it; tick-level errors become a JSON 500."""
    try:
        report = scheduler.run_now()
    except Exception as e:
        logger.error(f"Manual reminder evaluation failed: {e}", exc_info=True)
        body = TriggerResponse(
            success=False,
            timestamp=datetime.now(timezone.utc),
            error=str(e),
        )
        return JSONResponse(status_code=500, content=body.model_dump(mode="json"))

    body = TriggerResponse(
        success=True,
        timestamp=datetime.now(timezone.utc),
        message=message,
        report=report.to_dict(),
    )
    return JSONResponse(content=body.model_dump(mode="json"))


# Sync handlers: FastAPI runs them in its threadpool, so a slow tick never blocks the event loop.
@router.post("/trigger", response_model=TriggerResponse)
def trigger_reminders(
    _: None = Depends(verify_trigger_secret),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """Manual re-evaluation of every enabled reminder rule."""
    return _run_evaluation(scheduler, "Reminder check triggered")


@router.get("/cron", response_model=TriggerResponse)
def cron_reminders(
    _: None = Depends(verify_trigger_secret),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """Entry point for external cron services (one call per minute)."""
    return _run_evaluation(scheduler, "Reminder check completed")
