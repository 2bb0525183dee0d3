import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, status

from app.core.config import settings
from app.services.reminders.scheduler import ReminderScheduler, get_reminder_scheduler

logger = logging.getLogger(__name__)


def verify_trigger_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """
    Guard for the manual/cron trigger endpoints.
    When TRIGGER_SECRET is set the caller must send `Authorization: Bearer <secret>`
    (the header external cron services send); when empty the check is disabled.
    """
    expected = settings.TRIGGER_SECRET
    if not expected:
        return

    token = ""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):]

    if not hmac.compare_digest(token.encode(), expected.encode()):
        logger.warning("Rejected reminder trigger with missing or invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid trigger secret",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_optional_reminder_scheduler() -> Optional[ReminderScheduler]:
    """
    The process scheduler, or None when the engine cannot be built
    (e.g. Supabase not configured), so the liveness probe can still answer.
    """
    try:
        return get_reminder_scheduler()
    except Exception as e:
        logger.error(f"Reminder engine unavailable: {e}")
        return None
