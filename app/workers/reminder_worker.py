"""
Worker para la evaluación periódica de recordatorios
"""
import logging
from datetime import datetime, timezone

from app.celery_app import celery_app
from app.services.reminders.engine import get_reminder_engine

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def evaluate_reminder_rules(self) -> dict[str, object]:
    """
    Evalúa todas las reglas activas y envía los recordatorios que correspondan.
    No se reintenta: el siguiente tick (un minuto después) es el reintento natural.
    """
    try:
        report = get_reminder_engine().run_tick()
        return {
            "task": "evaluate_reminder_rules",
            "success": True,
            **report.to_dict(),
        }
    except Exception as e:
        logger.error(f"Error evaluating reminder rules: {str(e)}", exc_info=True)
        return {
            "task": "evaluate_reminder_rules",
            "success": False,
            "error": str(e),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
