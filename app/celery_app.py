from celery import Celery, signals
from app.core.config import settings
from app.core.logging_config import configure_logging

# Crear instancia de Celery
celery_app = Celery(
    "reminders",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.workers.reminder_worker"]
)

beat_schedule: dict[str, dict[str, object]] = {}
if settings.REMINDER_SCHEDULER_MODE == "celery":
    # Time rules fire within +/-60s, so this must never be slower than a minute
    beat_schedule["evaluate-reminder-rules"] = {
        "task": "app.workers.reminder_worker.evaluate_reminder_rules",
        "schedule": settings.REMINDER_TICK_SECONDS,
        "options": {"expires": settings.REMINDER_TICK_SECONDS},
    }

# Configuración de Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_routes={
        "app.workers.reminder_worker.*": {"queue": "notifications"},
    },
    beat_schedule=beat_schedule,
)


@signals.setup_logging.connect
def _setup_logging(**kwargs) -> None:
    # Workers log with the same JSON formatter as the API instead of celery's default
    configure_logging()


if __name__ == "__main__":
    celery_app.start()
