import json
import logging
import logging.config
from typing import Any, Dict

from app.core.config import settings


# Attributes every LogRecord carries; anything else came in through `extra=`
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class StructuredJSONFormatter(logging.Formatter):
    """One JSON object per line: base fields, exception text, then `extra=` context (rule_id, dedup_key...)."""

    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "environment": settings.ENVIRONMENT,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        log_record.update(
            (key, value)
            for key, value in record.__dict__.items()
            if not key.startswith("_") and key not in _RESERVED_ATTRS
        )

        # datetimes and enums from reminder context are stringified
        return json.dumps(log_record, ensure_ascii=False, default=str)


_CONFIGURED = False


def configure_logging() -> None:
    """Configure the structured root logger once per process (API, celery worker or script)."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    log_level = "DEBUG" if settings.DEBUG else "INFO"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": "app.core.logging_config.StructuredJSONFormatter",
                    "datefmt": "%Y-%m-%dT%H:%M:%S%z",
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "structured",
                    "level": log_level,
                }
            },
            "root": {
                "level": log_level,
                "handlers": ["default"],
            },
            "loggers": {
                "uvicorn.access": {"level": "WARNING"},
                "uvicorn.error": {"level": "INFO"},
                "celery": {"level": "INFO"},
                # one line per Telegram/PostgREST request is noise at INFO
                "httpx": {"level": "WARNING"},
                "hpack": {"level": "WARNING"},
            },
        }
    )

    _CONFIGURED = True
