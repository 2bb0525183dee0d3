from .models import (
    DeliveryResult,
    DeliveryTarget,
    Rule,
    RuleKind,
    RuleOutcome,
    RuleStatus,
    TickReport,
)
from .engine import ReminderEngine, get_reminder_engine
from .scheduler import ReminderScheduler, get_reminder_scheduler

__all__ = [
    "DeliveryResult",
    "DeliveryTarget",
    "Rule",
    "RuleKind",
    "RuleOutcome",
    "RuleStatus",
    "TickReport",
    "ReminderEngine",
    "get_reminder_engine",
    "ReminderScheduler",
    "get_reminder_scheduler",
]
