"""
Domain types for the reminder engine.

A Rule carries exactly one schedule payload: TimeSchedule or IntervalSchedule.
Payload fields that are absent or malformed in storage are kept as None so the
matchers can fail closed instead of the tick crashing.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union, cast

from app.services.reminders.errors import RuleParseError


class RuleKind(str, Enum):
    TIME = "time"
    INTERVAL = "interval"


class ActivityKind(str, Enum):
    BREASTFEEDING = "breastfeeding"
    BOTTLE = "bottle"
    SLEEP = "sleep"
    BATH = "bath"
    WALK = "walk"
    DIAPER = "diaper"
    MEDICINE = "medicine"
    ACTIVITY = "activity"
    BURP = "burp"


@dataclass(frozen=True)
class TimeOfDay:
    hour: int
    minute: int

    @classmethod
    def parse(cls, raw: object) -> TimeOfDay | None:
        """Parse 'HH:MM' or 'HH:MM:SS'. Returns None when malformed."""
        if not isinstance(raw, str):
            return None
        parts = raw.strip().split(":")
        if len(parts) not in (2, 3):
            return None
        try:
            hour, minute = int(parts[0]), int(parts[1])
        except ValueError:
            return None
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            return None
        return cls(hour=hour, minute=minute)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass(frozen=True)
class TimeSchedule:
    time_of_day: TimeOfDay | None
    # 0 = Sunday .. 6 = Saturday
    repeat_days: frozenset[int] = frozenset()


@dataclass(frozen=True)
class IntervalSchedule:
    interval_minutes: float | None


Schedule = Union[TimeSchedule, IntervalSchedule]


@dataclass(frozen=True)
class Rule:
    id: str
    owner_id: str
    activity_kind: str
    schedule: Schedule
    enabled: bool = True
    title: str | None = None
    message: str | None = None

    @property
    def kind(self) -> RuleKind:
        if isinstance(self.schedule, TimeSchedule):
            return RuleKind.TIME
        return RuleKind.INTERVAL


@dataclass(frozen=True)
class ActivityRecord:
    subject_id: str
    kind: str
    start_time: datetime
    end_time: datetime | None = None

    @property
    def last_seen(self) -> datetime:
        """End of the activity, or its start while it is still running."""
        return self.end_time or self.start_time


@dataclass(frozen=True)
class DeviceToken:
    token: str
    platform: str


@dataclass
class DeliveryTarget:
    chat_id: str | None = None
    device_tokens: list[DeviceToken] = field(default_factory=list)

    def tokens_for(self, platform: str) -> list[str]:
        return [t.token for t in self.device_tokens if t.platform == platform]

    @property
    def is_empty(self) -> bool:
        return not self.chat_id and not self.device_tokens


# --------------------------- Parsing ---------------------------

def parse_timestamp(raw: object) -> datetime | None:
    """Parse an ISO-8601 timestamp from storage into an aware datetime."""
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, str) and raw.strip():
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _parse_repeat_days(raw: object) -> frozenset[int]:
    if not isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset()
    days: set[int] = set()
    for item in cast(list[object], list(raw)):
        try:
            day = int(cast(Any, item))
        except (TypeError, ValueError):
            continue
        if 0 <= day <= 6:
            days.add(day)
    return frozenset(days)


def _parse_interval(raw: object) -> float | None:
    if isinstance(raw, bool):
        return None
    try:
        value = float(cast(Any, raw))
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def _optional_text(raw: object) -> str | None:
    if isinstance(raw, str) and raw.strip():
        return raw
    return None


def parse_rule(row: dict[str, object]) -> Rule:
    """
    Build a Rule from a `notifications` row.
    Raises RuleParseError when the row has no identity or an unknown kind;
    payload problems are kept as None and fail closed in the matchers.
    """
    rule_id = row.get("id")
    owner_id = row.get("user_id")
    if rule_id in (None, "") or owner_id in (None, ""):
        raise RuleParseError("rule row is missing id or user_id", row_id=rule_id)

    raw_kind = str(row.get("notification_type") or "").strip().lower()
    try:
        kind = RuleKind(raw_kind)
    except ValueError:
        raise RuleParseError(f"unknown notification_type {raw_kind!r}", row_id=rule_id) from None

    schedule: Schedule
    if kind is RuleKind.TIME:
        schedule = TimeSchedule(
            time_of_day=TimeOfDay.parse(row.get("notification_time")),
            repeat_days=_parse_repeat_days(row.get("repeat_days")),
        )
    else:
        schedule = IntervalSchedule(interval_minutes=_parse_interval(row.get("interval_minutes")))

    return Rule(
        id=str(rule_id),
        owner_id=str(owner_id),
        activity_kind=str(row.get("activity_type") or ""),
        schedule=schedule,
        enabled=bool(row.get("enabled", True)),
        title=_optional_text(row.get("title")),
        message=_optional_text(row.get("message")),
    )


# --------------------------- Results ---------------------------

@dataclass
class ChannelOutcome:
    """Per-channel delivery tally. `skipped` is set when no attempt was made."""
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.succeeded > 0

    def to_dict(self) -> dict[str, object]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


@dataclass
class DeliveryResult:
    success: bool
    chat: ChannelOutcome = field(default_factory=ChannelOutcome)
    push: ChannelOutcome = field(default_factory=ChannelOutcome)
    invalid_tokens: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "per_channel": {"chat": self.chat.to_dict(), "push": self.push.to_dict()},
            "invalid_tokens": len(self.invalid_tokens),
            "error": self.error,
        }


class RuleStatus(str, Enum):
    SENT = "sent"
    SUPPRESSED = "suppressed"
    NOT_DUE = "not_due"
    UNDELIVERED = "undelivered"
    FAILED = "failed"


@dataclass
class RuleOutcome:
    rule_id: str
    status: RuleStatus
    dedup_key: str | None = None
    reason: str | None = None
    delivery: DeliveryResult | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"rule_id": self.rule_id, "status": self.status.value}
        if self.dedup_key:
            data["dedup_key"] = self.dedup_key
        if self.reason:
            data["reason"] = self.reason
        if self.delivery is not None:
            data["delivery"] = self.delivery.to_dict()
        return data


@dataclass
class TickReport:
    started_at: datetime
    finished_at: datetime | None = None
    outcomes: list[RuleOutcome] = field(default_factory=list)

    def count(self, status: RuleStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def rules_evaluated(self) -> int:
        return len(self.outcomes)

    def to_dict(self) -> dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "rules_evaluated": self.rules_evaluated,
            "counts": {s.value: self.count(s) for s in RuleStatus},
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
