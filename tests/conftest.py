import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest


# Ensure project root is on sys.path so `import app...` works when running tests directly
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.services.reminders.channels import ChatSendResult, PushSendResult, PushStatus  # noqa: E402
from app.services.reminders.dedup import MemoryDedupCache  # noqa: E402
from app.services.reminders.dispatcher import DeliveryDispatcher  # noqa: E402
from app.services.reminders.engine import ReminderEngine  # noqa: E402
from app.services.reminders.models import (  # noqa: E402
    ActivityRecord,
    DeliveryTarget,
    DeviceToken,
    IntervalSchedule,
    Rule,
    TimeOfDay,
    TimeSchedule,
)

ALL_DAYS = frozenset(range(7))


def make_time_rule(
    rule_id: str = "rule-time",
    owner_id: str = "user-1",
    at: Optional[str] = "08:00",
    days=ALL_DAYS,
    **kwargs,
) -> Rule:
    return Rule(
        id=rule_id,
        owner_id=owner_id,
        activity_kind=kwargs.pop("activity_kind", "breastfeeding"),
        schedule=TimeSchedule(time_of_day=TimeOfDay.parse(at), repeat_days=frozenset(days)),
        **kwargs,
    )


def make_interval_rule(
    rule_id: str = "rule-interval",
    owner_id: str = "user-1",
    minutes: Optional[float] = 180,
    **kwargs,
) -> Rule:
    return Rule(
        id=rule_id,
        owner_id=owner_id,
        activity_kind=kwargs.pop("activity_kind", "sleep"),
        schedule=IntervalSchedule(interval_minutes=minutes),
        **kwargs,
    )


class FakeStore:
    """In-memory rule store; device token deletion mutates the owner's targets."""

    def __init__(self) -> None:
        self.rules: List[Rule] = []
        self.activities: Dict[tuple, ActivityRecord] = {}
        self.targets: Dict[str, DeliveryTarget] = {}
        self.deleted_tokens: List[str] = []
        self.resolve_calls: List[str] = []
        self.fail_rules: Optional[Exception] = None
        self.fail_activity_for: set = set()

    def list_enabled_rules(self) -> List[Rule]:
        if self.fail_rules is not None:
            raise self.fail_rules
        return [r for r in self.rules if r.enabled]

    def get_latest_activity(self, owner_id: str, activity_kind: str) -> Optional[ActivityRecord]:
        if owner_id in self.fail_activity_for:
            raise RuntimeError("store unreachable")
        return self.activities.get((owner_id, activity_kind))

    def set_activity(self, owner_id: str, kind: str, end_time: datetime) -> None:
        self.activities[(owner_id, kind)] = ActivityRecord(
            subject_id=f"baby-{owner_id}", kind=kind, start_time=end_time, end_time=end_time
        )

    def resolve_owner_channels(self, owner_id: str) -> DeliveryTarget:
        self.resolve_calls.append(owner_id)
        target = self.targets.get(owner_id, DeliveryTarget())
        return DeliveryTarget(chat_id=target.chat_id, device_tokens=list(target.device_tokens))

    def delete_device_tokens(self, tokens: List[str]) -> None:
        self.deleted_tokens.extend(tokens)
        for target in self.targets.values():
            target.device_tokens = [t for t in target.device_tokens if t.token not in tokens]


class FakeChatSender:
    def __init__(self, ok: bool = True, raises: Optional[Exception] = None) -> None:
        self.ok = ok
        self.raises = raises
        self.sent: List[tuple] = []

    def send_message(self, chat_id: str, text: str) -> ChatSendResult:
        self.sent.append((chat_id, text))
        if self.raises is not None:
            raise self.raises
        return ChatSendResult(self.ok, None if self.ok else "Bad Request: chat not found")


class FakePushSender:
    platform = "android"

    def __init__(self, outcomes: Optional[Dict[str, PushStatus]] = None, raises_for: Optional[set] = None) -> None:
        self.outcomes = outcomes or {}
        self.raises_for = raises_for or set()
        self.sent: List[tuple] = []

    def send(self, token: str, title: str, body: str) -> PushSendResult:
        self.sent.append((token, title, body))
        if token in self.raises_for:
            raise RuntimeError("connection reset")
        status = self.outcomes.get(token, PushStatus.SENT)
        if status is PushStatus.SENT:
            return PushSendResult(status, message_id=f"msg-{token}")
        return PushSendResult(status, error="Requested entity was not found.")


@pytest.fixture
def store() -> FakeStore:
    s = FakeStore()
    s.targets["user-1"] = DeliveryTarget(
        chat_id="1001",
        device_tokens=[DeviceToken("tok-a", "android")],
    )
    return s


@pytest.fixture
def chat_sender() -> FakeChatSender:
    return FakeChatSender()


@pytest.fixture
def push_sender() -> FakePushSender:
    return FakePushSender()


@pytest.fixture
def dedup() -> MemoryDedupCache:
    return MemoryDedupCache()


@pytest.fixture
def dispatcher(store, chat_sender, push_sender) -> DeliveryDispatcher:
    return DeliveryDispatcher(store, chat_sender=chat_sender, push_sender=push_sender)


@pytest.fixture
def engine(store, dispatcher, dedup) -> ReminderEngine:
    return ReminderEngine(store, dispatcher, dedup, tz=timezone.utc)


@pytest.fixture
def monday_8am() -> datetime:
    # 2026-01-05 is a Monday (weekday index 1 with Sunday = 0)
    return datetime(2026, 1, 5, 8, 0, 0, tzinfo=timezone.utc)
