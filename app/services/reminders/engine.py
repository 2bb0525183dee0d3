"""
Reminder evaluation engine
- Loads every enabled rule from the store
- Matches time-of-day and interval rules against the tick instant
- Suppresses repeated firings of the same window through the dedup cache
- Delivers through the two-channel dispatcher

Each rule is processed in isolation: its result is a RuleOutcome and nothing
it raises can abort the rest of the tick.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.services.reminders.channels import FirebasePushSender, TelegramSender
from app.services.reminders.dedup import DedupCache, get_dedup_cache, interval_key, time_key
from app.services.reminders.dispatcher import DeliveryDispatcher
from app.services.reminders.matchers import match_interval_rule, match_time_rule
from app.services.reminders.messages import compose
from app.services.reminders.models import (
    DeliveryTarget,
    IntervalSchedule,
    Rule,
    RuleKind,
    RuleOutcome,
    RuleStatus,
    TickReport,
)
from app.services.reminders.store import ReminderStore, SupabaseReminderStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReminderEngine:
    def __init__(
        self,
        store: ReminderStore,
        dispatcher: DeliveryDispatcher,
        dedup: DedupCache,
        tz: tzinfo = timezone.utc,
        retention: timedelta = timedelta(hours=2),
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.dedup = dedup
        self.tz = tz
        self.retention = retention

    def run_tick(self, now: datetime | None = None) -> TickReport:
        """
        Evaluate every enabled rule once.
        Raises ReminderStoreError only if the rule list cannot be fetched.
        """
        now = now or _utcnow()
        report = TickReport(started_at=now)

        # Independent purge so stale entries go away even when nothing fires
        self._purge(now)

        rules = self.store.list_enabled_rules()
        if not rules:
            logger.info("No active reminder rules found")

        # Owner -> channels, shared by all rules of this tick
        target_cache: dict[str, DeliveryTarget] = {}
        for rule in rules:
            report.outcomes.append(self.process_rule(rule, now, target_cache))

        report.finished_at = _utcnow()
        logger.info(
            "Reminder tick finished",
            extra={
                "rules_evaluated": report.rules_evaluated,
                "sent": report.count(RuleStatus.SENT),
                "suppressed": report.count(RuleStatus.SUPPRESSED),
                "failed": report.count(RuleStatus.FAILED),
            },
        )
        return report

    def process_rule(
        self,
        rule: Rule,
        now: datetime,
        target_cache: dict[str, DeliveryTarget] | None = None,
    ) -> RuleOutcome:
        try:
            return self._process_rule(rule, now, target_cache)
        except Exception as e:
            logger.error(f"Error processing reminder rule {rule.id}: {e}", exc_info=True, extra={"rule_id": rule.id})
            return RuleOutcome(rule.id, RuleStatus.FAILED, reason=str(e))

    def _process_rule(
        self,
        rule: Rule,
        now: datetime,
        target_cache: dict[str, DeliveryTarget] | None,
    ) -> RuleOutcome:
        if not rule.enabled:
            return RuleOutcome(rule.id, RuleStatus.NOT_DUE, reason="disabled")

        key, retain_for, reason = self._firing_key(rule, now)
        if key is None:
            return RuleOutcome(rule.id, RuleStatus.NOT_DUE, reason=reason)

        if self.dedup.has_sent(key):
            logger.debug(f"Notification already sent: {key}", extra={"rule_id": rule.id})
            return RuleOutcome(rule.id, RuleStatus.SUPPRESSED, dedup_key=key)

        title, message = compose(rule)
        delivery = self.dispatcher.send(rule.owner_id, title, message, target_cache)
        if not delivery.success:
            logger.warning(
                f"Reminder {rule.id} not delivered: {delivery.error or 'all channels failed'}",
                extra={"rule_id": rule.id, "dedup_key": key},
            )
            return RuleOutcome(rule.id, RuleStatus.UNDELIVERED, dedup_key=key, reason=delivery.error, delivery=delivery)

        try:
            self.dedup.mark_sent(key, now=now, retain_for=retain_for)
        except Exception as e:
            # delivered already; the next tick may repeat it
            logger.error(f"Could not record dedup key {key}: {e}", extra={"rule_id": rule.id})
        self._purge(now)

        logger.info(f"Reminder sent for rule {rule.id}", extra={"rule_id": rule.id, "dedup_key": key})
        return RuleOutcome(rule.id, RuleStatus.SENT, dedup_key=key, delivery=delivery)

    def _firing_key(self, rule: Rule, now: datetime) -> tuple[str | None, timedelta | None, str | None]:
        """Dedup key of the window this rule fires in at `now`, or None with a reason."""
        if rule.kind is RuleKind.TIME:
            match = match_time_rule(rule, now, self.tz)
            if not match.should_send or match.fire_at is None:
                return None, None, "outside firing window"
            return time_key(rule.id, match.fire_at), None, None

        schedule = rule.schedule
        if not isinstance(schedule, IntervalSchedule) or schedule.interval_minutes is None:
            return None, None, "invalid interval"

        activity = self.store.get_latest_activity(rule.owner_id, rule.activity_kind)
        if activity is None:
            return None, None, "no prior activity"

        match = match_interval_rule(rule, now, activity.last_seen)
        if not match.should_send or match.window is None:
            return None, None, "interval not elapsed"
        # a window lasts one full interval, which may exceed the retention horizon
        return (
            interval_key(rule.id, match.window, activity.last_seen),
            timedelta(minutes=schedule.interval_minutes),
            None,
        )

    def _purge(self, now: datetime) -> None:
        try:
            self.dedup.purge_older_than(self.retention, now=now)
        except Exception as e:
            logger.warning(f"Dedup purge failed: {e}")


@lru_cache(maxsize=1)
def get_reminder_engine() -> ReminderEngine:
    """Process-wide engine wired from settings. Channel availability is logged once here."""
    store = SupabaseReminderStore()
    dispatcher = DeliveryDispatcher(
        store,
        chat_sender=TelegramSender.from_settings(),
        push_sender=FirebasePushSender.from_settings(),
    )
    logger.info(
        "Reminder engine initialised",
        extra={
            "chat_enabled": dispatcher.chat_enabled,
            "push_enabled": dispatcher.push_enabled,
            "dedup_backend": settings.DEDUP_BACKEND,
            "timezone": settings.REMINDER_TIMEZONE,
        },
    )
    return ReminderEngine(
        store,
        dispatcher,
        get_dedup_cache(),
        tz=ZoneInfo(settings.REMINDER_TIMEZONE),
        retention=timedelta(minutes=settings.DEDUP_RETENTION_MINUTES),
    )
