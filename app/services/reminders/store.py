"""
Rule Store Adapter: the engine's read (and token-cleanup) surface over Supabase.
"""
from __future__ import annotations

import logging
from typing import Protocol, cast

from supabase.client import Client

from app.db.supabase_client import TableQueryProto, get_supabase_service_client, table
from app.services.reminders.errors import ReminderStoreError, RuleParseError
from app.services.reminders.models import (
    ActivityRecord,
    DeliveryTarget,
    DeviceToken,
    Rule,
    parse_rule,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


class ReminderStore(Protocol):
    def list_enabled_rules(self) -> list[Rule]: ...
    def get_latest_activity(self, owner_id: str, activity_kind: str) -> ActivityRecord | None: ...
    def resolve_owner_channels(self, owner_id: str) -> DeliveryTarget: ...
    def delete_device_tokens(self, tokens: list[str]) -> None: ...


def _rows(resp: object) -> list[dict[str, object]]:
    data = getattr(resp, "data", None)
    return cast(list[dict[str, object]], data) if isinstance(data, list) else []


class SupabaseReminderStore:
    RULES_TABLE = "notifications"
    SUBJECTS_TABLE = "babies"
    ACTIVITIES_TABLE = "activities"
    TOKENS_TABLE = "device_tokens"

    def __init__(self, client: Client | None = None) -> None:
        self.supabase: Client = client or get_supabase_service_client()

    def _table(self, name: str) -> TableQueryProto:
        return table(self.supabase, name)

    def list_enabled_rules(self) -> list[Rule]:
        try:
            resp = self._table(self.RULES_TABLE).select("*").eq("enabled", True).execute()
        except Exception as e:
            raise ReminderStoreError("list_enabled_rules", e) from e

        rules: list[Rule] = []
        for row in _rows(resp):
            try:
                rules.append(parse_rule(row))
            except RuleParseError as e:
                logger.warning(f"Skipping unusable rule row: {e}", extra={"rule_id": e.row_id})
        return rules

    def get_latest_activity(self, owner_id: str, activity_kind: str) -> ActivityRecord | None:
        """Newest activity of `activity_kind` for the owner's tracked child, by start time."""
        try:
            subject_resp = (
                self._table(self.SUBJECTS_TABLE)
                .select("id")
                .eq("user_id", owner_id)
                .limit(1)
                .execute()
            )
            subjects = _rows(subject_resp)
            if not subjects:
                return None
            subject_id = str(subjects[0]["id"])

            activity_resp = (
                self._table(self.ACTIVITIES_TABLE)
                .select("*")
                .eq("baby_id", subject_id)
                .eq("type", activity_kind)
                .order("start_time", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise ReminderStoreError("get_latest_activity", e) from e

        activities = _rows(activity_resp)
        if not activities:
            return None
        row = activities[0]
        start_time = parse_timestamp(row.get("start_time"))
        if start_time is None:
            logger.warning(f"Activity without a usable start_time for subject {subject_id}")
            return None
        return ActivityRecord(
            subject_id=subject_id,
            kind=activity_kind,
            start_time=start_time,
            end_time=parse_timestamp(row.get("end_time")),
        )

    def _chat_id(self, owner_id: str) -> str | None:
        response = self.supabase.auth.admin.get_user_by_id(owner_id)
        user = getattr(response, "user", None)
        metadata = cast(dict[str, object], getattr(user, "user_metadata", None) or {})
        chat_id = metadata.get("telegram_chat_id") or metadata.get("telegram_id")
        return str(chat_id) if chat_id else None

    def resolve_owner_channels(self, owner_id: str) -> DeliveryTarget:
        """
        Chat id and device tokens of an owner. A failed chat id lookup only
        disables the chat channel; a failed token query raises.
        """
        try:
            chat_id = self._chat_id(owner_id)
        except Exception as e:
            logger.warning(f"Could not read chat id of {owner_id}: {e}")
            chat_id = None

        try:
            token_resp = (
                self._table(self.TOKENS_TABLE)
                .select("token, platform")
                .eq("user_id", owner_id)
                .execute()
            )
        except Exception as e:
            raise ReminderStoreError("resolve_owner_channels", e) from e

        tokens = [
            DeviceToken(token=str(row["token"]), platform=str(row.get("platform") or ""))
            for row in _rows(token_resp)
            if row.get("token")
        ]
        return DeliveryTarget(chat_id=chat_id, device_tokens=tokens)

    def delete_device_tokens(self, tokens: list[str]) -> None:
        if not tokens:
            return
        try:
            self._table(self.TOKENS_TABLE).delete().in_("token", tokens).execute()
        except Exception as e:
            raise ReminderStoreError("delete_device_tokens", e) from e
        logger.info(f"Removed {len(tokens)} invalid device token(s)")
