"""
Delivery Dispatcher: fans a reminder out to the owner's chat and push endpoints.

Every channel and every push token is attempted independently; a failure in
one never prevents an attempt on another. Tokens that FCM reports as invalid
are removed from the store after the fan-out.
"""
from __future__ import annotations

import logging

from app.services.reminders.channels import ChatSender, PushSender, PushStatus
from app.services.reminders.messages import format_chat_text
from app.services.reminders.models import ChannelOutcome, DeliveryResult, DeliveryTarget
from app.services.reminders.store import ReminderStore

logger = logging.getLogger(__name__)


class DeliveryDispatcher:
    def __init__(
        self,
        store: ReminderStore,
        chat_sender: ChatSender | None = None,
        push_sender: PushSender | None = None,
    ) -> None:
        self.store = store
        self.chat_sender = chat_sender
        self.push_sender = push_sender

    @property
    def chat_enabled(self) -> bool:
        return self.chat_sender is not None

    @property
    def push_enabled(self) -> bool:
        return self.push_sender is not None

    def resolve_target(self, owner_id: str, cache: dict[str, DeliveryTarget] | None = None) -> DeliveryTarget:
        if cache is not None and owner_id in cache:
            return cache[owner_id]
        target = self.store.resolve_owner_channels(owner_id)
        if cache is not None:
            cache[owner_id] = target
        return target

    def send(
        self,
        owner_id: str,
        title: str,
        message: str,
        target_cache: dict[str, DeliveryTarget] | None = None,
    ) -> DeliveryResult:
        try:
            target = self.resolve_target(owner_id, target_cache)
        except Exception as e:
            logger.error(f"Could not resolve delivery target for {owner_id}: {e}")
            return DeliveryResult(success=False, error=f"target resolution failed: {e}")

        chat = self._send_chat(target, title, message)
        push, invalid_tokens = self._send_push(target, title, message)

        if invalid_tokens:
            # the target may be cached for the rest of the tick
            target.device_tokens = [t for t in target.device_tokens if t.token not in invalid_tokens]
            try:
                self.store.delete_device_tokens(invalid_tokens)
            except Exception as e:
                logger.error(f"Failed to delete {len(invalid_tokens)} invalid token(s) for {owner_id}: {e}")

        result = DeliveryResult(
            success=chat.ok or push.ok,
            chat=chat,
            push=push,
            invalid_tokens=invalid_tokens,
        )
        if not result.success and target.is_empty:
            result.error = "no delivery channel for owner"
        return result

    def _send_chat(self, target: DeliveryTarget, title: str, message: str) -> ChannelOutcome:
        outcome = ChannelOutcome()
        if not target.chat_id:
            outcome.skipped = "no chat id"
            logger.info("Chat delivery skipped: owner has no chat id")
            return outcome
        if self.chat_sender is None:
            outcome.skipped = "chat channel not configured"
            logger.info("Chat delivery skipped: channel not configured")
            return outcome

        outcome.attempted = 1
        try:
            result = self.chat_sender.send_message(target.chat_id, format_chat_text(title, message))
        except Exception as e:
            logger.error(f"Chat send raised for chat {target.chat_id}: {e}")
            outcome.failed = 1
            outcome.errors.append(str(e))
            return outcome

        if result.ok:
            outcome.succeeded = 1
        else:
            logger.error(f"Telegram API error for chat {target.chat_id}: {result.description}")
            outcome.failed = 1
            outcome.errors.append(result.description or "unknown error")
        return outcome

    def _send_push(self, target: DeliveryTarget, title: str, message: str) -> tuple[ChannelOutcome, list[str]]:
        outcome = ChannelOutcome()
        invalid: list[str] = []
        if self.push_sender is None:
            outcome.skipped = "push channel not configured"
            return outcome, invalid

        tokens = target.tokens_for(self.push_sender.platform)
        if not tokens:
            outcome.skipped = "no device tokens"
            logger.info("Push delivery skipped: no device tokens")
            return outcome, invalid

        for token in tokens:
            outcome.attempted += 1
            try:
                result = self.push_sender.send(token, title, message)
            except Exception as e:
                logger.warning(f"Push send raised for token {token[:12]}...: {e}")
                outcome.failed += 1
                outcome.errors.append(str(e))
                continue

            if result.status is PushStatus.SENT:
                outcome.succeeded += 1
            elif result.status is PushStatus.INVALID_TOKEN:
                logger.warning(f"Invalid push token {token[:12]}..., scheduling removal")
                invalid.append(token)
                outcome.failed += 1
                outcome.errors.append(result.error or "invalid token")
            else:
                logger.warning(f"Push send failed for token {token[:12]}...: {result.error}")
                outcome.failed += 1
                outcome.errors.append(result.error or "push error")
        return outcome, invalid
