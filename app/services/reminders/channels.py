"""
Delivery channels: Telegram bot messages (chat) and Firebase Cloud Messaging (push).
Senders report outcomes as values; transport errors never escape them.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, cast

import firebase_admin
import httpx
from firebase_admin import credentials, exceptions, messaging

from app.core.config import settings

logger = logging.getLogger(__name__)


# --------------------------- Chat (Telegram) ---------------------------

@dataclass(frozen=True)
class ChatSendResult:
    ok: bool
    description: str | None = None


class ChatSender(Protocol):
    def send_message(self, chat_id: str, text: str) -> ChatSendResult: ...


class TelegramSender:
    def __init__(
        self,
        bot_token: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._api_base = api_base.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls) -> TelegramSender | None:
        if not settings.TELEGRAM_BOT_TOKEN:
            logger.warning("TELEGRAM_BOT_TOKEN not configured; chat delivery disabled")
            return None
        return cls(
            settings.TELEGRAM_BOT_TOKEN,
            api_base=settings.TELEGRAM_API_BASE,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    def send_message(self, chat_id: str, text: str) -> ChatSendResult:
        url = f"{self._api_base}/bot{self._bot_token}/sendMessage"
        try:
            response = self._client.post(
                url,
                json={"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
            )
        except httpx.HTTPError as e:
            # str(e) may embed the request URL, which carries the bot token
            return ChatSendResult(False, f"transport error: {type(e).__name__}")

        try:
            data = cast(dict[str, object], response.json())
        except ValueError:
            return ChatSendResult(False, f"HTTP {response.status_code}: non-JSON response")

        if not data.get("ok"):
            description = data.get("description") or f"HTTP {response.status_code}"
            return ChatSendResult(False, str(description))
        return ChatSendResult(True)

    def close(self) -> None:
        self._client.close()


# --------------------------- Push (Firebase) ---------------------------

class PushStatus(str, Enum):
    SENT = "sent"
    INVALID_TOKEN = "invalid_token"
    ERROR = "error"


@dataclass(frozen=True)
class PushSendResult:
    status: PushStatus
    message_id: str | None = None
    error: str | None = None


class PushSender(Protocol):
    platform: str

    def send(self, token: str, title: str, body: str) -> PushSendResult: ...


_FIREBASE_APP_NAME = "reminders"


class FirebasePushSender:
    def __init__(self, app: firebase_admin.App, platform: str = "android") -> None:
        self._app = app
        self.platform = platform

    @classmethod
    def from_settings(cls) -> FirebasePushSender | None:
        path = settings.FIREBASE_CREDENTIALS_PATH
        if not path or not os.path.isfile(path):
            logger.warning("Firebase credentials not configured; push delivery disabled")
            return None
        try:
            app = firebase_admin.get_app(_FIREBASE_APP_NAME)
        except ValueError:
            options: dict[str, object] = {"httpTimeout": settings.HTTP_TIMEOUT_SECONDS}
            if settings.FIREBASE_PROJECT_ID:
                options["projectId"] = settings.FIREBASE_PROJECT_ID
            try:
                app = firebase_admin.initialize_app(
                    credentials.Certificate(path), options, name=_FIREBASE_APP_NAME
                )
            except (ValueError, OSError) as e:
                logger.error(f"Invalid Firebase credentials at {path}: {e}; push delivery disabled")
                return None
        return cls(app, platform=settings.PUSH_PLATFORM)

    def build_message(self, token: str, title: str, body: str) -> messaging.Message:
        return messaging.Message(
            token=token,
            notification=messaging.Notification(title=title, body=body),
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(
                    sound="default",
                    channel_id="default",
                    click_action="FLUTTER_NOTIFICATION_CLICK",
                ),
            ),
        )

    def send(self, token: str, title: str, body: str) -> PushSendResult:
        try:
            message_id = messaging.send(self.build_message(token, title, body), app=self._app)
        except (messaging.UnregisteredError, messaging.SenderIdMismatchError) as e:
            return PushSendResult(PushStatus.INVALID_TOKEN, error=str(e))
        except exceptions.InvalidArgumentError as e:
            # title/body are always valid strings, so the token is what FCM rejected
            return PushSendResult(PushStatus.INVALID_TOKEN, error=str(e))
        except ValueError as e:
            # raised locally for empty or non-string tokens
            return PushSendResult(PushStatus.INVALID_TOKEN, error=str(e))
        except exceptions.FirebaseError as e:
            return PushSendResult(PushStatus.ERROR, error=f"{e.code}: {e}")
        return PushSendResult(PushStatus.SENT, message_id=message_id)
