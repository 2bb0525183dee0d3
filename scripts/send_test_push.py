#!/usr/bin/env python3
"""
Envía una notificación push de prueba a un token registrado.

Uso:
    python scripts/send_test_push.py [--token TOKEN] [--user-id USER_ID]

Sin --token usa el primer token de la plataforma push configurada. Si FCM
responde que el token es inválido, se elimina de device_tokens.
"""

import argparse
import os
import sys

# Agregar el directorio raíz al path para importar módulos de la app
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.core.config import settings
from app.core.logging_config import configure_logging
from app.db.supabase_client import get_supabase_service_client, table
from app.services.reminders.channels import FirebasePushSender, PushStatus
from app.services.reminders.store import SupabaseReminderStore


def _pick_token(user_id: str | None) -> str | None:
    query = (
        table(get_supabase_service_client(), "device_tokens")
        .select("token, user_id")
        .eq("platform", settings.PUSH_PLATFORM)
    )
    if user_id:
        query = query.eq("user_id", user_id)
    rows = query.limit(1).execute().data or []
    return str(rows[0]["token"]) if rows else None


def main() -> int:
    parser = argparse.ArgumentParser(description="Send a test push notification")
    parser.add_argument("--token", help="device token to target")
    parser.add_argument("--user-id", help="pick the token of this user")
    parser.add_argument("--title", default="Test notification")
    parser.add_argument("--body", default="If you can read this, push delivery works")
    args = parser.parse_args()

    configure_logging()

    sender = FirebasePushSender.from_settings()
    if sender is None:
        print("❌ Firebase credentials are not configured (FIREBASE_CREDENTIALS_PATH)")
        return 1

    token = args.token or _pick_token(args.user_id)
    if not token:
        print("❌ No device tokens found")
        return 1

    print(f"📤 Sending test push to {token[:30]}...")
    result = sender.send(token, args.title, args.body)

    if result.status is PushStatus.SENT:
        print(f"✅ Success! Message ID: {result.message_id}")
        return 0

    if result.status is PushStatus.INVALID_TOKEN:
        print(f"❌ Token is invalid or expired: {result.error}")
        SupabaseReminderStore().delete_device_tokens([token])
        print("🗑️  Invalid token removed from database")
    else:
        print(f"💥 Send error: {result.error}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
