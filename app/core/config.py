import os
from typing import ClassVar
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Reminder Notifier"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "production")

    # Environment configuration
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Supabase settings (service role: the engine reads every user's rules)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")
    SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    STORE_TIMEOUT_SECONDS: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "10"))

    # Chat channel (Telegram bot)
    TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    TELEGRAM_API_BASE: str = os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org")
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

    # Push channel (Firebase Cloud Messaging)
    FIREBASE_CREDENTIALS_PATH: str = os.getenv("FIREBASE_CREDENTIALS_PATH", "")
    FIREBASE_PROJECT_ID: str = os.getenv("FIREBASE_PROJECT_ID", "")
    PUSH_PLATFORM: str = os.getenv("PUSH_PLATFORM", "android")

    # Reminder engine
    REMINDER_TIMEZONE: str = os.getenv("REMINDER_TIMEZONE", "UTC")
    REMINDER_TICK_SECONDS: float = float(os.getenv("REMINDER_TICK_SECONDS", "60"))
    REMINDER_SCHEDULER_MODE: str = os.getenv("REMINDER_SCHEDULER_MODE", "inline")  # inline|celery|off
    DEDUP_BACKEND: str = os.getenv("DEDUP_BACKEND", "memory")  # memory|redis
    DEDUP_RETENTION_MINUTES: int = int(os.getenv("DEDUP_RETENTION_MINUTES", "120"))

    # Shared secret for the manual trigger endpoints; empty disables the check
    TRIGGER_SECRET: str = os.getenv("TRIGGER_SECRET", "")

    # Redis Configuration
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Celery Configuration
    CELERY_BROKER_URL: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    CELERY_RESULT_BACKEND: str = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")

    @field_validator("REMINDER_SCHEDULER_MODE", "DEDUP_BACKEND", mode="before")
    @classmethod
    def normalize_choice(cls, v: object) -> str:
        return str(v).strip().lower()

    @field_validator("REMINDER_TICK_SECONDS")
    @classmethod
    def check_tick_seconds(cls, v: float) -> float:
        # time rules fire within +/-60s of their time of day
        if v <= 0 or v > 60:
            raise ValueError("REMINDER_TICK_SECONDS must be in (0, 60]")
        return v

    @property
    def supabase_service_key(self) -> str:
        return self.SUPABASE_SERVICE_ROLE_KEY or self.SUPABASE_KEY

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )


# Instancia singleton de configuración
settings = Settings()
