from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Liveness probe for the reminder service."""

    status: str
    timestamp: datetime
    dedup_entries: int = -1
    push_enabled: bool = False
    chat_enabled: bool = False
    scheduler_running: bool = False
    error: Optional[str] = None


class TriggerResponse(BaseModel):
    """Result of an on-demand evaluation run."""

    success: bool
    timestamp: datetime
    message: Optional[str] = None
    error: Optional[str] = None
    report: Optional[Dict[str, Any]] = None
