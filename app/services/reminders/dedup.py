"""
Dedup cache for reminder firings.

A key names one logical firing (rule + firing window). Once marked, the same
key is suppressed until its entry ages out. Two backends:
  - MemoryDedupCache: process-local, lost on restart (at most one duplicate
    per in-flight window after a restart).
  - RedisDedupCache: shared by every worker process and survives restarts.
"""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Protocol, cast
from collections.abc import Iterator

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(hours=2)


def time_key(rule_id: str, fire_at: datetime) -> str:
    """Key for a time rule: the scheduled occurrence truncated to the minute (UTC)."""
    bucket = fire_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M")
    return f"{rule_id}-time-{bucket}"


def interval_key(rule_id: str, window: int, anchor: datetime | None = None) -> str:
    """
    Key for an interval rule.

    Without an anchor this is the plain `{rule_id}-interval-{window}` form.
    The engine always passes the end of the activity the windows are counted
    from and gets `{rule_id}-interval-{window}-{anchor epoch seconds}`: with
    the plain form, window 1 after a new activity would collide with window 1
    of the previous activity while that entry is still retained, and the
    reminder would be suppressed.
    """
    key = f"{rule_id}-interval-{window}"
    if anchor is not None:
        key = f"{key}-{int(anchor.timestamp())}"
    return key


class DedupCache(Protocol):
    def has_sent(self, key: str) -> bool: ...
    def mark_sent(self, key: str, now: datetime | None = None, retain_for: timedelta | None = None) -> None: ...
    def purge_older_than(self, horizon: timedelta, now: datetime | None = None) -> int: ...
    def size(self) -> int: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _Entry:
    recorded_at: datetime
    retain_for: timedelta


class MemoryDedupCache:
    """Thread-safe in-process dedup map."""

    def __init__(self, retention: timedelta = DEFAULT_RETENTION) -> None:
        self.retention = retention
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def has_sent(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def mark_sent(self, key: str, now: datetime | None = None, retain_for: timedelta | None = None) -> None:
        entry = _Entry(recorded_at=now or _utcnow(), retain_for=retain_for or timedelta(0))
        with self._lock:
            self._entries[key] = entry
        logger.debug(f"Dedup SET: {key}")

    def purge_older_than(self, horizon: timedelta, now: datetime | None = None) -> int:
        now = now or _utcnow()
        with self._lock:
            stale = [
                key for key, entry in self._entries.items()
                if now - entry.recorded_at > max(horizon, entry.retain_for)
            ]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(f"Dedup purge removed {len(stale)} entries")
        return len(stale)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisDedupCache:
    """
    Redis-backed dedup store. Entries are written with SETEX so Redis expires
    them on its own; purge_older_than additionally drops anything unparsable.
    """

    def __init__(self, client: redis.Redis, retention: timedelta = DEFAULT_RETENTION, prefix: str = "reminders:dedup:") -> None:
        self.client = client
        self.retention = retention
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, retention: timedelta = DEFAULT_RETENTION) -> RedisDedupCache:
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(client, retention=retention)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _scan(self) -> Iterator[str]:
        return cast(Iterator[str], self.client.scan_iter(match=f"{self.prefix}*"))

    def has_sent(self, key: str) -> bool:
        return bool(self.client.exists(self._key(key)))

    def mark_sent(self, key: str, now: datetime | None = None, retain_for: timedelta | None = None) -> None:
        recorded_at = now or _utcnow()
        keep = max(self.retention, retain_for or timedelta(0))
        payload = json.dumps({
            "recorded_at": recorded_at.isoformat(),
            "retain_seconds": int(keep.total_seconds()),
        })
        self.client.setex(self._key(key), int(keep.total_seconds()), payload)
        logger.debug(f"Dedup SET (redis): {key}")

    def purge_older_than(self, horizon: timedelta, now: datetime | None = None) -> int:
        now = now or _utcnow()
        removed = 0
        for redis_key in self._scan():
            raw = self.client.get(redis_key)
            if raw is None:
                continue
            try:
                data = json.loads(cast(str, raw))
                recorded_at = datetime.fromisoformat(data["recorded_at"])
                keep = max(horizon, timedelta(seconds=int(data.get("retain_seconds", 0))))
                stale = now - recorded_at > keep
            except (ValueError, TypeError, KeyError):
                stale = True
            if stale:
                self.client.delete(redis_key)
                removed += 1
        return removed

    def size(self) -> int:
        return sum(1 for _ in self._scan())


@lru_cache(maxsize=1)
def get_dedup_cache() -> DedupCache:
    """Process-wide dedup cache selected by DEDUP_BACKEND."""
    retention = timedelta(minutes=settings.DEDUP_RETENTION_MINUTES)
    if settings.DEDUP_BACKEND == "redis":
        logger.info("Using Redis dedup cache", extra={"redis_url": settings.REDIS_URL})
        return RedisDedupCache.from_url(settings.REDIS_URL, retention=retention)
    return MemoryDedupCache(retention=retention)
