"""
Tests for the reminder dedup cache: key construction, memory backend and Redis backend.
"""
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import redis

from app.services.reminders.dedup import (
    MemoryDedupCache,
    RedisDedupCache,
    interval_key,
    time_key,
)

NOW = datetime(2026, 1, 5, 8, 0, 30, tzinfo=timezone.utc)


def test_time_key_is_minute_bucket_in_utc():
    fire_at = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)
    assert time_key("r1", fire_at) == "r1-time-2026-01-05T08:00"


def test_interval_key_encodes_window_and_anchor():
    anchor = datetime(2026, 1, 5, 5, 0, tzinfo=timezone.utc)
    assert interval_key("r1", 2) == "r1-interval-2"
    assert interval_key("r1", 1, anchor) != interval_key("r1", 2, anchor)
    assert interval_key("r1", 1, anchor) != interval_key("r1", 1, anchor + timedelta(minutes=10))
    assert interval_key("r1", 1, anchor).startswith("r1-interval-1-")


class TestMemoryDedupCache:
    def test_mark_and_check(self):
        cache = MemoryDedupCache()
        assert not cache.has_sent("k")
        cache.mark_sent("k", now=NOW)
        assert cache.has_sent("k")
        assert cache.size() == 1

    def test_purge_drops_entries_past_horizon(self):
        cache = MemoryDedupCache()
        cache.mark_sent("old", now=NOW - timedelta(hours=3))
        cache.mark_sent("fresh", now=NOW - timedelta(minutes=30))

        removed = cache.purge_older_than(timedelta(hours=2), now=NOW)

        assert removed == 1
        assert not cache.has_sent("old")
        assert cache.has_sent("fresh")

    def test_purge_keeps_entries_with_longer_retention(self):
        cache = MemoryDedupCache()
        cache.mark_sent("interval", now=NOW - timedelta(hours=3), retain_for=timedelta(hours=4))
        assert cache.purge_older_than(timedelta(hours=2), now=NOW) == 0
        assert cache.has_sent("interval")
        assert cache.purge_older_than(timedelta(hours=2), now=NOW + timedelta(hours=2)) == 1


class TestRedisDedupCache:
    @pytest.fixture
    def redis_mock(self):
        """Mock Redis client backed by a dict."""
        store: dict[str, str] = {}
        mock_redis = MagicMock(spec=redis.Redis)
        mock_redis.exists.side_effect = lambda key: int(key in store)
        mock_redis.setex.side_effect = lambda key, ttl, value: store.__setitem__(key, value)
        mock_redis.get.side_effect = lambda key: store.get(key)
        mock_redis.delete.side_effect = lambda key: store.pop(key, None)
        mock_redis.scan_iter.side_effect = lambda match=None: iter(list(store.keys()))
        mock_redis._store = store
        return mock_redis

    def test_mark_sent_uses_setex_with_retention_ttl(self, redis_mock):
        cache = RedisDedupCache(redis_mock, retention=timedelta(hours=2))
        cache.mark_sent("r1-time-2026-01-05T08:00", now=NOW)

        key, ttl, payload = redis_mock.setex.call_args.args
        assert key == "reminders:dedup:r1-time-2026-01-05T08:00"
        assert ttl == 7200
        assert json.loads(payload)["recorded_at"] == NOW.isoformat()
        assert cache.has_sent("r1-time-2026-01-05T08:00")

    def test_retain_for_extends_ttl(self, redis_mock):
        cache = RedisDedupCache(redis_mock, retention=timedelta(hours=2))
        cache.mark_sent("r1-interval-1", now=NOW, retain_for=timedelta(hours=3))
        assert redis_mock.setex.call_args.args[1] == 3 * 3600

    def test_purge_drops_stale_and_unparsable(self, redis_mock):
        cache = RedisDedupCache(redis_mock)
        cache.mark_sent("fresh", now=NOW)
        cache.mark_sent("old", now=NOW - timedelta(hours=5))
        redis_mock._store["reminders:dedup:garbage"] = "not-json"

        removed = cache.purge_older_than(timedelta(hours=2), now=NOW)

        assert removed == 2
        assert cache.has_sent("fresh")
        assert not cache.has_sent("old")
        assert cache.size() == 1
