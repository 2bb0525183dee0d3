"""
Rule matchers: pure functions of the rule, the evaluation instant and
(for interval rules) the end of the last matching activity.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo

from app.services.reminders.models import IntervalSchedule, Rule, TimeSchedule

# A time rule fires on any tick within this distance of its time of day,
# so the scheduler must tick at least once a minute.
FIRE_TOLERANCE = timedelta(seconds=60)


@dataclass(frozen=True)
class TimeMatch:
    should_send: bool
    # The scheduled occurrence that matched, used as the dedup window
    fire_at: datetime | None = None


@dataclass(frozen=True)
class IntervalMatch:
    should_send: bool
    window: int | None = None
    elapsed_minutes: float | None = None


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def weekday_index(dt: datetime) -> int:
    """Weekday with Sunday = 0 .. Saturday = 6, the convention rules are stored in."""
    return (dt.weekday() + 1) % 7


def match_time_rule(rule: Rule, now: datetime, tz: tzinfo = timezone.utc) -> TimeMatch:
    schedule = rule.schedule
    if not isinstance(schedule, TimeSchedule) or schedule.time_of_day is None:
        return TimeMatch(False)

    local_now = _aware(now).astimezone(tz)
    if weekday_index(local_now) not in schedule.repeat_days:
        return TimeMatch(False)

    # fold=0: an ambiguous wall time is its first occurrence, a skipped one
    # lands just after the gap. Same-zone subtraction ignores offsets, so compare in UTC.
    candidate = datetime.combine(
        local_now.date(),
        time(schedule.time_of_day.hour, schedule.time_of_day.minute),
        tzinfo=tz,
    )
    if abs(local_now.astimezone(timezone.utc) - candidate.astimezone(timezone.utc)) < FIRE_TOLERANCE:
        return TimeMatch(True, fire_at=candidate)
    return TimeMatch(False)


def matches_time_rule(rule: Rule, now: datetime, tz: tzinfo = timezone.utc) -> bool:
    return match_time_rule(rule, now, tz).should_send


def match_interval_rule(rule: Rule, now: datetime, last_activity_end: datetime | None) -> IntervalMatch:
    """
    Fire once the configured interval has elapsed since the last activity.
    `window` is floor(elapsed / interval): it only grows when another full
    interval passes, so re-firing happens at 1x, 2x, 3x the interval.
    """
    schedule = rule.schedule
    if not isinstance(schedule, IntervalSchedule) or last_activity_end is None:
        return IntervalMatch(False)

    interval = schedule.interval_minutes
    if interval is None or not math.isfinite(interval) or interval <= 0:
        return IntervalMatch(False)

    elapsed_minutes = (_aware(now) - _aware(last_activity_end)).total_seconds() / 60.0
    if elapsed_minutes < interval:
        return IntervalMatch(False, elapsed_minutes=elapsed_minutes)

    return IntervalMatch(
        True,
        window=math.floor(elapsed_minutes / interval),
        elapsed_minutes=elapsed_minutes,
    )
