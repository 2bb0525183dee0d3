"""
In-process scheduler for the reminder engine.

An APScheduler BackgroundScheduler fires the tick job on every tick boundary
and runs it on its job thread pool, so a slow store or channel call never
delays the scheduler thread. The job has max_instances=1: if the previous
tick is still running the new one is skipped. run_now() is the on-demand
path: it runs inline on the caller's thread and is not serialised against
the job; overlapping runs are made idempotent by the dedup cache.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from functools import lru_cache

from apscheduler.events import EVENT_JOB_MAX_INSTANCES, JobSubmissionEvent
from apscheduler.schedulers.background import BackgroundScheduler

from app.core.config import settings
from app.services.reminders.engine import ReminderEngine, get_reminder_engine
from app.services.reminders.models import TickReport

logger = logging.getLogger(__name__)

TICK_JOB_ID = "reminder_tick"


class ReminderScheduler:
    def __init__(self, engine: ReminderEngine, interval_seconds: float = 60.0) -> None:
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.last_report: TickReport | None = None
        self.last_error: str | None = None
        self.last_tick_at: datetime | None = None
        self.skipped_ticks = 0
        self._scheduler: BackgroundScheduler | None = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.is_running:
            return
        # a shut down BackgroundScheduler keeps its closed executors, so every start gets a new one
        scheduler = BackgroundScheduler(daemon=True, timezone=timezone.utc)
        scheduler.add_listener(self._on_max_instances, EVENT_JOB_MAX_INSTANCES)
        scheduler.add_job(
            self._run_tick_safely,
            "interval",
            seconds=self.interval_seconds,
            next_run_time=self.next_tick_at(),
            max_instances=1,
            coalesce=True,
            id=TICK_JOB_ID,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(f"Reminder scheduler started (every {self.interval_seconds:g}s)")

    def stop(self) -> None:
        """Stop the scheduler; an in-flight tick is allowed to finish."""
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=True)
        logger.info("Reminder scheduler stopped")

    def seconds_until_next_tick(self, now_ts: float | None = None) -> float:
        """Delay to the next multiple of the interval, so ticks land on minute boundaries."""
        now_ts = time.time() if now_ts is None else now_ts
        return self.interval_seconds - (now_ts % self.interval_seconds)

    def next_tick_at(self, now_ts: float | None = None) -> datetime:
        now_ts = time.time() if now_ts is None else now_ts
        return datetime.fromtimestamp(now_ts + self.seconds_until_next_tick(now_ts), timezone.utc)

    def trigger_timer_tick(self) -> bool:
        """
        Make the tick job due immediately, as if its timer had fired.
        Returns False when the scheduler is not running. A tick still in
        flight makes APScheduler skip this one (counted in skipped_ticks).
        """
        scheduler = self._scheduler
        if scheduler is None or not scheduler.running:
            return False
        scheduler.modify_job(TICK_JOB_ID, next_run_time=datetime.now(timezone.utc))
        return True

    def _on_max_instances(self, event: JobSubmissionEvent) -> None:
        self.skipped_ticks += 1
        logger.warning("Previous reminder tick still running; skipping this one")

    def _run_tick_safely(self) -> None:
        self.last_tick_at = datetime.now(timezone.utc)
        try:
            self.last_report = self.engine.run_tick()
            self.last_error = None
        except Exception as e:
            self.last_error = str(e)
            logger.error(f"Error in reminder tick: {e}", exc_info=True)

    def run_now(self, now: datetime | None = None) -> TickReport:
        """Run one evaluation inline. Tick-level errors propagate to the caller."""
        self.last_tick_at = datetime.now(timezone.utc)
        report = self.engine.run_tick(now)
        self.last_report = report
        self.last_error = None
        return report


@lru_cache(maxsize=1)
def get_reminder_scheduler() -> ReminderScheduler:
    return ReminderScheduler(get_reminder_engine(), interval_seconds=settings.REMINDER_TICK_SECONDS)
