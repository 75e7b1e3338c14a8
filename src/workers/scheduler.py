"""Process-wide job scheduler built on APScheduler's AsyncIOScheduler.

Trigger expressions:
    "HH:MM"             — daily at a fixed time of day (scheduler timezone)
    "every N minutes"   — fixed interval (also "every N hours")
    "*/15 * * * *"      — any five-field crontab

A job name maps to at most one registration: registering a name again
cancels the previous handle first, so a trigger never fires twice.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from src.errors import SchedulingError

logger = logging.getLogger("evetracker.workers.scheduler")

JobCallback = Callable[[], Awaitable[Any]]

_TIME_OF_DAY = re.compile(r"^(\d{1,2}):(\d{2})$")
_EVERY = re.compile(r"^every\s+(\d+)\s+(minutes?|hours?)$", re.IGNORECASE)


def parse_trigger(expr: str, tz: str = "UTC") -> BaseTrigger:
    """Translate a trigger expression into an APScheduler trigger.

    Args:
        expr: Time of day, "every N minutes/hours", or a crontab string.
        tz:   Timezone name for time-of-day and crontab triggers.

    Returns:
        A CronTrigger or IntervalTrigger.

    Raises:
        SchedulingError: If the expression is malformed or out of range.
    """
    text = (expr or "").strip()
    try:
        if match := _TIME_OF_DAY.match(text):
            hour, minute = int(match.group(1)), int(match.group(2))
            if hour > 23 or minute > 59:
                raise SchedulingError(f"Time of day out of range: {expr!r}")
            return CronTrigger(hour=hour, minute=minute, timezone=tz)

        if match := _EVERY.match(text):
            amount = int(match.group(1))
            if amount <= 0:
                raise SchedulingError(f"Interval must be positive: {expr!r}")
            if match.group(2).lower().startswith("hour"):
                return IntervalTrigger(hours=amount, timezone=tz)
            return IntervalTrigger(minutes=amount, timezone=tz)

        if len(text.split()) == 5:
            return CronTrigger.from_crontab(text, timezone=tz)
    except (ValueError, LookupError) as exc:
        raise SchedulingError(f"Invalid trigger {expr!r}: {exc}") from exc

    raise SchedulingError(
        f"Invalid trigger {expr!r}: expected 'HH:MM', 'every N minutes' or a crontab"
    )


@dataclass(frozen=True)
class JobHandle:
    """Identifies one registration of a job; stale after re-registration."""

    job_name: str
    trigger: str
    token: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class JobDescriptor:
    """Snapshot of a registered job.

    Attributes:
        name:        Job name (one registration per name).
        trigger:     Trigger expression it was registered with.
        enabled:     True while the registration is live.
        running:     True while a firing of the job is executing.
        next_run_at: Next fire time, None before the scheduler has started.
    """

    name: str
    trigger: str
    enabled: bool = True
    running: bool = False
    next_run_at: datetime | None = None


class Scheduler:
    """Register recurring async callbacks by job name."""

    def __init__(
        self,
        tz: str = "UTC",
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._tz = tz
        self._scheduler = scheduler or AsyncIOScheduler(timezone=tz)
        self._handles: dict[str, JobHandle] = {}
        self._in_flight: dict[str, int] = {}

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        """Start firing triggers. Must be called with an event loop running."""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started (%d jobs)", len(self._handles))

    def shutdown(self) -> None:
        """Stop firing triggers; in-flight callbacks are not interrupted."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler shut down")

    def register(
        self,
        job_name: str,
        trigger_expr: str,
        callback: JobCallback,
        run_immediately: bool = False,
    ) -> JobHandle:
        """Register ``callback`` to fire on ``trigger_expr``.

        Any previous registration under ``job_name`` is cancelled first.

        Args:
            job_name:        Unique job name.
            trigger_expr:    Trigger expression (see module docstring).
            callback:        Async callable with no arguments.
            run_immediately: Also fire once as soon as the scheduler runs.

        Raises:
            SchedulingError: If the trigger expression is invalid; an existing
                             registration is left untouched in that case.
        """
        trigger = parse_trigger(trigger_expr, self._tz)

        previous = self._handles.get(job_name)
        if previous is not None:
            logger.debug("Replacing registration of %s", job_name)
            self.cancel(previous)

        async def fire() -> None:
            self._in_flight[job_name] = self._in_flight.get(job_name, 0) + 1
            try:
                await callback()
            finally:
                self._in_flight[job_name] -= 1

        extra: dict[str, Any] = {}
        if run_immediately:
            extra["next_run_time"] = datetime.now(timezone.utc)

        self._scheduler.add_job(
            fire,
            trigger=trigger,
            id=job_name,
            name=job_name,
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=300,
            # Overlapping firings reach the callback; workers decide whether to skip
            max_instances=10,
            **extra,
        )
        handle = JobHandle(job_name=job_name, trigger=trigger_expr)
        self._handles[job_name] = handle
        logger.info("Registered job %s (%s)", job_name, trigger_expr)
        return handle

    def cancel(self, handle: JobHandle) -> bool:
        """Cancel a registration.

        Returns:
            True if the handle was the live registration, False if it was stale.
        """
        if self._handles.get(handle.job_name) != handle:
            return False
        del self._handles[handle.job_name]
        try:
            self._scheduler.remove_job(handle.job_name)
        except JobLookupError:
            logger.debug("Job %s already gone from the scheduler", handle.job_name)
        logger.info("Cancelled job %s", handle.job_name)
        return True

    def get_handle(self, job_name: str) -> JobHandle | None:
        return self._handles.get(job_name)

    def descriptors(self) -> list[JobDescriptor]:
        result = []
        for name, handle in self._handles.items():
            job = self._scheduler.get_job(name)
            result.append(
                JobDescriptor(
                    name=name,
                    trigger=handle.trigger,
                    enabled=job is not None,
                    running=self._in_flight.get(name, 0) > 0,
                    next_run_at=getattr(job, "next_run_time", None),
                )
            )
        return result
