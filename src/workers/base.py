"""Base class for the periodic background workers.

A worker is either Stopped (no registration) or Running (one live trigger
registration with the Scheduler).  Scheduled and manual runs share one
non-reentrant guard: while a run is in progress, further firings of the same
worker are logged and skipped instead of overlapping.

A failed run is logged and recorded as the worker's last report; the worker
stays registered for its next trigger.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from src.models.base import utc_now
from src.workers.scheduler import JobHandle, Scheduler


@dataclass
class JobRunReport:
    """Outcome of one worker run, kept in memory for the admin surface.

    Attributes:
        job_name:    Worker task name.
        trigger:     'schedule' or 'manual'.
        started_at:  UTC timestamp when the run started.
        finished_at: UTC timestamp when the run ended.
        status:      'running', 'success', 'failed' or 'skipped'.
        error:       Error message when status == 'failed'.
        detail:      Counters returned by the worker.
    """

    job_name: str
    trigger: str
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None
    status: str = "running"
    error: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)


class Worker(ABC):
    """A named periodic task bound to one trigger expression."""

    #: Task slug, also used as the scheduler job name.
    name: str = "worker"

    #: Human-readable name for logs and the status listing.
    display_name: str = "Worker"

    #: Fire once as soon as the scheduler runs, in addition to the trigger.
    run_on_start: bool = False

    def __init__(
        self,
        scheduler: Scheduler,
        trigger: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._scheduler = scheduler
        self._trigger = trigger
        self._clock = clock
        self._handle: JobHandle | None = None
        self._in_progress = False
        self._last_report: JobRunReport | None = None
        self.logger = logging.getLogger(f"evetracker.workers.{self.name}")

    @property
    def trigger(self) -> str:
        return self._trigger

    @property
    def is_running(self) -> bool:
        """True while the worker holds a live trigger registration."""
        return self._handle is not None

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def last_report(self) -> JobRunReport | None:
        return self._last_report

    def start(self) -> None:
        """Register the trigger.

        Raises:
            SchedulingError: If the trigger expression is invalid.
        """
        if self._handle is not None:
            self.logger.warning("%s already started", self.display_name)
            return
        self._handle = self._scheduler.register(
            self.name, self._trigger, self._on_trigger, run_immediately=self.run_on_start
        )
        self.logger.info("%s started (%s)", self.display_name, self._trigger)

    def stop(self) -> None:
        """Cancel future firings; a run already in progress completes."""
        if self._handle is None:
            return
        self._scheduler.cancel(self._handle)
        self._handle = None
        self.logger.info("%s stopped", self.display_name)

    async def run_now(self) -> JobRunReport:
        """Run once outside the schedule (admin action)."""
        return await self._guarded_run("manual")

    async def _on_trigger(self) -> None:
        await self._guarded_run("schedule")

    async def _guarded_run(self, trigger: str) -> JobRunReport:
        if self._in_progress:
            self.logger.warning(
                "%s: previous run still in progress, skipping this %s run",
                self.display_name, trigger,
            )
            now = self._clock()
            return JobRunReport(
                job_name=self.name, trigger=trigger, started_at=now,
                finished_at=now, status="skipped",
            )

        self._in_progress = True
        report = JobRunReport(job_name=self.name, trigger=trigger, started_at=self._clock())
        try:
            report.detail = await self.run() or {}
            report.status = "success"
        except Exception as exc:
            self.logger.exception("Error in %s", self.display_name)
            report.status = "failed"
            report.error = str(exc)
        finally:
            self._in_progress = False
            report.finished_at = self._clock()
            self._last_report = report
        return report

    @abstractmethod
    async def run(self) -> dict[str, Any]:
        """Do one unit of work and return counters for the run report."""
