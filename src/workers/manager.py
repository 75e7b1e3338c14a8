"""Lifecycle of the background workers.

The manager owns a fixed registry of workers and an explicit LifecycleState.

Usage::

    manager = build_worker_manager(settings, store, http_client)
    manager.start_all()
    ...
    manager.stop_all()
    manager.scheduler.shutdown()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

import httpx

from src.config import Settings
from src.esi.client import EsiClient
from src.esi.sso import SsoClient
from src.esi.tokens import TokenManager
from src.models.base import utc_now
from src.stores.base import CharacterStore
from src.sync.engine import CharacterSyncEngine
from src.workers.backup import BackupWorker
from src.workers.base import JobRunReport, Worker
from src.workers.data_refresh import DataRefreshWorker
from src.workers.db_maintenance import DbMaintenanceWorker
from src.workers.scheduler import Scheduler
from src.workers.token_refresh import TokenRefreshWorker

logger = logging.getLogger("evetracker.workers")


@dataclass
class LifecycleState:
    """Running state of one WorkerManager."""

    running: bool = False
    started_at: datetime | None = None
    stopped_at: datetime | None = None


@dataclass(frozen=True)
class WorkerStatus:
    """What the admin surface shows: the running flag and the worker names."""

    running: bool
    workers: list[str] = field(default_factory=list)


class WorkerManager:
    """Start, stop and inspect a fixed set of workers."""

    def __init__(
        self,
        workers: list[Worker],
        scheduler: Scheduler | None = None,
        state: LifecycleState | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._workers = list(workers)
        self._scheduler = scheduler
        self._state = state or LifecycleState()
        self._clock = clock

    @property
    def scheduler(self) -> Scheduler | None:
        return self._scheduler

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def workers(self) -> list[Worker]:
        return list(self._workers)

    def start_all(self) -> LifecycleState:
        """Start every worker; one failing worker does not block the others."""
        if self._state.running:
            logger.warning("Workers are already running")
            return self._state

        logger.info("Starting all workers...")
        for worker in self._workers:
            try:
                logger.info("Starting %s", worker.display_name)
                worker.start()
            except Exception:
                logger.exception("Failed to start %s", worker.display_name)

        if self._scheduler is not None:
            self._scheduler.start()

        self._state.running = True
        self._state.started_at = self._clock()
        logger.info("All workers started")
        return self._state

    def stop_all(self) -> LifecycleState:
        """Cancel every worker's future runs; in-flight runs complete."""
        if not self._state.running:
            logger.warning("Workers are not running")
            return self._state

        logger.info("Stopping all workers...")
        for worker in self._workers:
            try:
                logger.info("Stopping %s", worker.display_name)
                worker.stop()
            except Exception:
                logger.exception("Failed to stop %s", worker.display_name)

        self._state.running = False
        self._state.stopped_at = self._clock()
        logger.info("All workers stopped")
        return self._state

    def restart_all(self) -> LifecycleState:
        if self._state.running:
            self.stop_all()
        return self.start_all()

    def status(self) -> WorkerStatus:
        return WorkerStatus(
            running=self._state.running,
            workers=[w.display_name for w in self._workers],
        )

    def get_worker(self, task: str) -> Worker:
        """Look up a worker by task name ('refresh-data', 'backup', ...).

        Raises:
            KeyError: If no worker has that task name.
        """
        for worker in self._workers:
            if worker.name == task:
                return worker
        raise KeyError(
            f"Unknown worker task '{task}'. Available: {[w.name for w in self._workers]}"
        )

    async def run_task(self, task: str) -> JobRunReport:
        """Run one worker immediately, outside its schedule."""
        worker = self.get_worker(task)
        logger.info("Running %s manually", worker.display_name)
        return await worker.run_now()

    def reports(self) -> dict[str, JobRunReport | None]:
        """Last run report per task name (None if the worker never ran)."""
        return {w.name: w.last_report for w in self._workers}


def build_worker_manager(
    settings: Settings,
    store: CharacterStore,
    http_client: httpx.AsyncClient,
    clock: Callable[[], datetime] = utc_now,
) -> WorkerManager:
    """Wire the four default workers over one scheduler and one HTTP client."""
    scheduler = Scheduler(tz=settings.scheduler_timezone)
    sso = SsoClient(settings=settings, http_client=http_client, clock=clock)
    tokens = TokenManager(store, sso, clock=clock)
    esi = EsiClient(tokens, settings=settings, http_client=http_client)
    engine = CharacterSyncEngine(esi, store, journal_limit=settings.journal_limit, clock=clock)

    workers: list[Worker] = [
        DataRefreshWorker(
            scheduler,
            store,
            engine,
            interval_minutes=settings.data_refresh_interval,
            delay_seconds=settings.data_refresh_delay_seconds,
            clock=clock,
        ),
        TokenRefreshWorker(
            scheduler,
            store,
            tokens,
            interval_minutes=settings.token_refresh_interval,
            lookahead_minutes=settings.token_refresh_lookahead_minutes,
            delay_seconds=settings.token_refresh_delay_seconds,
            clock=clock,
        ),
        DbMaintenanceWorker(
            scheduler, store, time_of_day=settings.db_maintenance_time, clock=clock
        ),
        BackupWorker(
            scheduler,
            store,
            backup_dir=Path(settings.backup_dir),
            retention_days=settings.backup_retention_days,
            time_of_day=settings.backup_time,
            clock=clock,
        ),
    ]
    return WorkerManager(workers, scheduler=scheduler, clock=clock)
