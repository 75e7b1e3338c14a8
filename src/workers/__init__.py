"""Background workers for the EVE tracker.

Modules:
    scheduler      — Trigger parsing and job registration (APScheduler)
    base           — Worker ABC with the non-reentrant run guard
    data_refresh   — Periodic ESI sync of every character with a live token
    token_refresh  — Renewal of tokens about to expire
    db_maintenance — Daily expired-session cleanup and housekeeping
    backup         — Daily database dump with retention cleanup
    manager        — Start/stop/status of the worker set
"""

from src.workers.backup import BackupWorker
from src.workers.base import JobRunReport, Worker
from src.workers.data_refresh import DataRefreshWorker
from src.workers.db_maintenance import DbMaintenanceWorker
from src.workers.manager import (
    LifecycleState,
    WorkerManager,
    WorkerStatus,
    build_worker_manager,
)
from src.workers.scheduler import JobDescriptor, JobHandle, Scheduler, parse_trigger
from src.workers.token_refresh import TokenRefreshWorker

__all__ = [
    "BackupWorker",
    "DataRefreshWorker",
    "DbMaintenanceWorker",
    "JobDescriptor",
    "JobHandle",
    "JobRunReport",
    "LifecycleState",
    "Scheduler",
    "TokenRefreshWorker",
    "Worker",
    "WorkerManager",
    "WorkerStatus",
    "build_worker_manager",
    "parse_trigger",
]
