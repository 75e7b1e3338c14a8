"""Daily database backup with retention cleanup.

Each run writes ``backup-<UTC timestamp>.dump`` into the backup directory and
then deletes dumps older than the retention window.  Both steps are attempted
on every run; their errors are reported together afterwards.  The newest dump
in the directory, and the one written by the current run, are never deleted.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

from src.errors import BackupError, StorageError
from src.models.base import utc_now
from src.stores.base import CharacterStore
from src.workers.base import Worker
from src.workers.scheduler import Scheduler

BACKUP_PREFIX = "backup-"
BACKUP_SUFFIX = ".dump"


class BackupWorker(Worker):
    """Dump the database once a day and prune old dumps."""

    name = "backup"
    display_name = "Backup Worker"

    def __init__(
        self,
        scheduler: Scheduler,
        store: CharacterStore,
        backup_dir: Path,
        retention_days: int = 7,
        time_of_day: str = "02:00",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(scheduler, time_of_day, clock)
        self._store = store
        self._backup_dir = Path(backup_dir)
        self._retention = timedelta(days=retention_days)

    @property
    def backup_dir(self) -> Path:
        return self._backup_dir

    def start(self) -> None:
        self.logger.info(
            "Backup worker: schedule %s, retention %d days, directory %s",
            self.trigger, self._retention.days, self._backup_dir,
        )
        try:
            self._backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            # perform_backup() retries the mkdir on every run
            self.logger.error("Failed to create backup directory: %s", exc)
        super().start()

    async def run(self) -> dict[str, Any]:
        errors: list[str] = []
        created: Path | None = None
        removed: list[Path] = []

        try:
            created = await self.perform_backup()
        except (StorageError, OSError) as exc:
            self.logger.error("Backup failed: %s", exc)
            errors.append(f"backup failed: {exc}")

        try:
            removed = self.cleanup_old_backups(keep=created)
        except OSError as exc:
            self.logger.error("Backup cleanup failed: %s", exc)
            errors.append(f"cleanup failed: {exc}")

        if errors:
            raise BackupError(errors)
        return {"backup": str(created), "removed": len(removed)}

    async def perform_backup(self) -> Path:
        """Write a new dump and return its path."""
        self._backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = self._clock().astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
        path = self._backup_dir / f"{BACKUP_PREFIX}{stamp}{BACKUP_SUFFIX}"
        self.logger.info("Starting database backup to %s", path)
        try:
            await self._store.dump(path)
        except Exception:
            # a truncated dump must never count as the newest backup
            path.unlink(missing_ok=True)
            raise
        self.logger.info("Backup completed: %s (%d bytes)", path.name, path.stat().st_size)
        return path

    def cleanup_old_backups(self, keep: Path | None = None) -> list[Path]:
        """Delete dumps older than the retention window.

        Args:
            keep: A dump that must survive regardless of age.

        Returns:
            Paths that were deleted.
        """
        if not self._backup_dir.is_dir():
            return []

        dumps = sorted(
            self._backup_dir.glob(f"{BACKUP_PREFIX}*{BACKUP_SUFFIX}"),
            key=lambda p: p.stat().st_mtime,
        )
        if not dumps:
            return []

        protected = {dumps[-1]}
        if keep is not None:
            protected.add(keep)

        cutoff = self._clock() - self._retention
        removed: list[Path] = []
        for path in dumps:
            if path in protected:
                continue
            modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            if modified < cutoff:
                path.unlink()
                removed.append(path)
                self.logger.info("Deleted old backup: %s", path.name)

        self.logger.info("Backup cleanup removed %d files", len(removed))
        return removed
