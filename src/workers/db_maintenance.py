"""Daily storage housekeeping."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from src.models.base import utc_now
from src.stores.base import CharacterStore
from src.workers.base import Worker
from src.workers.scheduler import Scheduler


class DbMaintenanceWorker(Worker):
    """Delete expired web sessions and refresh table statistics.

    Both steps are idempotent.  Any failure propagates out of ``run`` so the
    run is reported as failed; the job stays scheduled for the next day.
    """

    name = "db-maintenance"
    display_name = "Database Maintenance Worker"

    def __init__(
        self,
        scheduler: Scheduler,
        store: CharacterStore,
        time_of_day: str = "03:00",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(scheduler, time_of_day, clock)
        self._store = store

    async def run(self) -> dict[str, Any]:
        self.logger.info("Starting scheduled database maintenance")
        removed = await self._store.delete_expired_sessions(self._clock())
        self.logger.info("Removed %d expired sessions", removed)
        await self._store.optimize()
        self.logger.info("Database maintenance completed successfully")
        return {"sessions_removed": removed}
