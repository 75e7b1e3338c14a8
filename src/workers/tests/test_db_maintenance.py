"""Tests for the database maintenance worker."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from src.errors import StorageError
from src.workers.db_maintenance import DbMaintenanceWorker


class TestDbMaintenanceWorker:
    def test_scheduled_daily_at_three(self, scheduler, store) -> None:
        worker = DbMaintenanceWorker(scheduler, store)
        worker.start()
        assert scheduler.descriptors()[0].trigger == "03:00"
        assert worker.run_on_start is False

    @pytest.mark.asyncio
    async def test_expired_sessions_are_removed(self, scheduler, store, now, clock) -> None:
        store.add_session("expired-1", now - timedelta(days=1))
        store.add_session("expired-2", now - timedelta(seconds=1))
        store.add_session("live", now + timedelta(hours=2))
        worker = DbMaintenanceWorker(scheduler, store, clock=clock)

        report = await worker.run_now()

        assert report.status == "success"
        assert report.detail == {"sessions_removed": 2}
        assert store.session_ids == ["live"]

    @pytest.mark.asyncio
    async def test_second_run_removes_nothing(self, scheduler, store, now, clock) -> None:
        store.add_session("expired", now - timedelta(days=1))
        worker = DbMaintenanceWorker(scheduler, store, clock=clock)

        await worker.run_now()
        report = await worker.run_now()

        assert report.detail == {"sessions_removed": 0}

    @pytest.mark.asyncio
    async def test_storage_failure_marks_run_failed_and_keeps_schedule(
        self, scheduler, store, clock
    ) -> None:
        store.delete_expired_sessions = AsyncMock(side_effect=StorageError("connection lost"))
        store.optimize = AsyncMock()
        worker = DbMaintenanceWorker(scheduler, store, clock=clock)
        worker.start()

        report = await worker.run_now()

        assert report.status == "failed"
        assert report.error == "connection lost"
        store.optimize.assert_not_called()
        assert worker.is_running
        assert scheduler.get_handle("db-maintenance") is not None
