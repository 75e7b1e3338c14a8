"""Tests for WorkerManager — start/stop idempotence and manual task runs."""

from __future__ import annotations

import logging
from typing import Any

import httpx
import pytest

from src.workers.base import Worker
from src.workers.manager import LifecycleState, WorkerManager, build_worker_manager


class CountingWorker(Worker):
    def __init__(self, scheduler, name: str, trigger: str = "every 5 minutes") -> None:
        self.name = name
        self.display_name = f"{name.title()} Worker"
        super().__init__(scheduler, trigger)
        self.runs = 0

    async def run(self) -> dict[str, Any]:
        self.runs += 1
        return {"runs": self.runs}


@pytest.fixture
def workers(scheduler) -> list[CountingWorker]:
    return [CountingWorker(scheduler, "alpha"), CountingWorker(scheduler, "beta")]


class TestStartStop:
    def test_start_all_starts_every_worker(self, workers, clock) -> None:
        manager = WorkerManager(workers, clock=clock)

        state = manager.start_all()

        assert state.running is True
        assert state.started_at == clock()
        assert all(w.is_running for w in workers)

    def test_second_start_all_is_a_noop(self, workers, scheduler, caplog) -> None:
        manager = WorkerManager(workers)
        manager.start_all()
        handles = [scheduler.get_handle(w.name) for w in workers]

        with caplog.at_level(logging.WARNING):
            manager.start_all()

        assert [scheduler.get_handle(w.name) for w in workers] == handles
        assert len(scheduler.descriptors()) == 2
        assert "Workers are already running" in caplog.text

    def test_stop_all_cancels_every_worker(self, workers, scheduler, clock) -> None:
        manager = WorkerManager(workers, clock=clock)
        manager.start_all()

        state = manager.stop_all()

        assert state.running is False
        assert state.stopped_at == clock()
        assert not any(w.is_running for w in workers)
        assert scheduler.descriptors() == []

    def test_stop_all_when_stopped_is_a_noop(self, workers, caplog) -> None:
        manager = WorkerManager(workers)

        with caplog.at_level(logging.WARNING):
            state = manager.stop_all()

        assert state.running is False
        assert state.stopped_at is None
        assert "Workers are not running" in caplog.text

    def test_failed_worker_start_does_not_block_the_rest(self, scheduler, caplog) -> None:
        broken = CountingWorker(scheduler, "broken", trigger="now and then")
        healthy = CountingWorker(scheduler, "healthy")
        manager = WorkerManager([broken, healthy])

        state = manager.start_all()

        assert state.running is True
        assert healthy.is_running
        assert not broken.is_running
        assert "Failed to start Broken Worker" in caplog.text

    def test_restart_all_reregisters(self, workers, scheduler) -> None:
        manager = WorkerManager(workers)
        manager.start_all()
        before = scheduler.get_handle("alpha")

        manager.restart_all()

        assert manager.state.running is True
        assert scheduler.get_handle("alpha") is not None
        assert scheduler.get_handle("alpha") != before

    def test_shared_state_object_is_used(self, workers) -> None:
        state = LifecycleState()
        manager = WorkerManager(workers, state=state)
        manager.start_all()
        assert state.running is True


class TestStatusAndTasks:
    def test_status_lists_display_names(self, workers) -> None:
        manager = WorkerManager(workers)
        status = manager.status()
        assert status.running is False
        assert status.workers == ["Alpha Worker", "Beta Worker"]

        manager.start_all()
        assert manager.status().running is True

    @pytest.mark.asyncio
    async def test_run_task_runs_the_named_worker(self, workers) -> None:
        manager = WorkerManager(workers)

        report = await manager.run_task("beta")

        assert report.status == "success"
        assert report.trigger == "manual"
        assert workers[1].runs == 1
        assert workers[0].runs == 0
        assert manager.reports() == {"alpha": None, "beta": report}

    @pytest.mark.asyncio
    async def test_run_task_unknown_name_raises(self, workers) -> None:
        manager = WorkerManager(workers)
        with pytest.raises(KeyError):
            await manager.run_task("gamma")


class TestBuildWorkerManager:
    def test_builds_the_four_default_workers(self, settings, store) -> None:
        manager = build_worker_manager(settings, store, httpx.AsyncClient())

        assert [w.name for w in manager.workers] == [
            "refresh-data",
            "refresh-tokens",
            "db-maintenance",
            "backup",
        ]
        assert manager.status().workers == [
            "Data Refresh Worker",
            "Token Refresh Worker",
            "Database Maintenance Worker",
            "Backup Worker",
        ]
        assert [w.trigger for w in manager.workers] == [
            "every 30 minutes",
            "every 15 minutes",
            "03:00",
            "02:00",
        ]

    @pytest.mark.asyncio
    async def test_start_and_stop_with_live_scheduler(self, settings, store, clock) -> None:
        async with httpx.AsyncClient() as http_client:
            manager = build_worker_manager(settings, store, http_client, clock=clock)
            manager.start_all()
            try:
                assert manager.scheduler.running
                assert {d.name for d in manager.scheduler.descriptors()} == {
                    "refresh-data",
                    "refresh-tokens",
                    "db-maintenance",
                    "backup",
                }
                manager.stop_all()
                assert manager.scheduler.descriptors() == []
            finally:
                manager.scheduler.shutdown()
