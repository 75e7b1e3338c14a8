"""Periodic ESI data refresh for every character with a live token."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Any, Callable

from src.errors import CredentialExpiredError, RemoteApiError, StorageError
from src.models.base import utc_now
from src.stores.base import CharacterStore
from src.sync.engine import CharacterSyncEngine
from src.workers.base import Worker
from src.workers.scheduler import Scheduler


class DataRefreshWorker(Worker):
    """Sync all characters whose access token has not expired.

    Characters are processed one at a time, in the store's insertion order,
    with a fixed pause between them to stay inside ESI's rate limits.  A
    character that fails is logged and the batch moves on.
    """

    name = "refresh-data"
    display_name = "Data Refresh Worker"
    run_on_start = True

    def __init__(
        self,
        scheduler: Scheduler,
        store: CharacterStore,
        engine: CharacterSyncEngine,
        interval_minutes: int = 30,
        delay_seconds: float = 2.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(scheduler, f"every {interval_minutes} minutes", clock)
        self._store = store
        self._engine = engine
        self._delay_seconds = delay_seconds

    async def run(self) -> dict[str, Any]:
        started = time.monotonic()
        self.logger.info("Starting scheduled data refresh for all characters")

        characters = await self._store.list_with_valid_tokens(self._clock())
        self.logger.info("Found %d characters to update", len(characters))

        counts = {"characters": len(characters), "success": 0, "partial": 0, "failed": 0}
        for index, character in enumerate(characters):
            if index:
                await asyncio.sleep(self._delay_seconds)

            self.logger.info(
                "Updating data for character: %s (%s)", character.name, character.character_id
            )
            try:
                result = await self._engine.sync_character(character.character_id)
            except (CredentialExpiredError, RemoteApiError) as exc:
                self.logger.error("Error updating character %s: %s", character.name, exc)
                counts["failed"] += 1
                continue
            except StorageError:
                raise
            except Exception:
                self.logger.exception("Unexpected error updating character %s", character.name)
                counts["failed"] += 1
                continue

            if result.status == "error":
                counts["failed"] += 1
            else:
                counts[result.status] += 1

        self.logger.info(
            "Completed data refresh cycle in %.2fs (%d ok, %d partial, %d failed)",
            time.monotonic() - started, counts["success"], counts["partial"], counts["failed"],
        )
        return counts
