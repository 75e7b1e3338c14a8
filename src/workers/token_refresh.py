"""Proactive renewal of access tokens that are about to expire."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta
from typing import Any, Callable

from src.errors import CredentialExpiredError, RemoteApiError
from src.esi.tokens import TokenManager
from src.models.base import utc_now
from src.stores.base import CharacterStore
from src.workers.base import Worker
from src.workers.scheduler import Scheduler


class TokenRefreshWorker(Worker):
    """Renew tokens expiring within the lookahead window.

    The lookahead must be longer than the sweep interval so every token gets
    at least one renewal attempt before it lapses.  Tokens that have already
    expired are left to on-demand renewal by the ESI client.
    """

    name = "refresh-tokens"
    display_name = "Token Refresh Worker"
    run_on_start = True

    def __init__(
        self,
        scheduler: Scheduler,
        store: CharacterStore,
        tokens: TokenManager,
        interval_minutes: int = 15,
        lookahead_minutes: int = 30,
        delay_seconds: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if lookahead_minutes <= interval_minutes:
            raise ValueError(
                f"Token lookahead ({lookahead_minutes} min) must exceed the sweep "
                f"interval ({interval_minutes} min)"
            )
        super().__init__(scheduler, f"every {interval_minutes} minutes", clock)
        self._store = store
        self._tokens = tokens
        self._lookahead = timedelta(minutes=lookahead_minutes)
        self._delay_seconds = delay_seconds

    async def run(self) -> dict[str, Any]:
        started = time.monotonic()
        self.logger.info("Starting scheduled token refresh check")

        now = self._clock()
        threshold = now + self._lookahead
        characters = await self._store.list_expiring_between(now, threshold)
        self.logger.info("Found %d characters needing token refresh", len(characters))

        counts = {"characters": len(characters), "renewed": 0, "skipped": 0, "failed": 0}
        for index, character in enumerate(characters):
            if index:
                await asyncio.sleep(self._delay_seconds)

            try:
                exchanged = await self._tokens.ensure_valid_until(
                    character.character_id, threshold
                )
            except CredentialExpiredError as exc:
                self.logger.error(
                    "Refresh token rejected for %s; owner must log in again: %s",
                    character.name, exc,
                )
                counts["failed"] += 1
            except RemoteApiError as exc:
                self.logger.error("Error refreshing token for %s: %s", character.name, exc)
                counts["failed"] += 1
            else:
                counts["renewed" if exchanged else "skipped"] += 1

        self.logger.info(
            "Completed token refresh cycle in %.2fs (%d renewed, %d skipped, %d failed)",
            time.monotonic() - started,
            counts["renewed"], counts["skipped"], counts["failed"],
        )
        return counts
