"""Per-character ESI sync.

Coordinates the sync of one character:
1. Fetch wallet balance + journal, assets, skills and standings in turn
2. Persist each payload as soon as it arrives (partial progress survives)
3. Refresh the character's corporation from the public endpoints

A remote failure in one part is logged and recorded in the SyncResult; the
remaining parts still run.  Rejected credentials abort the character (there
is nothing left to fetch with), and storage failures always propagate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

from pydantic import ValidationError

from src.errors import RemoteApiError, StorageError
from src.esi.client import EsiClient
from src.models.base import utc_now
from src.models.characters import (
    AssetsSnapshot,
    CharacterAffiliation,
    Corporation,
    SkillsSnapshot,
    StandingsSnapshot,
    TrackedCharacter,
    WalletSnapshot,
)
from src.stores.base import CharacterStore, Payload

logger = logging.getLogger("evetracker.sync")

DEFAULT_JOURNAL_LIMIT = 100


@dataclass
class SyncResult:
    """Outcome of syncing one character.

    Attributes:
        character_id: EVE character ID.
        name:         Character name (for logs).
        succeeded:    Parts that were fetched and saved, in order.
        failed:       Part name → error message for parts that failed.
        started_at:   UTC timestamp when the sync began.
        finished_at:  UTC timestamp when the sync ended.
    """

    character_id: int
    name: str = ""
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None

    @property
    def status(self) -> str:
        """'success', 'partial' or 'error'."""
        if not self.failed:
            return "success"
        return "partial" if self.succeeded else "error"


class CharacterSyncEngine:
    """Fetch a character's full data set from ESI and write it to the store."""

    def __init__(
        self,
        esi: EsiClient,
        store: CharacterStore,
        journal_limit: int = DEFAULT_JOURNAL_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._esi = esi
        self._store = store
        self._journal_limit = journal_limit
        self._clock = clock

    async def sync_character(self, character_id: int) -> SyncResult:
        """Sync wallet, assets, skills, standings and corporation for one character.

        Raises:
            CredentialExpiredError: The character's refresh token was rejected.
            StorageError:           The store could not be read or written.
        """
        character = await self._store.get_character(character_id)
        if character is None:
            raise StorageError(f"Character {character_id} not found")

        result = SyncResult(character_id=character_id, name=character.name)
        fetchers: list[tuple[str, Callable[[int], Awaitable[Payload]]]] = [
            ("wallet", self.fetch_wallet),
            ("assets", self.fetch_assets),
            ("skills", self.fetch_skills),
            ("standings", self.fetch_standings),
        ]

        for part, fetch in fetchers:
            try:
                payload = await fetch(character_id)
            except (RemoteApiError, ValidationError) as exc:
                logger.warning(
                    "Sync %s failed for %s (%s): %s", part, character.name, character_id, exc
                )
                result.failed[part] = str(exc)
                continue
            await self._store.save_payload(character_id, payload, self._clock())
            result.succeeded.append(part)

        try:
            await self.refresh_corporation(character)
            result.succeeded.append("corporation")
        except (RemoteApiError, ValidationError) as exc:
            logger.warning(
                "Corporation refresh failed for %s (%s): %s", character.name, character_id, exc
            )
            result.failed["corporation"] = str(exc)

        result.finished_at = self._clock()
        logger.info(
            "Sync complete: %s (%s) → status=%s, failed=%s",
            character.name, character_id, result.status, sorted(result.failed) or "none",
        )
        return result

    # ------------------------------------------------------------------
    # Individual fetches
    # ------------------------------------------------------------------

    async def fetch_wallet(self, character_id: int) -> WalletSnapshot:
        balance = await self._esi.request(character_id, "GET", f"/characters/{character_id}/wallet/")
        # First journal page holds the newest entries
        journal = await self._esi.request(
            character_id, "GET", f"/characters/{character_id}/wallet/journal/"
        )
        if isinstance(journal, list):
            journal = journal[: self._journal_limit]
        return WalletSnapshot.model_validate(
            {"balance": 0.0 if balance is None else balance, "journal": journal or []}
        )

    async def fetch_assets(self, character_id: int) -> AssetsSnapshot:
        items = await self._esi.request_all_pages(character_id, f"/characters/{character_id}/assets/")
        return AssetsSnapshot.model_validate({"items": items})

    async def fetch_skills(self, character_id: int) -> SkillsSnapshot:
        data = await self._esi.request(character_id, "GET", f"/characters/{character_id}/skills/")
        return SkillsSnapshot.model_validate(data or {})

    async def fetch_standings(self, character_id: int) -> StandingsSnapshot:
        data = await self._esi.request(
            character_id, "GET", f"/characters/{character_id}/standings/"
        )
        return StandingsSnapshot.model_validate({"standings": data or []})

    async def refresh_corporation(self, character: TrackedCharacter) -> Corporation:
        """Follow the character's public profile to its corporation and upsert it."""
        profile = CharacterAffiliation.model_validate(
            await self._esi.request_public("GET", f"/characters/{character.character_id}/")
            or {}
        )
        corporation_id = profile.corporation_id or character.corporation_id
        alliance_id = profile.alliance_id
        if corporation_id != character.corporation_id or alliance_id != character.alliance_id:
            logger.info(
                "%s (%s) moved to corporation %s (alliance %s)",
                character.name, character.character_id, corporation_id, alliance_id,
            )
            await self._store.update_affiliation(
                character.character_id, corporation_id, alliance_id
            )

        data = await self._esi.request_public("GET", f"/corporations/{corporation_id}/") or {}
        corporation = Corporation.from_esi(corporation_id, data)
        corporation.last_update = self._clock()
        await self._store.upsert_corporation(corporation)
        return corporation
