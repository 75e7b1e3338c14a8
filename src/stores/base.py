"""CharacterStore abstract interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from src.models.characters import (
    AssetsSnapshot,
    Corporation,
    SkillsSnapshot,
    StandingsSnapshot,
    TrackedCharacter,
    WalletSnapshot,
)

Payload = WalletSnapshot | AssetsSnapshot | SkillsSnapshot | StandingsSnapshot


class CharacterStore(ABC):
    """Persistence for tracked characters, corporations and web sessions.

    Implementations raise ``StorageError`` for any failure of the underlying
    storage, including writes against a character that does not exist.
    Listing methods return characters in insertion order.
    """

    @abstractmethod
    async def get_character(self, character_id: int) -> TrackedCharacter | None:
        """Get a character by its EVE character ID."""

    @abstractmethod
    async def save_character(self, character: TrackedCharacter) -> None:
        """Insert or fully replace a character record."""

    @abstractmethod
    async def list_with_valid_tokens(self, now: datetime) -> list[TrackedCharacter]:
        """Characters whose access token expires after ``now``."""

    @abstractmethod
    async def list_expiring_between(
        self, start: datetime, end: datetime
    ) -> list[TrackedCharacter]:
        """Characters whose token expiry lies strictly between start and end."""

    @abstractmethod
    async def update_tokens(
        self,
        character_id: int,
        access_token: str,
        refresh_token: str,
        token_expiry: datetime,
    ) -> TrackedCharacter:
        """Persist a renewed token pair and return the updated character."""

    @abstractmethod
    async def save_payload(
        self, character_id: int, payload: Payload, synced_at: datetime
    ) -> None:
        """Replace one cached payload (selected by ``payload.kind``) and bump last_sync_at."""

    @abstractmethod
    async def update_affiliation(
        self, character_id: int, corporation_id: int, alliance_id: int | None
    ) -> None:
        """Record the character's current corporation and alliance."""

    @abstractmethod
    async def get_corporation(self, corporation_id: int) -> Corporation | None:
        """Get a cached corporation by ID."""

    @abstractmethod
    async def upsert_corporation(self, corporation: Corporation) -> None:
        """Insert or update a corporation keyed by corporation_id."""

    @abstractmethod
    async def delete_expired_sessions(self, now: datetime) -> int:
        """Delete web sessions that expired before ``now``; return the count."""

    @abstractmethod
    async def optimize(self) -> None:
        """Idempotent housekeeping (statistics refresh and similar)."""

    @abstractmethod
    async def dump(self, path: Path) -> Path:
        """Write a full dump of the storage to ``path`` and return it."""

    @abstractmethod
    async def restore(self, path: Path) -> None:
        """Restore the storage from a dump created by ``dump``."""
