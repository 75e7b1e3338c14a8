"""In-memory implementation of CharacterStore."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from src.errors import StorageError
from src.models.characters import Corporation, TrackedCharacter
from src.stores.base import CharacterStore, Payload


class InMemoryCharacterStore(CharacterStore):
    """In-memory implementation of CharacterStore for testing and development.

    Records are copied on the way in and out, so callers never share state
    with the store.
    """

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._characters: dict[int, TrackedCharacter] = {}
        self._corporations: dict[int, Corporation] = {}
        self._sessions: dict[str, datetime] = {}

    def _require(self, character_id: int) -> TrackedCharacter:
        character = self._characters.get(character_id)
        if character is None:
            raise StorageError(f"Character {character_id} not found")
        return character

    async def get_character(self, character_id: int) -> TrackedCharacter | None:
        character = self._characters.get(character_id)
        return character.model_copy(deep=True) if character else None

    async def save_character(self, character: TrackedCharacter) -> None:
        self._characters[character.character_id] = character.model_copy(deep=True)

    async def list_with_valid_tokens(self, now: datetime) -> list[TrackedCharacter]:
        return [
            c.model_copy(deep=True)
            for c in self._characters.values()
            if c.token_expiry > now
        ]

    async def list_expiring_between(
        self, start: datetime, end: datetime
    ) -> list[TrackedCharacter]:
        return [
            c.model_copy(deep=True)
            for c in self._characters.values()
            if start < c.token_expiry < end
        ]

    async def update_tokens(
        self,
        character_id: int,
        access_token: str,
        refresh_token: str,
        token_expiry: datetime,
    ) -> TrackedCharacter:
        character = self._require(character_id)
        character.access_token = access_token
        character.refresh_token = refresh_token
        character.token_expiry = token_expiry
        return character.model_copy(deep=True)

    async def save_payload(
        self, character_id: int, payload: Payload, synced_at: datetime
    ) -> None:
        character = self._require(character_id)
        setattr(character, payload.kind, payload.model_copy(deep=True))
        character.last_sync_at = synced_at

    async def update_affiliation(
        self, character_id: int, corporation_id: int, alliance_id: int | None
    ) -> None:
        character = self._require(character_id)
        character.corporation_id = corporation_id
        character.alliance_id = alliance_id

    async def get_corporation(self, corporation_id: int) -> Corporation | None:
        corporation = self._corporations.get(corporation_id)
        return corporation.model_copy(deep=True) if corporation else None

    async def upsert_corporation(self, corporation: Corporation) -> None:
        self._corporations[corporation.corporation_id] = corporation.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Sessions and maintenance
    # ------------------------------------------------------------------

    def add_session(self, sid: str, expires: datetime) -> None:
        """Register a web session (normally written by the web tier)."""
        self._sessions[sid] = expires

    @property
    def session_ids(self) -> list[str]:
        return list(self._sessions)

    async def delete_expired_sessions(self, now: datetime) -> int:
        expired = [sid for sid, expires in self._sessions.items() if expires < now]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    async def optimize(self) -> None:
        return None

    async def dump(self, path: Path) -> Path:
        document = {
            "characters": [c.model_dump(mode="json") for c in self._characters.values()],
            "corporations": [c.model_dump(mode="json") for c in self._corporations.values()],
            "sessions": {sid: exp.isoformat() for sid, exp in self._sessions.items()},
        }
        try:
            path.write_text(json.dumps(document), encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Could not write dump {path}: {exc}") from exc
        return path

    async def restore(self, path: Path) -> None:
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageError(f"Could not read dump {path}: {exc}") from exc
        self._characters = {
            c.character_id: c
            for c in (TrackedCharacter.model_validate(d) for d in document["characters"])
        }
        self._corporations = {
            c.corporation_id: c
            for c in (Corporation.model_validate(d) for d in document["corporations"])
        }
        self._sessions = {
            sid: datetime.fromisoformat(exp) for sid, exp in document["sessions"].items()
        }
