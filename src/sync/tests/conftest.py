"""Fixtures and canned ESI responses for the sync engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio

from src.models.characters import TrackedCharacter
from src.stores.inmemory import InMemoryCharacterStore

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeEsi:
    """Stands in for EsiClient, answering by request path.

    A route whose value is an exception instance raises it instead.
    """

    def __init__(self, routes: dict[str, Any]) -> None:
        self.routes = routes
        self.calls: list[str] = []

    def _answer(self, path: str) -> Any:
        self.calls.append(path)
        value = self.routes[path]
        if isinstance(value, BaseException):
            raise value
        return value

    async def request(self, character_id, method, path, body=None, params=None) -> Any:
        return self._answer(path)

    async def request_all_pages(self, character_id, path, params=None) -> list[Any]:
        return self._answer(path)

    async def request_public(self, method, path, params=None) -> Any:
        return self._answer(path)


def esi_routes(character_id: int, corporation_id: int = 98000001) -> dict[str, Any]:
    """A full, successful set of ESI answers for one character."""
    return {
        f"/characters/{character_id}/wallet/": 1234567.89,
        f"/characters/{character_id}/wallet/journal/": [
            {
                "id": 20000 + i,
                "date": "2026-03-01T11:00:00Z",
                "ref_type": "bounty_prizes",
                "amount": 150000.0,
                "balance": 1234567.89,
                "description": "Bounty prizes",
            }
            for i in range(3)
        ],
        f"/characters/{character_id}/assets/": [
            {
                "item_id": 1000000016835,
                "type_id": 587,
                "location_id": 60003760,
                "location_flag": "Hangar",
                "location_type": "station",
                "quantity": 1,
                "is_singleton": True,
            }
        ],
        f"/characters/{character_id}/skills/": {
            "skills": [
                {
                    "skill_id": 3300,
                    "active_skill_level": 5,
                    "trained_skill_level": 5,
                    "skillpoints_in_skill": 256000,
                }
            ],
            "total_sp": 5000000,
            "unallocated_sp": 25000,
        },
        f"/characters/{character_id}/standings/": [
            {"from_id": 500001, "from_type": "faction", "standing": 2.5}
        ],
        f"/characters/{character_id}/": {"corporation_id": corporation_id, "name": "Pilot"},
        f"/corporations/{corporation_id}/": {
            "name": "Test Corp",
            "ticker": "TST",
            "member_count": 12,
            "tax_rate": 0.1,
            "ceo_id": character_id,
        },
    }


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def character() -> TrackedCharacter:
    return TrackedCharacter(
        character_id=90000001,
        name="Pilot One",
        corporation_id=98000001,
        access_token="access",
        refresh_token="refresh",
        token_expiry=NOW + timedelta(minutes=20),
    )


@pytest.fixture
def fake_esi(character: TrackedCharacter) -> FakeEsi:
    return FakeEsi(esi_routes(character.character_id))


@pytest_asyncio.fixture
async def store(character: TrackedCharacter) -> InMemoryCharacterStore:
    store = InMemoryCharacterStore()
    await store.save_character(character)
    return store


@pytest.fixture
def make_fake_esi():
    """Factory for a FakeEsi answering for several characters at once."""

    def _make(character_ids) -> FakeEsi:
        routes: dict[str, Any] = {}
        for character_id in character_ids:
            routes.update(esi_routes(character_id))
        return FakeEsi(routes)

    return _make
