"""Fixtures for the store tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.models.characters import TrackedCharacter

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_character():
    def _make(character_id: int, minutes: float) -> TrackedCharacter:
        return TrackedCharacter(
            character_id=character_id,
            name=f"Pilot {character_id}",
            corporation_id=98000001,
            access_token="access",
            refresh_token="refresh",
            token_expiry=NOW + timedelta(minutes=minutes),
        )

    return _make
