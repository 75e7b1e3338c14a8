"""Pydantic models for tracked characters, their cached ESI payloads and corporations.

Each cached payload is a tagged model (``kind``) so the sync engine, the stores
and any API consumer share one typed contract instead of an open-ended JSON
document.  Payloads are always replaced wholesale.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field, TypeAdapter

from src.models.base import TrackerBase, utc_now


# ---------- Wallet ----------

class JournalEntry(TrackerBase):
    id: int
    date: datetime
    ref_type: str
    amount: float | None = None
    balance: float | None = None
    description: str = ""
    first_party_id: int | None = None
    second_party_id: int | None = None
    reason: str | None = None


class WalletSnapshot(TrackerBase):
    kind: Literal["wallet"] = "wallet"
    balance: float = 0.0
    journal: list[JournalEntry] = Field(default_factory=list)


# ---------- Assets ----------

class AssetItem(TrackerBase):
    item_id: int
    type_id: int
    location_id: int
    location_flag: str
    location_type: str
    quantity: int = 1
    is_singleton: bool = False
    is_blueprint_copy: bool | None = None


class AssetsSnapshot(TrackerBase):
    kind: Literal["assets"] = "assets"
    items: list[AssetItem] = Field(default_factory=list)


# ---------- Skills ----------

class SkillEntry(TrackerBase):
    skill_id: int
    active_skill_level: int = Field(ge=0, le=5)
    trained_skill_level: int = Field(ge=0, le=5)
    skillpoints_in_skill: int = 0


class SkillsSnapshot(TrackerBase):
    kind: Literal["skills"] = "skills"
    skills: list[SkillEntry] = Field(default_factory=list)
    total_sp: int = 0
    unallocated_sp: int = 0


# ---------- Standings ----------

class StandingEntry(TrackerBase):
    from_id: int
    from_type: Literal["agent", "npc_corp", "faction"]
    standing: float = Field(ge=-10.0, le=10.0)


class StandingsSnapshot(TrackerBase):
    kind: Literal["standings"] = "standings"
    standings: list[StandingEntry] = Field(default_factory=list)


_ESI_OBJECT = TypeAdapter(dict[str, Any])

# payload kind == TrackedCharacter attribute == characters table column
PAYLOAD_COLUMNS: frozenset[str] = frozenset({"wallet", "assets", "skills", "standings"})


# ---------- Characters ----------

class TrackedCharacter(TrackerBase):
    character_id: int
    name: str
    corporation_id: int
    alliance_id: int | None = None
    access_token: str
    refresh_token: str
    token_expiry: datetime
    scopes: list[str] = Field(default_factory=list)
    wallet: WalletSnapshot = Field(default_factory=WalletSnapshot)
    assets: AssetsSnapshot = Field(default_factory=AssetsSnapshot)
    skills: SkillsSnapshot = Field(default_factory=SkillsSnapshot)
    standings: StandingsSnapshot = Field(default_factory=StandingsSnapshot)
    last_sync_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)

    def token_expired(self, now: datetime) -> bool:
        return now >= self.token_expiry


# ---------- Affiliation ----------

class CharacterAffiliation(TrackerBase):
    """Subset of the public character profile that locates a character."""

    corporation_id: int | None = None
    alliance_id: int | None = None


# ---------- Corporations ----------

class Corporation(TrackerBase):
    corporation_id: int
    name: str
    ticker: str | None = None
    alliance_id: int | None = None
    ceo_id: int | None = None
    member_count: int | None = None
    tax_rate: float | None = Field(default=None, ge=0, le=1)
    description: str | None = None
    last_update: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_esi(cls, corporation_id: int, data: dict[str, Any]) -> "Corporation":
        """Build from a ``GET /corporations/{id}/`` response body."""
        data = _ESI_OBJECT.validate_python(data)
        return cls.model_validate(
            {
                "corporation_id": corporation_id,
                "name": data.get("name"),
                "ticker": data.get("ticker"),
                "alliance_id": data.get("alliance_id"),
                "ceo_id": data.get("ceo_id"),
                "member_count": data.get("member_count"),
                "tax_rate": data.get("tax_rate"),
                "description": data.get("description"),
            }
        )
