"""PostgreSQL implementation of CharacterStore (asyncpg).

Cached ESI payloads live in JSONB columns, one per payload kind.  Full dumps
and restores shell out to ``pg_dump`` / ``pg_restore`` using the configured
database URL.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import asyncpg

from src.config import Settings, get_settings
from src.errors import StorageError
from src.models.characters import PAYLOAD_COLUMNS, Corporation, TrackedCharacter
from src.services.database import affected_rows, execute, fetch, fetchrow, get_connection
from src.stores.base import CharacterStore, Payload

logger = logging.getLogger("evetracker.db.characters")

SCHEMA = """
CREATE TABLE IF NOT EXISTS characters (
    character_id    BIGINT PRIMARY KEY,
    name            TEXT NOT NULL,
    corporation_id  BIGINT NOT NULL,
    alliance_id     BIGINT,
    access_token    TEXT NOT NULL,
    refresh_token   TEXT NOT NULL,
    token_expiry    TIMESTAMPTZ NOT NULL,
    scopes          TEXT[] NOT NULL DEFAULT '{}',
    wallet          JSONB NOT NULL DEFAULT '{"kind": "wallet"}',
    assets          JSONB NOT NULL DEFAULT '{"kind": "assets"}',
    skills          JSONB NOT NULL DEFAULT '{"kind": "skills"}',
    standings       JSONB NOT NULL DEFAULT '{"kind": "standings"}',
    last_sync_at    TIMESTAMPTZ,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS characters_token_expiry_idx ON characters (token_expiry);

CREATE TABLE IF NOT EXISTS corporations (
    corporation_id  BIGINT PRIMARY KEY,
    name            TEXT NOT NULL,
    ticker          TEXT,
    alliance_id     BIGINT,
    ceo_id          BIGINT,
    member_count    INTEGER,
    tax_rate        DOUBLE PRECISION,
    description     TEXT,
    last_update     TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS sessions (
    sid      TEXT PRIMARY KEY,
    sess     JSONB NOT NULL,
    expires  TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS sessions_expires_idx ON sessions (expires);
"""

_CHARACTER_COLUMNS = (
    "character_id, name, corporation_id, alliance_id, access_token, refresh_token, "
    "token_expiry, scopes, wallet, assets, skills, standings, last_sync_at, created_at"
)


def _to_character(row: asyncpg.Record) -> TrackedCharacter:
    return TrackedCharacter.model_validate(dict(row))


class PostgresCharacterStore(CharacterStore):
    """CharacterStore backed by the shared asyncpg pool."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    async def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist yet."""
        async with get_connection() as conn:
            await conn.execute(SCHEMA)
        logger.info("Database schema ready")

    async def get_character(self, character_id: int) -> TrackedCharacter | None:
        row = await fetchrow(
            f"SELECT {_CHARACTER_COLUMNS} FROM characters WHERE character_id = $1",
            character_id,
        )
        return _to_character(row) if row else None

    async def save_character(self, character: TrackedCharacter) -> None:
        data = character.model_dump(mode="json")
        await execute(
            """
            INSERT INTO characters (character_id, name, corporation_id, alliance_id,
                access_token, refresh_token, token_expiry, scopes,
                wallet, assets, skills, standings, last_sync_at, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
            ON CONFLICT (character_id) DO UPDATE SET
                name = EXCLUDED.name,
                corporation_id = EXCLUDED.corporation_id,
                alliance_id = EXCLUDED.alliance_id,
                access_token = EXCLUDED.access_token,
                refresh_token = EXCLUDED.refresh_token,
                token_expiry = EXCLUDED.token_expiry,
                scopes = EXCLUDED.scopes,
                wallet = EXCLUDED.wallet,
                assets = EXCLUDED.assets,
                skills = EXCLUDED.skills,
                standings = EXCLUDED.standings,
                last_sync_at = EXCLUDED.last_sync_at,
                updated_at = NOW()
            """,
            character.character_id,
            character.name,
            character.corporation_id,
            character.alliance_id,
            character.access_token,
            character.refresh_token,
            character.token_expiry,
            character.scopes,
            data["wallet"],
            data["assets"],
            data["skills"],
            data["standings"],
            character.last_sync_at,
            character.created_at,
        )

    async def list_with_valid_tokens(self, now: datetime) -> list[TrackedCharacter]:
        rows = await fetch(
            f"SELECT {_CHARACTER_COLUMNS} FROM characters "
            "WHERE token_expiry > $1 ORDER BY created_at, character_id",
            now,
        )
        return [_to_character(r) for r in rows]

    async def list_expiring_between(
        self, start: datetime, end: datetime
    ) -> list[TrackedCharacter]:
        rows = await fetch(
            f"SELECT {_CHARACTER_COLUMNS} FROM characters "
            "WHERE token_expiry > $1 AND token_expiry < $2 ORDER BY created_at, character_id",
            start,
            end,
        )
        return [_to_character(r) for r in rows]

    async def update_tokens(
        self,
        character_id: int,
        access_token: str,
        refresh_token: str,
        token_expiry: datetime,
    ) -> TrackedCharacter:
        row = await fetchrow(
            f"""
            UPDATE characters
            SET access_token = $2, refresh_token = $3, token_expiry = $4, updated_at = NOW()
            WHERE character_id = $1
            RETURNING {_CHARACTER_COLUMNS}
            """,
            character_id,
            access_token,
            refresh_token,
            token_expiry,
        )
        if row is None:
            raise StorageError(f"Character {character_id} not found")
        return _to_character(row)

    async def save_payload(
        self, character_id: int, payload: Payload, synced_at: datetime
    ) -> None:
        column = payload.kind
        if column not in PAYLOAD_COLUMNS:
            raise StorageError(f"Unknown payload kind {column!r}")
        status = await execute(
            f"UPDATE characters SET {column} = $2, last_sync_at = $3, updated_at = NOW() "
            "WHERE character_id = $1",
            character_id,
            payload.model_dump(mode="json"),
            synced_at,
        )
        if affected_rows(status) == 0:
            raise StorageError(f"Character {character_id} not found")

    async def update_affiliation(
        self, character_id: int, corporation_id: int, alliance_id: int | None
    ) -> None:
        status = await execute(
            "UPDATE characters SET corporation_id = $2, alliance_id = $3, updated_at = NOW() "
            "WHERE character_id = $1",
            character_id,
            corporation_id,
            alliance_id,
        )
        if affected_rows(status) == 0:
            raise StorageError(f"Character {character_id} not found")

    async def get_corporation(self, corporation_id: int) -> Corporation | None:
        row = await fetchrow(
            "SELECT * FROM corporations WHERE corporation_id = $1", corporation_id
        )
        return Corporation.model_validate(dict(row)) if row else None

    async def upsert_corporation(self, corporation: Corporation) -> None:
        await execute(
            """
            INSERT INTO corporations (corporation_id, name, ticker, alliance_id, ceo_id,
                member_count, tax_rate, description, last_update)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ON CONFLICT (corporation_id) DO UPDATE SET
                name = EXCLUDED.name,
                ticker = EXCLUDED.ticker,
                alliance_id = EXCLUDED.alliance_id,
                ceo_id = EXCLUDED.ceo_id,
                member_count = EXCLUDED.member_count,
                tax_rate = EXCLUDED.tax_rate,
                description = EXCLUDED.description,
                last_update = EXCLUDED.last_update
            """,
            corporation.corporation_id,
            corporation.name,
            corporation.ticker,
            corporation.alliance_id,
            corporation.ceo_id,
            corporation.member_count,
            corporation.tax_rate,
            corporation.description,
            corporation.last_update,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def delete_expired_sessions(self, now: datetime) -> int:
        status = await execute("DELETE FROM sessions WHERE expires < $1", now)
        return affected_rows(status)

    async def optimize(self) -> None:
        # get_connection() always opens a transaction, which rules out VACUUM
        await execute("ANALYZE characters")
        await execute("ANALYZE corporations")
        await execute("ANALYZE sessions")

    async def dump(self, path: Path) -> Path:
        await self._run_tool(
            "pg_dump",
            "--format=custom",
            f"--file={path}",
            self._settings.database_url,
        )
        return path

    async def restore(self, path: Path) -> None:
        await self._run_tool(
            "pg_restore",
            "--clean",
            "--if-exists",
            f"--dbname={self._settings.database_url}",
            str(path),
        )

    async def _run_tool(self, *argv: Any) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise StorageError(f"Could not launch {argv[0]}: {exc}") from exc
        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise StorageError(
                f"{argv[0]} exited with status {proc.returncode}: "
                f"{stderr.decode(errors='replace').strip()}"
            )
