"""asyncpg connection pool shared by the stores and workers.

The pool is created once at process start and closed only after every worker
has stopped.  JSONB columns are transparently encoded/decoded as Python
objects so the stores can pass ``model_dump(mode="json")`` output straight
through.

Every helper converts driver failures into ``StorageError`` so workers can
tell storage outages apart from remote API failures.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import asyncpg

from src.config import Settings, get_settings
from src.errors import StorageError

logger = logging.getLogger("evetracker.db")

# Module-level connection pool, initialized once at process startup
_pool: asyncpg.Pool | None = None

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool:
    """Create the asyncpg connection pool. Call once at startup."""
    global _pool
    s = settings or get_settings()
    try:
        _pool = await asyncpg.create_pool(
            s.database_url,
            min_size=1,
            max_size=10,
            command_timeout=60,
            init=_init_connection,
        )
    except _DRIVER_ERRORS as exc:
        raise StorageError(f"Could not connect to database: {exc}") from exc
    logger.info("Database pool initialized (min=1, max=10)")
    return _pool


async def close_pool() -> None:
    """Drain the pool. Call at shutdown, after the workers have stopped."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise StorageError("Database pool not initialized — call init_pool() first")
    return _pool


@asynccontextmanager
async def get_connection() -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a pooled connection inside a transaction.

    Usage::

        async with get_connection() as conn:
            await conn.execute("UPDATE characters SET ... WHERE character_id = $1", cid)
    """
    pool = get_pool()
    try:
        async with pool.acquire() as conn:
            async with conn.transaction():
                yield conn
    except _DRIVER_ERRORS as exc:
        raise StorageError(str(exc)) from exc


async def execute(query: str, *args: Any) -> str:
    """Execute a single statement and return its status string."""
    async with get_connection() as conn:
        return await conn.execute(query, *args)


async def fetch(query: str, *args: Any) -> list[asyncpg.Record]:
    async with get_connection() as conn:
        return await conn.fetch(query, *args)


async def fetchrow(query: str, *args: Any) -> asyncpg.Record | None:
    async with get_connection() as conn:
        return await conn.fetchrow(query, *args)


def affected_rows(status: str) -> int:
    """Parse the row count out of a status string such as ``'DELETE 12'``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, IndexError):
        return 0
