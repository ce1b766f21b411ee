"""asyncpg access for the Postgres store and the migration runner.

One pool per process. Store calls are short single statements, so the pool
stays small and every statement gets the configured command timeout.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import asyncpg

from .settings import get_settings

_POOL: asyncpg.Pool | None = None
_POOL_LOCK = asyncio.Lock()


async def get_async_pool() -> asyncpg.Pool:
    global _POOL
    if _POOL is None:
        async with _POOL_LOCK:
            if _POOL is None:
                settings = get_settings()
                _POOL = await asyncpg.create_pool(
                    dsn=settings.database_url,
                    min_size=1,
                    max_size=settings.db_pool_max_size,
                    command_timeout=settings.db_command_timeout_seconds,
                    # pgbouncer in transaction mode cannot hold prepared statements.
                    statement_cache_size=0,
                )
    return _POOL


async def close_async_pool() -> None:
    global _POOL
    pool, _POOL = _POOL, None
    if pool is not None:
        await pool.close()


@asynccontextmanager
async def connection(*, transactional: bool = False) -> AsyncIterator[asyncpg.Connection]:
    """Borrow a pooled connection, optionally wrapped in a transaction."""

    pool = await get_async_pool()
    async with pool.acquire() as conn:
        if not transactional:
            yield conn
            return
        async with conn.transaction():
            yield conn


async def fetch_one(query: str, *args: Any) -> asyncpg.Record | None:
    async with connection() as conn:
        return await conn.fetchrow(query, *args)


async def fetch_all(query: str, *args: Any) -> list[asyncpg.Record]:
    async with connection() as conn:
        return list(await conn.fetch(query, *args))


async def execute(query: str, *args: Any) -> str:
    """Run a write and return the status tag (``"UPDATE 1"``), which callers use as a row count."""

    async with connection() as conn:
        return await conn.execute(query, *args)


__all__ = ["close_async_pool", "connection", "execute", "fetch_all", "fetch_one", "get_async_pool"]
