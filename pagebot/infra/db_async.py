# pagebot/infra/db_async.py
"""
asyncpg pool for the PostgreSQL store backend (STORE_BACKEND=postgres).
"""
from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg

from pagebot.config import settings
from pagebot.infra.logging_config import get_logger

logger = get_logger(__name__)

_pool: asyncpg.Pool | None = None


async def init_pool() -> None:
    """Create the pool once; later calls are no-ops."""
    global _pool
    if _pool is not None:
        return

    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is not set")

    _pool = await asyncpg.create_pool(
        dsn=settings.database_url,
        min_size=settings.pg_pool_min,
        max_size=settings.pg_pool_max,
        command_timeout=60,
        server_settings={"application_name": "pagebot"},
    )
    logger.info(f"asyncpg pool ready: min={settings.pg_pool_min}, max={settings.pg_pool_max}")


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return

    pool, _pool = _pool, None
    await pool.close()
    logger.info("asyncpg pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Connection pool not initialized. Call init_pool() first.")
    return _pool


@asynccontextmanager
async def db_conn(autocommit: bool = True) -> AsyncIterator[asyncpg.Connection]:
    """
    Borrow a pooled connection for the duration of the block.

        async with db_conn(autocommit=False) as conn:
            row = await conn.fetchrow("SELECT ... FOR UPDATE", key)

    With autocommit=False the block runs in a transaction: committed on normal
    exit, rolled back when the block raises.
    """
    async with get_pool().acquire() as conn:
        if autocommit:
            yield conn
        else:
            async with conn.transaction():
                yield conn
