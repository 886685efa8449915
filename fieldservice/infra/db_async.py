# fieldservice/infra/db_async.py
"""
Async database connection using asyncpg.
"""
from __future__ import annotations
from typing import AsyncIterator
from contextlib import asynccontextmanager

import asyncpg
from fieldservice.config import settings
from fieldservice.infra.logging_config import get_logger

logger = get_logger(__name__)

# Global connection pool
_pool: asyncpg.Pool | None = None


async def init_pool() -> None:
    """Initialize connection pool on startup"""
    global _pool

    if _pool is not None:
        return

    logger.info("Initializing asyncpg connection pool")

    connect_kwargs = settings.pg_connect_kwargs
    connect_kwargs["server_settings"]["application_name"] = "fieldservice"

    _pool = await asyncpg.create_pool(
        min_size=settings.pg_pool_min,
        max_size=settings.pg_pool_max,
        command_timeout=60,
        **connect_kwargs,
    )

    logger.info(f"Connection pool created: min={settings.pg_pool_min}, max={settings.pg_pool_max}")


async def close_pool() -> None:
    """Close connection pool on shutdown"""
    global _pool

    if _pool is None:
        return

    logger.info("Closing connection pool")
    await _pool.close()
    _pool = None
    logger.info("Connection pool closed")


async def acquire() -> asyncpg.Connection:
    if _pool is None:
        raise RuntimeError("Connection pool not initialized. Call init_pool() first.")
    return await _pool.acquire()


async def release(conn: asyncpg.Connection) -> None:
    if _pool is not None:
        await _pool.release(conn)


@asynccontextmanager
async def db_conn(autocommit: bool = True) -> AsyncIterator[asyncpg.Connection]:
    """
    Get database connection from pool (async).

    Usage:
        async with db_conn() as conn:
            row = await conn.fetchrow("SELECT * FROM tasks WHERE id = $1", task_id)

    Args:
        autocommit: If True (default), no explicit transaction. If False, the
            block runs in a transaction committed on success, rolled back on error.
    """
    conn = await acquire()
    try:
        if not autocommit:
            async with conn.transaction():
                yield conn
        else:
            yield conn
    finally:
        await release(conn)
