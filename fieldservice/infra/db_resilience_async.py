# fieldservice/infra/db_resilience_async.py
"""
Async database resilience utilities.
Retry on transient errors while acquiring asyncpg connections.
"""
from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager

import asyncpg
from fieldservice.infra import db_async
from fieldservice.infra.logging_config import get_logger
from fieldservice.infra.metrics import inc_counter

logger = get_logger(__name__)


def is_transient_error(exc: Exception) -> bool:
    """
    Check if database error is transient (should retry).

    Transient errors:
    - Connection errors
    - Too many connections
    - Deadlock
    """
    if isinstance(exc, (
        asyncpg.PostgresConnectionError,
        asyncpg.TooManyConnectionsError,
        asyncpg.DeadlockDetectedError,
    )):
        return True
    if isinstance(exc, (ConnectionError, asyncio.TimeoutError)):
        return True

    error_message = str(exc).lower()
    transient_patterns = [
        "connection reset",
        "server closed",
        "too many connections",
        "timeout",
    ]
    return any(pattern in error_message for pattern in transient_patterns)


async def _acquire_with_retry(max_retries: int = 3) -> "asyncpg.Connection":
    delay = 0.1
    for attempt in range(max_retries + 1):
        try:
            return await db_async.acquire()
        except Exception as exc:
            if not is_transient_error(exc) or attempt >= max_retries:
                inc_counter("database_errors_total", operation="acquire")
                logger.error(f"Could not get database connection: {exc}")
                raise

            logger.warning(
                f"Transient error getting connection (attempt {attempt + 1}/{max_retries}): {exc}. "
                f"Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)
            delay = min(delay * 2.0, 5.0)
    raise RuntimeError("unreachable")


@asynccontextmanager
async def safe_db_conn(autocommit: bool = True):
    """
    Database connection with retry on transient errors while connecting.

    Usage:
        async with safe_db_conn(autocommit=False) as conn:
            await conn.execute(...)

    Only acquiring the connection is retried; a failure inside the block is
    raised to the caller (and rolls back the transaction when autocommit=False).
    """
    conn = await _acquire_with_retry()
    try:
        if not autocommit:
            async with conn.transaction():
                yield conn
        else:
            yield conn
    finally:
        await db_async.release(conn)
