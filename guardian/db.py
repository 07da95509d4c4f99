"""
Database connection pool and connection managers.

All database access goes through connection().
Never use pool.acquire() directly outside this module.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import ParamSpec, TypeVar
from uuid import UUID

import asyncpg

from guardian import config
from guardian.errors import InvalidInput, Timeout, Unavailable

logger = logging.getLogger(__name__)

pool: asyncpg.Pool | None = None

# Failures of the transport rather than of the statement.
_CONNECTION_ERRORS = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.InterfaceError,
    ConnectionError,
    OSError,
)

P = ParamSpec("P")
T = TypeVar("T")


async def init_pool() -> None:
    """
    Initialize the connection pool.
    Called once at application startup.
    """
    global pool
    pool = await asyncpg.create_pool(
        dsn=config.settings.DATABASE_URL,
        min_size=config.settings.DB_POOL_MIN_SIZE,
        max_size=config.settings.DB_POOL_MAX_SIZE,
        command_timeout=config.settings.DB_COMMAND_TIMEOUT,
        init=_init_connection,
    )


async def close_pool() -> None:
    """
    Close the connection pool.
    Called at application shutdown.
    """
    global pool
    if pool is not None:
        await pool.close()
        pool = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    """
    Initialize each new connection.
    Sets up type codecs for UUID and JSON handling.
    """
    await conn.set_type_codec(
        "uuid",
        encoder=str,
        decoder=lambda x: UUID(x),
        schema="pg_catalog",
    )
    # JSONB codec - decode to Python dict/list
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )
    await conn.set_type_codec(
        "json",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


@asynccontextmanager
async def connection():
    """
    Acquire a pooled connection wrapped in a transaction.

    Everything executed inside the block commits together or not at all.
    Transport failures are translated to Unavailable, deadline misses to
    Timeout and unstorable values to InvalidInput; other statement errors (constraint violations etc.) propagate as-is
    so repos can map them.

    Usage:
        async with connection() as conn:
            row = await conn.fetchrow("SELECT * FROM rooms WHERE id = $1", room_id)

    Yields:
        asyncpg.Connection inside an open transaction
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    try:
        async with pool.acquire(timeout=config.settings.DB_ACQUIRE_TIMEOUT) as conn:
            async with conn.transaction():
                yield conn
    except TimeoutError as e:
        logger.warning("db: operation timed out: %s", e)
        raise Timeout("The database did not respond in time.") from e
    except _CONNECTION_ERRORS as e:
        logger.error("db: connection failure: %s", e)
        raise Unavailable("The database is temporarily unavailable.") from e
    except (asyncpg.DataError, UnicodeEncodeError) as e:
        # Values PostgreSQL cannot store, e.g. NUL in text.
        logger.info("db: rejected value: %s", e)
        raise InvalidInput("The request contains a value that cannot be stored.") from e


def retry_read(fn: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """
    Retry a read-only repo method once after a short backoff on Unavailable.

    Only for reads. Mutations must never be retried here: a write that failed
    on the wire may still have committed.
    """

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await fn(*args, **kwargs)
        except Unavailable:
            logger.warning("db: retrying read %s after connection failure", fn.__qualname__)
            await asyncio.sleep(config.settings.DB_READ_RETRY_BACKOFF)
            return await fn(*args, **kwargs)

    return wrapper
