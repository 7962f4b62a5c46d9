"""
asyncpg pool lifecycle for pharos connections.

One pool exists per logical connection id.  Pools are small (five
connections by default) because each query execution holds a dedicated
connection for its whole duration, so the pool size is also the ceiling on
concurrent queries against one connection id.

Every driver failure raised here is wrapped in
:class:`~pharos.core.errors.DatabaseConnectionError` with the credential
parts of its message redacted.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING, Any

import asyncpg

from pharos.core.codecs import register_codecs
from pharos.core.errors import DatabaseConnectionError
from pharos.core.logging import get_logger
from pharos.core.secrets import redact_credentials

if TYPE_CHECKING:
    from asyncpg import Connection, Pool

logger = get_logger(__name__)

# Everything the driver can raise while opening or leasing a connection
DRIVER_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


def normalize_database_url(url: str) -> str:
    """Normalize database URL for asyncpg compatibility.

    Converts SQLAlchemy-style URLs (postgresql+asyncpg://) to plain
    PostgreSQL URLs and removes the ``sslmode`` query parameter, which is
    passed to asyncpg separately.

    Examples:
        >>> normalize_database_url("postgresql+asyncpg://localhost/db")
        'postgresql://localhost/db'

        >>> normalize_database_url("postgresql://localhost/db?sslmode=require")
        'postgresql://localhost/db'
    """
    url = re.sub(r"^postgres(ql)?\+\w+://", "postgresql://", url)

    if "?sslmode=" in url or "&sslmode=" in url:
        url = re.sub(r"[?&]sslmode=[^&]*", "", url)
        url = url.rstrip("?&")
        if "&" in url and "?" not in url:
            url = url.replace("&", "?", 1)

    return url


def connection_failure(exc: BaseException, action: str) -> DatabaseConnectionError:
    """Wrap a driver exception with a redacted message."""
    detail = redact_credentials(str(exc)) or type(exc).__name__
    return DatabaseConnectionError(f"{action}: {detail}", cause=exc)


async def create_pool(
    connect_kwargs: dict[str, Any],
    *,
    min_size: int = 1,
    max_size: int = 5,
    connect_timeout: float = 10.0,
    command_timeout: float | None = None,
) -> Pool:
    """Create an asyncpg pool and prove it works with one round trip.

    Args:
        connect_kwargs: ``host``/``port``/``user``/``password``/``database``/``ssl``
        min_size: Connections opened eagerly
        max_size: Upper bound on simultaneously leased connections
        connect_timeout: Seconds allowed for each new server connection
        command_timeout: Default per-statement timeout, ``None`` for none

    Raises:
        DatabaseConnectionError: The server could not be reached or refused us
    """
    logger.info(
        "pool_creating",
        host=connect_kwargs.get("host"),
        database=connect_kwargs.get("database"),
        min_size=min_size,
        max_size=max_size,
    )
    try:
        pool = await asyncpg.create_pool(
            **connect_kwargs,
            min_size=min_size,
            max_size=max_size,
            timeout=connect_timeout,
            command_timeout=command_timeout,
            init=register_codecs,
        )
    except DRIVER_ERRORS as exc:
        raise connection_failure(exc, "Failed to connect") from exc

    try:
        async with pool.acquire(timeout=connect_timeout) as conn:
            version = await conn.fetchval("SELECT version()")
    except DRIVER_ERRORS as exc:
        await pool.close()
        raise connection_failure(exc, "Failed to connect") from exc

    logger.info("pool_created", server_version=(version or "")[:60])
    return pool


async def open_connection(connect_kwargs: dict[str, Any], *, timeout: float = 10.0) -> Connection:
    """Open a single unpooled connection (cancel requests, connection tests)."""
    try:
        return await asyncpg.connect(**connect_kwargs, timeout=timeout)
    except DRIVER_ERRORS as exc:
        raise connection_failure(exc, "Failed to connect") from exc


async def close_pool(pool: Pool) -> None:
    """Close the connection pool gracefully.

    Waits for leased connections to be released before closing.
    """
    logger.info("pool_closing")
    await pool.close()


def pool_stats(pool: Pool) -> dict[str, int]:
    """Current size figures for a pool, without touching the network."""
    return {
        "size": pool.get_size(),
        "free_size": pool.get_idle_size(),
        "min_size": pool.get_min_size(),
        "max_size": pool.get_max_size(),
    }


async def pool_health_check(pool: Pool) -> dict[str, Any]:
    """Run ``SELECT 1`` through the pool and report statistics.

    Examples:
        >>> stats = await pool_health_check(pool)
        >>> stats['healthy']
        True
    """
    try:
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return {**pool_stats(pool), "healthy": True}
    except DRIVER_ERRORS as exc:
        message = redact_credentials(str(exc))
        logger.error("pool_health_check_failed", error=message)
        return {**pool_stats(pool), "healthy": False, "error": message}


__all__ = [
    "DRIVER_ERRORS",
    "normalize_database_url",
    "connection_failure",
    "create_pool",
    "open_connection",
    "close_pool",
    "pool_stats",
    "pool_health_check",
]
