"""
Connection operations.

Connect, disconnect, test and inspect the pools registered in the
context's session registry.  Connect and test failures come back as
``CONNECTION_FAILED`` with credentials already stripped from the message.
"""

from __future__ import annotations

from pharos.core.connection import ConnectionConfig, ConnectionStatus, TestConnectionResult
from pharos.core.errors import PharosError
from pharos.core.logging import get_logger
from pharos.core.secrets import redact_credentials
from pharos.ops.context import OperationContext
from pharos.ops.result import OperationResult, error_code, fail_from, start_timer

logger = get_logger(__name__)


def _internal(action: str, exc: Exception, elapsed_ms: float) -> OperationResult:
    message = redact_credentials(str(exc))
    logger.exception("op_failed", action=action, error=message)
    return OperationResult.fail("INTERNAL", f"Failed to {action}: {message}", elapsed_ms=elapsed_ms)


async def connect(ctx: OperationContext, connection_id: str) -> OperationResult[ConnectionStatus]:
    """Create (or replace) the pool for ``connection_id``."""
    timer = start_timer()
    try:
        await ctx.connections.connect(connection_id)
    except PharosError as exc:
        logger.warning("connect_failed", connection_id=connection_id, code=error_code(exc))
        return fail_from(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("connect", exc, timer.elapsed_ms)
    return OperationResult.ok(ctx.connections.status(connection_id), elapsed_ms=timer.elapsed_ms)


async def disconnect(ctx: OperationContext, connection_id: str) -> OperationResult[bool]:
    """Close the pool; the payload says whether one was open."""
    timer = start_timer()
    try:
        closed = await ctx.connections.disconnect(connection_id)
    except PharosError as exc:
        return fail_from(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("disconnect", exc, timer.elapsed_ms)
    return OperationResult.ok(closed, elapsed_ms=timer.elapsed_ms)


async def test_connection(
    ctx: OperationContext,
    config: ConnectionConfig,
    password: str | None = None,
) -> OperationResult[TestConnectionResult]:
    """Open one throwaway connection and report the server version."""
    timer = start_timer()
    try:
        result = await ctx.connections.test_connection(config, password)
    except PharosError as exc:
        return fail_from(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("test connection", exc, timer.elapsed_ms)
    return OperationResult.ok(result, elapsed_ms=timer.elapsed_ms)


def connection_status(ctx: OperationContext, connection_id: str) -> OperationResult[ConnectionStatus]:
    """Whether a pool is registered, with its size and idle count."""
    return OperationResult.ok(ctx.connections.status(connection_id))
