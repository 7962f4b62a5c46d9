"""
Query operations.

The boundary the UI and CLI call for running SQL, paging, cancelling,
validating, and editing results.  Every function returns an
:class:`OperationResult`; no core exception crosses this line.

A cancelled execution fails with ``CANCELLED`` and carries no rows.
``commit_edits`` succeeds whenever the commit ran: a rolled-back batch is
reported inside the :class:`CommitOutcome`, with its error repeated as a
warning.
"""

from __future__ import annotations

from pharos.core.errors import PharosError, QueryCancelledError
from pharos.core.logging import get_logger
from pharos.core.secrets import redact_credentials
from pharos.ops.context import OperationContext
from pharos.ops.requests import (
    AnalyzeEditabilityRequest,
    CancelQueryRequest,
    CommitEditsRequest,
    ExecuteQueryRequest,
    ExecuteStatementRequest,
    FetchMoreRequest,
    ValidateSqlRequest,
)
from pharos.ops.result import OperationResult, error_code, fail_from, start_timer
from pharos.query.models import (
    CommitOutcome,
    CommitRequest,
    EditabilityVerdict,
    QueryResult,
    StatementResult,
    ValidationResult,
)

logger = get_logger(__name__)


def _failed(action: str, exc: Exception, elapsed_ms: float) -> OperationResult:
    if isinstance(exc, QueryCancelledError):
        return fail_from(exc, elapsed_ms=elapsed_ms)
    if isinstance(exc, PharosError):
        logger.warning("op_failed", action=action, code=error_code(exc), error=redact_credentials(exc.message))
        return fail_from(exc, elapsed_ms=elapsed_ms)
    message = redact_credentials(str(exc))
    logger.exception("op_failed", action=action, error=message)
    return OperationResult.fail("INTERNAL", f"Failed to {action}: {message}", elapsed_ms=elapsed_ms)


async def execute_query(ctx: OperationContext, request: ExecuteQueryRequest) -> OperationResult[QueryResult]:
    """Run a row-returning statement under the row limit.

    Args:
        ctx: Operation context holding the session registry.
        request: Connection, SQL, limit, schema and optional query id.

    Returns:
        The first page of decoded rows, or a failure with one of the
        ``NOT_CONNECTED``, ``VALIDATION_FAILED``, ``CANCELLED``,
        ``QUERY_FAILED`` or ``CONNECTION_FAILED`` codes.
    """
    timer = start_timer()
    try:
        result = await ctx.executor.execute(
            request.connection_id,
            request.sql,
            limit=request.limit,
            schema=request.schema,
            query_id=request.query_id,
        )
    except Exception as exc:
        return _failed("execute query", exc, timer.elapsed_ms)
    return OperationResult.ok(result, elapsed_ms=timer.elapsed_ms)


async def fetch_more(ctx: OperationContext, request: FetchMoreRequest) -> OperationResult[QueryResult]:
    """Fetch the page starting at ``request.offset``."""
    timer = start_timer()
    try:
        result = await ctx.executor.fetch_more(
            request.connection_id,
            request.sql,
            limit=request.limit,
            offset=request.offset,
            schema=request.schema,
        )
    except Exception as exc:
        return _failed("fetch rows", exc, timer.elapsed_ms)
    return OperationResult.ok(result, elapsed_ms=timer.elapsed_ms)


async def execute_statement(
    ctx: OperationContext,
    request: ExecuteStatementRequest,
) -> OperationResult[StatementResult]:
    timer = start_timer()
    try:
        result = await ctx.executor.execute_statement(request.connection_id, request.sql, schema=request.schema)
    except Exception as exc:
        return _failed("execute statement", exc, timer.elapsed_ms)
    return OperationResult.ok(result, elapsed_ms=timer.elapsed_ms)


async def cancel_query(ctx: OperationContext, request: CancelQueryRequest) -> OperationResult[bool]:
    """Cancel a running query; ``QUERY_NOT_FOUND`` when it is not running."""
    timer = start_timer()
    try:
        cancelled = await ctx.executor.cancel(request.connection_id, request.query_id)
    except Exception as exc:
        return _failed("cancel query", exc, timer.elapsed_ms)
    return OperationResult.ok(cancelled, elapsed_ms=timer.elapsed_ms)


async def validate_sql(ctx: OperationContext, request: ValidateSqlRequest) -> OperationResult[ValidationResult]:
    """Server-side syntax check; an invalid statement is still a successful call."""
    timer = start_timer()
    try:
        result = await ctx.executor.validate_syntax(request.connection_id, request.sql, schema=request.schema)
    except Exception as exc:
        return _failed("validate SQL", exc, timer.elapsed_ms)
    return OperationResult.ok(result, elapsed_ms=timer.elapsed_ms)


async def analyze_editability(
    ctx: OperationContext,
    request: AnalyzeEditabilityRequest,
) -> OperationResult[EditabilityVerdict]:
    timer = start_timer()
    try:
        verdict = await ctx.analyzer.analyze(request.connection_id, request.sql, schema=request.schema)
    except Exception as exc:
        return _failed("analyze query", exc, timer.elapsed_ms)
    return OperationResult.ok(verdict, elapsed_ms=timer.elapsed_ms)


async def commit_edits(ctx: OperationContext, request: CommitEditsRequest) -> OperationResult[CommitOutcome]:
    """Apply grid edits all-or-nothing."""
    timer = start_timer()
    try:
        commit = CommitRequest.from_dict(
            {
                "schema": request.schema,
                "table": request.table,
                "primary_keys": list(request.primary_keys),
                "edits": list(request.edits),
            }
        )
        outcome = await ctx.commits.commit(request.connection_id, commit)
    except Exception as exc:
        return _failed("commit edits", exc, timer.elapsed_ms)
    warnings = [redact_credentials(e) for e in outcome.errors]
    return OperationResult.ok(outcome, warnings=warnings, elapsed_ms=timer.elapsed_ms)
