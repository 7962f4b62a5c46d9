"""
Table operations: CSV transfer and cloning.

Export returns CSV cells (header first); import takes CSV records without a
header.  Reading and writing the file itself stays with the caller.
"""

from __future__ import annotations

from pharos.core.errors import PharosError
from pharos.core.logging import get_logger
from pharos.core.secrets import redact_credentials
from pharos.ops.context import OperationContext
from pharos.ops.requests import CloneTableRequest, ExportTableRequest, ImportTableRequest
from pharos.ops.result import OperationResult, fail_from, start_timer
from pharos.query.models import CloneResult

logger = get_logger(__name__)


async def export_table(ctx: OperationContext, request: ExportTableRequest) -> OperationResult[list[list[str]]]:
    timer = start_timer()
    try:
        rows = await ctx.transfer.export_rows(
            request.connection_id,
            request.schema,
            request.table,
            request.columns,
            include_headers=request.include_headers,
            null_as_empty=request.null_as_empty,
        )
    except PharosError as exc:
        return fail_from(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        message = redact_credentials(str(exc))
        logger.exception("op_failed", action="export table", error=message)
        return OperationResult.fail("INTERNAL", f"Failed to export table: {message}", elapsed_ms=timer.elapsed_ms)
    return OperationResult.ok(rows, elapsed_ms=timer.elapsed_ms)


async def import_table(ctx: OperationContext, request: ImportTableRequest) -> OperationResult[int]:
    """Insert every record in one transaction; the payload is the row count."""
    timer = start_timer()
    try:
        imported = await ctx.transfer.import_rows(
            request.connection_id,
            request.schema,
            request.table,
            request.records,
        )
    except PharosError as exc:
        return fail_from(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        message = redact_credentials(str(exc))
        logger.exception("op_failed", action="import table", error=message)
        return OperationResult.fail("INTERNAL", f"Failed to import table: {message}", elapsed_ms=timer.elapsed_ms)
    return OperationResult.ok(imported, elapsed_ms=timer.elapsed_ms)


async def clone_table(ctx: OperationContext, request: CloneTableRequest) -> OperationResult[CloneResult]:
    timer = start_timer()
    try:
        result = await ctx.transfer.clone_table(
            request.connection_id,
            request.source_schema,
            request.source_table,
            request.target_schema,
            request.target_table,
            include_data=request.include_data,
        )
    except PharosError as exc:
        return fail_from(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        message = redact_credentials(str(exc))
        logger.exception("op_failed", action="clone table", error=message)
        return OperationResult.fail("INTERNAL", f"Failed to clone table: {message}", elapsed_ms=timer.elapsed_ms)
    return OperationResult.ok(result, elapsed_ms=timer.elapsed_ms)
