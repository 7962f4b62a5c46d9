"""
Query executor: run user SQL under a row limit and a cancellation contract.

Every operation leases one dedicated connection from the pool for its whole
duration.  The cancellation token (the server backend pid) and any
``search_path`` override both belong to that exact session, so a pool-wide
"run and release" call would not do.

Execution flow (``execute``):
    ::

        validate schema ──► lease connection ──► read backend pid
              │                                        │
              ▼                                        ▼
        IdentifierError                     registry.begin_query(query_id)
        (no I/O)                                       │
                                            SET search_path (optional)
                                                       │
                                            prepare + cursor (transaction)
                                            ┌──────────┴──────────┐
                                            │ per row: cancelled? │──► QueryCancelledError
                                            │ limit+1 reached?    │──► has_more, stop
                                            └──────────┬──────────┘
                                                       ▼
                                            registry.end_query (always)
                                                       │
                                            decode rows ──► QueryResult

Cancellation is two independent signals.  ``cancel`` sets the registry flag
(the stream loop stops at the next row) and also sends
``pg_cancel_backend(pid)`` over a fresh connection, which is the only way to
interrupt a statement that has not produced a row yet.

Guardrails:
    ❌ DON'T: Decode the lookahead row; it only sets ``has_more``
    ❌ DON'T: Skip ``end_query`` on error paths
    ✅ DO: Validate the schema before leasing a connection

Tags:
    query-execution, cancellation, streaming, asyncpg, pharos
"""

from __future__ import annotations

import re
import threading
import time
import uuid
from typing import Any

import asyncpg

from pharos.core.database import DRIVER_ERRORS, connection_failure, open_connection
from pharos.core.dialect import POSTGRES, PostgreSQLDialect
from pharos.core.errors import (
    QueryCancelledError,
    QueryError,
    QueryNotFoundError,
    ValidationError,
)
from pharos.core.logging import LogContext, get_logger
from pharos.core.registry import PoolHandle, SessionRegistry
from pharos.core.secrets import redact_credentials
from pharos.core.settings import PharosSettings, get_settings
from pharos.query.marshal import decode_row, display_type_name
from pharos.query.models import (
    ColumnDescriptor,
    QueryResult,
    StatementResult,
    SyntaxErrorInfo,
    ValidationResult,
)

logger = get_logger(__name__)

_TRAILING_TERMINATORS = re.compile(r"[;\s]+$")
_AT_CHARACTER = re.compile(r"\s+at character \d+\s*$")


def paginate_sql(sql: str, limit: int, offset: int) -> str:
    """Wrap ``sql`` so the server returns one page plus a lookahead row."""
    inner = _TRAILING_TERMINATORS.sub("", sql.strip())
    return f"SELECT * FROM ({inner}) AS _pharos_page LIMIT {limit + 1} OFFSET {offset}"


def rows_affected(status: str | None) -> int:
    """Row count from a command tag: ``"UPDATE 3"`` → 3, ``"INSERT 0 5"`` → 5."""
    if not status:
        return 0
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else 0


def clean_error_message(message: str) -> str:
    """Drop a trailing ``" at character N"`` from a server message."""
    return _AT_CHARACTER.sub("", message)


def line_and_column(text: str, position: int) -> tuple[int, int]:
    """1-based line/column of the 1-based character ``position`` in ``text``."""
    before = text[: max(position - 1, 0)]
    line = before.count("\n") + 1
    column = position - (before.rfind("\n") + 1)
    return line, column


def describe_statement(statement: Any) -> list[ColumnDescriptor]:
    """Column names and display type names of a prepared statement."""
    columns = []
    for attr in statement.get_attributes():
        typname = attr.type.name
        data_type = display_type_name(typname) if attr.type.kind == "array" else typname.upper()
        columns.append(ColumnDescriptor(name=attr.name, data_type=data_type))
    return columns


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class QueryExecutor:
    """Executes statements against registered pools.

    Args:
        registry: Shared session registry (pools and running queries)
        settings: Defaults for limit, timeouts and cursor prefetch
        dialect: SQL spellings for ``search_path`` and quoting
    """

    def __init__(
        self,
        registry: SessionRegistry,
        settings: PharosSettings | None = None,
        dialect: PostgreSQLDialect = POSTGRES,
    ):
        self.registry = registry
        self.settings = settings or get_settings()
        self.dialect = dialect

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _resolve_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.settings.default_limit
        if limit < 0:
            raise ValidationError("Limit must not be negative", field="limit", value=limit)
        return limit

    async def _acquire(self, handle: PoolHandle) -> Any:
        try:
            return await handle.pool.acquire(timeout=self.settings.acquire_timeout)
        except DRIVER_ERRORS as exc:
            raise connection_failure(exc, "Failed to acquire connection") from exc

    async def _release(self, handle: PoolHandle, conn: Any) -> None:
        try:
            await handle.pool.release(conn)
        except DRIVER_ERRORS as exc:
            logger.warning("connection_release_failed", error=redact_credentials(str(exc)))

    _describe = staticmethod(describe_statement)

    async def _stream(
        self,
        conn: Any,
        sql: str,
        limit: int,
        cancel: threading.Event | None,
    ) -> tuple[list[ColumnDescriptor], list[Any], bool]:
        """Collect up to ``limit`` records; returns ``(columns, records, has_more)``."""
        if cancel is not None and cancel.is_set():
            raise QueryCancelledError()

        statement = await conn.prepare(sql)
        if not statement.get_attributes():
            await statement.fetch()
            return [], [], False

        records: list[Any] = []
        has_more = False
        async with conn.transaction():
            async for record in statement.cursor(prefetch=self.settings.cursor_prefetch):
                if cancel is not None and cancel.is_set():
                    raise QueryCancelledError()
                if len(records) >= limit:
                    has_more = True
                    break
                records.append(record)

        # columns are only reported when there is a row to describe
        columns = self._describe(statement) if records else []
        return columns, records, has_more

    async def _run_page(
        self,
        handle: PoolHandle,
        sql: str,
        limit: int,
        search_path: str | None,
        query_id: str | None,
    ) -> QueryResult:
        started = time.perf_counter()
        conn = await self._acquire(handle)
        cancel: threading.Event | None = None
        try:
            if query_id is not None:
                cancel = self.registry.begin_query(query_id, conn.get_server_pid())
            try:
                if search_path:
                    await conn.execute(search_path)
                columns, records, has_more = await self._stream(conn, sql, limit, cancel)
            finally:
                if query_id is not None:
                    self.registry.end_query(query_id)
        except QueryCancelledError:
            logger.info("query_cancelled")
            raise
        except asyncpg.exceptions.QueryCanceledError as exc:
            if cancel is not None and cancel.is_set():
                logger.info("query_cancelled", by="server")
                raise QueryCancelledError(cause=exc) from exc
            raise QueryError(redact_credentials(str(exc)), cause=exc) from exc
        except asyncpg.PostgresError as exc:
            raise QueryError(redact_credentials(str(exc)), cause=exc) from exc
        except DRIVER_ERRORS as exc:
            raise connection_failure(exc, "Query failed") from exc
        finally:
            await self._release(handle, conn)

        rows = [decode_row(record, columns) for record in records]
        elapsed = _elapsed_ms(started)
        logger.info("query_completed", row_count=len(rows), has_more=has_more, execution_time_ms=elapsed)
        return QueryResult(
            columns=columns,
            rows=rows,
            row_count=len(rows),
            execution_time_ms=elapsed,
            has_more=has_more,
        )

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def execute(
        self,
        connection_id: str,
        sql: str,
        limit: int | None = None,
        schema: str | None = None,
        query_id: str | None = None,
    ) -> QueryResult:
        """Run ``sql`` and return at most ``limit`` decoded rows.

        Args:
            connection_id: Registered pool to run against
            sql: Statement text, passed to the server unchanged
            limit: Maximum rows returned; defaults to ``settings.default_limit``
            schema: Optional ``search_path`` override for this execution
            query_id: Caller-chosen id for :meth:`cancel`; generated if omitted

        Raises:
            NotConnectedError: No pool for ``connection_id``
            IdentifierError: ``schema`` is not a safe identifier
            QueryCancelledError: :meth:`cancel` stopped the query
            QueryError: The server rejected the statement
            DatabaseConnectionError: Lease timeout or network failure
        """
        limit = self._resolve_limit(limit)
        search_path = self.dialect.search_path(schema) if schema else None
        handle = self.registry.lease(connection_id)
        query_id = query_id or uuid.uuid4().hex

        async with LogContext(connection_id=connection_id, query_id=query_id):
            logger.info("query_started", limit=limit, schema=schema)
            return await self._run_page(handle, sql, limit, search_path, query_id)

    async def fetch_more(
        self,
        connection_id: str,
        sql: str,
        limit: int | None = None,
        offset: int = 0,
        schema: str | None = None,
    ) -> QueryResult:
        """Re-run ``sql`` wrapped in ``LIMIT``/``OFFSET`` to page further.

        Paging is not registered for cancellation.
        """
        limit = self._resolve_limit(limit)
        if offset < 0:
            raise ValidationError("Offset must not be negative", field="offset", value=offset)
        search_path = self.dialect.search_path(schema) if schema else None
        handle = self.registry.lease(connection_id)

        async with LogContext(connection_id=connection_id):
            logger.info("query_page_requested", limit=limit, offset=offset)
            return await self._run_page(handle, paginate_sql(sql, limit, offset), limit, search_path, None)

    async def execute_statement(
        self,
        connection_id: str,
        sql: str,
        schema: str | None = None,
    ) -> StatementResult:
        """Run a statement that returns no rows; report the affected row count."""
        search_path = self.dialect.search_path(schema) if schema else None
        handle = self.registry.lease(connection_id)
        started = time.perf_counter()
        conn = await self._acquire(handle)
        try:
            if search_path:
                await conn.execute(search_path)
            status = await conn.execute(sql)
        except asyncpg.PostgresError as exc:
            raise QueryError(redact_credentials(str(exc)), cause=exc) from exc
        except DRIVER_ERRORS as exc:
            raise connection_failure(exc, "Statement failed") from exc
        finally:
            await self._release(handle, conn)

        result = StatementResult(rows_affected=rows_affected(status), execution_time_ms=_elapsed_ms(started))
        logger.info("statement_executed", connection_id=connection_id, rows_affected=result.rows_affected)
        return result

    async def cancel(self, connection_id: str, query_id: str) -> bool:
        """Stop a running query: set its flag, then ask the server to cancel it.

        Returns what ``pg_cancel_backend`` reported.

        Raises:
            NotConnectedError: No pool for ``connection_id``
            QueryNotFoundError: ``query_id`` is not running
        """
        handle = self.registry.lease(connection_id)
        backend_pid = self.registry.backend_pid(query_id)
        if backend_pid is None:
            raise QueryNotFoundError(query_id)

        self.registry.request_cancel(query_id)
        logger.info("query_cancel_requested", connection_id=connection_id, query_id=query_id)

        conn = await open_connection(handle.connect_kwargs, timeout=self.settings.connect_timeout)
        try:
            cancelled = await conn.fetchval("SELECT pg_cancel_backend($1)", backend_pid)
        except asyncpg.PostgresError as exc:
            raise QueryError(redact_credentials(str(exc)), cause=exc).with_context(query_id=query_id) from exc
        except DRIVER_ERRORS as exc:
            raise connection_failure(exc, "Cancel request failed") from exc
        finally:
            await conn.close()
        return bool(cancelled)

    async def validate_syntax(
        self,
        connection_id: str,
        sql: str,
        schema: str | None = None,
    ) -> ValidationResult:
        """Parse ``sql`` on the server without executing it.

        The statement is prepared through the extended protocol, so more than
        one statement is rejected, and the prepared form is dropped at once.
        Error positions are mapped back onto the caller's untrimmed text.
        """
        if not sql.strip():
            return ValidationResult(valid=True)

        search_path = self.dialect.search_path(schema) if schema else None
        handle = self.registry.lease(connection_id)
        leading = len(sql) - len(sql.lstrip())

        conn = await self._acquire(handle)
        try:
            if search_path:
                await conn.execute(search_path)
            try:
                # uncached; the server statement is closed once the object is collected
                await conn.prepare(sql.strip())
            except asyncpg.PostgresError as exc:
                return ValidationResult(valid=False, error=self._syntax_error(exc, sql, leading))
        except asyncpg.PostgresError as exc:
            raise QueryError(redact_credentials(str(exc)), cause=exc) from exc
        except DRIVER_ERRORS as exc:
            raise connection_failure(exc, "Validation failed") from exc
        finally:
            await self._release(handle, conn)
        return ValidationResult(valid=True)

    @staticmethod
    def _syntax_error(exc: asyncpg.PostgresError, sql: str, leading: int) -> SyntaxErrorInfo:
        message = clean_error_message(redact_credentials(getattr(exc, "message", None) or str(exc)))
        raw_position = getattr(exc, "position", None)
        try:
            reported = int(raw_position) if raw_position is not None else None
        except ValueError:
            reported = None
        if reported is None:
            return SyntaxErrorInfo(message=message)

        position = reported + leading if reported > 0 else 1
        line, column = line_and_column(sql, position)
        return SyntaxErrorInfo(message=message, position=position, line=line, column=column)


__all__ = [
    "QueryExecutor",
    "describe_statement",
    "paginate_sql",
    "rows_affected",
    "clean_error_message",
    "line_and_column",
]
