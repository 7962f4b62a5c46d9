"""
Commit engine: apply grid edits to one table in one transaction.

Rows are located only by the primary-key values captured in each edit's
original row, never by the edited values.  Every value is bound as text and
cast on the server to the column's declared type
(``"price" = $1::text::numeric(10,2)``), so a JSON number, string or boolean
from the UI reaches any column type without client-side type guessing.

Semantics:
    - edits run in submitted order on one dedicated connection
    - the first failing edit rolls everything back; the outcome reports
      ``success=False``, ``rows_affected=0`` and that edit's error
    - otherwise the transaction commits once and ``rows_affected`` is the
      sum over all statements

Examples:
    >>> bind_text(True, "boolean"), bind_text(3, "integer"), bind_text({"a": 1}, "jsonb")
    ('true', '3', '{"a":1}')
    >>> bind_text([1, None], "integer[]")
    '{1,NULL}'
"""

from __future__ import annotations

import json
from typing import Any

import asyncpg

from pharos.core.database import DRIVER_ERRORS, connection_failure
from pharos.core.dialect import POSTGRES, PostgreSQLDialect, validate_identifier, validate_schema_name
from pharos.core.errors import CommitError, ValidationError
from pharos.core.logging import LogContext, get_logger
from pharos.core.registry import SessionRegistry
from pharos.core.secrets import redact_credentials
from pharos.core.settings import PharosSettings, get_settings
from pharos.query.executor import rows_affected
from pharos.query.metadata import ColumnInfo, list_columns
from pharos.query.models import CommitOutcome, CommitRequest, DeleteEdit, RowEdit, StructuredValue, UpdateEdit
from pharos.query.pgtext import to_pg_text

logger = get_logger(__name__)


def bind_text(value: StructuredValue, sql_type: str) -> str:
    """Text form of a non-null value for a ``$n::text::<type>`` parameter."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value) if isinstance(value, float) else str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, list) and sql_type.rstrip().endswith("]"):
        return to_pg_text(value) or "{}"
    return json.dumps(value, separators=(",", ":"))


class _StatementBuilder:
    """Accumulates clauses and their bound parameters for one statement."""

    def __init__(self, dialect: PostgreSQLDialect, columns: dict[str, ColumnInfo], target: str):
        self.dialect = dialect
        self.columns = columns
        self.target = target
        self.params: list[str] = []

    def _column(self, name: str) -> ColumnInfo:
        column = self.columns.get(name)
        if column is None:
            raise CommitError(f"Unknown column '{name}' in {self.target}")
        return column

    def _bind(self, value: StructuredValue, column: ColumnInfo) -> str:
        self.params.append(bind_text(value, column.data_type))
        return self.dialect.text_cast_placeholder(len(self.params), column.data_type)

    def assignment(self, name: str, value: StructuredValue) -> str:
        column = self._column(name)
        if value is None:
            return f"{self.dialect.quote(name)} = NULL"
        return f"{self.dialect.quote(name)} = {self._bind(value, column)}"

    def where(self, primary_keys: list[str], original_row: dict[str, StructuredValue]) -> str:
        conditions = []
        for key in primary_keys:
            if key not in original_row:
                raise CommitError(f"Primary key '{key}' not found in original row")
            column = self._column(key)
            value = original_row[key]
            if value is None:
                conditions.append(f"{self.dialect.quote(key)} IS NULL")
            else:
                conditions.append(f"{self.dialect.quote(key)} = {self._bind(value, column)}")
        return " AND ".join(conditions)


class CommitEngine:
    """Applies batches of :class:`UpdateEdit` / :class:`DeleteEdit` atomically."""

    def __init__(
        self,
        registry: SessionRegistry,
        settings: PharosSettings | None = None,
        dialect: PostgreSQLDialect = POSTGRES,
    ):
        self.registry = registry
        self.settings = settings or get_settings()
        self.dialect = dialect

    def build_statement(
        self,
        request: CommitRequest,
        columns: dict[str, ColumnInfo],
        edit: RowEdit,
    ) -> tuple[str, list[str]] | None:
        """SQL and parameters for one edit; ``None`` for an update with no changes."""
        target = self.dialect.qualified(request.schema, request.table)
        builder = _StatementBuilder(self.dialect, columns, f"{request.schema}.{request.table}")

        if isinstance(edit, UpdateEdit):
            if not edit.changes:
                return None
            assignments = [builder.assignment(name, value) for name, value in edit.changes.items()]
            where = builder.where(request.primary_keys, edit.original_row)
            return f"UPDATE {target} SET {', '.join(assignments)} WHERE {where}", builder.params
        if isinstance(edit, DeleteEdit):
            where = builder.where(request.primary_keys, edit.original_row)
            return f"DELETE FROM {target} WHERE {where}", builder.params
        raise CommitError(f"Unknown edit type: {getattr(edit, 'type', type(edit).__name__)}")

    async def _apply(self, conn: Any, request: CommitRequest, columns: dict[str, ColumnInfo], edit: RowEdit) -> int:
        statement = self.build_statement(request, columns, edit)
        if statement is None:
            return 0
        sql, params = statement
        try:
            status = await conn.execute(sql, *params)
        except asyncpg.PostgresError as exc:
            raise CommitError(redact_credentials(str(exc)), cause=exc) from exc
        return rows_affected(status)

    async def commit(self, connection_id: str, request: CommitRequest) -> CommitOutcome:
        """Apply ``request.edits`` all-or-nothing.

        Raises:
            NotConnectedError: No pool for ``connection_id``
            ValidationError: Bad identifiers or no primary keys, before any I/O
            CommitError: The table does not exist or has none of the given keys
            DatabaseConnectionError: Lease timeout or network failure
        """
        validate_schema_name(request.schema)
        validate_identifier(request.table, "table")
        if not request.primary_keys:
            raise ValidationError("At least one primary key column is required", field="primary_keys")
        handle = self.registry.lease(connection_id)
        if not request.edits:
            return CommitOutcome(success=True, rows_affected=0)

        async with LogContext(connection_id=connection_id, schema=request.schema, table=request.table):
            try:
                conn = await handle.pool.acquire(timeout=self.settings.acquire_timeout)
            except DRIVER_ERRORS as exc:
                raise connection_failure(exc, "Failed to acquire connection") from exc

            try:
                columns = {c.name: c for c in await list_columns(conn, request.schema, request.table)}
                if not columns:
                    raise CommitError(f"Table not found: {request.schema}.{request.table}")

                total = 0
                failure: str | None = None
                try:
                    async with conn.transaction():
                        for edit in request.edits:
                            total += await self._apply(conn, request, columns, edit)
                except CommitError as exc:
                    failure = exc.message
                except asyncpg.PostgresError as exc:
                    # deferred constraints fail at COMMIT
                    failure = redact_credentials(str(exc))
                if failure is not None:
                    logger.warning("commit_rolled_back", error=failure)
                    return CommitOutcome(success=False, rows_affected=0, errors=[failure])
            except asyncpg.PostgresError as exc:
                raise CommitError(redact_credentials(str(exc)), cause=exc) from exc
            except DRIVER_ERRORS as exc:
                raise connection_failure(exc, "Commit failed") from exc
            finally:
                await handle.pool.release(conn)

            logger.info("commit_applied", edits=len(request.edits), rows_affected=total)
            return CommitOutcome(success=True, rows_affected=total)


__all__ = [
    "CommitEngine",
    "bind_text",
]
