"""Whole-table CSV export and import on top of the CSV codec rules, and table cloning.

Both directions work in rows of strings; the caller owns the file.
Import is all-or-nothing: every record is inserted inside one transaction
and the first failing record rolls the batch back.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import asyncpg

from pharos.core.database import DRIVER_ERRORS, connection_failure
from pharos.core.dialect import POSTGRES, validate_identifier, validate_schema_name
from pharos.core.errors import CommitError, QueryError
from pharos.core.logging import LogContext, get_logger
from pharos.core.registry import SessionRegistry
from pharos.core.secrets import redact_credentials
from pharos.core.settings import PharosSettings, get_settings
from pharos.query.csv_codec import (
    build_export_select,
    build_insert_statement,
    decode_csv_record,
    iter_csv_rows,
)
from pharos.query.executor import describe_statement, rows_affected
from pharos.query.metadata import list_columns
from pharos.query.models import CloneResult

logger = get_logger(__name__)


def build_clone_statements(
    source_schema: str,
    source_table: str,
    target_schema: str,
    target_table: str,
) -> tuple[str, str]:
    """``CREATE TABLE ... (LIKE ... INCLUDING ALL)`` and the matching row copy."""
    validate_schema_name(source_schema)
    validate_identifier(source_table, "table")
    validate_schema_name(target_schema)
    validate_identifier(target_table, "table")
    source = POSTGRES.qualified(source_schema, source_table)
    target = POSTGRES.qualified(target_schema, target_table)
    return (
        f"CREATE TABLE {target} (LIKE {source} INCLUDING ALL)",
        f"INSERT INTO {target} SELECT * FROM {source}",
    )


class TableTransfer:
    """Export a table to CSV rows, insert CSV records into a table, or clone a table."""

    def __init__(self, registry: SessionRegistry, settings: PharosSettings | None = None):
        self.registry = registry
        self.settings = settings or get_settings()

    async def export_rows(
        self,
        connection_id: str,
        schema: str,
        table: str,
        columns: Sequence[str] = (),
        *,
        include_headers: bool = True,
        null_as_empty: bool = False,
    ) -> list[list[str]]:
        """All rows of ``schema.table`` as CSV cells, header first."""
        sql = build_export_select(schema, table, columns)
        handle = self.registry.lease(connection_id)
        try:
            conn = await handle.pool.acquire(timeout=self.settings.acquire_timeout)
        except DRIVER_ERRORS as exc:
            raise connection_failure(exc, "Failed to acquire connection") from exc
        try:
            statement = await conn.prepare(sql)
            records = await statement.fetch()
            descriptors = describe_statement(statement)
        except asyncpg.PostgresError as exc:
            raise QueryError(f"Failed to query table: {redact_credentials(str(exc))}", cause=exc) from exc
        except DRIVER_ERRORS as exc:
            raise connection_failure(exc, "Export failed") from exc
        finally:
            await handle.pool.release(conn)

        rows = list(iter_csv_rows(
            descriptors,
            records,
            include_headers=include_headers and bool(records),
            null_as_empty=null_as_empty,
        ))
        logger.info("table_exported", schema=schema, table=table, rows_exported=len(records))
        return rows

    async def import_rows(
        self,
        connection_id: str,
        schema: str,
        table: str,
        records: Iterable[Sequence[str]],
    ) -> int:
        """Insert ``records`` (already without a header) and return the count.

        Raises:
            ValidationError: Bad identifiers or a record of the wrong width
            CommitError: The table is unknown or a record was rejected
        """
        validate_schema_name(schema)
        validate_identifier(table, "table")
        handle = self.registry.lease(connection_id)
        async with LogContext(connection_id=connection_id, schema=schema, table=table):
            try:
                conn = await handle.pool.acquire(timeout=self.settings.acquire_timeout)
            except DRIVER_ERRORS as exc:
                raise connection_failure(exc, "Failed to acquire connection") from exc

            imported = 0
            try:
                columns = await list_columns(conn, schema, table)
                if not columns:
                    raise CommitError(f"Table not found: {schema}.{table}")
                sql = build_insert_statement(schema, table, columns)
                async with conn.transaction():
                    for record in records:
                        params = decode_csv_record(record, columns)
                        try:
                            await conn.execute(sql, *params)
                        except asyncpg.PostgresError as exc:
                            raise CommitError(
                                f"Failed to insert row {imported + 1}: {redact_credentials(str(exc))}",
                                cause=exc,
                            ) from exc
                        imported += 1
            except asyncpg.PostgresError as exc:
                raise CommitError(redact_credentials(str(exc)), cause=exc) from exc
            except DRIVER_ERRORS as exc:
                raise connection_failure(exc, "Import failed") from exc
            finally:
                await handle.pool.release(conn)

            logger.info("table_imported", rows_imported=imported)
            return imported

    async def clone_table(
        self,
        connection_id: str,
        source_schema: str,
        source_table: str,
        target_schema: str,
        target_table: str,
        *,
        include_data: bool = False,
    ) -> CloneResult:
        """Create ``target`` with the structure of ``source`` and optionally copy its rows.

        Columns, defaults, constraints and indexes come over through
        ``LIKE ... INCLUDING ALL``.  Both steps share one transaction.

        Raises:
            IdentifierError: Any of the four names is unsafe
            QueryError: The server refused the create or the copy
        """
        create_sql, copy_sql = build_clone_statements(source_schema, source_table, target_schema, target_table)
        handle = self.registry.lease(connection_id)
        async with LogContext(connection_id=connection_id, schema=target_schema, table=target_table):
            try:
                conn = await handle.pool.acquire(timeout=self.settings.acquire_timeout)
            except DRIVER_ERRORS as exc:
                raise connection_failure(exc, "Failed to acquire connection") from exc

            rows_copied: int | None = None
            try:
                async with conn.transaction():
                    try:
                        await conn.execute(create_sql)
                    except asyncpg.PostgresError as exc:
                        raise QueryError(f"Failed to create table: {redact_credentials(str(exc))}", cause=exc) from exc
                    if include_data:
                        try:
                            status = await conn.execute(copy_sql)
                        except asyncpg.PostgresError as exc:
                            raise QueryError(f"Failed to copy data: {redact_credentials(str(exc))}", cause=exc) from exc
                        rows_copied = rows_affected(status)
            except DRIVER_ERRORS as exc:
                raise connection_failure(exc, "Clone failed") from exc
            finally:
                await handle.pool.release(conn)

            logger.info("table_cloned", source=f"{source_schema}.{source_table}", rows_copied=rows_copied)
            return CloneResult(target_schema=target_schema, target_table=target_table, rows_copied=rows_copied)


__all__ = ["TableTransfer", "build_clone_statements"]
