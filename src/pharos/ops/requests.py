"""
Typed request objects for operations.

Each dataclass is the input contract of one operation function.  Requests
carry transport-agnostic data only: no Typer params, no UI event payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ------------------------------------------------------------------ #
# Query execution
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class ExecuteQueryRequest:
    """Request for :func:`pharos.ops.queries.execute_query`.

    Attributes:
        connection_id: Registered connection to run against.
        sql: Statement text.
        limit: Row limit; ``None`` uses the configured default.
        schema: Optional ``search_path`` override.
        query_id: Id to pass to :func:`cancel_query`; generated if omitted.
    """

    connection_id: str
    sql: str
    limit: int | None = None
    schema: str | None = None
    query_id: str | None = None


@dataclass(frozen=True, slots=True)
class FetchMoreRequest:
    """Request for :func:`pharos.ops.queries.fetch_more`."""

    connection_id: str
    sql: str
    limit: int | None = None
    offset: int = 0
    schema: str | None = None


@dataclass(frozen=True, slots=True)
class ExecuteStatementRequest:
    connection_id: str
    sql: str
    schema: str | None = None


@dataclass(frozen=True, slots=True)
class CancelQueryRequest:
    connection_id: str
    query_id: str


@dataclass(frozen=True, slots=True)
class ValidateSqlRequest:
    connection_id: str
    sql: str
    schema: str | None = None


# ------------------------------------------------------------------ #
# Editing
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class AnalyzeEditabilityRequest:
    connection_id: str
    sql: str
    schema: str | None = None


@dataclass(frozen=True, slots=True)
class CommitEditsRequest:
    """Request for :func:`pharos.ops.queries.commit_edits`.

    ``edits`` stay in wire form (``{"type": "update", ...}``) until the
    operation parses them, so a malformed edit is a validation failure.
    """

    connection_id: str
    schema: str
    table: str
    primary_keys: list[str] = field(default_factory=list)
    edits: list[dict[str, Any]] = field(default_factory=list)


# ------------------------------------------------------------------ #
# CSV transfer
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class ExportTableRequest:
    connection_id: str
    schema: str
    table: str
    columns: list[str] = field(default_factory=list)
    include_headers: bool = True
    null_as_empty: bool = False


@dataclass(frozen=True, slots=True)
class ImportTableRequest:
    """Records arrive without a header row."""

    connection_id: str
    schema: str
    table: str
    records: list[list[str]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CloneTableRequest:
    """Copy the structure of ``source`` into a new ``target``; rows too with ``include_data``."""

    connection_id: str
    source_schema: str
    source_table: str
    target_schema: str
    target_table: str
    include_data: bool = False
