"""
Typed payloads produced and consumed by the query services.

All of them are plain dataclasses with a ``to_dict()`` that yields the
JSON-ready shape the UI layer receives.  Row values are already
:data:`StructuredValue` trees by the time they land here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

from pharos.core.errors import ValidationError

StructuredValue: TypeAlias = (
    "None | bool | int | float | str | list[StructuredValue] | dict[str, StructuredValue]"
)


# ------------------------------------------------------------------ #
# Query execution
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """Column name and backend type name, e.g. ``("id", "INT4")``."""

    name: str
    data_type: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "data_type": self.data_type}


@dataclass(frozen=True)
class QueryResult:
    """One page of rows from ``execute`` or ``fetch_more``."""

    columns: list[ColumnDescriptor]
    rows: list[dict[str, StructuredValue]]
    row_count: int
    execution_time_ms: int
    has_more: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": [c.to_dict() for c in self.columns],
            "rows": self.rows,
            "row_count": self.row_count,
            "execution_time_ms": self.execution_time_ms,
            "has_more": self.has_more,
        }


@dataclass(frozen=True, slots=True)
class StatementResult:
    rows_affected: int
    execution_time_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {"rows_affected": self.rows_affected, "execution_time_ms": self.execution_time_ms}


@dataclass(frozen=True, slots=True)
class CloneResult:
    """Outcome of a table clone; ``rows_copied`` is ``None`` when only the structure was copied."""

    target_schema: str
    target_table: str
    rows_copied: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_schema": self.target_schema,
            "target_table": self.target_table,
            "rows_copied": self.rows_copied,
        }


@dataclass(frozen=True, slots=True)
class SyntaxErrorInfo:
    """Server error with its location in the caller's original text (1-based)."""

    message: str
    position: int | None = None
    line: int | None = None
    column: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "position": self.position,
            "line": self.line,
            "column": self.column,
        }


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    error: SyntaxErrorInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "error": self.error.to_dict() if self.error else None}


# ------------------------------------------------------------------ #
# Editing
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class EditabilityVerdict:
    """Whether a query's rows map back one-to-one onto rows of a single table."""

    is_editable: bool
    reason: str | None = None
    schema_name: str | None = None
    table_name: str | None = None
    primary_keys: list[str] = field(default_factory=list)

    @classmethod
    def rejected(cls, reason: str, schema_name: str | None = None, table_name: str | None = None) -> EditabilityVerdict:
        return cls(is_editable=False, reason=reason, schema_name=schema_name, table_name=table_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_editable": self.is_editable,
            "reason": self.reason,
            "schema_name": self.schema_name,
            "table_name": self.table_name,
            "primary_keys": list(self.primary_keys),
        }


@dataclass(frozen=True)
class UpdateEdit:
    """Change ``changes`` columns of the row identified by ``original_row``."""

    row_index: int
    changes: dict[str, StructuredValue]
    original_row: dict[str, StructuredValue]
    type: Literal["update"] = "update"


@dataclass(frozen=True)
class DeleteEdit:
    """Delete the row identified by ``original_row``."""

    row_index: int
    original_row: dict[str, StructuredValue]
    type: Literal["delete"] = "delete"


RowEdit: TypeAlias = "UpdateEdit | DeleteEdit"


def _field(data: dict[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel, default)


def parse_row_edit(data: dict[str, Any]) -> RowEdit:
    """Build a typed edit from its wire form.

    Accepts both ``original_row`` and ``originalRow`` spellings.

    Raises:
        ValidationError: Unknown edit type or malformed payload
    """
    edit_type = data.get("type")
    row_index = _field(data, "row_index", "rowIndex", 0)
    original_row = _field(data, "original_row", "originalRow")
    if not isinstance(original_row, dict):
        raise ValidationError("Edit is missing its original row", field="original_row")

    if edit_type == "update":
        changes = data.get("changes") or {}
        if not isinstance(changes, dict):
            raise ValidationError("Edit changes must be an object", field="changes")
        return UpdateEdit(row_index=int(row_index), changes=dict(changes), original_row=dict(original_row))
    if edit_type == "delete":
        return DeleteEdit(row_index=int(row_index), original_row=dict(original_row))
    raise ValidationError(f"Unknown edit type: {edit_type}", field="type", value=edit_type)


@dataclass(frozen=True)
class CommitRequest:
    schema: str
    table: str
    primary_keys: list[str]
    edits: list[RowEdit]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommitRequest:
        for key in ("schema", "table"):
            if not isinstance(data.get(key), str):
                raise ValidationError(f"Commit request is missing '{key}'", field=key)
        return cls(
            schema=data["schema"],
            table=data["table"],
            primary_keys=list(_field(data, "primary_keys", "primaryKeys", [])),
            edits=[parse_row_edit(e) for e in data.get("edits", [])],
        )


@dataclass(frozen=True)
class CommitOutcome:
    """All-or-nothing result of a batch of edits."""

    success: bool
    rows_affected: int
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "rows_affected": self.rows_affected, "errors": list(self.errors)}


__all__ = [
    "StructuredValue",
    "ColumnDescriptor",
    "QueryResult",
    "StatementResult",
    "CloneResult",
    "SyntaxErrorInfo",
    "ValidationResult",
    "EditabilityVerdict",
    "UpdateEdit",
    "DeleteEdit",
    "RowEdit",
    "parse_row_edit",
    "CommitRequest",
    "CommitOutcome",
]
