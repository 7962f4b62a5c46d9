"""
Operations layer: the string-error boundary between pharos and its callers.

Every function takes an :class:`OperationContext` and a request, and
returns an :class:`OperationResult`.
"""

from pharos.ops.connections import connect, connection_status, disconnect, test_connection
from pharos.ops.context import OperationContext
from pharos.ops.queries import (
    analyze_editability,
    cancel_query,
    commit_edits,
    execute_query,
    execute_statement,
    fetch_more,
    validate_sql,
)
from pharos.ops.result import OperationError, OperationResult
from pharos.ops.tables import clone_table, export_table, import_table

__all__ = [
    "OperationContext",
    "OperationError",
    "OperationResult",
    "connect",
    "disconnect",
    "test_connection",
    "connection_status",
    "execute_query",
    "fetch_more",
    "execute_statement",
    "cancel_query",
    "validate_sql",
    "analyze_editability",
    "commit_edits",
    "export_table",
    "import_table",
    "clone_table",
]
