"""
Query services: execution, value decoding, editability and commits.
"""

from pharos.query.commit import CommitEngine
from pharos.query.editing import EditabilityAnalyzer
from pharos.query.executor import QueryExecutor
from pharos.query.marshal import decode_value
from pharos.query.models import (
    CloneResult,
    ColumnDescriptor,
    CommitOutcome,
    CommitRequest,
    DeleteEdit,
    EditabilityVerdict,
    QueryResult,
    StatementResult,
    UpdateEdit,
    ValidationResult,
)
from pharos.query.transfer import TableTransfer

__all__ = [
    "CommitEngine",
    "EditabilityAnalyzer",
    "QueryExecutor",
    "TableTransfer",
    "decode_value",
    "CloneResult",
    "ColumnDescriptor",
    "CommitOutcome",
    "CommitRequest",
    "DeleteEdit",
    "EditabilityVerdict",
    "QueryResult",
    "StatementResult",
    "UpdateEdit",
    "ValidationResult",
]
