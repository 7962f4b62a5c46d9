"""
Core primitives: errors, logging, settings, identifier rules, credential
redaction, asyncpg pools and the session registry.
"""

from pharos.core.errors import (
    DatabaseConnectionError,
    ErrorCategory,
    ErrorContext,
    IdentifierError,
    NotConnectedError,
    PharosError,
    QueryCancelledError,
    QueryError,
    QueryNotFoundError,
    ValidationError,
)
from pharos.core.registry import PoolHandle, QuerySession, SessionRegistry
from pharos.core.secrets import redact_credentials

__all__ = [
    "DatabaseConnectionError",
    "ErrorCategory",
    "ErrorContext",
    "IdentifierError",
    "NotConnectedError",
    "PharosError",
    "QueryCancelledError",
    "QueryError",
    "QueryNotFoundError",
    "ValidationError",
    "PoolHandle",
    "QuerySession",
    "SessionRegistry",
    "redact_credentials",
]
