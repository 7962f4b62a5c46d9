"""
Structured error types for pharos.

Every failure the query core can produce is a ``PharosError`` subclass that
carries a category, a retry hint, structured context (connection id, query
id, schema, table) and the chained driver exception that caused it.  The ops
boundary turns these into plain string messages, so nothing below this module
ever needs to know about the UI layer.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure mode callers react to
    - **Explicit Retry Semantics:** Each error knows if it's retryable, even
      though nothing in the core retries on its own
    - **Rich Context:** Errors carry the ids needed to correlate logs
    - **Error Chaining:** Driver exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       PharosError                                │
        │  (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  TransientError      ValidationError      ConfigError           │
        │  (retryable=True)    (VALIDATION)         (CONFIG)              │
        │       │                   │                    │                 │
        │  DatabaseConnection  IdentifierError     MissingConfigError     │
        │  Error                                                          │
        │                                                                  │
        │  NotConnectedError   DatabaseError       QueryCancelledError    │
        │  (CONNECTION)        (DATABASE)          (CANCELLED)            │
        │                           │                                      │
        │                      QueryError                                 │
        │                      QueryNotFoundError                         │
        │                      CommitError                                │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = NotConnectedError("conn-1")
    >>> error.message
    'Not connected to: conn-1'
    >>> error.retryable
    False

    >>> error = QueryError("relation \\"users\\" does not exist")
    >>> error.with_context(connection_id="conn-1", query_id="q-7")
    QueryError(...)
    >>> error.context.query_id
    'q-7'

Guardrails:
    ❌ DON'T: Put passwords or DSNs into messages or context
    ✅ DO: Pass driver text through ``redact_credentials`` first

    ❌ DON'T: Raise QueryError for a user-requested cancellation
    ✅ DO: Raise QueryCancelledError so callers can tell them apart

Tags:
    error-handling, exception-hierarchy, error-context, pharos
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure
    NETWORK = "NETWORK"           # Socket, DNS, TLS
    CONNECTION = "CONNECTION"     # No pool registered, pool closed
    DATABASE = "DATABASE"         # Statement rejected by the server

    # Caller input
    VALIDATION = "VALIDATION"     # Identifiers, limits, edit payloads
    CONFIG = "CONFIG"             # Missing connection config or secret

    # Control flow
    CANCELLED = "CANCELLED"       # Caller asked for the query to stop

    # Internal
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only the fields that are set appear in ``to_dict()``; anything else goes
    into ``metadata``.

    Examples:
        >>> ctx = ErrorContext(connection_id="local", query_id="q-1")
        >>> ctx.to_dict()
        {'connection_id': 'local', 'query_id': 'q-1'}
    """

    connection_id: str | None = None
    query_id: str | None = None
    operation: str | None = None
    schema: str | None = None
    table: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["connection_id", "query_id", "operation", "schema", "table"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class PharosError(Exception):
    """
    Base exception for all pharos errors.

    Subclasses set ``default_category`` and ``default_retryable`` so call
    sites only pass a message and, when wrapping, the original exception.

    Examples:
        >>> error = PharosError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> PharosError:
        """
        Add context to this error (fluent API).

        Usage:
            raise QueryError("boom", cause=exc).with_context(
                connection_id=connection_id,
                query_id=query_id,
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = type(self.cause).__name__
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONNECTION ERRORS
# =============================================================================


class TransientError(PharosError):
    """Temporary error that may succeed if the caller tries again later."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class DatabaseConnectionError(TransientError):
    """Pool creation, lease timeout, or network failure talking to the server."""

    default_category = ErrorCategory.NETWORK


class NotConnectedError(PharosError):
    """No pool has been registered for the connection identifier."""

    default_category = ErrorCategory.CONNECTION
    default_retryable = False

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(
            f"Not connected to: {connection_id}",
            context=ErrorContext(connection_id=connection_id),
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(PharosError):
    """
    Caller input rejected before any I/O.

    Never retryable - the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.constraint = constraint

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.constraint:
            result["constraint"] = self.constraint
        return result


class IdentifierError(ValidationError):
    """Schema, table or column name outside the allowed character set or length."""

    pass


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(PharosError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


# =============================================================================
# QUERY ERRORS
# =============================================================================


class DatabaseError(PharosError):
    """Statement or transaction error reported by the server."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class QueryError(DatabaseError):
    """The server rejected or failed the statement."""

    pass


class QueryNotFoundError(DatabaseError):
    """No in-flight query is registered under the identifier."""

    def __init__(self, query_id: str):
        self.query_id = query_id
        super().__init__(
            f"Query not found: {query_id}",
            context=ErrorContext(query_id=query_id),
        )


class CommitError(DatabaseError):
    """A batch of row edits could not be started."""

    pass


class QueryCancelledError(PharosError):
    """The caller's own cancellation request stopped the query."""

    default_category = ErrorCategory.CANCELLED
    default_retryable = False

    def __init__(self, message: str = "Query was cancelled", **kwargs: Any):
        super().__init__(message, **kwargs)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, PharosError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, PharosError):
        return error.category
    if isinstance(error, (ConnectionError, OSError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "PharosError",
    # Connection
    "TransientError",
    "DatabaseConnectionError",
    "NotConnectedError",
    # Validation
    "ValidationError",
    "IdentifierError",
    # Config
    "ConfigError",
    "MissingConfigError",
    # Query
    "DatabaseError",
    "QueryError",
    "QueryNotFoundError",
    "CommitError",
    "QueryCancelledError",
    # Utilities
    "is_retryable",
    "categorize_error",
]
