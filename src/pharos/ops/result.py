"""
Operation result envelope.

Provides :class:`OperationResult`, the success/failure envelope every ops
function returns to the UI or CLI.  Failures carry a machine-readable code
and an already-redacted message; successes carry the typed payload.

:func:`fail_from` maps the core exception hierarchy onto those codes so
individual operations only decide what to catch, not how to word it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pharos.core.errors import (
    CommitError,
    ConfigError,
    DatabaseConnectionError,
    ErrorCategory,
    NotConnectedError,
    PharosError,
    QueryCancelledError,
    QueryError,
    QueryNotFoundError,
    ValidationError,
)
from pharos.core.secrets import redact_credentials

T = TypeVar("T")

# Most specific first
ERROR_CODES: list[tuple[type[PharosError], str]] = [
    (NotConnectedError, "NOT_CONNECTED"),
    (DatabaseConnectionError, "CONNECTION_FAILED"),
    (ValidationError, "VALIDATION_FAILED"),
    (QueryCancelledError, "CANCELLED"),
    (QueryNotFoundError, "QUERY_NOT_FOUND"),
    (CommitError, "COMMIT_FAILED"),
    (QueryError, "QUERY_FAILED"),
    (ConfigError, "CONFIG_ERROR"),
]


@dataclass(frozen=True, slots=True)
class OperationError:
    """Structured error detail for failed operations.

    Attributes:
        code: Machine-readable code (``NOT_CONNECTED``, ``QUERY_FAILED``, ...).
        message: Human-readable, credential-free description.
        category: Optional :class:`ErrorCategory` of the underlying error.
        details: Extra key/value context (field names, query ids, etc.).
        retryable: Whether the caller may retry the operation.
    """

    code: str
    message: str
    category: ErrorCategory | None = None
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False


@dataclass
class OperationResult(Generic[T]):
    """Envelope returned by every operation function.

    Use :meth:`ok` and :meth:`fail` rather than the constructor.

    Attributes:
        success: ``True`` when the operation completed without error.
        data: The typed payload (``None`` on failure).
        error: Structured error (``None`` on success).
        warnings: Non-fatal messages collected during the operation.
        elapsed_ms: Wall-clock time the operation took.
    """

    success: bool
    data: T | None = None
    error: OperationError | None = None
    warnings: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0

    @classmethod
    def ok(
        cls,
        data: T,
        *,
        warnings: list[str] | None = None,
        elapsed_ms: float = 0.0,
    ) -> OperationResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data, warnings=warnings or [], elapsed_ms=elapsed_ms)

    @classmethod
    def fail(
        cls,
        code: str,
        message: str,
        *,
        category: ErrorCategory | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
        elapsed_ms: float = 0.0,
    ) -> OperationResult[T]:
        """Create a failed result."""
        return cls(
            success=False,
            error=OperationError(
                code=code,
                message=message,
                category=category,
                details=details or {},
                retryable=retryable,
            ),
            elapsed_ms=elapsed_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict (for JSON responses)."""
        d: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            d["data"] = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        if self.error is not None:
            d["error"] = {
                "code": self.error.code,
                "message": self.error.message,
                "retryable": self.error.retryable,
            }
            if self.error.details:
                d["error"]["details"] = self.error.details
        if self.warnings:
            d["warnings"] = self.warnings
        if self.elapsed_ms:
            d["elapsed_ms"] = round(self.elapsed_ms, 2)
        return d


def error_code(exc: BaseException) -> str:
    for error_type, code in ERROR_CODES:
        if isinstance(exc, error_type):
            return code
    return "INTERNAL"


def fail_from(exc: PharosError, *, elapsed_ms: float = 0.0) -> OperationResult[Any]:
    """Failed result for a core error, message redacted once more on the way out."""
    details = {k: v for k, v in exc.context.to_dict().items() if v}
    return OperationResult.fail(
        error_code(exc),
        redact_credentials(exc.message),
        category=exc.category,
        details=details,
        retryable=exc.retryable,
        elapsed_ms=elapsed_ms,
    )


class _Timer:
    """Minimal stopwatch for timing operations."""

    __slots__ = ("_start",)

    def __init__(self) -> None:
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000


def start_timer() -> _Timer:
    """Return a lightweight timer.  Use ``timer.elapsed_ms`` when done."""
    return _Timer()
