"""
PostgreSQL SQL-generation helpers: identifier validation and quoting.

Every schema, table and column name that is spliced into generated SQL goes
through this module.  Names are first checked against a fixed character set
(ASCII letters, digits, ``_`` and ``-``, 1-63 characters) and then wrapped in
double quotes with embedded quotes doubled, so a name can never terminate the
identifier early.  Values are never spliced; they always bind as ``$n``.

Examples:
    >>> validate_schema_name("sales-2024")
    'sales-2024'
    >>> validate_schema_name("sales;drop")
    Traceback (most recent call last):
    ...
    IdentifierError: Invalid schema name: only letters, numbers, underscores, and hyphens allowed

    >>> POSTGRES.qualified("public", "users")
    '"public"."users"'
    >>> POSTGRES.search_path("sales-2024")
    'SET search_path TO "sales-2024", public'
"""

from __future__ import annotations

import re

from pharos.core.errors import IdentifierError

MAX_IDENTIFIER_LENGTH = 63

_IDENTIFIER_CHARS = re.compile(r"[A-Za-z0-9_-]*")
# Inherited: a leading hyphen is accepted; quoting keeps it harmless.
_IDENTIFIER_START = re.compile(r"[A-Za-z_-]")


def validate_schema_name(schema: str) -> str:
    """Return ``schema`` unchanged or raise :class:`IdentifierError`."""
    if not _IDENTIFIER_CHARS.fullmatch(schema):
        raise IdentifierError(
            "Invalid schema name: only letters, numbers, underscores, and hyphens allowed",
            field="schema",
            value=schema,
            constraint="charset",
        )
    if not 1 <= len(schema) <= MAX_IDENTIFIER_LENGTH:
        raise IdentifierError(
            "Invalid schema name: must be 1-63 characters",
            field="schema",
            value=schema,
            constraint="length",
        )
    return schema


def validate_identifier(name: str, kind: str = "identifier") -> str:
    """Check a table or column name.

    Same character set and length as schema names, and the first character
    must be a letter, underscore or hyphen.
    """
    if not name or len(name) > MAX_IDENTIFIER_LENGTH:
        raise IdentifierError(
            f"Invalid {kind} name: must be 1-63 characters",
            field=kind,
            value=name,
            constraint="length",
        )
    if not _IDENTIFIER_CHARS.fullmatch(name):
        raise IdentifierError(
            f"Invalid {kind} name: only letters, numbers, underscores, and hyphens allowed",
            field=kind,
            value=name,
            constraint="charset",
        )
    if not _IDENTIFIER_START.match(name):
        raise IdentifierError(
            f"Invalid {kind} name: must start with a letter, underscore, or hyphen",
            field=kind,
            value=name,
            constraint="start",
        )
    return name


def quote_identifier(name: str) -> str:
    """Wrap ``name`` in double quotes, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


class PostgreSQLDialect:
    """PostgreSQL spellings used by the executor and commit engine."""

    fallback_schema = "public"

    @property
    def name(self) -> str:
        return "postgresql"

    def placeholder(self, index: int) -> str:
        return f"${index}"

    def placeholders(self, count: int, start: int = 1) -> str:
        return ", ".join(f"${i}" for i in range(start, start + count))

    def text_cast_placeholder(self, index: int, sql_type: str) -> str:
        """Bind as text and let the server cast to the column's own type."""
        return f"${index}::text::{sql_type}"

    def quote(self, name: str) -> str:
        return quote_identifier(name)

    def qualified(self, schema: str, table: str) -> str:
        return f"{quote_identifier(schema)}.{quote_identifier(table)}"

    def search_path(self, schema: str) -> str:
        """Session-scoped ``search_path`` directive for a validated schema."""
        validate_schema_name(schema)
        return f"SET search_path TO {quote_identifier(schema)}, {self.fallback_schema}"


POSTGRES = PostgreSQLDialect()


__all__ = [
    "MAX_IDENTIFIER_LENGTH",
    "validate_schema_name",
    "validate_identifier",
    "quote_identifier",
    "PostgreSQLDialect",
    "POSTGRES",
]
