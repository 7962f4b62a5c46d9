"""
Editable-query analyzer.

Decides, conservatively and from the text alone, whether each row of a
query's result corresponds to exactly one row of one table.  Only then can
the grid offer in-place editing: the commit engine locates rows by primary
key, so the resolved table must also have one.

The check is a keyword heuristic, not a parser.  Anything that could merge,
duplicate or synthesize rows (joins, set operations, grouping, DISTINCT,
sub-selects, CTEs) is rejected with a reason the UI can show as-is.

Examples:
    >>> find_rejection(normalize_sql("SELECT * FROM a JOIN b ON a.id = b.a_id"))
    'Cannot edit: query contains JOIN'
    >>> parse_target_table(normalize_sql('select * from "Sales"."Orders" where id > 3'), "public")
    ('Sales', 'Orders')
    >>> parse_target_table(normalize_sql("SELECT * FROM Users"), "public")
    ('public', 'users')
"""

from __future__ import annotations

import re

import asyncpg

from pharos.core.database import DRIVER_ERRORS, connection_failure
from pharos.core.dialect import validate_identifier, validate_schema_name
from pharos.core.errors import IdentifierError, QueryError
from pharos.core.logging import get_logger
from pharos.core.registry import SessionRegistry
from pharos.core.secrets import redact_credentials
from pharos.core.settings import PharosSettings, get_settings
from pharos.query.metadata import list_columns, primary_key_names
from pharos.query.models import EditabilityVerdict

logger = get_logger(__name__)

_FROM = re.compile(r"\sFROM\s", re.IGNORECASE)
_BARE_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_$]*")
_SUBSELECT = re.compile(r"\(\s*SELECT\b")

# Checked in order against the upper-cased, space-padded text
_CONTAINS_REJECTIONS: list[tuple[str, str]] = [
    (" JOIN ", "Cannot edit: query contains JOIN"),
    (" UNION ", "Cannot edit: query contains UNION"),
    (" INTERSECT ", "Cannot edit: query contains INTERSECT"),
    (" EXCEPT ", "Cannot edit: query contains EXCEPT"),
    (" GROUP BY ", "Cannot edit: query contains GROUP BY"),
    (" DISTINCT ", "Cannot edit: query contains DISTINCT"),
]

PARSE_FAILURE = "Cannot edit: unable to parse table name"


def normalize_sql(sql: str) -> str:
    """Drop ``--`` comments and collapse all whitespace to single spaces."""
    lines = [line.split("--", 1)[0] for line in sql.splitlines()]
    return " ".join(" ".join(lines).split())


def find_rejection(normalized: str) -> str | None:
    """Reason the query can never be editable, or ``None``."""
    upper = normalized.upper()
    padded = f" {upper} "
    for needle, reason in _CONTAINS_REJECTIONS:
        if needle in padded:
            return reason
    if upper.startswith("SELECT DISTINCT"):
        return "Cannot edit: query contains DISTINCT"
    if upper.startswith("WITH "):
        return "Cannot edit: query contains CTE"
    if _SUBSELECT.search(upper):
        return "Cannot edit: query contains subquery"
    if not upper.startswith("SELECT "):
        return "Cannot edit: not a SELECT query"
    return None


def _read_identifier(text: str) -> tuple[str, str] | None:
    """Read one identifier from the start of ``text``; returns ``(name, rest)``."""
    text = text.lstrip()
    if text.startswith('"'):
        chars: list[str] = []
        i = 1
        while i < len(text):
            if text[i] == '"':
                if text[i + 1 : i + 2] == '"':
                    chars.append('"')
                    i += 2
                    continue
                return ("".join(chars), text[i + 1 :]) if chars else None
            chars.append(text[i])
            i += 1
        return None
    match = _BARE_IDENTIFIER.match(text)
    if match is None:
        return None
    # unquoted identifiers fold to lower case on the server
    return match.group(0).lower(), text[match.end() :]


def parse_target_table(normalized: str, default_schema: str) -> tuple[str, str] | None:
    """``(schema, table)`` named after the first ``FROM``, or ``None``."""
    match = _FROM.search(normalized)
    if match is None:
        return None
    first = _read_identifier(normalized[match.end() :])
    if first is None:
        return None
    name, rest = first

    if rest.lstrip().startswith("."):
        second = _read_identifier(rest.lstrip()[1:])
        if second is None:
            return None
        schema, (table, rest) = name, second
    else:
        schema, table = default_schema, name

    # table functions such as generate_series(...)
    if rest.lstrip().startswith("("):
        return None
    return schema, table


def references_more_tables(normalized: str) -> bool:
    """True for the implicit join form ``FROM a, b``."""
    match = _FROM.search(normalized)
    if match is None:
        return False
    tail = normalized[match.end() :]
    end = re.search(r"\s(WHERE|ORDER|LIMIT|OFFSET|FOR|FETCH|WINDOW|HAVING)\b", tail, re.IGNORECASE)
    return "," in (tail[: end.start()] if end else tail)


class EditabilityAnalyzer:
    """Classifies query text as editable or not, with a reason."""

    def __init__(self, registry: SessionRegistry, settings: PharosSettings | None = None):
        self.registry = registry
        self.settings = settings or get_settings()

    async def analyze(
        self,
        connection_id: str,
        sql: str,
        schema: str | None = None,
    ) -> EditabilityVerdict:
        """Verdict for ``sql``; table structure is looked up fresh every call."""
        handle = self.registry.lease(connection_id)
        normalized = normalize_sql(sql)

        reason = find_rejection(normalized)
        if reason is not None:
            return EditabilityVerdict.rejected(reason)

        target = parse_target_table(normalized, schema or self.settings.default_schema)
        if target is None:
            return EditabilityVerdict.rejected(PARSE_FAILURE)
        schema_name, table_name = target

        if references_more_tables(normalized):
            return EditabilityVerdict.rejected("Cannot edit: query references multiple tables", schema_name, table_name)

        try:
            validate_schema_name(schema_name)
            validate_identifier(table_name, "table")
        except IdentifierError:
            return EditabilityVerdict.rejected("Cannot edit: unsupported table name", schema_name, table_name)

        try:
            columns = await list_columns(handle.pool, schema_name, table_name)
        except asyncpg.PostgresError as exc:
            raise QueryError(redact_credentials(str(exc)), cause=exc) from exc
        except DRIVER_ERRORS as exc:
            raise connection_failure(exc, "Failed to read table columns") from exc

        if not columns:
            return EditabilityVerdict.rejected("Cannot edit: table not found", schema_name, table_name)
        primary_keys = primary_key_names(columns)
        if not primary_keys:
            return EditabilityVerdict.rejected("Cannot edit: table has no primary key", schema_name, table_name)

        logger.debug("query_editable", connection_id=connection_id, schema=schema_name, table=table_name)
        return EditabilityVerdict(
            is_editable=True,
            schema_name=schema_name,
            table_name=table_name,
            primary_keys=primary_keys,
        )


__all__ = [
    "EditabilityAnalyzer",
    "normalize_sql",
    "find_rejection",
    "parse_target_table",
    "references_more_tables",
    "PARSE_FAILURE",
]
