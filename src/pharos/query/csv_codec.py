"""CSV type-to-text rules for table export and import.

Only the encoding rules live here; opening files and choosing directories is
the caller's job.  Export cells reuse the marshaller's formatting so a value
looks the same in the grid and in the file.  Import binds every field as text
and casts it server-side to the column's type, with empty fields meaning NULL.
"""

from __future__ import annotations

import datetime
import decimal
import json
import math
import re
from collections.abc import Iterable, Iterator, Sequence
from typing import Any

from pharos.core.dialect import POSTGRES, validate_identifier, validate_schema_name
from pharos.core.errors import ValidationError
from pharos.query.marshal import (
    format_date,
    format_timestamp,
    format_timestamptz,
    non_finite_text,
    shortest_float4,
)
from pharos.query.metadata import ColumnInfo
from pharos.query.models import ColumnDescriptor
from pharos.query.pgtext import to_pg_text

_TYPE_MODIFIERS = re.compile(r"\([^)]*\)")

# information_schema / format_type spelling -> cast target
CAST_TYPES: dict[str, str] = {
    "smallint": "smallint", "int2": "smallint",
    "integer": "integer", "int": "integer", "int4": "integer",
    "bigint": "bigint", "int8": "bigint",
    "real": "real", "float4": "real",
    "double precision": "double precision", "float8": "double precision",
    "numeric": "numeric", "decimal": "numeric",
    "smallserial": "smallint", "serial2": "smallint",
    "serial": "integer", "serial4": "integer",
    "bigserial": "bigint", "serial8": "bigint",
    "money": "money",
    "character varying": "text", "varchar": "text",
    "character": "text", "char": "text", "bpchar": "text",
    "text": "text", "citext": "citext",
    "bytea": "bytea",
    "timestamp": "timestamp", "timestamp without time zone": "timestamp",
    "timestamptz": "timestamptz", "timestamp with time zone": "timestamptz",
    "date": "date",
    "time": "time", "time without time zone": "time",
    "timetz": "timetz", "time with time zone": "timetz",
    "interval": "interval",
    "boolean": "boolean", "bool": "boolean",
    "point": "point", "line": "line", "lseg": "lseg", "box": "box",
    "path": "path", "polygon": "polygon", "circle": "circle",
    "cidr": "cidr", "inet": "inet", "macaddr": "macaddr", "macaddr8": "macaddr8",
    "bit": "bit", "bit varying": "varbit", "varbit": "varbit",
    "uuid": "uuid",
    "json": "json", "jsonb": "jsonb",
    "xml": "xml",
    "int4range": "int4range", "int8range": "int8range", "numrange": "numrange",
    "tsrange": "tsrange", "tstzrange": "tstzrange", "daterange": "daterange",
}


def cast_type_for(data_type: str) -> str:
    """Cast target for a column type; arrays and unknown types pass through.

    >>> cast_type_for("character varying(255)")
    'text'
    >>> cast_type_for("integer[]")
    'integer[]'
    """
    if data_type.startswith("_") or data_type.rstrip().endswith("[]"):
        return data_type
    base = " ".join(_TYPE_MODIFIERS.sub("", data_type).lower().split())
    return CAST_TYPES.get(base, data_type)


def _float_text(value: float) -> str:
    if not math.isfinite(value):
        return non_finite_text(value)
    text = repr(value)
    return text[:-2] if text.endswith(".0") else text


def encode_csv_value(value: Any, type_name: str, null_as_empty: bool = False) -> str:
    """One export cell. NULL is ``""`` or ``"NULL"`` depending on ``null_as_empty``."""
    if value is None:
        return "" if null_as_empty else "NULL"

    key = type_name.strip().upper()
    if key in ("FLOAT4", "REAL") and isinstance(value, float):
        return _float_text(shortest_float4(value) if math.isfinite(value) else value)
    if key in ("FLOAT8", "DOUBLE PRECISION") and isinstance(value, float):
        return _float_text(value)
    if key in ("NUMERIC", "DECIMAL") and isinstance(value, decimal.Decimal):
        return format(value, "f") if value.is_finite() else str(value)
    if key in ("BOOL", "BOOLEAN") and isinstance(value, bool):
        return "true" if value else "false"
    if key in ("TIMESTAMP", "TIMESTAMP WITHOUT TIME ZONE") and isinstance(value, datetime.datetime):
        return format_timestamp(value)
    if key in ("TIMESTAMPTZ", "TIMESTAMP WITH TIME ZONE") and isinstance(value, datetime.datetime):
        return format_timestamptz(value)
    if key == "DATE" and isinstance(value, datetime.date):
        return format_date(value)
    if key in ("JSON", "JSONB"):
        return json.dumps(value, separators=(",", ":"))
    text = to_pg_text(value)
    if text is None:
        return "" if null_as_empty else "NULL"
    return text


def iter_csv_rows(
    columns: Sequence[ColumnDescriptor],
    records: Iterable[Sequence[Any]],
    *,
    include_headers: bool = True,
    null_as_empty: bool = False,
) -> Iterator[list[str]]:
    """Yield export rows, header first when ``include_headers``."""
    if include_headers:
        yield [c.name for c in columns]
    for record in records:
        yield [
            encode_csv_value(record[i], col.data_type, null_as_empty)
            for i, col in enumerate(columns)
        ]


def build_export_select(schema: str, table: str, column_names: Sequence[str] = ()) -> str:
    validate_schema_name(schema)
    validate_identifier(table, "table")
    for name in column_names:
        validate_identifier(name, "column")
    selected = ", ".join(POSTGRES.quote(c) for c in column_names) if column_names else "*"
    return f"SELECT {selected} FROM {POSTGRES.qualified(schema, table)}"


def build_insert_statement(schema: str, table: str, columns: Sequence[ColumnInfo]) -> str:
    """Parameterized insert binding every field as text, cast per column."""
    validate_schema_name(schema)
    validate_identifier(table, "table")
    if not columns:
        raise ValidationError(f"Table {schema}.{table} has no columns", field="columns")
    names = ", ".join(POSTGRES.quote(c.name) for c in columns)
    values = ", ".join(
        POSTGRES.text_cast_placeholder(i, cast_type_for(c.data_type))
        for i, c in enumerate(columns, start=1)
    )
    return f"INSERT INTO {POSTGRES.qualified(schema, table)} ({names}) VALUES ({values})"


def decode_csv_record(record: Sequence[str], columns: Sequence[ColumnInfo]) -> list[str | None]:
    """Insert parameters for one CSV record; empty fields become NULL."""
    if len(record) != len(columns):
        raise ValidationError(
            f"CSV row has {len(record)} columns but table has {len(columns)} columns",
            field="record",
        )
    return [field if field != "" else None for field in record]


__all__ = [
    "CAST_TYPES",
    "cast_type_for",
    "encode_csv_value",
    "iter_csv_rows",
    "build_export_select",
    "build_insert_statement",
    "decode_csv_record",
]
