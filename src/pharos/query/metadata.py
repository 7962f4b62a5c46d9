"""Table column introspection.

``list_columns`` is the one metadata query the core issues itself: the
editability analyzer reads primary keys from it, and the commit engine reads
each column's exact SQL type so bound text parameters can be cast to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

COLUMNS_SQL = """
SELECT a.attname AS column_name,
       pg_catalog.format_type(a.atttypid, a.atttypmod) AS data_type,
       NOT a.attnotnull AS is_nullable,
       a.attnum AS ordinal_position,
       pg_catalog.pg_get_expr(d.adbin, d.adrelid) AS column_default,
       COALESCE(i.indisprimary, false) AS is_primary_key
FROM pg_catalog.pg_attribute a
JOIN pg_catalog.pg_class c ON c.oid = a.attrelid
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
LEFT JOIN pg_catalog.pg_attrdef d
       ON d.adrelid = a.attrelid AND d.adnum = a.attnum
LEFT JOIN pg_catalog.pg_index i
       ON i.indrelid = c.oid AND i.indisprimary AND a.attnum = ANY(i.indkey)
WHERE n.nspname = $1
  AND c.relname = $2
  AND a.attnum > 0
  AND NOT a.attisdropped
ORDER BY a.attnum
"""


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    name: str
    data_type: str
    is_nullable: bool
    is_primary_key: bool
    ordinal_position: int
    default_value: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "data_type": self.data_type,
            "is_nullable": self.is_nullable,
            "is_primary_key": self.is_primary_key,
            "ordinal_position": self.ordinal_position,
            "default_value": self.default_value,
        }


async def list_columns(conn: Any, schema: str, table: str) -> list[ColumnInfo]:
    """Columns of ``schema.table`` in ordinal order; empty when the table is unknown.

    ``conn`` may be an asyncpg connection or pool; both expose ``fetch``.
    Names are bound as parameters, never spliced.
    """
    rows = await conn.fetch(COLUMNS_SQL, schema, table)
    return [
        ColumnInfo(
            name=row["column_name"],
            data_type=row["data_type"],
            is_nullable=bool(row["is_nullable"]),
            is_primary_key=bool(row["is_primary_key"]),
            ordinal_position=int(row["ordinal_position"]),
            default_value=row["column_default"],
        )
        for row in rows
    ]


def primary_key_names(columns: list[ColumnInfo]) -> list[str]:
    return [c.name for c in columns if c.is_primary_key]


__all__ = [
    "COLUMNS_SQL",
    "ColumnInfo",
    "list_columns",
    "primary_key_names",
]
