"""Per-connection asyncpg type codecs.

asyncpg decodes ``interval`` into :class:`datetime.timedelta`, which folds
months into days and loses the calendar month component.  Every pooled
connection is therefore initialised with a tuple-format interval codec that
keeps ``(months, days, microseconds)`` intact, plus JSON codecs so ``json``
and ``jsonb`` columns arrive as structured values.
"""

from __future__ import annotations

import datetime
import json
from typing import Any, NamedTuple


class Interval(NamedTuple):
    """Postgres interval exactly as stored on the server."""

    months: int
    days: int
    microseconds: int

    @classmethod
    def from_timedelta(cls, value: datetime.timedelta) -> Interval:
        return cls(0, value.days, value.seconds * 1_000_000 + value.microseconds)


def _encode_interval(value: Any) -> tuple[int, int, int]:
    if isinstance(value, datetime.timedelta):
        value = Interval.from_timedelta(value)
    months, days, microseconds = value
    return int(months), int(days), int(microseconds)


def _decode_interval(value: tuple[int, int, int]) -> Interval:
    return Interval(*value)


async def register_codecs(conn: Any) -> None:
    """``init`` hook for :func:`asyncpg.create_pool` and ad-hoc connections."""
    await conn.set_type_codec(
        "interval",
        schema="pg_catalog",
        encoder=_encode_interval,
        decoder=_decode_interval,
        format="tuple",
    )
    for name in ("json", "jsonb"):
        await conn.set_type_codec(
            name,
            schema="pg_catalog",
            encoder=json.dumps,
            decoder=json.loads,
            format="text",
        )


__all__ = [
    "Interval",
    "register_codecs",
]
