"""
Value marshaller: asyncpg column values → portable structured values.

Every cell of every result row passes through :func:`decode_value`, which
returns ``None``, ``bool``, ``int``, ``float``, ``str``, ``list`` or
``dict``, whatever the backend type was.

Dispatch:
    The upper-cased backend type name selects a decoder from
    ``SCALAR_DECODERS``.  Array types (``_int4`` from the server, or
    ``INT4[]`` in display form) are decoded element-wise with the same
    table.  When no decoder exists, or the decoder rejects the value, two
    universal fallbacks run in fixed order:

    1. plain text via :func:`~pharos.query.pgtext.to_pg_text`
    2. for arrays, the raw ``{...}`` literal parser

    and only if both fail is the cell returned as ``None``.  One exotic
    column can therefore never fail the decode of a whole row.

Numeric policy:
    ``numeric`` values become floats only when the float prints back to the
    exact same decimal; otherwise the exact decimal text is returned as a
    string.  ``real``/``double precision`` values that are not finite are
    returned as ``"NaN"``, ``"Infinity"`` or ``"-Infinity"``.

Examples:
    >>> decode_value(Interval(14, 3, 0), "interval")
    '1 year 2 mons 3 days'
    >>> decode_value(decimal.Decimal("12.50"), "NUMERIC")
    12.5
    >>> decode_value(decimal.Decimal("12345678901234567890.123"), "numeric")
    '12345678901234567890.123'
    >>> decode_value(None, "INT4")
    >>> decode_value([1, None, 3], "_int4")
    [1, None, 3]

Tags:
    marshalling, type-dispatch, asyncpg, postgres-types, pharos
"""

from __future__ import annotations

import datetime
import decimal
import ipaddress
import math
import struct
import uuid
from collections.abc import Callable
from typing import Any, TypeAlias

from pharos.core.codecs import Interval
from pharos.core.logging import get_logger
from pharos.query.models import ColumnDescriptor, StructuredValue
from pharos.query.pgtext import interval_text, parse_array_literal, to_pg_text

logger = get_logger(__name__)

Decoder: TypeAlias = Callable[[Any], StructuredValue]

# Raised by decoders for values they cannot handle; triggers the fallbacks
_DECODE_ERRORS = (TypeError, ValueError, AttributeError, ArithmeticError, struct.error)


# ---------------------------------------------------------------------------
# Formatting helpers (shared with the CSV encoder)
# ---------------------------------------------------------------------------


def fraction_text(microsecond: int) -> str:
    """Seconds fraction: none, milliseconds, or microseconds, whichever is exact."""
    if microsecond == 0:
        return ""
    if microsecond % 1000 == 0:
        return f".{microsecond // 1000:03d}"
    return f".{microsecond:06d}"


def _date_text(d: datetime.date) -> str:
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def _clock_text(t: datetime.time | datetime.datetime) -> str:
    return f"{t.hour:02d}:{t.minute:02d}:{t.second:02d}{fraction_text(t.microsecond)}"


def _offset_text(offset: datetime.timedelta) -> str:
    sign = "-" if offset < datetime.timedelta(0) else "+"
    seconds = abs(int(offset.total_seconds()))
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    text = f"{sign}{hours:02d}:{minutes:02d}"
    return text + f":{secs:02d}" if secs else text


def non_finite_text(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    return "Infinity" if value > 0 else "-Infinity"


def shortest_float4(value: float) -> float:
    """Shortest decimal that maps back onto the same 32-bit float.

    asyncpg widens ``real`` to a Python float, so ``0.1`` arrives as
    ``0.10000000149011612``; this recovers the ``0.1`` the server prints.
    """
    packed = struct.pack("<f", value)
    for digits in range(1, 10):
        candidate = float(f"{value:.{digits}g}")
        if struct.pack("<f", candidate) == packed:
            return candidate
    return value


def format_timestamp(value: datetime.datetime) -> str:
    """``YYYY-MM-DD HH:MM:SS[.fff|.ffffff]`` for ``timestamp without time zone``."""
    if value == datetime.datetime.max:
        return "infinity"
    if value == datetime.datetime.min:
        return "-infinity"
    return f"{_date_text(value)} {_clock_text(value)}"


def format_timestamptz(value: datetime.datetime) -> str:
    """RFC 3339 in UTC, e.g. ``2024-03-01T12:00:00.250+00:00``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.UTC)
    if value.replace(tzinfo=None) in (datetime.datetime.max, datetime.datetime.min):
        return "infinity" if value.year == datetime.MAXYEAR else "-infinity"
    value = value.astimezone(datetime.UTC)
    return f"{_date_text(value)}T{_clock_text(value)}+00:00"


def format_date(value: datetime.date) -> str:
    if value == datetime.date.max:
        return "infinity"
    if value == datetime.date.min:
        return "-infinity"
    return _date_text(value)


def format_time(value: datetime.time) -> str:
    return _clock_text(value)


def format_timetz(value: datetime.time) -> str:
    offset = value.utcoffset()
    return _clock_text(value) + (_offset_text(offset) if offset is not None else "")


def format_bytes(value: bytes | bytearray | memoryview) -> str:
    return "\\x" + bytes(value).hex()


# ---------------------------------------------------------------------------
# Scalar decoders
# ---------------------------------------------------------------------------


def _integer(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected int, got {type(value).__name__}")
    return value


def _float8(value: Any) -> float | str:
    if isinstance(value, bool):
        raise TypeError("expected float, got bool")
    number = float(value)
    return number if math.isfinite(number) else non_finite_text(number)


def _float4(value: Any) -> float | str:
    number = _float8(value)
    return shortest_float4(number) if isinstance(number, float) else number


def _numeric(value: Any) -> float | int | str:
    if isinstance(value, bool):
        raise TypeError("expected decimal, got bool")
    if not isinstance(value, decimal.Decimal):
        value = decimal.Decimal(str(value))
    if not value.is_finite():
        return "NaN" if value.is_nan() else ("Infinity" if value > 0 else "-Infinity")
    number = float(value)
    if math.isfinite(number) and decimal.Decimal(repr(number)) == value:
        return number
    return format(value, "f")


def _boolean(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected bool, got {type(value).__name__}")
    return value


def _json(value: Any) -> StructuredValue:
    # already parsed by the connection codec; a str here is a JSON string value
    if value is None or isinstance(value, (str, dict, list, bool, int, float)):
        return value
    raise TypeError(f"unexpected json value {type(value).__name__}")


def _uuid(value: Any) -> str:
    if isinstance(value, uuid.UUID):
        return str(value)
    return str(uuid.UUID(str(value)))


def _bytea(value: Any) -> str:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise TypeError(f"expected bytes, got {type(value).__name__}")
    return format_bytes(value)


def _timestamp(value: Any) -> str:
    if not isinstance(value, datetime.datetime):
        raise TypeError(f"expected datetime, got {type(value).__name__}")
    return format_timestamp(value)


def _timestamptz(value: Any) -> str:
    if not isinstance(value, datetime.datetime):
        raise TypeError(f"expected datetime, got {type(value).__name__}")
    return format_timestamptz(value)


def _date(value: Any) -> str:
    if isinstance(value, datetime.datetime) or not isinstance(value, datetime.date):
        raise TypeError(f"expected date, got {type(value).__name__}")
    return format_date(value)


def _time(value: Any) -> str:
    if not isinstance(value, datetime.time):
        raise TypeError(f"expected time, got {type(value).__name__}")
    return format_time(value)


def _timetz(value: Any) -> str:
    if not isinstance(value, datetime.time):
        raise TypeError(f"expected time, got {type(value).__name__}")
    return format_timetz(value)


def _inet(value: Any) -> str:
    """Bare address for single-host masks, ``address/prefix`` otherwise."""
    if isinstance(value, (ipaddress.IPv4Interface, ipaddress.IPv6Interface)):
        if value.network.prefixlen == value.max_prefixlen:
            return str(value.ip)
        return value.with_prefixlen
    if isinstance(value, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
        if value.prefixlen == value.max_prefixlen:
            return str(value.network_address)
        return value.with_prefixlen
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return str(value)
    raise TypeError(f"expected ip address, got {type(value).__name__}")


def _cidr(value: Any) -> str:
    if isinstance(value, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
        return value.with_prefixlen
    if isinstance(value, (ipaddress.IPv4Interface, ipaddress.IPv6Interface)):
        return value.network.with_prefixlen
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return f"{value}/{value.max_prefixlen}"
    raise TypeError(f"expected ip network, got {type(value).__name__}")


def _macaddr(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected str, got {type(value).__name__}")
    return value


def _interval(value: Any) -> str:
    if isinstance(value, Interval):
        return interval_text(value)
    if isinstance(value, datetime.timedelta):
        return interval_text(Interval.from_timedelta(value))
    if isinstance(value, tuple) and len(value) == 3:
        return interval_text(Interval(*value))
    raise TypeError(f"expected interval, got {type(value).__name__}")


def _register(table: dict[str, Decoder], decoder: Decoder, *names: str) -> None:
    for name in names:
        table[name] = decoder


SCALAR_DECODERS: dict[str, Decoder] = {}
_register(SCALAR_DECODERS, _integer, "INT2", "INT4", "INT8", "SMALLINT", "INTEGER", "INT",
          "BIGINT", "SMALLSERIAL", "SERIAL", "BIGSERIAL", "SERIAL2", "SERIAL4", "SERIAL8",
          "OID", "XID", "CID")
_register(SCALAR_DECODERS, _float4, "FLOAT4", "REAL")
_register(SCALAR_DECODERS, _float8, "FLOAT8", "DOUBLE PRECISION", "FLOAT")
_register(SCALAR_DECODERS, _numeric, "NUMERIC", "DECIMAL")
_register(SCALAR_DECODERS, _boolean, "BOOL", "BOOLEAN")
_register(SCALAR_DECODERS, _json, "JSON", "JSONB")
_register(SCALAR_DECODERS, _uuid, "UUID")
_register(SCALAR_DECODERS, _bytea, "BYTEA")
_register(SCALAR_DECODERS, _timestamp, "TIMESTAMP", "TIMESTAMP WITHOUT TIME ZONE")
_register(SCALAR_DECODERS, _timestamptz, "TIMESTAMPTZ", "TIMESTAMP WITH TIME ZONE")
_register(SCALAR_DECODERS, _date, "DATE")
_register(SCALAR_DECODERS, _time, "TIME", "TIME WITHOUT TIME ZONE")
_register(SCALAR_DECODERS, _timetz, "TIMETZ", "TIME WITH TIME ZONE")
_register(SCALAR_DECODERS, _inet, "INET")
_register(SCALAR_DECODERS, _cidr, "CIDR")
_register(SCALAR_DECODERS, _macaddr, "MACADDR", "MACADDR8")
_register(SCALAR_DECODERS, _interval, "INTERVAL")


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def array_element_type(type_name: str) -> str | None:
    """``_INT4`` or ``INT4[]`` → ``INT4``; ``None`` for non-array names."""
    key = type_name.strip().upper()
    if key.endswith("[]"):
        return key[:-2].strip()
    if key.startswith("_") and len(key) > 1:
        return key[1:]
    return None


def _text_fallback(value: Any) -> StructuredValue:
    try:
        return to_pg_text(value)
    except _DECODE_ERRORS:
        logger.debug("value_text_fallback_failed", python_type=type(value).__name__)
        return None


def _decode_scalar(value: Any, key: str) -> StructuredValue:
    if value is None:
        return None
    decoder = SCALAR_DECODERS.get(key)
    if decoder is not None:
        try:
            return decoder(value)
        except _DECODE_ERRORS:
            logger.debug("value_decoder_rejected", type_name=key, python_type=type(value).__name__)
    return _text_fallback(value)


def _decode_elements(values: list[Any] | tuple[Any, ...], element_key: str) -> list[StructuredValue]:
    out: list[StructuredValue] = []
    for item in values:
        if isinstance(item, list):
            out.append(_decode_elements(item, element_key))
        else:
            out.append(_decode_scalar(item, element_key))
    return out


def decode_array(value: Any, element_key: str) -> StructuredValue:
    if value is None:
        return None
    if isinstance(value, list):
        return _decode_elements(value, element_key)
    text = value if isinstance(value, str) else _text_fallback(value)
    if text is None:
        return None
    return parse_array_literal(text)


def decode_value(value: Any, type_name: str) -> StructuredValue:
    """Convert one cell to a structured value. Never raises."""
    if value is None:
        return None
    element = array_element_type(type_name)
    if element is not None:
        return decode_array(value, element)
    return _decode_scalar(value, type_name.strip().upper())


def decode_row(record: Any, columns: list[ColumnDescriptor]) -> dict[str, StructuredValue]:
    """Decode a positional record into ``{column name: value}`` in column order."""
    return {col.name: decode_value(record[i], col.data_type) for i, col in enumerate(columns)}


def display_type_name(typname: str) -> str:
    """Server type name as shown to callers: ``int4`` → ``INT4``, ``_int4`` → ``INT4[]``."""
    element = array_element_type(typname)
    if element is not None:
        return f"{element}[]"
    return typname.upper()


__all__ = [
    "SCALAR_DECODERS",
    "decode_value",
    "decode_array",
    "decode_row",
    "array_element_type",
    "display_type_name",
    "fraction_text",
    "format_timestamp",
    "format_timestamptz",
    "format_date",
    "format_time",
    "format_timetz",
    "format_bytes",
    "non_finite_text",
    "shortest_float4",
]
