"""
Postgres text rendering and raw array-literal parsing.

These are the two universal fallbacks of the value marshaller:

- :func:`to_pg_text` renders any value asyncpg hands back (ranges, geometric
  types, bit strings, decimals, ...) the way ``psql`` would print it.
- :func:`parse_array_literal` reads the ``{elem,elem,...}`` text form of an
  array and guesses element types: ``NULL`` becomes ``None``, integers and
  finite floats become numbers, ``t``/``true``/``f``/``false`` become
  booleans, and anything else stays a string.

Examples:
    >>> parse_array_literal('{1,2.5,NULL,t,"a,b"}')
    [1, 2.5, None, True, 'a,b']
    >>> to_pg_text(asyncpg.Range(1, 10))
    '[1,10)'
    >>> to_pg_text(asyncpg.Point(1.0, 2.5))
    '(1,2.5)'
"""

from __future__ import annotations

import datetime
import decimal
import ipaddress
import json
import math
import re
import uuid
from typing import Any

import asyncpg
from asyncpg import types as pgtypes

from pharos.core.codecs import Interval

_INT_TOKEN = re.compile(r"[+-]?\d+")
_FLOAT_TOKEN = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def _num(value: float) -> str:
    """Shortest float text without a trailing ``.0`` (``1.0`` prints as ``1``)."""
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def _point(p: Any) -> str:
    return f"({_num(p[0])},{_num(p[1])})"


def _bound(value: Any) -> str:
    if value is None:
        return ""
    text = to_pg_text(value)
    if text is None:
        return ""
    if any(c in text for c in ' ,()[]"\\'):
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return text


def _array_element(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, list):
        return "{" + ",".join(_array_element(v) for v in value) + "}"
    text = to_pg_text(value) or ""
    if text == "" or text.upper() == "NULL" or any(c in text for c in ' ,{}"\\'):
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return text


def _record_field(value: Any) -> str:
    if value is None:
        return ""
    text = to_pg_text(value) or ""
    if text == "" or any(c in text for c in ',()"\\') or any(c.isspace() for c in text):
        return '"' + text.replace("\\", "\\\\").replace('"', '""') + '"'
    return text


def interval_text(value: Interval) -> str:
    """Human-readable interval in Postgres' default output style.

    Zero components are omitted; all-zero renders as ``00:00:00``.

    >>> interval_text(Interval(14, 3, 0))
    '1 year 2 mons 3 days'
    """
    months, days, micros = value
    parts: list[str] = []

    # truncate toward zero so negative intervals keep matching signs
    years = abs(months) // 12 * (1 if months >= 0 else -1)
    mons = months - years * 12
    if years:
        parts.append(f"{years} year{'s' if years != 1 else ''}")
    if mons:
        parts.append(f"{mons} mon{'s' if mons != 1 else ''}")
    if days:
        parts.append(f"{days} day{'s' if days != 1 else ''}")

    if micros or not parts:
        sign = "-" if micros < 0 else ""
        total = abs(micros)
        hours, rem = divmod(total, 3_600_000_000)
        minutes, rem = divmod(rem, 60_000_000)
        seconds, fraction = divmod(rem, 1_000_000)
        clock = f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"
        if fraction:
            clock += f".{fraction:06d}"
        parts.append(clock)

    return " ".join(parts)


def to_pg_text(value: Any) -> str | None:
    """Render ``value`` as Postgres text output, or ``None`` for SQL NULL."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "t" if value else "f"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return _num(value)
    if isinstance(value, decimal.Decimal):
        return format(value, "f") if value.is_finite() else str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    if isinstance(value, datetime.datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, Interval):
        return interval_text(value)
    if isinstance(value, datetime.timedelta):
        return interval_text(Interval.from_timedelta(value))
    if isinstance(value, (ipaddress.IPv4Interface, ipaddress.IPv6Interface)):
        return value.with_prefixlen
    if isinstance(value, (uuid.UUID, ipaddress.IPv4Address, ipaddress.IPv6Address,
                          ipaddress.IPv4Network, ipaddress.IPv6Network)):
        return str(value)
    if isinstance(value, pgtypes.BitString):
        return value.as_string()
    if isinstance(value, pgtypes.Range):
        if value.isempty:
            return "empty"
        return (
            ("[" if value.lower_inc else "(")
            + _bound(value.lower)
            + ","
            + _bound(value.upper)
            + ("]" if value.upper_inc else ")")
        )
    # Geometric types; Polygon subclasses Path so it goes first
    if isinstance(value, pgtypes.Polygon):
        return "(" + ",".join(_point(p) for p in value.points) + ")"
    if isinstance(value, pgtypes.Path):
        inner = ",".join(_point(p) for p in value.points)
        return f"({inner})" if value.is_closed else f"[{inner}]"
    if isinstance(value, pgtypes.Point):
        return _point(value)
    if isinstance(value, pgtypes.Box):
        return f"{_point(value.high)},{_point(value.low)}"
    if isinstance(value, pgtypes.LineSegment):
        return f"[{_point(value.p1)},{_point(value.p2)}]"
    if isinstance(value, pgtypes.Line):
        return "{" + ",".join(_num(c) for c in value) + "}"
    if isinstance(value, pgtypes.Circle):
        return f"<{_point(value.center)},{_num(value.radius)}>"
    # composite types arrive as records; NULL fields are left empty
    if isinstance(value, asyncpg.Record):
        return "(" + ",".join(_record_field(v) for v in value.values()) + ")"
    if isinstance(value, (list, tuple)):
        return "{" + ",".join(_array_element(v) for v in value) + "}"
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


# ---------------------------------------------------------------------------
# Array literal parsing
# ---------------------------------------------------------------------------


def _split_elements(inner: str) -> list[tuple[str, bool]]:
    """Split on top-level commas; returns ``(token, was_quoted)`` pairs."""
    elements: list[tuple[str, bool]] = []
    current: list[str] = []
    quoted = False
    in_quotes = False
    depth = 0
    i = 0
    while i < len(inner):
        ch = inner[i]
        # nested sub-arrays are kept verbatim and parsed recursively
        if in_quotes:
            if ch == "\\" and i + 1 < len(inner):
                if depth:
                    current.append(ch)
                current.append(inner[i + 1])
                i += 2
                continue
            if ch == '"':
                in_quotes = False
                if depth:
                    current.append(ch)
            else:
                current.append(ch)
        elif ch == '"':
            in_quotes = True
            if depth:
                current.append(ch)
            else:
                quoted = True
        elif ch == "{":
            depth += 1
            current.append(ch)
        elif ch == "}":
            depth -= 1
            current.append(ch)
        elif ch == "," and depth == 0:
            elements.append(("".join(current), quoted))
            current, quoted = [], False
        else:
            current.append(ch)
        i += 1
    elements.append(("".join(current), quoted))
    return elements


def _element_value(token: str, quoted: bool) -> Any:
    if quoted:
        return token
    text = token.strip()
    if text.startswith("{") and text.endswith("}"):
        return parse_array_literal(text)
    if text.upper() == "NULL":
        return None
    if _INT_TOKEN.fullmatch(text):
        return int(text)
    if _FLOAT_TOKEN.fullmatch(text):
        number = float(text)
        return number if math.isfinite(number) else text
    lowered = text.lower()
    if lowered in ("t", "true"):
        return True
    if lowered in ("f", "false"):
        return False
    return text


def parse_array_literal(text: str) -> Any:
    """Parse ``{...}`` array text; non-array text is returned unchanged."""
    text = text.strip()
    # Explicit bounds prefix, e.g. [0:1]={1,2}
    if text.startswith("[") and "=" in text:
        text = text.split("=", 1)[1].strip()
    if not (text.startswith("{") and text.endswith("}")):
        return text
    inner = text[1:-1]
    if not inner.strip():
        return []
    return [_element_value(token, quoted) for token, quoted in _split_elements(inner)]


__all__ = [
    "to_pg_text",
    "interval_text",
    "parse_array_literal",
]
