"""
Market Breadth: Payload Normalizer

Turns the JSON shapes returned by the index/sector/stock endpoints into a
canonical list of RawPoint (epoch-ms timestamp, close).

Supported shapes, tried in order:
  1. Wrapper          {"data": [...]}          -> recurse into data
  2. Array-of-arrays  [[ts, o, h, l, c, ...]]  -> close at index 4 (or 1)
  3. Array-of-objects [{"date": .., "value": ..}] with aliased keys
  4. Columnar         {"t": [...], "c": [...]}

Anything else normalizes to an empty list. Never raises.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Callable, NamedTuple, Optional

from market_breadth.models import RawPoint

# Epoch values below this are seconds, not milliseconds
_SECONDS_CUTOFF = 10_000_000_000

_TIME_KEYS = ("date", "time", "t", "Date", "Time", "dt")
_VALUE_KEYS = ("value", "close", "c", "Close", "Price", "price", "v", "adClose", "adjClose")


# ──────────────────────────────────────────────
# Scalar Coercion
# ──────────────────────────────────────────────

def coerce_number(value: Any) -> Optional[float]:
    """Parse a finite float from a number or numeric string, else None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def coerce_timestamp(value: Any) -> Optional[int]:
    """Convert a number (s or ms) or a date string to epoch milliseconds.

    Date-only strings are read as UTC midnight, as are ISO datetimes
    without an offset.
    """
    if isinstance(value, str):
        number = coerce_number(value)
        if number is None:
            return _parse_date_string(value)
    else:
        number = coerce_number(value)
        if number is None:
            return None
    if abs(number) < _SECONDS_CUTOFF:
        number *= 1000
    return int(round(number))


def _parse_date_string(text: str) -> Optional[int]:
    text = text.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(round(parsed.timestamp() * 1000))


def date_key(timestamp_ms: int) -> str:
    """UTC calendar day (YYYY-MM-DD) of an epoch-ms timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def first_present(item: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = item.get(key)
        if value is not None:
            return value
    return None


def _point(raw_ts: Any, raw_close: Any) -> Optional[RawPoint]:
    timestamp = coerce_timestamp(raw_ts)
    close = coerce_number(raw_close)
    if timestamp is None or close is None:
        return None
    return RawPoint(timestamp=timestamp, close=close)


# ──────────────────────────────────────────────
# Shape Matchers
# ──────────────────────────────────────────────

class ShapeMatch(NamedTuple):
    matched: bool
    points: list[RawPoint]


_NO_MATCH = ShapeMatch(False, [])


def match_wrapper(raw: Any) -> ShapeMatch:
    """{"data": [...]}; checked first so the inner list is never mistaken."""
    if isinstance(raw, dict) and isinstance(raw.get("data"), list):
        return ShapeMatch(True, normalize(raw["data"]))
    return _NO_MATCH


def match_array_of_arrays(raw: Any) -> ShapeMatch:
    if not (isinstance(raw, list) and raw and isinstance(raw[0], (list, tuple))):
        return _NO_MATCH
    points = []
    for row in raw:
        if not isinstance(row, (list, tuple)) or len(row) < 2:
            continue
        close = row[4] if len(row) >= 5 else row[1]
        point = _point(row[0], close)
        if point is not None:
            points.append(point)
    return ShapeMatch(True, points)


def match_array_of_objects(raw: Any) -> ShapeMatch:
    if not isinstance(raw, list):
        return _NO_MATCH
    points = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        point = _point(first_present(item, _TIME_KEYS), first_present(item, _VALUE_KEYS))
        if point is not None:
            points.append(point)
    return ShapeMatch(True, points)


def match_columnar(raw: Any) -> ShapeMatch:
    """TradingView-style {"t": [...], "c": [...]}."""
    if not (isinstance(raw, dict) and isinstance(raw.get("t"), list) and isinstance(raw.get("c"), list)):
        return _NO_MATCH
    points = []
    for ts, close in zip(raw["t"], raw["c"]):
        point = _point(ts, close)
        if point is not None:
            points.append(point)
    return ShapeMatch(True, points)


SHAPE_MATCHERS: tuple[Callable[[Any], ShapeMatch], ...] = (
    match_wrapper,
    match_array_of_arrays,
    match_array_of_objects,
    match_columnar,
)


def normalize(raw: Any) -> list[RawPoint]:
    """Normalize any supported payload shape into RawPoints."""
    if not raw:
        return []
    for matcher in SHAPE_MATCHERS:
        result = matcher(raw)
        if result.matched:
            return result.points
    return []
