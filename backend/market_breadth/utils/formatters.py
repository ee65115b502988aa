"""
Market Breadth: Shared Formatters

Deterministic text rendering of dates, numbers and percentages. Used by
the merge engine, the AI context builder, and the API.

All date helpers work in UTC so the same data always renders the same way.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional


def _utc(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def format_short_date(timestamp_ms: int) -> str:
    """Day/month label for chart axes.

    >>> format_short_date(1704067200000)
    '01/01'
    """
    return _utc(timestamp_ms).strftime("%d/%m")


def format_full_date(timestamp_ms: int) -> str:
    """Day/month/year label.

    >>> format_full_date(1704067200000)
    '01/01/2024'
    """
    return _utc(timestamp_ms).strftime("%d/%m/%Y")


def format_value(value: Optional[float], decimals: int = 1) -> str:
    """Fixed-point number, or '-' when absent.

    >>> format_value(1234.567)
    '1234.6'
    >>> format_value(None)
    '-'
    >>> format_value(0.0)
    '0.0'
    """
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "-"
    return f"{value:.{decimals}f}"


def format_pct(value: float | int, decimals: int = 2, show_sign: bool = True) -> str:
    """Format a value as a percentage with optional sign.

    >>> format_pct(12.345)
    '+12.35%'
    >>> format_pct(-3.1, decimals=1)
    '-3.1%'
    """
    if show_sign and value > 0:
        return f"+{value:.{decimals}f}%"
    return f"{value:.{decimals}f}%"
