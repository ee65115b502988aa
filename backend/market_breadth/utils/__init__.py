# Shared utilities: formatters
from market_breadth.utils.formatters import (
    format_full_date,
    format_pct,
    format_short_date,
    format_value,
)

__all__ = [
    "format_full_date",
    "format_pct",
    "format_short_date",
    "format_value",
]
