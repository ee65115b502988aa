"""
Market Breadth: Merge Engine

Aligns the breadth series and the three close-price series (reference
index, cap index, selected sector/stock) into one record per calendar
day, applies the dashboard date filter, and derives MA-breadth
crossover markers from the merged records.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Sequence

from market_breadth.clock import Clock, SystemClock
from market_breadth.data.normalizer import date_key
from market_breadth.models import (
    RANGE_DAYS,
    BreadthPoint,
    Crossover,
    DateRange,
    MergedRecord,
    RawPoint,
)
from market_breadth.utils.formatters import format_short_date

DAY_MS = 86_400_000

# (pair label, short line, long line)
_CROSS_PAIRS = (
    ("20/50", "ma20", "ma50"),
    ("50/200", "ma50", "ma200"),
)


def _day_start_ms(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp() * 1000)


def merge_series(
    breadth: Sequence[BreadthPoint],
    reference: Sequence[RawPoint],
    secondary: Sequence[RawPoint],
    selected: Sequence[RawPoint],
) -> list[MergedRecord]:
    """Union of all sources keyed by UTC day, sorted by timestamp.

    Breadth fields are merged wholesale. Each close series only sets its
    own field, and only for points that carry a close; a day missing from
    one source keeps whatever the other sources set.
    """
    rows: dict[str, dict] = {}

    def row_for(timestamp: int) -> dict:
        day = date_key(timestamp)
        row = rows.get(day)
        if row is None:
            row = rows[day] = {"date": day, "timestamp": timestamp}
        return row

    for point in breadth:
        row_for(point.timestamp).update(point.model_dump(exclude={"date"}))

    for field, series in (
        ("reference_index", reference),
        ("secondary_index", secondary),
        ("selected_series", selected),
    ):
        for point in series:
            row = row_for(point.timestamp)
            if point.close is not None:
                row[field] = point.close

    records = [
        MergedRecord(formatted_date=format_short_date(row["timestamp"]), **row)
        for row in rows.values()
    ]
    records.sort(key=lambda r: r.timestamp)
    return records


def filter_by_date_range(
    records: Sequence[MergedRecord],
    date_range: DateRange,
    now_ms: int,
) -> list[MergedRecord]:
    """Explicit dates keep [from, to + 1 day); otherwise the last N days."""
    if date_range.is_custom:
        start = _day_start_ms(date_range.from_date) if date_range.from_date else None
        end = _day_start_ms(date_range.to_date) + DAY_MS if date_range.to_date else None
        return [
            r for r in records
            if (start is None or r.timestamp >= start) and (end is None or r.timestamp < end)
        ]

    days = RANGE_DAYS.get(date_range.time_range)
    if days is None:
        return list(records)
    cutoff = now_ms - days * DAY_MS
    return [r for r in records if r.timestamp >= cutoff]


def merge(
    breadth: Sequence[BreadthPoint],
    reference: Sequence[RawPoint],
    secondary: Sequence[RawPoint],
    selected: Sequence[RawPoint],
    date_range: Optional[DateRange] = None,
    clock: Optional[Clock] = None,
) -> list[MergedRecord]:
    """Merge the four sources and apply the date filter (if any)."""
    records = merge_series(breadth, reference, secondary, selected)
    if date_range is None:
        return records
    now_ms = (clock or SystemClock()).now_ms()
    return filter_by_date_range(records, date_range, now_ms)


def detect_crossovers(records: Sequence[MergedRecord]) -> list[Crossover]:
    """Bullish/bearish crossings of the short vs long breadth lines.

    Pairs where either record lacks one of the two values are skipped.
    """
    crossovers: list[Crossover] = []
    for prev, curr in zip(records, records[1:]):
        for pair, short_field, long_field in _CROSS_PAIRS:
            p_short, p_long = getattr(prev, short_field), getattr(prev, long_field)
            c_short, c_long = getattr(curr, short_field), getattr(curr, long_field)
            if None in (p_short, p_long, c_short, c_long):
                continue
            if p_short <= p_long and c_short > c_long:
                crossovers.append(Crossover(timestamp=curr.timestamp, pair=pair, direction="bull"))
            elif p_short >= p_long and c_short < c_long:
                crossovers.append(Crossover(timestamp=curr.timestamp, pair=pair, direction="bear"))
    return crossovers
