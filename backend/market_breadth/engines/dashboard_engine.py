"""
Market Breadth: Dashboard Engine

One refresh cycle: resolve the four source URLs for a config, fetch them
concurrently, and hand the results to the merge engine.

Every refresh takes a new generation number. When a newer refresh was
started while this one was in flight, its results are dropped instead of
overwriting the newer data.
"""

from __future__ import annotations

import asyncio
from typing import NamedTuple, Optional

import structlog

from market_breadth.clock import Clock, SystemClock
from market_breadth.data import catalog
from market_breadth.data.breadth_client import BreadthSeriesClient
from market_breadth.data.index_client import IndexSeriesClient
from market_breadth.engines.merge_engine import detect_crossovers, merge
from market_breadth.models import (
    BreadthPoint,
    DashboardConfig,
    DashboardSnapshot,
    RawPoint,
    SelectedMode,
    TimeRange,
)

log = structlog.get_logger(__name__)


class SourceSeries(NamedTuple):
    breadth: list[BreadthPoint]
    reference: list[RawPoint]
    secondary: list[RawPoint]
    selected: list[RawPoint]


class SourceUrls(NamedTuple):
    reference: str
    secondary: str
    selected: str


_EMPTY = SourceSeries([], [], [], [])


class DashboardEngine:
    """Fetches, guards and merges the dashboard's four series."""

    def __init__(
        self,
        index_client: Optional[IndexSeriesClient] = None,
        breadth_client: Optional[BreadthSeriesClient] = None,
        clock: Optional[Clock] = None,
    ):
        self.index = index_client or IndexSeriesClient()
        self.breadth = breadth_client or BreadthSeriesClient()
        self._clock = clock or SystemClock()
        self._generation = 0
        self._accepted = 0
        self._series = _EMPTY

    @property
    def generation(self) -> int:
        """Generation of the last accepted refresh."""
        return self._accepted

    @property
    def series(self) -> SourceSeries:
        return self._series

    # ── URL resolution ──

    @staticmethod
    def source_urls(config: DashboardConfig) -> SourceUrls:
        return SourceUrls(
            reference=catalog.reference_index_url(config.time_range),
            secondary=catalog.cap_index_url(config.cap_code, config.time_range),
            selected=catalog.selected_series_url(
                config.selected_mode,
                config.index_code,
                active_stock=config.active_stock,
                override=config.selected_series_url,
            ),
        )

    @staticmethod
    def selected_name(config: DashboardConfig) -> str:
        if config.selected_mode is SelectedMode.STOCK and config.active_stock:
            return f"STOCK: {config.active_stock.upper()}"
        return catalog.sector_name(config.index_code) or "SECTOR"

    @staticmethod
    def select_sector(config: DashboardConfig, code: str) -> DashboardConfig:
        """Switch the selected chart to a sector.

        Sector history is short, so ranges beyond a year drop to 1Y, and
        custom dates are cleared.
        """
        time_range = TimeRange.Y1 if config.time_range in catalog.LONG_RANGES else config.time_range
        return config.model_copy(update={
            "selected_mode": SelectedMode.SECTOR,
            "index_code": code,
            "selected_series_url": catalog.sector_url(code),
            "time_range": time_range,
            "from_date": None,
            "to_date": None,
        })

    # ── Refresh ──

    async def refresh(self, config: DashboardConfig) -> Optional[DashboardSnapshot]:
        """Fetch all four series; returns None if superseded mid-flight."""
        self._generation += 1
        generation = self._generation
        urls = self.source_urls(config)

        results = await asyncio.gather(
            self.breadth.fetch(config),
            self.index.fetch(urls.reference),
            self.index.fetch(urls.secondary),
            self.index.fetch(urls.selected),
            return_exceptions=True,
        )

        if generation != self._generation:
            log.info(
                "dashboard.refresh_superseded",
                generation=generation,
                current=self._generation,
            )
            return None

        names = ("breadth", "reference", "secondary", "selected")
        series = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                log.error("dashboard.source_failed", source=name, error=str(result))
                series.append([])
            else:
                series.append(result)

        self._series = SourceSeries(*series)
        self._accepted = generation
        log.info(
            "dashboard.refreshed",
            generation=generation,
            breadth=len(self._series.breadth),
            reference=len(self._series.reference),
            secondary=len(self._series.secondary),
            selected=len(self._series.selected),
        )
        return self.snapshot(config)

    def snapshot(self, config: DashboardConfig) -> DashboardSnapshot:
        """Re-merge the last accepted series under the config's date filter."""
        series = self._series
        records = merge(
            series.breadth,
            series.reference,
            series.secondary,
            series.selected,
            date_range=config.date_range,
            clock=self._clock,
        )
        return DashboardSnapshot(
            generation=self._accepted,
            records=records,
            crossovers=detect_crossovers(records),
            no_data=not series.breadth and not series.reference,
            cap_name=catalog.cap_name(config.cap_code),
            selected_name=self.selected_name(config),
        )
