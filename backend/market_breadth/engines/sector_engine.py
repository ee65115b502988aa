"""
Market Breadth: Sector Rotation Engine

Ranks every ICB sector by its percent change over the analysis window,
strongest first. Feeds the AI analyst's sector-rotation section.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

import structlog

from market_breadth.data import catalog
from market_breadth.data.index_client import IndexSeriesClient
from market_breadth.models import SectorDef, SectorPerformance
from market_breadth.utils.formatters import format_pct

log = structlog.get_logger(__name__)

NO_SECTOR_DATA = "No sector detail available."
SECTOR_DATA_ERROR = "Sector comparison data could not be loaded."


class SectorRotationEngine:
    """Cross-sectional sector performance over a window."""

    def __init__(
        self,
        index_client: Optional[IndexSeriesClient] = None,
        sectors: Optional[Sequence[SectorDef]] = None,
    ):
        self.index = index_client or IndexSeriesClient()
        self.sectors = list(catalog.SECTORS if sectors is None else sectors)

    async def _performance(self, sector: SectorDef, start_ts: int) -> Optional[SectorPerformance]:
        series = await self.index.fetch(catalog.sector_url(sector.code))
        if not series:
            return None
        series = sorted(series, key=lambda p: p.timestamp)

        start = next((p for p in series if p.timestamp >= start_ts), None)
        end = series[-1]
        if start is None or start.close == 0:
            return None
        change = (end.close - start.close) / start.close * 100
        return SectorPerformance(code=sector.code, name=sector.name, change=change)

    async def rank(self, start_ts: int) -> list[SectorPerformance]:
        """All sectors with data since ``start_ts``, best performer first."""
        results = await asyncio.gather(*(self._performance(s, start_ts) for s in self.sectors))
        ranked = [r for r in results if r is not None]
        ranked.sort(key=lambda r: r.change, reverse=True)
        return ranked

    @staticmethod
    def render(ranking: Sequence[SectorPerformance]) -> str:
        """'1. Banks: +4.2%' lines, one per sector."""
        return "\n".join(
            f"{idx}. {perf.name}: {format_pct(perf.change, decimals=1)}"
            for idx, perf in enumerate(ranking, start=1)
        )

    async def summary(self, start_ts: int) -> str:
        if not self.sectors:
            return NO_SECTOR_DATA
        try:
            ranking = await self.rank(start_ts)
        except Exception as exc:
            log.error("sector.ranking_failed", error=str(exc))
            return SECTOR_DATA_ERROR
        return self.render(ranking) if ranking else NO_SECTOR_DATA
