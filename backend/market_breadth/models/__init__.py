"""
Market Breadth: Pydantic Models

All I/O schemas for the application. Data clients return these,
engines merge them, API routes serialize them.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────

class TimeRange(str, Enum):
    """Dashboard time range selector."""
    M1 = "1M"
    M3 = "3M"
    M6 = "6M"
    Y1 = "1Y"
    Y3 = "3Y"
    Y5 = "5Y"
    Y7 = "7Y"


# Calendar days kept by each range when no explicit dates are set
RANGE_DAYS: dict[TimeRange, int] = {
    TimeRange.M1: 30,
    TimeRange.M3: 90,
    TimeRange.M6: 180,
    TimeRange.Y1: 365,
    TimeRange.Y3: 1095,
    TimeRange.Y5: 1825,
    TimeRange.Y7: 2555,
}


class AnalysisRange(str, Enum):
    """Window of merged records handed to the AI analyst."""
    M1 = "1M"
    M3 = "3M"
    M6 = "6M"
    Y1 = "1Y"
    ALL = "ALL"


class SelectedMode(str, Enum):
    """What the selected-series chart shows."""
    SECTOR = "sector"
    STOCK = "stock"


class BreadthUnit(str, Enum):
    """How an endpoint's ma20/ma50/ma200 values are expressed."""
    COUNT = "count"
    PERCENT = "percent"


# ──────────────────────────────────────────────
# Series Points
# ──────────────────────────────────────────────

class RawPoint(BaseModel):
    """Canonical (timestamp, close) pair produced by the normalizer."""
    timestamp: int  # epoch milliseconds
    close: float


def _pct(count: int, total: int) -> float:
    return 100 * count / total if total > 0 else 0.0


class BreadthPoint(BaseModel):
    """One day of market breadth: counts above each MA and their percentages."""
    date: str  # YYYY-MM-DD
    timestamp: int
    total: int = 0
    count20: int = 0
    count50: int = 0
    count200: int = 0
    ma20: float = 0.0
    ma50: float = 0.0
    ma200: float = 0.0

    @classmethod
    def from_counts(
        cls,
        day: str,
        timestamp: int,
        total: int,
        count20: int,
        count50: int,
        count200: int,
    ) -> "BreadthPoint":
        """Build a point whose percentages are derived from the counts."""
        return cls(
            date=day,
            timestamp=timestamp,
            total=total,
            count20=count20,
            count50=count50,
            count200=count200,
            ma20=_pct(count20, total),
            ma50=_pct(count50, total),
            ma200=_pct(count200, total),
        )


class MergedRecord(BaseModel):
    """One calendar day of the unified dashboard dataset."""
    model_config = ConfigDict(frozen=True)

    date: str
    timestamp: int
    formatted_date: str
    total: Optional[int] = None
    count20: Optional[int] = None
    count50: Optional[int] = None
    count200: Optional[int] = None
    ma20: Optional[float] = None
    ma50: Optional[float] = None
    ma200: Optional[float] = None
    reference_index: Optional[float] = None
    secondary_index: Optional[float] = None
    selected_series: Optional[float] = None


class Crossover(BaseModel):
    """Short breadth line crossing the long one between two records."""
    model_config = ConfigDict(frozen=True)

    timestamp: int
    pair: Literal["20/50", "50/200"]
    direction: Literal["bull", "bear"]


# ──────────────────────────────────────────────
# Configuration Inputs
# ──────────────────────────────────────────────

class DateRange(BaseModel):
    """Date filter applied after merging."""
    time_range: TimeRange = TimeRange.Y1
    from_date: Optional[date] = None
    to_date: Optional[date] = None

    @property
    def is_custom(self) -> bool:
        return self.from_date is not None or self.to_date is not None


class DashboardConfig(BaseModel):
    """Everything the presentation layer can tune."""
    model_config = ConfigDict(frozen=True)

    lookback: int = Field(84, ge=1, description="Breadth lookback (t) sent upstream")
    floor: str = "hnx,hose,upcom"
    min_ad_close: float = 2
    max_ad_close: float = 500
    min_ma20: float = 50
    max_ma20: float = 200000
    breadth_url: Optional[str] = None
    selected_series_url: Optional[str] = None
    index_code: str = "8300"
    time_range: TimeRange = TimeRange.Y1
    cap_code: str = "vnmid"
    selected_mode: SelectedMode = SelectedMode.SECTOR
    active_stock: str = "PVD"
    from_date: Optional[date] = None
    to_date: Optional[date] = None

    @property
    def date_range(self) -> DateRange:
        return DateRange(
            time_range=self.time_range,
            from_date=self.from_date,
            to_date=self.to_date,
        )


# ──────────────────────────────────────────────
# Catalog / Analysis
# ──────────────────────────────────────────────

class SectorDef(BaseModel):
    """An industry sector index (ICB code)."""
    code: str
    name: str


class SectorPerformance(BaseModel):
    """Percent change of a sector over the analysis window."""
    code: str
    name: str
    change: float


class ChatMessage(BaseModel):
    """A single turn of the analysis follow-up chat."""
    role: Literal["user", "model"]
    text: str = Field(..., min_length=1, max_length=50000)


# ──────────────────────────────────────────────
# Outputs
# ──────────────────────────────────────────────

class DashboardSnapshot(BaseModel):
    """Merged dataset plus derived markers for one config."""
    generation: int
    records: list[MergedRecord] = []
    crossovers: list[Crossover] = []
    no_data: bool = False
    cap_name: str = "CAP"
    selected_name: str = "SECTOR"
