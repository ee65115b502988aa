"""
Market Breadth: Source Catalog

ICB sector codes, cap indices, and the URL rules that map a dashboard
config onto the upstream chart endpoints.
"""

from __future__ import annotations

from typing import Optional

from market_breadth.config import get_settings
from market_breadth.models import SectorDef, SelectedMode, TimeRange

CAP_INDICES: list[SectorDef] = [
    SectorDef(code="vnmid", name="MidCap (VNMID)"),
    SectorDef(code="vnsml", name="SmallCap (VNSML)"),
]

SECTORS: list[SectorDef] = [
    SectorDef(code="500", name="Oil & Gas"),
    SectorDef(code="8500", name="Insurance"),
    SectorDef(code="7500", name="Utilities"),
    SectorDef(code="6500", name="Telecommunications"),
    SectorDef(code="9500", name="Technology"),
    SectorDef(code="1300", name="Chemicals"),
    SectorDef(code="8600", name="Real Estate"),
    SectorDef(code="8300", name="Banks"),
    SectorDef(code="5700", name="Travel & Leisure"),
    SectorDef(code="4500", name="Health Care"),
    SectorDef(code="5300", name="Retail"),
    SectorDef(code="8700", name="Financial Services"),
    SectorDef(code="3500", name="Food & Beverage"),
    SectorDef(code="3700", name="Personal & Household Goods"),
    SectorDef(code="2300", name="Construction & Materials"),
    SectorDef(code="2700", name="Industrial Goods & Services"),
    SectorDef(code="1700", name="Basic Resources"),
    SectorDef(code="3300", name="Automobiles & Parts"),
    SectorDef(code="5500", name="Media"),
]

# Ranges longer than a year; sector series do not reach that far back
LONG_RANGES = frozenset({TimeRange.Y3, TimeRange.Y5, TimeRange.Y7})


def _chart_suffix(time_range: TimeRange) -> str:
    # No 7-year chart files upstream; the 5-year file is the longest
    if time_range is TimeRange.Y7:
        return "5y"
    return time_range.value.lower()


def reference_index_url(time_range: TimeRange) -> str:
    """VNINDEX chart file for a range."""
    base = get_settings().api_base_url
    return f"{base}/charts_json/vnindex_{_chart_suffix(time_range)}.json"


def cap_index_url(cap_code: str, time_range: TimeRange) -> str:
    base = get_settings().api_base_url
    return f"{base}/charts_json/{cap_code}_{_chart_suffix(time_range)}.json"


def sector_url(code: str) -> str:
    base = get_settings().api_base_url
    return f"{base}/api/rrg/sector?code={code}&week=1"


def stock_url(ticker: str) -> str:
    base = get_settings().api_base_url
    return f"{base}/api/history?code={ticker.strip().lower()}"


def selected_series_url(
    mode: SelectedMode,
    index_code: str,
    active_stock: Optional[str] = None,
    override: Optional[str] = None,
) -> str:
    """URL of the selected sector or stock series."""
    if mode is SelectedMode.STOCK and active_stock:
        return stock_url(active_stock)
    return override or sector_url(index_code)


def sector_name(code: str) -> Optional[str]:
    for sector in SECTORS:
        if sector.code == code:
            return sector.name
    return None


def cap_name(code: str) -> str:
    for cap in CAP_INDICES:
        if cap.code == code:
            return cap.name
    return "CAP"
