"""
Market Breadth: Breadth Series Client

Fetches the count/percentage of stocks trading above their MA20, MA50
and MA200 from the breadth endpoint, keeps a per-filter cache, and merges
incremental "latest" snapshots over the cached history.

Upstream payloads come in two shapes:

  * flat     [{"date", "total", "ma20", "ma50", "ma200"}, ...]
             (optionally wrapped in {"data": [...]})
  * complex  {"data": {"ma20": [{"date", "value", "total"}], "ma50": [...], "ma200": [...]}}

The unit of the ma values (stock counts or percentages) is declared per
endpoint in settings rather than guessed from the shape.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional
from urllib.parse import urlencode

import structlog
from pydantic import ValidationError

from market_breadth.cache import (
    TTL_BREADTH_FRESH,
    TTL_BREADTH_HISTORY,
    CacheStore,
    get_cache_store,
)
from market_breadth.config import get_settings
from market_breadth.data.normalizer import (
    coerce_number,
    coerce_timestamp,
    date_key,
    first_present,
)
from market_breadth.data.transport import HttpTransport, TransportError
from market_breadth.models import BreadthPoint, BreadthUnit, DashboardConfig

log = structlog.get_logger(__name__)

_OPERATION = "BREADTH"

# Cached history shorter than this is refetched in full
MIN_HISTORY_POINTS = 50

_PERIODS = (20, 50, 200)
_DATE_KEYS = ("date", "Date", "time", "t")


# ──────────────────────────────────────────────
# Query Building
# ──────────────────────────────────────────────

def _num(value: float) -> str:
    """Render 2.0 as '2' the way the upstream API expects."""
    return str(int(value)) if float(value).is_integer() else str(value)


def breadth_identity(config: DashboardConfig, url: str) -> dict:
    """Cache identity: filter parameters only, not the lookback window."""
    return {
        "floor": config.floor,
        "min_ad": config.min_ad_close,
        "max_ad": config.max_ad_close,
        "min_ma": config.min_ma20,
        "max_ma": config.max_ma20,
        "breadthUrl": url,
    }


def build_breadth_url(config: DashboardConfig, url: str, latest: bool = False) -> str:
    params = {
        "t": str(config.lookback),
        "floor": config.floor,
        "min_adClose": _num(config.min_ad_close),
        "max_adClose": _num(config.max_ad_close),
        "min_MA20": _num(config.min_ma20),
        "max_MA20": _num(config.max_ma20),
    }
    if latest:
        params["latest"] = "1"
    return f"{url}?{urlencode(params)}"


# ──────────────────────────────────────────────
# Payload Mapping
# ──────────────────────────────────────────────

def _to_count(value: Optional[float], total: float, unit: BreadthUnit) -> int:
    if value is None:
        return 0
    if unit is BreadthUnit.PERCENT:
        return int(round(value * total / 100))
    return int(round(value))


def map_complex(data: dict, unit: BreadthUnit = BreadthUnit.COUNT) -> list[BreadthPoint]:
    """Pivot the three per-MA series into one point per date."""
    merged: dict[str, dict[str, float]] = {}
    for period in _PERIODS:
        items = data.get(f"ma{period}")
        if not isinstance(items, list):
            continue
        for item in items:
            if not isinstance(item, dict) or item.get("date") is None:
                continue
            entry = merged.setdefault(str(item["date"]), {"total": 0.0})
            total = coerce_number(item.get("total"))
            if total:
                entry["total"] = max(entry["total"], total)
            value = coerce_number(item.get("value"))
            if value is not None:
                entry[f"count{period}"] = value

    points = []
    for day, entry in merged.items():
        timestamp = coerce_timestamp(day)
        if timestamp is None or timestamp <= 0:
            continue
        total = entry["total"]
        counts = [_to_count(entry.get(f"count{p}"), total, unit) for p in _PERIODS]
        points.append(BreadthPoint.from_counts(date_key(timestamp), timestamp, int(round(total)), *counts))
    return points


def map_flat(rows: list, unit: BreadthUnit = BreadthUnit.COUNT) -> list[BreadthPoint]:
    """Map per-day rows; explicit countNN fields win over the ma values."""
    points = []
    for item in rows:
        if not isinstance(item, dict):
            continue
        timestamp = coerce_timestamp(first_present(item, _DATE_KEYS))
        if timestamp is None or timestamp <= 0:
            continue
        total = coerce_number(item.get("total")) or 0.0

        counts = []
        for period in _PERIODS:
            explicit = coerce_number(item.get(f"count{period}"))
            if explicit is not None:
                counts.append(int(round(explicit)))
                continue
            value = coerce_number(
                first_present(item, (f"ma{period}", f"avg_ma{period}", f"pct_ma{period}"))
            )
            counts.append(_to_count(value, total, unit))

        points.append(BreadthPoint.from_counts(date_key(timestamp), timestamp, int(round(total)), *counts))
    return points


def extract_points(payload: Any, unit: BreadthUnit = BreadthUnit.COUNT) -> list[BreadthPoint]:
    """Dispatch a raw breadth payload to the flat or complex mapper."""
    if not payload:
        return []
    if isinstance(payload, dict):
        inner = payload.get("data")
        if isinstance(inner, dict):
            return map_complex(inner, unit)
        rows = inner if isinstance(inner, list) else []
    elif isinstance(payload, list):
        rows = payload
    else:
        return []
    return map_flat(rows, unit)


# ──────────────────────────────────────────────
# Client
# ──────────────────────────────────────────────

class BreadthSeriesClient:
    """Breadth fetch policy: fresh cache, latest-over-history merge, stale fallback."""

    def __init__(
        self,
        transport: Optional[HttpTransport] = None,
        cache: Optional[CacheStore] = None,
        fresh_ttl: float = TTL_BREADTH_FRESH,
        history_ttl: float = TTL_BREADTH_HISTORY,
    ):
        self.transport = transport or HttpTransport()
        self.cache = cache or get_cache_store()
        self.fresh_ttl = fresh_ttl
        self.history_ttl = history_ttl

    @staticmethod
    def unit_for(url: str) -> BreadthUnit:
        settings = get_settings()
        return BreadthUnit(settings.breadth_units.get(url, settings.breadth_default_unit))

    def _cached_points(self, key: str) -> tuple[list[BreadthPoint], int]:
        hit = self.cache.load(key, None)
        if hit is None or not isinstance(hit.data, list) or not hit.data:
            return [], 0
        try:
            return [BreadthPoint.model_validate(p) for p in hit.data], hit.age_ms
        except (ValidationError, TypeError):
            log.debug("breadth.cache_invalid", key=key)
            return [], 0

    async def _fetch_payload(self, url: str) -> Optional[Any]:
        try:
            return await self.transport.fetch_json(url)
        except TransportError as exc:
            log.warning("breadth.request_failed", url=url, error=str(exc))
            return None

    async def fetch(self, config: DashboardConfig) -> list[BreadthPoint]:
        """Return the breadth series for the config's filters. Never raises."""
        url = config.breadth_url or get_settings().breadth_url
        key = self.cache.key(_OPERATION, breadth_identity(config, url))
        cached, age_ms = self._cached_points(key)

        if cached and age_ms < self.fresh_ttl * 1000:
            log.debug("breadth.cache_hit", points=len(cached), age_ms=age_ms)
            return cached

        try:
            return await self._refresh(config, url, key, cached, age_ms)
        except Exception as exc:
            log.error("breadth.fetch_failed", url=url, error=str(exc))
            return cached

    async def _refresh(
        self,
        config: DashboardConfig,
        url: str,
        key: str,
        cached: list[BreadthPoint],
        age_ms: int,
    ) -> list[BreadthPoint]:
        unit = self.unit_for(url)
        refetch_history = (
            not cached
            or len(cached) < MIN_HISTORY_POINTS
            or age_ms > self.history_ttl * 1000
        )

        requests = [self._fetch_payload(build_breadth_url(config, url, latest=True))]
        if refetch_history:
            requests.append(self._fetch_payload(build_breadth_url(config, url)))
        results = await asyncio.gather(*requests)
        latest_raw = results[0]
        history_raw = results[1] if refetch_history else None

        if latest_raw is None and history_raw is None:
            log.warning("breadth.all_requests_failed", url=url, cached=len(cached))
            return cached

        # An unusable answer is no new data: the cache stays the base
        history = extract_points(history_raw, unit) if history_raw is not None else []
        latest = extract_points(latest_raw, unit) if latest_raw is not None else []
        if history_raw is not None and not history:
            log.warning("breadth.history_unrecognized", url=url, cached=len(cached))
        if not history and not latest:
            return cached

        # Keyed by calendar day; later layers overwrite earlier ones
        merged: dict[str, BreadthPoint] = {}
        for point in history or cached:
            merged[point.date] = point
        for point in latest:
            merged[point.date] = point
        result = sorted(merged.values(), key=lambda p: p.timestamp)

        self.cache.save(key, [p.model_dump() for p in result])
        log.info(
            "breadth.refreshed",
            points=len(result),
            history_refetched=bool(history),
            unit=unit.value,
        )
        return result
