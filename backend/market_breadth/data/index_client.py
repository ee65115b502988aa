"""
Market Breadth: Index / Sector / Stock Series Client

Close-price series for VNINDEX, the cap indices, ICB sectors and single
stocks. Policy: fresh cache, else fetch, else stale cache, else empty.
Never raises to the caller.
"""

from __future__ import annotations

from typing import Optional

import structlog
from pydantic import ValidationError

from market_breadth.cache import TTL_INDEX, CacheStore, get_cache_store
from market_breadth.data.normalizer import normalize
from market_breadth.data.transport import HttpTransport
from market_breadth.models import RawPoint

log = structlog.get_logger(__name__)

_OPERATION = "INDEX"


class IndexSeriesClient:
    """Fetches and caches normalized close series keyed by URL."""

    def __init__(
        self,
        transport: Optional[HttpTransport] = None,
        cache: Optional[CacheStore] = None,
        ttl: float = TTL_INDEX,
    ):
        self.transport = transport or HttpTransport()
        self.cache = cache or get_cache_store()
        self.ttl = ttl

    def _cached_points(self, key: str, ttl: Optional[float]) -> Optional[list[RawPoint]]:
        hit = self.cache.load(key, ttl)
        if hit is None:
            return None
        try:
            return [RawPoint.model_validate(p) for p in hit.data]
        except (ValidationError, TypeError):
            log.debug("index.cache_invalid", key=key)
            return None

    async def fetch(self, url: str) -> list[RawPoint]:
        """Return the series at ``url``, possibly from cache, possibly empty."""
        key = self.cache.key(_OPERATION, {"url": url})

        fresh = self._cached_points(key, self.ttl)
        if fresh is not None:
            log.debug("index.cache_hit", url=url, points=len(fresh))
            return fresh

        try:
            payload = await self.transport.fetch_json(url)
            points = normalize(payload)
            if points:
                self.cache.save(key, [p.model_dump() for p in points])
            else:
                log.warning("index.empty_payload", url=url)
            return points
        except Exception as exc:
            log.error("index.fetch_failed", url=url, error=str(exc))
            stale = self._cached_points(key, None)
            if stale is not None:
                log.info("index.stale_fallback", url=url, points=len(stale))
                return stale
            return []
