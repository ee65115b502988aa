"""
Market Breadth: HTTP Transport

JSON GET with a cache-busting parameter and exactly one fallback
attempt through a public CORS relay. No backoff, no further retries.
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

import httpx
import structlog

from market_breadth.clock import Clock, SystemClock
from market_breadth.config import get_settings

log = structlog.get_logger(__name__)

# Failures that send a request on to the relay; InvalidURL is not an HTTPError
_FETCH_ERRORS = (httpx.HTTPError, httpx.InvalidURL, ValueError)


class TransportError(Exception):
    """Raised when both the direct and the proxied request failed."""

    def __init__(self, url: str, cause: Exception):
        self.url = url
        self.cause = cause
        super().__init__(f"Fetch failed for {url}: {cause}")


def add_cache_buster(url: str, now_ms: int) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}_={now_ms}"


class HttpTransport:
    """Fetches JSON documents, falling back to the relay proxy once."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Clock] = None,
        proxy_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self._client = client
        self._clock = clock or SystemClock()
        self._proxy_url = proxy_url if proxy_url is not None else settings.proxy_url
        self._timeout = timeout if timeout is not None else settings.http_timeout

    def proxied(self, url: str) -> str:
        """Wrap a URL in the relay proxy."""
        return f"{self._proxy_url}{quote(url, safe='')}"

    async def fetch_json(self, url: str) -> Any:
        """GET url and decode JSON; proxy fallback on any failure.

        Raises:
            TransportError: If the proxied request failed as well.
        """
        busted = add_cache_buster(url, self._clock.now_ms())
        try:
            return await self._get_json(busted)
        except _FETCH_ERRORS as direct_exc:
            log.info("transport.direct_failed", url=url, error=str(direct_exc))

        try:
            return await self._get_json(self.proxied(busted))
        except _FETCH_ERRORS as proxy_exc:
            log.error("transport.failed", url=url, error=str(proxy_exc))
            raise TransportError(url, proxy_exc) from proxy_exc

    async def _get_json(self, url: str) -> Any:
        if self._client is not None:
            resp = await self._client.get(url)
            resp.raise_for_status()
            return resp.json()

        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp.json()
