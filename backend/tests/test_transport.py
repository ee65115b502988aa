"""
HTTP Transport Tests

Direct fetch, single proxy fallback, and cache-busting, against
httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
from urllib.parse import quote

import httpx
import pytest

from market_breadth.clock import ManualClock
from market_breadth.data.transport import HttpTransport, TransportError, add_cache_buster

PROXY = "https://proxy.test/raw?url="


def _transport(handler) -> tuple[HttpTransport, list[str]]:
    seen: list[str] = []

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    return HttpTransport(client=client, clock=ManualClock(1234), proxy_url=PROXY), seen


class TestCacheBuster:

    def test_appends_query(self):
        assert add_cache_buster("https://a/b", 99) == "https://a/b?_=99"

    def test_appends_to_existing_query(self):
        assert add_cache_buster("https://a/b?x=1", 99) == "https://a/b?x=1&_=99"


class TestFetchJson:

    def test_direct_success(self):
        transport, seen = _transport(lambda req: httpx.Response(200, json={"ok": True}))
        assert asyncio.run(transport.fetch_json("https://api.test/x")) == {"ok": True}
        assert len(seen) == 1
        assert "_=1234" in seen[0]

    def test_proxy_fallback_on_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "proxy.test":
                return httpx.Response(200, json=[1, 2])
            return httpx.Response(503)

        transport, seen = _transport(handler)
        assert asyncio.run(transport.fetch_json("https://api.test/x")) == [1, 2]
        assert len(seen) == 2
        assert seen[1].startswith("https://proxy.test/raw")

    def test_proxy_fallback_on_bad_json(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "proxy.test":
                return httpx.Response(200, json={"via": "proxy"})
            return httpx.Response(200, content=b"<html>")

        transport, _ = _transport(handler)
        assert asyncio.run(transport.fetch_json("https://api.test/x")) == {"via": "proxy"}

    def test_both_fail_raises(self):
        transport, seen = _transport(lambda req: httpx.Response(500))
        with pytest.raises(TransportError) as excinfo:
            asyncio.run(transport.fetch_json("https://api.test/x"))
        assert excinfo.value.url == "https://api.test/x"
        assert len(seen) == 2

    def test_connection_error_falls_back(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "proxy.test":
                return httpx.Response(200, json={"ok": 1})
            raise httpx.ConnectError("refused", request=request)

        transport, _ = _transport(handler)
        assert asyncio.run(transport.fetch_json("https://api.test/x")) == {"ok": 1}

    def test_invalid_url_falls_back(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "proxy.test":
                return httpx.Response(200, json={"ok": 2})
            raise httpx.InvalidURL("bad url")

        transport, seen = _transport(handler)
        assert asyncio.run(transport.fetch_json("https://api.test/x")) == {"ok": 2}
        assert len(seen) == 2

    def test_invalid_url_on_both_attempts_raises_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.InvalidURL("bad url")

        transport, seen = _transport(handler)
        with pytest.raises(TransportError) as excinfo:
            asyncio.run(transport.fetch_json("https://api.test/x"))
        assert isinstance(excinfo.value.cause, httpx.InvalidURL)
        assert len(seen) == 2

    def test_proxied_url_is_encoded(self):
        transport = HttpTransport(clock=ManualClock(0), proxy_url=PROXY)
        url = "https://api.test/x?a=1&b=2"
        assert transport.proxied(url) == PROXY + quote(url, safe="")
