"""
Shared test fixtures: a pinned clock, an in-memory cache store, and a
scripted transport that never touches the network.
"""

from __future__ import annotations

import os

# Keep the default cache store off Redis for the whole test session
os.environ.setdefault("CACHE_BACKEND", "memory")

import pytest

from market_breadth.cache import CacheStore, MemoryBackend
from market_breadth.clock import ManualClock
from market_breadth.data.transport import TransportError

# 2024-06-03 00:00:00 UTC
NOW_MS = 1717372800000
DAY_MS = 86_400_000


class FakeTransport:
    """Answers fetch_json from scripted routes; first matching route wins.

    A route's response may be a payload or an exception instance to raise.
    Unmatched URLs fail like a dead upstream.
    """

    def __init__(self):
        self.routes: list[tuple] = []
        self.calls: list[str] = []

    def add(self, match, response) -> "FakeTransport":
        self.routes.append((match, response))
        return self

    async def fetch_json(self, url: str):
        self.calls.append(url)
        for match, response in self.routes:
            hit = match(url) if callable(match) else match in url
            if hit:
                if isinstance(response, Exception):
                    raise response
                return response
        raise TransportError(url, LookupError("no route"))


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(NOW_MS)


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def cache(backend, clock) -> CacheStore:
    return CacheStore(backend, clock=clock, prefix="TEST_V1")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
