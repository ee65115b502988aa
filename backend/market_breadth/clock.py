"""
Market Breadth: Clock

Wall-clock access for the cache and fetchers. Everything that asks
"what time is it" takes a Clock so tests can pin and advance time.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> int:
        """Current time as epoch milliseconds."""
        ...


class SystemClock:
    """Clock backed by the host wall clock."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start_ms: int = 0):
        self._now = start_ms

    def now_ms(self) -> int:
        return self._now

    def set(self, value_ms: int) -> None:
        self._now = value_ms

    def advance(self, seconds: float = 0, ms: int = 0) -> None:
        self._now += int(seconds * 1000) + ms
