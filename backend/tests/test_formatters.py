"""
Formatter and Clock Tests
"""

from __future__ import annotations

from market_breadth.clock import ManualClock, SystemClock
from market_breadth.utils import format_full_date, format_pct, format_short_date, format_value


class TestFormatters:

    def test_dates_are_utc(self):
        # 2024-01-01 23:30 UTC stays on the 1st whatever the host timezone
        ts = 1704067200000 + (23 * 60 + 30) * 60_000
        assert format_short_date(ts) == "01/01"
        assert format_full_date(ts) == "01/01/2024"

    def test_format_value(self):
        assert format_value(1234.567) == "1234.6"
        assert format_value(1234.567, decimals=2) == "1234.57"
        assert format_value(0) == "0.0"
        assert format_value(None) == "-"
        assert format_value(float("nan")) == "-"

    def test_format_pct(self):
        assert format_pct(12.345) == "+12.35%"
        assert format_pct(-3.1, decimals=1) == "-3.1%"
        assert format_pct(0, decimals=1) == "0.0%"
        assert format_pct(5, show_sign=False) == "5.00%"


class TestClock:

    def test_manual_clock(self):
        clock = ManualClock(1000)
        assert clock.now_ms() == 1000
        clock.advance(seconds=1.5)
        assert clock.now_ms() == 2500
        clock.advance(ms=5)
        assert clock.now_ms() == 2505
        clock.set(0)
        assert clock.now_ms() == 0

    def test_system_clock_is_epoch_ms(self):
        assert SystemClock().now_ms() > 1_600_000_000_000
