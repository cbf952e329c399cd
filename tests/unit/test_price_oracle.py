"""
Unit tests for the price oracle.

Tests cover:
1. Stablecoin and alias handling
2. Feed parsing and caching
3. Fallback chain (stale cache, static table, zero)
4. Quotes in base units
"""

import asyncio
from decimal import Decimal
from unittest.mock import patch

import pytest

from conftest import FakeClock
from intent_solver.core.pricing.oracle import PriceOracle, normalize_symbol


class MockResponse:
    """Mock aiohttp response."""

    def __init__(self, json_data=None, status=200):
        self._json_data = json_data
        self.status = status

    async def json(self):
        return self._json_data

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


class MockSession:
    """Mock aiohttp ClientSession."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        if self.responses:
            return self.responses.pop(0)
        return MockResponse(status=500)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def feed_clock():
    return FakeClock(now=1000.0)


@pytest.fixture
def oracle(feed_clock):
    return PriceOracle("http://prices.test/api", cache_seconds=60, clock=feed_clock)


# =============================================================================
# Lookup Tests
# =============================================================================


class TestPriceLookup:
    """Tests for price_usd."""

    def test_stablecoins_are_one_dollar(self, oracle):
        """Stablecoins never hit the feed."""
        async def run_test():
            with patch("aiohttp.ClientSession") as mock_session_cls:
                session = MockSession()
                mock_session_cls.return_value = session

                assert await oracle.price_usd("USDC") == 1.0
                assert await oracle.price_usd("tusdc") == 1.0
                assert session.requests == []

        asyncio.run(run_test())

    def test_testnet_alias(self):
        assert normalize_symbol(" tMOVE ") == "MOVE"
        assert normalize_symbol("eth") == "ETH"

    def test_feed_formats(self, oracle):
        """Flat and nested feed responses are both understood."""
        async def run_test():
            with patch("aiohttp.ClientSession") as mock_session_cls:
                session = MockSession([
                    MockResponse({"MOVE": 0.42}),
                    MockResponse({"ETH": {"usd": 3000.5}}),
                ])
                mock_session_cls.return_value = session

                assert await oracle.price_usd("tMOVE") == 0.42
                assert await oracle.price_usd("ETH") == 3000.5
                assert session.requests[0]["params"] == {"symbols": "MOVE"}

        asyncio.run(run_test())

    def test_cached_within_window(self, oracle, feed_clock):
        """A fresh cache entry is served without a request."""
        async def run_test():
            with patch("aiohttp.ClientSession") as mock_session_cls:
                session = MockSession([MockResponse({"MOVE": 0.42}), MockResponse({"MOVE": 0.55})])
                mock_session_cls.return_value = session

                assert await oracle.price_usd("MOVE") == 0.42
                feed_clock.advance(59)
                assert await oracle.price_usd("MOVE") == 0.42
                assert len(session.requests) == 1

                feed_clock.advance(2)
                assert await oracle.price_usd("MOVE") == 0.55
                assert len(session.requests) == 2

        asyncio.run(run_test())

    def test_stale_cache_on_failure(self, oracle, feed_clock):
        """When the feed fails, the last known price is used."""
        async def run_test():
            with patch("aiohttp.ClientSession") as mock_session_cls:
                mock_session_cls.return_value = MockSession([MockResponse({"MOVE": 0.42}), MockResponse(status=502)])

                await oracle.price_usd("MOVE")
                feed_clock.advance(120)
                assert await oracle.price_usd("MOVE") == 0.42

        asyncio.run(run_test())

    def test_static_fallback(self, oracle):
        """With no cache, the static fallback table is used."""
        async def run_test():
            with patch("aiohttp.ClientSession") as mock_session_cls:
                mock_session_cls.return_value = MockSession([MockResponse(status=500)])
                assert await oracle.price_usd("MOVE") == 0.036

        asyncio.run(run_test())

    def test_unknown_token_is_zero(self, oracle):
        """No feed, no cache, no fallback: 0.0, never an exception."""
        async def run_test():
            with patch("aiohttp.ClientSession") as mock_session_cls:
                mock_session_cls.return_value = MockSession([MockResponse({"XYZ": "n/a"})])
                assert await oracle.price_usd("XYZ") == 0.0

        asyncio.run(run_test())

    def test_cache_window_validated(self):
        with pytest.raises(ValueError):
            PriceOracle("http://prices.test/api", cache_seconds=10)
        with pytest.raises(ValueError):
            PriceOracle("http://prices.test/api", cache_seconds=301)


# =============================================================================
# Quote Tests
# =============================================================================


class TestQuote:
    """Tests for exchange_rate and quote."""

    def _priced(self, prices, spread_bps=0):
        oracle = PriceOracle("http://prices.test/api", spread_bps=spread_bps)
        oracle.fallback_prices = {}

        async def fixed(symbol):
            return prices.get(normalize_symbol(symbol), 0.0)

        oracle.price_usd = fixed
        return oracle

    def test_exchange_rate(self):
        oracle = self._priced({"MOVE": 0.5, "USDC": 1.0})
        assert asyncio.run(oracle.exchange_rate("MOVE", "USDC")) == Decimal("0.5")
        assert asyncio.run(oracle.exchange_rate("USDC", "MOVE")) == Decimal(2)

    def test_quote_scales_decimals(self):
        """100 MOVE (8 decimals) at $0.50 is 50 USDC (6 decimals)."""
        oracle = self._priced({"MOVE": 0.5, "USDC": 1.0})
        assert asyncio.run(oracle.quote("MOVE", "USDC", 100 * 10**8, 8, 6)) == 50 * 10**6

    def test_quote_rounds_down(self):
        oracle = self._priced({"A": 1.0, "B": 3.0})
        assert asyncio.run(oracle.quote("A", "B", 10, 0, 0)) == 3

    def test_quote_applies_spread(self):
        """The oracle's default spread is deducted unless overridden."""
        oracle = self._priced({"MOVE": 0.5, "USDC": 1.0}, spread_bps=100)
        assert asyncio.run(oracle.quote("MOVE", "USDC", 10**8, 8, 8)) == 49_500_000
        assert asyncio.run(oracle.quote("MOVE", "USDC", 10**8, 8, 8, spread_bps=0)) == 50_000_000

    def test_missing_price_quotes_zero(self):
        oracle = self._priced({"USDC": 1.0})
        assert asyncio.run(oracle.quote("MOVE", "USDC", 10**8, 8, 8)) == 0

    def test_zero_amount(self):
        oracle = self._priced({"MOVE": 0.5, "USDC": 1.0})
        assert asyncio.run(oracle.quote("MOVE", "USDC", 0, 8, 8)) == 0
