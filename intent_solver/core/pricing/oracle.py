"""
Price Oracle - USD reference prices and implied exchange rates.

There is no on-chain order book, so quotes come from composing two USD
prices from an external feed. Lookups never raise: a failing feed falls
back to the last cached price, then to a static table, then to 0.0, and a
zero price produces a zero quote which strategies treat as "no solution".
"""

import asyncio
import time
from decimal import ROUND_FLOOR, Decimal
from typing import Callable, Dict, Optional, Tuple

import aiohttp

from intent_solver.core.intent.solution import apply_spread
from intent_solver.utils.logger import get_logger

logger = get_logger("oracle")


# =============================================================================
# Constants
# =============================================================================

MIN_CACHE_SECONDS = 30
MAX_CACHE_SECONDS = 300

STABLECOINS = frozenset({"USDC", "USDT", "DAI", "TUSDC", "TUSDT"})

# Testnet symbols priced as their mainnet counterparts
SYMBOL_ALIASES = {
    "TMOVE": "MOVE",
    "TETH": "ETH",
    "TBTC": "BTC",
}

FALLBACK_PRICES: Dict[str, float] = {
    "MOVE": 0.036,
}


def normalize_symbol(symbol: str) -> str:
    key = symbol.strip().upper()
    return SYMBOL_ALIASES.get(key, key)


class PriceFeedError(Exception):
    pass


# =============================================================================
# Oracle
# =============================================================================


class PriceOracle:
    """
    Cached USD price source.

    The cache is owned by the instance and only touched from the event
    loop thread.
    """

    def __init__(
        self,
        feed_url: str,
        cache_seconds: int = MAX_CACHE_SECONDS,
        spread_bps: int = 0,
        timeout: float = 10.0,
        fallback_prices: Optional[Dict[str, float]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not MIN_CACHE_SECONDS <= cache_seconds <= MAX_CACHE_SECONDS:
            raise ValueError(f"cache_seconds must be between {MIN_CACHE_SECONDS} and {MAX_CACHE_SECONDS}")
        self.feed_url = feed_url
        self.cache_seconds = cache_seconds
        self.spread_bps = spread_bps
        self.timeout = timeout
        self.fallback_prices = dict(FALLBACK_PRICES if fallback_prices is None else fallback_prices)
        self._clock = clock
        self._cache: Dict[str, Tuple[float, float]] = {}

    async def _fetch_price(self, symbol: str) -> float:
        """One feed request. Raises PriceFeedError on any problem."""
        try:
            timeout_obj = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout_obj) as session:
                async with session.request(
                    "GET", self.feed_url, params={"symbols": symbol}, headers={"Accept": "application/json"}
                ) as resp:
                    if resp.status >= 400:
                        raise PriceFeedError(f"HTTP {resp.status}")
                    data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PriceFeedError(str(e)) from e

        if not isinstance(data, dict):
            raise PriceFeedError("feed returned a non-object")
        value = data.get(symbol, data.get(symbol.lower()))
        if isinstance(value, dict):
            value = value.get("usd")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise PriceFeedError(f"no usable price for {symbol}")
        return float(value)

    async def price_usd(self, symbol: str) -> float:
        """USD price of one whole token. Never raises."""
        key = normalize_symbol(symbol)
        if key in STABLECOINS:
            return 1.0

        cached = self._cache.get(key)
        now = self._clock()
        if cached and now - cached[1] < self.cache_seconds:
            return cached[0]

        try:
            price = await self._fetch_price(key)
        except PriceFeedError as e:
            if cached:
                logger.warning(f"Price feed failed for {key} ({e}), using cached ${cached[0]}")
                return cached[0]
            fallback = self.fallback_prices.get(key, 0.0)
            logger.warning(f"Price feed failed for {key} ({e}), using fallback ${fallback}")
            return fallback

        self._cache[key] = (price, now)
        logger.debug(f"Fetched price for {key}: ${price}")
        return price

    async def exchange_rate(self, token_in: str, token_out: str) -> Decimal:
        """Output tokens per input token in whole units; 0 if either price is unknown."""
        price_in, price_out = await asyncio.gather(self.price_usd(token_in), self.price_usd(token_out))
        if price_in <= 0 or price_out <= 0:
            return Decimal(0)
        return Decimal(str(price_in)) / Decimal(str(price_out))

    async def quote(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        decimals_in: int,
        decimals_out: int,
        spread_bps: Optional[int] = None,
    ) -> int:
        """
        Output amount (base units) for amount_in, after the solver's spread.

        Returns:
            0 when either price is unavailable
        """
        rate = await self.exchange_rate(token_in, token_out)
        if rate == 0 or amount_in <= 0:
            return 0

        raw = Decimal(amount_in) * rate * (Decimal(10) ** decimals_out) / (Decimal(10) ** decimals_in)
        output = int(raw.to_integral_value(rounding=ROUND_FLOOR))
        spread = self.spread_bps if spread_bps is None else spread_bps
        return apply_spread(output, spread)
