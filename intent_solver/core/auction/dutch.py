"""
Dutch Auction Engine.

The required price starts at start_price and decays linearly to end_price
over `duration` seconds:

    price(elapsed) = start - (start - end) * elapsed // duration

clamped so that elapsed <= 0 gives start_price and elapsed >= duration
gives end_price. Arithmetic is integer and elapsed is whole seconds, the
same computation the ledger performs; every caller (monitoring, wait
estimates, the CLI curve preview) goes through dutch_price().

State machine: Active -> Accepted | Expired. The first solver to accept
wins; a failed accept means a competitor got there first and is reported
as None, never raised.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple

from intent_solver.core.errors import ChainError, ChainRpcError
from intent_solver.core.intent.intent import DutchAuction
from intent_solver.core.intent.solution import FillResult
from intent_solver.utils.logger import get_logger
from intent_solver.utils.timing import pause

logger = get_logger("dutch")

# Fresh (max_price, valid_until) for a stale valuation, or None to give up
Requote = Callable[[], Awaitable[Optional[Tuple[int, Optional[float]]]]]


# =============================================================================
# Price curve
# =============================================================================


def dutch_price(start_price: int, end_price: int, duration: int, elapsed: float) -> int:
    """Linear decay, clamped to [end_price, start_price]."""
    elapsed = int(elapsed)
    if elapsed <= 0:
        return start_price
    if duration <= 0 or elapsed >= duration:
        return end_price
    return start_price - (start_price - end_price) * elapsed // duration


def current_price(auction: DutchAuction, now: Optional[float] = None) -> int:
    now = time.time() if now is None else now
    return dutch_price(auction.start_price, auction.end_price, auction.duration, now - auction.start_time)


def time_to_price(auction: DutchAuction, target: int) -> Optional[int]:
    """
    Smallest elapsed second at which the price is <= target.

    Returns:
        0 if target >= start_price, None if target < end_price (never reached)
    """
    if target >= auction.start_price:
        return 0
    if target < auction.end_price:
        return None

    price_range = auction.start_price - auction.end_price
    if auction.duration <= 0 or price_range <= 0:
        return 0

    drop = auction.start_price - target
    elapsed = -(-drop * auction.duration // price_range)
    return min(elapsed, auction.duration)


def seconds_until_price(auction: DutchAuction, target: int, now: Optional[float] = None) -> Optional[float]:
    """Wall-clock wait until the price reaches target; None if it never will."""
    elapsed = time_to_price(auction, target)
    if elapsed is None:
        return None
    now = time.time() if now is None else now
    return max(auction.start_time + elapsed - now, 0.0)


def price_schedule(auction: DutchAuction, steps: int = 10) -> List[Tuple[int, int]]:
    """(elapsed, price) samples across the auction, both ends included."""
    steps = max(steps, 1)
    points = []
    for i in range(steps + 1):
        elapsed = auction.duration * i // steps
        points.append((elapsed, dutch_price(auction.start_price, auction.end_price, auction.duration, elapsed)))
    return points


# =============================================================================
# Engine
# =============================================================================


@dataclass(frozen=True)
class AcceptedAuction:
    """A Dutch auction this solver won; settlement is still pending."""
    intent_id: int
    price: int
    tx_hash: str


class DutchAuctionEngine:
    """
    Watches a Dutch auction and accepts once the price crosses max_price.

    Args:
        ledger: IntentLedger (or compatible)
        poll_interval: Default seconds between checks
        stop_event: Shared stop signal checked every iteration
        clock: UNIX time source
    """

    def __init__(
        self,
        ledger,
        poll_interval: float = 2.0,
        stop_event: Optional[asyncio.Event] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.poll_interval = poll_interval
        self.stop_event = stop_event
        self._clock = clock

    def _stopped(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    async def current_price(self, intent_id: int) -> int:
        auction = await self.ledger.get_dutch_auction(intent_id)
        return current_price(auction, self._clock())

    async def monitor_and_accept(
        self,
        intent_id: int,
        max_price: int,
        poll_interval: Optional[float] = None,
        deadline: Optional[float] = None,
        valid_until: Optional[float] = None,
        requote: Optional[Requote] = None,
    ) -> Optional[AcceptedAuction]:
        """
        Poll until the price is at or below max_price, then accept.

        max_price comes from a valuation that goes stale at valid_until.
        From then on the limit is replaced by requote(); without a
        requote callback, or when it returns None, monitoring stops.

        Returns:
            AcceptedAuction on success; None if the auction ended, the
            accept failed (a competitor won), the deadline passed, the
            valuation could not be renewed or the engine was stopped
        """
        interval = self.poll_interval if poll_interval is None else poll_interval
        auction: Optional[DutchAuction] = None

        while not self._stopped():
            now = self._clock()
            if deadline is not None and now >= deadline:
                logger.info(f"Intent {intent_id}: gave up waiting for Dutch price")
                return None

            if valid_until is not None and now >= valid_until:
                quote = await requote() if requote is not None else None
                if quote is None:
                    logger.info(f"Intent {intent_id}: valuation expired and was not renewed")
                    return None
                max_price, valid_until = quote[0], quote[1] or None
                logger.debug(f"Intent {intent_id}: re-quoted, accepting at or below {max_price}")

            try:
                if not await self.ledger.is_dutch_active(intent_id):
                    logger.info(f"Intent {intent_id}: Dutch auction no longer active")
                    return None
                if auction is None:
                    auction = await self.ledger.get_dutch_auction(intent_id)
            except ChainRpcError as e:
                logger.warning(f"Intent {intent_id}: Dutch state unavailable ({e}), retrying")
                await pause(self.stop_event, interval)
                continue

            now = self._clock()
            price = current_price(auction, now)
            if price <= max_price:
                logger.info(f"Intent {intent_id}: price {price} <= {max_price}, accepting")
                try:
                    tx_hash = await self.ledger.accept_dutch_auction(intent_id)
                except ChainError as e:
                    logger.info(f"Intent {intent_id}: accept failed, auction lost to another solver ({e})")
                    return None
                logger.info(f"Intent {intent_id}: Dutch auction accepted at {price} ({tx_hash})")
                return AcceptedAuction(intent_id=intent_id, price=price, tx_hash=tx_hash)

            wait = seconds_until_price(auction, max_price, now)
            if wait is None and now >= auction.end_time:
                logger.info(f"Intent {intent_id}: price floor {auction.end_price} above limit {max_price}")
                return None

            delay = interval if wait is None else min(interval, max(wait, 0.0))
            logger.debug(f"Intent {intent_id}: price {price} > {max_price}, next check in {delay:.1f}s")
            await pause(self.stop_event, delay)

        return None

    async def settle(self, intent_id: int) -> FillResult:
        try:
            tx_hash = await self.ledger.settle_dutch_auction(intent_id)
        except ChainError as e:
            logger.error(f"Intent {intent_id}: Dutch settlement failed: {e}")
            return FillResult.failed(str(e), operation="settle_dutch_auction")
        logger.info(f"Intent {intent_id}: Dutch auction settled ({tx_hash})")
        return FillResult.ok(tx_hash, operation="settle_dutch_auction")

    async def participate(
        self,
        intent_id: int,
        max_price: int,
        deadline: Optional[float] = None,
        valid_until: Optional[float] = None,
        requote: Optional[Requote] = None,
    ) -> Optional[FillResult]:
        """monitor_and_accept followed by settle; None if the auction was not won."""
        accepted = await self.monitor_and_accept(
            intent_id, max_price, deadline=deadline, valid_until=valid_until, requote=requote
        )
        if accepted is None:
            return None
        result = await self.settle(intent_id)
        result.output_amount = accepted.price
        return result
