"""
Sealed-Bid Auction Engine.

Solvers submit bids (output amounts) before the auction's end time; the
ledger picks one winner after it closes.

    Active -> Selecting -> Completed | Cancelled

Closing is permissionless once end_time has passed, so every participant
nudges a stale auction with close_auction() while it waits. Losing is a
normal outcome and returns None.
"""

import asyncio
import time
from dataclasses import replace
from typing import Callable, Optional

from intent_solver.core.errors import ChainError, ChainRpcError
from intent_solver.core.intent.intent import Intent, SealedBidStatus
from intent_solver.core.intent.solution import FillResult, Solution, apply_premium, calculate_price
from intent_solver.crypto import addresses_equal
from intent_solver.utils.logger import get_logger
from intent_solver.utils.timing import pause

logger = get_logger("sealed")


class SealedBidEngine:
    """
    Bids in, and settles, sealed-bid auctions.

    Args:
        ledger: IntentLedger (or compatible); ledger.address is our identity
        poll_interval: Default seconds between status checks
        premium_bps: Added to a solution's output by with_premium(), capped at the quote
        stop_event: Shared stop signal checked every iteration
        clock: UNIX time source
    """

    def __init__(
        self,
        ledger,
        poll_interval: float = 2.0,
        premium_bps: int = 0,
        stop_event: Optional[asyncio.Event] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.poll_interval = poll_interval
        self.premium_bps = premium_bps
        self.stop_event = stop_event
        self._clock = clock

    def _stopped(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    # =========================================================================
    # Operations
    # =========================================================================

    async def submit_bid(self, intent_id: int, output_amount: int, execution_price: int) -> FillResult:
        """Submit one bid. The ledger may accept several from the same solver."""
        try:
            tx_hash = await self.ledger.submit_solution(intent_id, output_amount, execution_price)
        except ChainError as e:
            logger.info(f"Intent {intent_id}: bid rejected: {e}")
            return FillResult.failed(str(e), operation="submit_solution")
        logger.info(f"Intent {intent_id}: bid {output_amount} submitted ({tx_hash})")
        return FillResult.ok(tx_hash, operation="submit_solution", output_amount=output_amount)

    async def close_auction(self, intent_id: int) -> bool:
        """Best-effort close; failure (already closed, too early) is expected."""
        try:
            tx_hash = await self.ledger.close_auction(intent_id)
        except ChainError as e:
            logger.debug(f"Intent {intent_id}: close_auction skipped: {e}")
            return False
        logger.info(f"Intent {intent_id}: auction closed ({tx_hash})")
        return True

    async def settle(self, intent_id: int) -> FillResult:
        try:
            tx_hash = await self.ledger.settle_from_auction(intent_id)
        except ChainError as e:
            logger.error(f"Intent {intent_id}: settlement failed: {e}")
            return FillResult.failed(str(e), operation="settle_from_auction")
        logger.info(f"Intent {intent_id}: auction settled ({tx_hash})")
        return FillResult.ok(tx_hash, operation="settle_from_auction")

    async def monitor_and_settle(
        self,
        intent_id: int,
        poll_interval: Optional[float] = None,
        max_wait: Optional[float] = None,
    ) -> Optional[FillResult]:
        """
        Poll the auction until it resolves.

        Returns:
            Settlement result if this solver won; None if another solver
            won, the auction was cancelled, max_wait elapsed or the engine
            was stopped
        """
        interval = self.poll_interval if poll_interval is None else poll_interval
        started = self._clock()

        while not self._stopped():
            try:
                auction = await self.ledger.get_auction(intent_id)
            except ChainRpcError as e:
                logger.warning(f"Intent {intent_id}: auction state unavailable ({e}), retrying")
                auction = None

            if auction is not None:
                if auction.status == SealedBidStatus.COMPLETED:
                    if addresses_equal(auction.winner, self.ledger.address):
                        logger.info(f"Intent {intent_id}: won sealed-bid auction")
                        return await self.settle(intent_id)
                    logger.info(f"Intent {intent_id}: auction won by {auction.winner}")
                    return None

                if auction.status == SealedBidStatus.CANCELLED:
                    logger.info(f"Intent {intent_id}: auction cancelled")
                    return None

                if self._clock() >= auction.end_time:
                    await self.close_auction(intent_id)

            if max_wait is not None and self._clock() - started >= max_wait:
                logger.info(f"Intent {intent_id}: stopped waiting for auction result")
                return None

            await pause(self.stop_event, interval)

        return None

    # =========================================================================
    # Full participation
    # =========================================================================

    def bid_amount(self, solution: Solution) -> int:
        """Solution output raised by premium_bps, never above the unadjusted quote."""
        bid = apply_premium(solution.output_amount, self.premium_bps)
        if solution.quoted_output:
            bid = min(bid, max(solution.quoted_output, solution.output_amount))
        return bid

    def with_premium(self, solution: Solution) -> Solution:
        """
        The solution as it would be bid with the premium applied.

        The caller gates this candidate on profit like any other solution
        and bids the plain one when the premium leaves nothing over gas.
        """
        amount = self.bid_amount(solution)
        if amount == solution.output_amount:
            return solution
        return replace(solution, output_amount=amount)

    async def participate(
        self,
        intent: Intent,
        solution: Solution,
        max_wait: Optional[float] = None,
    ) -> Optional[FillResult]:
        """
        Bid solution.output_amount, then wait for the outcome.

        Returns:
            The settlement result, or None if the bid failed or we lost
        """
        amount = solution.output_amount
        price = calculate_price(
            solution.input_amount or intent.fill_amount,
            amount,
            intent.input_token.decimals,
            intent.output_token.decimals,
        )
        bid = await self.submit_bid(intent.id, amount, price)
        if not bid.success:
            return None

        result = await self.monitor_and_settle(intent.id, max_wait=max_wait)
        if result is not None:
            result.output_amount = amount
        return result
