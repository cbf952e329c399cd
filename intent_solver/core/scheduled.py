"""
Long-running monitors for intents that cannot be filled in one shot.

- TWAP / DCA: wait for each chunk or period to become due, then fill it,
  until the ledger reports the intent completed or it expires.
- Limit orders: re-quote periodically until the limit price is met or the
  order expires.

Both loops observe the shared stop signal at the top of every iteration
and delegate pricing and submission to callables supplied by the runner.
"""

import asyncio
import time
from typing import Awaitable, Callable, List, Optional

from intent_solver.core.errors import ChainRpcError
from intent_solver.core.intent.intent import Intent
from intent_solver.core.intent.solution import FillResult, Solution
from intent_solver.utils.logger import get_logger
from intent_solver.utils.timing import pause

logger = get_logger("scheduled")

SolveFn = Callable[[Intent], Awaitable[Optional[Solution]]]
FillFn = Callable[[Intent, Solution], Awaitable[Optional[FillResult]]]


class ScheduledExecutor:
    def __init__(
        self,
        ledger,
        scheduled_check_interval: float = 5.0,
        limit_order_check_interval: float = 15.0,
        stop_event: Optional[asyncio.Event] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.scheduled_check_interval = scheduled_check_interval
        self.limit_order_check_interval = limit_order_check_interval
        self.stop_event = stop_event
        self._clock = clock

    def _stopped(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    async def run_scheduled(self, intent: Intent, solve: SolveFn, fill: FillFn) -> List[FillResult]:
        """
        Fill every due chunk/period of a TWAP or DCA intent.

        Returns:
            Results of the fill attempts made, in order
        """
        results: List[FillResult] = []
        intent_id = intent.id
        logger.info(f"Monitoring {intent.intent_type.name} intent {intent_id} "
                    f"({intent.chunks_executed}/{intent.total_chunks} executed)")

        while not self._stopped():
            if intent.is_expired(self._clock()):
                logger.info(f"Intent {intent_id}: schedule expired")
                break

            try:
                if await self.ledger.is_completed(intent_id):
                    logger.info(f"Intent {intent_id}: all chunks executed")
                    break
                ready = await self.ledger.is_ready_for_execution(intent_id)
                if ready:
                    intent = await self.ledger.get_intent(intent_id)
            except ChainRpcError as e:
                logger.warning(f"Intent {intent_id}: readiness check failed ({e})")
                ready = False

            if ready:
                solution = await solve(intent)
                if solution is None:
                    logger.debug(f"Intent {intent_id}: chunk {intent.chunks_executed + 1} not profitable, waiting")
                else:
                    result = await fill(intent, solution)
                    if result is not None:
                        results.append(result)
                    if result is not None and result.success:
                        logger.info(f"Intent {intent_id}: chunk {intent.chunks_executed + 1}/"
                                    f"{intent.total_chunks} filled ({result.tx_hash})")

            await pause(self.stop_event, self.scheduled_check_interval)

        return results

    async def watch_limit_order(self, intent: Intent, solve: SolveFn, fill: FillFn) -> Optional[FillResult]:
        """Re-quote until the limit is met; None if the order expires unfilled."""
        intent_id = intent.id
        logger.info(f"Watching limit order {intent_id} until {intent.deadline}")

        while not self._stopped():
            if intent.is_expired(self._clock()):
                logger.info(f"Intent {intent_id}: limit order expired")
                return None

            solution = await solve(intent)
            if solution is not None:
                return await fill(intent, solution)

            await pause(self.stop_event, self.limit_order_check_interval)

        return None
