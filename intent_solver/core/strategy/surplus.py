"""
Surplus-threshold strategy for swaps.

Fills a swap only when the oracle quote beats the user's minimum output by
at least min_profit_bps. The surplus over the minimum is the expected
profit.
"""

from typing import Optional

from intent_solver.core.intent.intent import Intent, IntentType
from intent_solver.core.intent.solution import Solution, surplus_bps
from intent_solver.core.strategy.base import Strategy
from intent_solver.utils.logger import get_logger

logger = get_logger("strategy")


class SurplusStrategy(Strategy):
    name = "surplus"

    def __init__(self, oracle, min_profit_bps: int = 10, **kwargs):
        super().__init__(oracle, **kwargs)
        self.min_profit_bps = min_profit_bps

    def can_handle(self, intent: Intent) -> bool:
        return intent.intent_type == IntentType.SWAP

    async def calculate_solution(self, intent: Intent) -> Optional[Solution]:
        if self.is_expired(intent):
            logger.debug(f"Intent {intent.id}: expired")
            return None

        quote = await self.raw_quote(intent)
        if quote <= 0:
            logger.debug(f"Intent {intent.id}: no price for {intent.input_token.symbol}/{intent.output_token.symbol}")
            return None

        min_out = intent.min_output()
        if quote < min_out:
            logger.debug(f"Intent {intent.id}: quote {quote} below minimum {min_out}")
            return None

        bps = surplus_bps(quote, min_out)
        if bps < self.min_profit_bps:
            logger.debug(f"Intent {intent.id}: surplus {bps} bps below {self.min_profit_bps} bps")
            return None

        return self.build_solution(intent, quote, quote)

    def estimate_profit(self, intent: Intent, solution: Solution) -> int:
        return solution.output_amount - intent.min_output()
