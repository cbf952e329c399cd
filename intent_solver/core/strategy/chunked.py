"""
Chunk strategy for scheduled intents (TWAP and DCA).

Quotes one chunk (TWAP) or one period (DCA) at a time. TWAP intents carry
a max slippage bound; a chunk whose spread-adjusted output falls below the
unadjusted quote minus that bound is not filled.
"""

from typing import Optional

from intent_solver.core.intent.intent import Intent, IntentType, TwapTerms
from intent_solver.core.intent.solution import Solution, apply_slippage, apply_spread
from intent_solver.core.strategy.base import Strategy


class ChunkedStrategy(Strategy):
    name = "chunked"

    def __init__(self, oracle, spread_bps: int = 10, **kwargs):
        super().__init__(oracle, **kwargs)
        self.spread_bps = spread_bps

    def can_handle(self, intent: Intent) -> bool:
        return intent.intent_type in (IntentType.TWAP, IntentType.DCA)

    async def calculate_solution(self, intent: Intent) -> Optional[Solution]:
        if self.is_expired(intent) or intent.chunks_executed >= intent.total_chunks:
            return None

        quote = await self.raw_quote(intent, spread_bps=0)
        if quote <= 0:
            return None

        output = apply_spread(quote, self.spread_bps)
        if isinstance(intent.terms, TwapTerms):
            floor = apply_slippage(quote, intent.terms.max_slippage_bps)
            if output < floor:
                return None

        return self.build_solution(intent, output, quote)

    def estimate_profit(self, intent: Intent, solution: Solution) -> int:
        return solution.quoted_output - solution.output_amount
