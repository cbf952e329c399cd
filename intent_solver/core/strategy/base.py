"""
Strategy framework.

A strategy decides whether and how to fill an intent:
- can_handle(intent)                 cheap shape check
- calculate_solution(intent)         Solution, or None for "no viable fill"
- estimate_profit(intent, solution)  signed amount in output-token units
- on_fill_result(...)                hook after the fill attempt resolves

"No viable solution" (expired, below minimum output, over a limit) is
always None, never an exception. StrategySet tries strategies in
registration order and uses the first whose can_handle is true.
"""

import time
from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional

from intent_solver.core.intent.intent import Intent
from intent_solver.core.intent.solution import Solution, calculate_price
from intent_solver.core.pricing.oracle import PriceOracle

# Solution lifetime; Dutch monitoring re-quotes once it lapses
SOLUTION_TTL_SECONDS = 60


class Strategy(ABC):
    """Base class for solving strategies."""

    name = "strategy"

    def __init__(self, oracle: PriceOracle, clock: Callable[[], float] = time.time):
        self.oracle = oracle
        self._clock = clock

    @abstractmethod
    def can_handle(self, intent: Intent) -> bool:
        ...

    @abstractmethod
    async def calculate_solution(self, intent: Intent) -> Optional[Solution]:
        ...

    def estimate_profit(self, intent: Intent, solution: Solution) -> int:
        """Default: output above the intent's floor."""
        return solution.output_amount - intent.min_output()

    def on_fill_result(self, intent: Intent, solution: Solution, success: bool) -> None:
        """Called once per solution after the fill succeeded, failed or was skipped."""

    # =========================================================================
    # Helpers
    # =========================================================================

    def is_expired(self, intent: Intent) -> bool:
        return intent.is_expired(self._clock())

    async def raw_quote(self, intent: Intent, amount_in: Optional[int] = None, spread_bps: Optional[int] = None) -> int:
        amount = intent.fill_amount if amount_in is None else amount_in
        return await self.oracle.quote(
            intent.input_token.symbol,
            intent.output_token.symbol,
            amount,
            intent.input_token.decimals,
            intent.output_token.decimals,
            spread_bps=spread_bps,
        )

    def build_solution(self, intent: Intent, output_amount: int, quoted_output: int) -> Solution:
        amount_in = intent.fill_amount
        expires_at = int(self._clock()) + SOLUTION_TTL_SECONDS
        if intent.deadline:
            expires_at = min(expires_at, intent.deadline)
        return Solution(
            intent_id=intent.id,
            output_amount=output_amount,
            execution_price=calculate_price(
                amount_in, output_amount, intent.input_token.decimals, intent.output_token.decimals
            ),
            input_amount=amount_in,
            quoted_output=quoted_output,
            expires_at=expires_at,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class StrategySet:
    """Ordered strategies; the first match wins."""

    def __init__(self, strategies: Optional[Iterable[Strategy]] = None):
        self._strategies: List[Strategy] = list(strategies or [])

    def register(self, strategy: Strategy) -> None:
        self._strategies.append(strategy)

    def select(self, intent: Intent) -> Optional[Strategy]:
        for strategy in self._strategies:
            if strategy.can_handle(intent):
                return strategy
        return None

    def __iter__(self):
        return iter(self._strategies)

    def __len__(self) -> int:
        return len(self._strategies)
