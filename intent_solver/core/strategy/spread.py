"""
Spread-capture strategy for swaps and limit orders.

Quotes at the oracle rate, delivers the quote minus spread_bps and keeps
the difference. Exposure per input token is capped at max_exposure.

Exposure is reserved inside calculate_solution, under a lock, before the
solution is returned, so concurrent callers can never jointly exceed the
cap. The reservation is released by on_fill_result when the fill fails or
is skipped; a successful fill keeps it.
"""

import threading
from typing import Dict, Optional

from intent_solver.core.intent.intent import Intent, IntentType
from intent_solver.core.intent.solution import Solution, apply_spread
from intent_solver.core.strategy.base import Strategy
from intent_solver.crypto import normalize_address
from intent_solver.utils.logger import get_logger

logger = get_logger("strategy")

DEFAULT_SPREAD_BPS = 50
DEFAULT_MAX_EXPOSURE = 1_000_000_000_000


class SpreadCaptureStrategy(Strategy):
    name = "spread"

    def __init__(
        self,
        oracle,
        spread_bps: int = DEFAULT_SPREAD_BPS,
        max_exposure: int = DEFAULT_MAX_EXPOSURE,
        **kwargs,
    ):
        super().__init__(oracle, **kwargs)
        self.spread_bps = spread_bps
        self.max_exposure = max_exposure
        self._exposure: Dict[str, int] = {}
        self._lock = threading.Lock()

    def can_handle(self, intent: Intent) -> bool:
        return intent.intent_type in (IntentType.SWAP, IntentType.LIMIT_ORDER)

    # =========================================================================
    # Exposure
    # =========================================================================

    @staticmethod
    def _token_key(intent: Intent) -> str:
        return normalize_address(intent.input_token.address)

    def exposure(self, token_address: str) -> int:
        with self._lock:
            return self._exposure.get(normalize_address(token_address), 0)

    def _reserve(self, token: str, amount: int) -> bool:
        with self._lock:
            current = self._exposure.get(token, 0)
            if current + amount > self.max_exposure:
                return False
            self._exposure[token] = current + amount
            return True

    def _release(self, token: str, amount: int) -> None:
        with self._lock:
            remaining = max(self._exposure.get(token, 0) - amount, 0)
            if remaining:
                self._exposure[token] = remaining
            else:
                self._exposure.pop(token, None)

    def reset_exposure(self) -> None:
        with self._lock:
            self._exposure.clear()

    # =========================================================================
    # Strategy
    # =========================================================================

    async def calculate_solution(self, intent: Intent) -> Optional[Solution]:
        if self.is_expired(intent):
            return None

        amount = intent.fill_amount
        token = self._token_key(intent)
        if self.exposure(token) + amount > self.max_exposure:
            logger.debug(f"Intent {intent.id}: exposure limit reached for {intent.input_token.symbol}")
            return None

        quote = await self.raw_quote(intent, spread_bps=0)
        if quote <= 0:
            return None

        output = apply_spread(quote, self.spread_bps)
        if output < intent.min_output() or output <= 0:
            logger.debug(f"Intent {intent.id}: output {output} below minimum {intent.min_output()}")
            return None

        # Re-checked under the lock: another task may have reserved meanwhile
        if not self._reserve(token, amount):
            logger.debug(f"Intent {intent.id}: exposure limit reached for {intent.input_token.symbol}")
            return None

        return self.build_solution(intent, output, quote)

    def estimate_profit(self, intent: Intent, solution: Solution) -> int:
        return solution.quoted_output - solution.output_amount

    def on_fill_result(self, intent: Intent, solution: Solution, success: bool) -> None:
        if not success:
            self._release(self._token_key(intent), solution.input_amount)
