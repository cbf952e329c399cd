"""
Shared fixtures: an in-memory ledger, a fixed-price oracle and intent
factories.
"""

import itertools
from typing import Any, Dict, List, Optional

import pytest

from intent_solver.core.config import SolverConfig
from intent_solver.core.errors import ChainRpcError
from intent_solver.core.intent.intent import (
    DcaTerms,
    DutchAuction,
    Intent,
    IntentStatus,
    LimitOrderTerms,
    SealedBidAuction,
    SwapTerms,
    TokenInfo,
    TwapTerms,
)
from intent_solver.core.pricing.oracle import STABLECOINS, PriceOracle, normalize_symbol

NOW = 1_700_000_000

SOLVER_ADDRESS = "0x" + "a1" * 32
OTHER_SOLVER = "0x" + "b2" * 32
USER_ADDRESS = "0x" + "c3" * 32
CONTRACT_ADDRESS = "0x" + "d4" * 32

MOVE = TokenInfo(address="0x" + "0" * 63 + "a", symbol="MOVE", decimals=8)
USDC = TokenInfo(address="0x" + "0" * 63 + "b", symbol="USDC", decimals=8)

ONE = 10**8


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Manually advanced UNIX clock; `step` is added after every read."""

    def __init__(self, now: float = NOW, step: float = 0.0):
        self.now = now
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Oracle
# =============================================================================


class StaticOracle(PriceOracle):
    """PriceOracle with fixed USD prices instead of a feed."""

    def __init__(self, prices: Optional[Dict[str, float]] = None, spread_bps: int = 0):
        super().__init__("http://prices.test/api", spread_bps=spread_bps)
        self.prices = dict(prices or {})
        self.requests: List[str] = []

    async def price_usd(self, symbol: str) -> float:
        key = normalize_symbol(symbol)
        self.requests.append(key)
        if key in self.prices:
            return self.prices[key]
        return 1.0 if key in STABLECOINS else 0.0


# =============================================================================
# Ledger
# =============================================================================


class FakeLedger:
    """
    In-memory stand-in for IntentLedger.

    Entry functions record (name, args) in `calls` and return fresh
    transaction hashes; set `failures[name]` to an exception to make that
    function raise instead.
    """

    def __init__(self, address: Optional[str] = SOLVER_ADDRESS):
        self.address = address
        self.intents: Dict[int, Intent] = {}
        self.decode_errors: List[Exception] = []
        self.dutch: Dict[int, DutchAuction] = {}
        self.sealed: Dict[int, List[SealedBidAuction]] = {}
        self.ready: Dict[int, List[bool]] = {}
        self.completed: Dict[int, bool] = {}
        self.solver_info: Optional[Dict[str, Any]] = {"is_active": True, "stake": 1000}
        self.fee_bps = 0
        self.fillable: Dict[int, bool] = {}
        self.min_outputs: Dict[int, int] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.pending_calls = 0
        self._hashes = itertools.count(1)

    def add(self, intent: Intent) -> Intent:
        self.intents[intent.id] = intent
        return intent

    def _maybe_fail(self, name: str) -> None:
        error = self.failures.get(name)
        if error is not None:
            raise error

    async def _entry(self, name: str, *args) -> str:
        self.calls.append((name, args))
        self._maybe_fail(name)
        return f"0xtx{next(self._hashes)}"

    def called(self, name: str) -> List[tuple]:
        return [args for call, args in self.calls if call == name]

    # Discovery

    async def get_pending_intents(self, on_error=None) -> List[Intent]:
        self.pending_calls += 1
        self._maybe_fail("get_pending_intents")
        for error in self.decode_errors:
            if on_error:
                on_error(error)
        return [i for i in self.intents.values() if i.status.is_open]

    async def get_intent(self, intent_id: int) -> Intent:
        self._maybe_fail("get_intent")
        return self.intents[intent_id]

    async def total_intent_count(self) -> int:
        return len(self.intents)

    # Direct fills

    async def solve_swap(self, intent_id, output_amount):
        return await self._entry("solve_swap", intent_id, output_amount)

    async def solve_limit_order(self, intent_id, output_amount):
        return await self._entry("solve_limit_order", intent_id, output_amount)

    async def solve_twap_chunk(self, intent_id, output_amount):
        return await self._entry("solve_twap_chunk", intent_id, output_amount)

    async def solve_dca_period(self, intent_id, output_amount):
        return await self._entry("solve_dca_period", intent_id, output_amount)

    # Settlement checks

    async def can_fill(self, intent_id, solver=None):
        return self.fillable.get(intent_id, True)

    async def calculate_min_output_for_fill(self, intent_id, fill_input):
        self._maybe_fail("calculate_min_output_for_fill")
        return self.min_outputs.get(intent_id, 0)

    async def get_fee_bps(self):
        return self.fee_bps

    # Dutch auctions

    async def get_dutch_auction(self, intent_id):
        self._maybe_fail("get_dutch_auction")
        return self.dutch[intent_id]

    async def is_dutch_active(self, intent_id):
        self._maybe_fail("is_dutch_active")
        auction = self.dutch.get(intent_id)
        return bool(auction and auction.is_active)

    async def accept_dutch_auction(self, intent_id):
        return await self._entry("accept_dutch_auction", intent_id)

    async def settle_dutch_auction(self, intent_id):
        return await self._entry("settle_dutch_auction", intent_id)

    # Sealed-bid auctions

    async def get_auction(self, intent_id):
        self._maybe_fail("get_auction")
        states = self.sealed[intent_id]
        return states.pop(0) if len(states) > 1 else states[0]

    async def submit_solution(self, intent_id, output_amount, execution_price):
        return await self._entry("submit_solution", intent_id, output_amount, execution_price)

    async def close_auction(self, intent_id):
        return await self._entry("close_auction", intent_id)

    async def settle_from_auction(self, intent_id):
        return await self._entry("settle_from_auction", intent_id)

    # Scheduled intents

    async def is_ready_for_execution(self, intent_id):
        flags = self.ready.get(intent_id, [False])
        return flags.pop(0) if len(flags) > 1 else flags[0]

    async def is_completed(self, intent_id):
        return self.completed.get(intent_id, False)

    # Registry

    async def get_solver_info(self, address=None):
        return self.solver_info


# =============================================================================
# Intent factories
# =============================================================================


def make_swap(
    intent_id: int = 1,
    amount_in: int = 100 * ONE,
    min_amount_out: int = 40 * ONE,
    deadline: int = NOW + 600,
    auction=None,
    input_token: TokenInfo = MOVE,
    output_token: TokenInfo = USDC,
    status: IntentStatus = IntentStatus.PENDING,
) -> Intent:
    return Intent(
        id=intent_id,
        user=USER_ADDRESS,
        input_token=input_token,
        output_token=output_token,
        created_at=NOW - 10,
        deadline=deadline,
        status=status,
        terms=SwapTerms(amount_in=amount_in, min_amount_out=min_amount_out, deadline=deadline),
        auction=auction,
        escrow_remaining=amount_in,
    )


def make_limit_order(
    intent_id: int = 2,
    amount_in: int = 100 * ONE,
    limit_price: int = 4_000,
    expiry: int = NOW + 600,
    auction=None,
) -> Intent:
    return Intent(
        id=intent_id,
        user=USER_ADDRESS,
        input_token=MOVE,
        output_token=USDC,
        created_at=NOW - 10,
        deadline=expiry,
        status=IntentStatus.PENDING,
        terms=LimitOrderTerms(amount_in=amount_in, limit_price=limit_price, expiry=expiry),
        auction=auction,
        escrow_remaining=amount_in,
    )


def make_twap(
    intent_id: int = 3,
    total_amount: int = 400 * ONE,
    num_chunks: int = 4,
    interval_seconds: int = 60,
    max_slippage_bps: int = 100,
    chunks_executed: int = 0,
) -> Intent:
    return Intent(
        id=intent_id,
        user=USER_ADDRESS,
        input_token=MOVE,
        output_token=USDC,
        created_at=NOW - 10,
        deadline=NOW + num_chunks * interval_seconds,
        status=IntentStatus.PENDING,
        terms=TwapTerms(
            total_amount=total_amount,
            num_chunks=num_chunks,
            interval_seconds=interval_seconds,
            max_slippage_bps=max_slippage_bps,
            start_time=NOW,
        ),
        escrow_remaining=total_amount,
        chunks_executed=chunks_executed,
    )


def make_dca(
    intent_id: int = 4,
    amount_per_period: int = 10 * ONE,
    total_periods: int = 3,
    interval_seconds: int = 3600,
) -> Intent:
    return Intent(
        id=intent_id,
        user=USER_ADDRESS,
        input_token=MOVE,
        output_token=USDC,
        created_at=NOW - 10,
        deadline=NOW - 10 + total_periods * interval_seconds,
        status=IntentStatus.PENDING,
        terms=DcaTerms(
            amount_per_period=amount_per_period,
            total_periods=total_periods,
            interval_seconds=interval_seconds,
        ),
        escrow_remaining=amount_per_period * total_periods,
    )


def make_config(**overrides) -> SolverConfig:
    values = dict(
        rpc_url="http://localhost:8080",
        contract_address=CONTRACT_ADDRESS,
        private_key="0x" + "11" * 32,
        gas_price=0,
        poll_interval=1.0,
        auction_poll_interval=0.01,
        scheduled_check_interval=0.01,
        limit_order_check_interval=0.01,
        min_profit_bps=10,
        spread_bps=10,
    )
    values.update(overrides)
    return SolverConfig(**values)


def rpc_error(message: str = "node unavailable") -> ChainRpcError:
    return ChainRpcError(message)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def oracle():
    """MOVE at $0.50, USDC at $1."""
    return StaticOracle({"MOVE": 0.5})


@pytest.fixture
def ledger():
    return FakeLedger()
