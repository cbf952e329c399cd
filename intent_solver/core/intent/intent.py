"""
Intent model - immutable views of ledger intent records.

An intent is a user's request to trade one token for another. Four shapes
exist (Swap, LimitOrder, TWAP, DCA); each record carries exactly one of the
matching terms objects. Records are re-read from the ledger on every poll,
so nothing here is mutated by the solver.

Prices (limit prices, execution prices) are output-per-input in human
units scaled by PRICE_SCALE.
"""

import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union


# =============================================================================
# Constants
# =============================================================================

# Fixed-point scale for prices: 1.0 == 10_000
PRICE_SCALE = 10_000


# =============================================================================
# Enums
# =============================================================================


class IntentType(IntEnum):
    """Shapes of intents the ledger accepts."""
    SWAP = 0
    LIMIT_ORDER = 1
    TWAP = 2
    DCA = 3


class IntentStatus(IntEnum):
    """Ledger-owned lifecycle. Transitions are monotonic."""
    PENDING = 0
    PARTIALLY_FILLED = 1
    FILLED = 2
    CANCELLED = 3
    EXPIRED = 4

    @property
    def is_open(self) -> bool:
        return self in (IntentStatus.PENDING, IntentStatus.PARTIALLY_FILLED)


class SealedBidStatus(IntEnum):
    """Sealed-bid auction lifecycle."""
    ACTIVE = 0
    SELECTING = 1
    COMPLETED = 2
    CANCELLED = 3


# =============================================================================
# Tokens and terms
# =============================================================================


@dataclass(frozen=True)
class TokenInfo:
    """A token descriptor: ledger address, display symbol, decimal precision."""
    address: str
    symbol: str
    decimals: int


@dataclass(frozen=True)
class SwapTerms:
    amount_in: int
    min_amount_out: int
    deadline: int


@dataclass(frozen=True)
class LimitOrderTerms:
    amount_in: int
    limit_price: int
    expiry: int


@dataclass(frozen=True)
class TwapTerms:
    total_amount: int
    num_chunks: int
    interval_seconds: int
    max_slippage_bps: int
    start_time: int

    @property
    def chunk_amount(self) -> int:
        return self.total_amount // self.num_chunks if self.num_chunks else 0

    @property
    def end_time(self) -> int:
        return self.start_time + self.num_chunks * self.interval_seconds


@dataclass(frozen=True)
class DcaTerms:
    amount_per_period: int
    total_periods: int
    interval_seconds: int

    @property
    def total_amount(self) -> int:
        return self.amount_per_period * self.total_periods


IntentTerms = Union[SwapTerms, LimitOrderTerms, TwapTerms, DcaTerms]

_TERMS_TYPE = {
    SwapTerms: IntentType.SWAP,
    LimitOrderTerms: IntentType.LIMIT_ORDER,
    TwapTerms: IntentType.TWAP,
    DcaTerms: IntentType.DCA,
}


# =============================================================================
# Auctions
# =============================================================================


@dataclass(frozen=True)
class DutchAuction:
    """
    A descending-price auction attached to an intent.

    Attributes:
        start_time: UNIX seconds the decay starts
        start_price: Price at start_time (output units the solver must deliver)
        end_price: Floor reached at start_time + duration
        duration: Decay length in seconds
        is_active: Ledger flag; False once accepted or expired
        winner: Address that accepted, if any
        accepted_price: Price locked in on acceptance
    """
    start_time: int
    start_price: int
    end_price: int
    duration: int
    is_active: bool = True
    winner: Optional[str] = None
    accepted_price: Optional[int] = None

    @property
    def end_time(self) -> int:
        return self.start_time + self.duration


@dataclass(frozen=True)
class SealedBidAuction:
    """
    A sealed-bid auction attached to an intent.

    winner is set if and only if status is COMPLETED.
    """
    start_time: int
    end_time: int
    solution_count: int = 0
    status: SealedBidStatus = SealedBidStatus.ACTIVE
    winner: Optional[str] = None
    winning_bid: Optional[int] = None

    def __post_init__(self):
        if (self.status == SealedBidStatus.COMPLETED) != (self.winner is not None):
            raise ValueError("sealed-bid winner must be set exactly when status is COMPLETED")

    @property
    def is_open(self) -> bool:
        return self.status in (SealedBidStatus.ACTIVE, SealedBidStatus.SELECTING)


AuctionState = Union[DutchAuction, SealedBidAuction]


# =============================================================================
# Intent
# =============================================================================


@dataclass(frozen=True)
class Intent:
    """
    An open trade request as read from the ledger.

    Attributes:
        id: Ledger-assigned handle
        user: Owner address
        input_token: Token the user gives
        output_token: Token the user wants
        created_at: UNIX seconds
        deadline: Last second the intent can be filled
        status: Ledger status
        terms: Exactly one of SwapTerms, LimitOrderTerms, TwapTerms, DcaTerms
        auction: Attached auction state, if any
        escrow_remaining: Input still escrowed on the ledger
        chunks_executed: TWAP chunks / DCA periods already filled
        next_execution: UNIX seconds the next chunk or period becomes due
    """
    id: int
    user: str
    input_token: TokenInfo
    output_token: TokenInfo
    created_at: int
    deadline: int
    status: IntentStatus
    terms: IntentTerms
    auction: Optional[AuctionState] = None
    escrow_remaining: int = 0
    chunks_executed: int = 0
    next_execution: int = 0

    def __post_init__(self):
        if type(self.terms) not in _TERMS_TYPE:
            raise ValueError(f"unsupported intent terms: {type(self.terms).__name__}")

    @property
    def intent_type(self) -> IntentType:
        return _TERMS_TYPE[type(self.terms)]

    @property
    def input_amount(self) -> int:
        """Total input the user committed."""
        terms = self.terms
        if isinstance(terms, (SwapTerms, LimitOrderTerms)):
            return terms.amount_in
        return terms.total_amount

    @property
    def fill_amount(self) -> int:
        """Input consumed by the next single fill (one chunk for TWAP/DCA)."""
        terms = self.terms
        if isinstance(terms, TwapTerms):
            return terms.chunk_amount
        if isinstance(terms, DcaTerms):
            return terms.amount_per_period
        if isinstance(terms, LimitOrderTerms) and self.escrow_remaining:
            return min(terms.amount_in, self.escrow_remaining)
        return self.input_amount

    @property
    def total_chunks(self) -> int:
        terms = self.terms
        if isinstance(terms, TwapTerms):
            return terms.num_chunks
        if isinstance(terms, DcaTerms):
            return terms.total_periods
        return 1

    @property
    def is_scheduled(self) -> bool:
        return isinstance(self.terms, (TwapTerms, DcaTerms))

    @property
    def dutch_auction(self) -> Optional[DutchAuction]:
        return self.auction if isinstance(self.auction, DutchAuction) else None

    @property
    def sealed_bid_auction(self) -> Optional[SealedBidAuction]:
        return self.auction if isinstance(self.auction, SealedBidAuction) else None

    def min_output(self) -> int:
        """
        Smallest output the ledger accepts for the next fill.

        Limit orders derive it from the limit price; TWAP/DCA chunks have
        no on-chain floor beyond their slippage bound, so 0 is returned.
        """
        terms = self.terms
        if isinstance(terms, SwapTerms):
            return terms.min_amount_out
        if isinstance(terms, LimitOrderTerms):
            return min_output_for_price(
                self.fill_amount,
                terms.limit_price,
                self.input_token.decimals,
                self.output_token.decimals,
            )
        return 0

    def seconds_to_deadline(self, now: Optional[float] = None) -> float:
        """Seconds left; infinite when the record carries no deadline."""
        if not self.deadline:
            return float("inf")
        now = time.time() if now is None else now
        return self.deadline - now

    def is_expired(self, now: Optional[float] = None) -> bool:
        return self.seconds_to_deadline(now) <= 0


def min_output_for_price(amount_in: int, price: int, decimals_in: int, decimals_out: int) -> int:
    """
    Output units implied by a scaled price, rounded up.

    Inverse of calculate_price: price = out * 10^dec_in * SCALE / (in * 10^dec_out).
    """
    numerator = amount_in * price * 10**decimals_out
    denominator = PRICE_SCALE * 10**decimals_in
    return -(-numerator // denominator)
