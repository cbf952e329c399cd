"""
Solutions and fill results, plus integer pricing helpers.

A Solution is produced locally by a strategy and only reaches the ledger
when submitted. Amounts are integers in token base units throughout.
"""

import time
from dataclasses import dataclass, field
from typing import List, Optional

from intent_solver.core.intent.intent import PRICE_SCALE

BPS = 10_000


# =============================================================================
# Types
# =============================================================================


@dataclass(frozen=True)
class RouteStep:
    """One hop of a route."""
    venue: str
    token_in: str
    token_out: str
    amount_in: int
    expected_out: int


@dataclass(frozen=True)
class SwapRoute:
    steps: List[RouteStep] = field(default_factory=list)
    expected_output: int = 0
    price_impact_bps: int = 0


@dataclass(frozen=True)
class Solution:
    """
    A proposed fill for one intent.

    Attributes:
        intent_id: Intent being filled
        output_amount: Output the solver delivers
        execution_price: Scaled output-per-input price
        input_amount: Input consumed by this fill
        quoted_output: Unadjusted oracle quote the solution was derived from
        route: Optional route breakdown
        expires_at: UNIX seconds after which the solution is stale
    """
    intent_id: int
    output_amount: int
    execution_price: int
    input_amount: int = 0
    quoted_output: int = 0
    route: Optional[SwapRoute] = None
    expires_at: int = 0

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return bool(self.expires_at) and now >= self.expires_at


@dataclass
class FillResult:
    """Outcome of one submission attempt."""
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    operation: str = ""
    output_amount: int = 0

    @classmethod
    def ok(cls, tx_hash: str, operation: str = "", output_amount: int = 0) -> "FillResult":
        return cls(success=True, tx_hash=tx_hash, operation=operation, output_amount=output_amount)

    @classmethod
    def failed(cls, error: str, operation: str = "") -> "FillResult":
        return cls(success=False, error=error, operation=operation)


# =============================================================================
# Pricing helpers
# =============================================================================


def calculate_price(amount_in: int, amount_out: int, decimals_in: int, decimals_out: int) -> int:
    """Scaled output-per-input price in human units. 0 when amount_in is 0."""
    normalized_in = amount_in * 10**decimals_out
    if normalized_in == 0:
        return 0
    normalized_out = amount_out * 10**decimals_in
    return normalized_out * PRICE_SCALE // normalized_in


def apply_spread(amount: int, spread_bps: int) -> int:
    """Shave spread_bps off an output amount (solver keeps the difference)."""
    return amount * (BPS - spread_bps) // BPS


def apply_slippage(amount: int, slippage_bps: int) -> int:
    """Lower bound of an amount after slippage_bps of tolerance."""
    return amount * (BPS - slippage_bps) // BPS


def apply_premium(amount: int, premium_bps: int) -> int:
    """Raise an amount by premium_bps."""
    return amount * (BPS + premium_bps) // BPS


def protocol_fee(amount: int, fee_bps: int) -> int:
    """Fee the settlement module withholds from a filled amount."""
    return amount * fee_bps // BPS


def surplus_bps(output: int, minimum: int) -> int:
    """(output - minimum) relative to minimum, in basis points."""
    if minimum <= 0:
        return BPS if output > 0 else 0
    return (output - minimum) * BPS // minimum


def format_amount(amount: int, decimals: int, display_decimals: int = 4) -> str:
    """Base units -> "whole.frac" truncated to display_decimals."""
    sign = "-" if amount < 0 else ""
    amount = abs(amount)
    whole, fraction = divmod(amount, 10**decimals)
    if decimals == 0 or display_decimals == 0:
        return f"{sign}{whole}"
    fraction_str = str(fraction).rjust(decimals, "0")[:display_decimals]
    return f"{sign}{whole}.{fraction_str}"


def parse_amount(amount: str, decimals: int) -> int:
    """Human string ("1.5") -> base units; extra fractional digits are truncated."""
    amount = amount.strip()
    if not amount:
        raise ValueError("empty amount")
    whole, _, fraction = amount.partition(".")
    if not (whole or fraction) or not (whole or "0").isdigit() or (fraction and not fraction.isdigit()):
        raise ValueError(f"invalid amount: {amount}")
    padded = fraction.ljust(decimals, "0")[:decimals]
    return int((whole or "0") + padded)
