"""
Gas/Profitability Gate.

Turns a strategy's profit estimate and a static per-operation gas table
into a go/no-go decision. Consulted after a Solution exists and before any
transaction is submitted; a negative answer is a silent skip.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

# Native token has 8 decimals (1 unit = 10^-8)
NATIVE_DECIMALS = 8
NATIVE_SYMBOL = "MOVE"


class OperationKind(Enum):
    """Ledger operations the solver pays for."""
    SUBMIT_SOLUTION = "submit_solution"
    EXECUTE_SETTLEMENT = "execute_settlement"
    CANCEL_INTENT = "cancel_intent"


GAS_UNITS = {
    OperationKind.SUBMIT_SOLUTION: 50_000,
    OperationKind.EXECUTE_SETTLEMENT: 100_000,
    OperationKind.CANCEL_INTENT: 30_000,
}


@dataclass(frozen=True)
class GasEstimate:
    gas_units: int
    gas_price: int

    @property
    def total_cost(self) -> int:
        return self.gas_units * self.gas_price


def estimate(kind: OperationKind, gas_price: int) -> GasEstimate:
    """Gas estimate for a single operation at the given unit price."""
    if gas_price < 0:
        raise ValueError("gas_price must be non-negative")
    return GasEstimate(gas_units=GAS_UNITS[kind], gas_price=gas_price)


def estimate_path(kinds: Iterable[OperationKind], gas_price: int) -> GasEstimate:
    """Combined estimate for a sequence of transactions (e.g. bid then settle)."""
    units = sum(estimate(kind, gas_price).gas_units for kind in kinds)
    return GasEstimate(gas_units=units, gas_price=gas_price)


def is_profitable(expected_profit: int, gas: GasEstimate, min_margin: int = 0) -> bool:
    """Strictly more profit than gas cost plus margin."""
    return expected_profit > gas.total_cost + min_margin


def format_gas_cost(cost: int) -> str:
    return f"{cost / 10**NATIVE_DECIMALS:.6f} {NATIVE_SYMBOL}"
