"""
Unit tests for the gas/profitability gate.

Tests cover:
1. Static gas table
2. Path estimates
3. Strict profitability boundary
"""

import pytest

from intent_solver.core.gas import (
    GAS_UNITS,
    GasEstimate,
    OperationKind,
    estimate,
    estimate_path,
    format_gas_cost,
    is_profitable,
)


class TestEstimate:
    """Tests for gas estimates."""

    def test_gas_table(self):
        assert GAS_UNITS[OperationKind.SUBMIT_SOLUTION] == 50_000
        assert GAS_UNITS[OperationKind.EXECUTE_SETTLEMENT] == 100_000
        assert GAS_UNITS[OperationKind.CANCEL_INTENT] == 30_000

    def test_total_cost(self):
        gas = estimate(OperationKind.EXECUTE_SETTLEMENT, 100)
        assert gas.gas_units == 100_000
        assert gas.total_cost == 10_000_000

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError):
            estimate(OperationKind.SUBMIT_SOLUTION, -1)

    def test_path_sums_units(self):
        """Bid then settle costs both operations."""
        gas = estimate_path([OperationKind.SUBMIT_SOLUTION, OperationKind.EXECUTE_SETTLEMENT], 2)
        assert gas.gas_units == 150_000
        assert gas.total_cost == 300_000

    def test_format_gas_cost(self):
        assert format_gas_cost(10_000_000) == "0.100000 MOVE"


class TestProfitability:
    """Tests for the go/no-go decision."""

    def test_strictly_greater_required(self):
        """Profit equal to the gas cost is not enough; one unit more is."""
        gas = GasEstimate(gas_units=100_000, gas_price=100)
        assert not is_profitable(gas.total_cost, gas)
        assert is_profitable(gas.total_cost + 1, gas)

    def test_margin_added_to_cost(self):
        gas = GasEstimate(gas_units=10, gas_price=1)
        assert not is_profitable(15, gas, min_margin=5)
        assert is_profitable(16, gas, min_margin=5)

    def test_zero_gas_price(self):
        """With free gas any positive profit passes."""
        gas = estimate(OperationKind.EXECUTE_SETTLEMENT, 0)
        assert is_profitable(1, gas)
        assert not is_profitable(0, gas)
