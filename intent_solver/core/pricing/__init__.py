"""External reference pricing"""
from intent_solver.core.pricing.oracle import PriceFeedError, PriceOracle, normalize_symbol

__all__ = ["PriceFeedError", "PriceOracle", "normalize_symbol"]
