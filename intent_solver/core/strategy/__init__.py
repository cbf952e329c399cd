"""Solving strategies"""
from intent_solver.core.strategy.base import Strategy, StrategySet
from intent_solver.core.strategy.chunked import ChunkedStrategy
from intent_solver.core.strategy.spread import SpreadCaptureStrategy
from intent_solver.core.strategy.surplus import SurplusStrategy

__all__ = [
    "Strategy",
    "StrategySet",
    "ChunkedStrategy",
    "SpreadCaptureStrategy",
    "SurplusStrategy",
]
