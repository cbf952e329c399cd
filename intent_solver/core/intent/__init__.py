"""Intent model, decoding and solutions"""
from intent_solver.core.intent.intent import (
    PRICE_SCALE,
    AuctionState,
    DcaTerms,
    DutchAuction,
    Intent,
    IntentStatus,
    IntentType,
    LimitOrderTerms,
    SealedBidAuction,
    SealedBidStatus,
    SwapTerms,
    TokenInfo,
    TwapTerms,
)
from intent_solver.core.intent.codec import IntentCodec, TokenDirectory
from intent_solver.core.intent.solution import FillResult, RouteStep, Solution, SwapRoute

__all__ = [
    "PRICE_SCALE",
    "AuctionState",
    "DcaTerms",
    "DutchAuction",
    "Intent",
    "IntentStatus",
    "IntentType",
    "LimitOrderTerms",
    "SealedBidAuction",
    "SealedBidStatus",
    "SwapTerms",
    "TokenInfo",
    "TwapTerms",
    "IntentCodec",
    "TokenDirectory",
    "FillResult",
    "RouteStep",
    "Solution",
    "SwapRoute",
]
