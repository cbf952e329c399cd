"""Auction participation engines"""
from intent_solver.core.auction.dutch import (
    AcceptedAuction,
    DutchAuctionEngine,
    current_price,
    dutch_price,
    price_schedule,
    seconds_until_price,
    time_to_price,
)
from intent_solver.core.auction.sealed_bid import SealedBidEngine

__all__ = [
    "AcceptedAuction",
    "DutchAuctionEngine",
    "current_price",
    "dutch_price",
    "price_schedule",
    "seconds_until_price",
    "time_to_price",
    "SealedBidEngine",
]
