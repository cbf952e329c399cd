"""
Intent Solver - autonomous solver agent for intent-based trading.

Discovers user trade intents on the ledger, prices them against an external
reference feed and settles them directly or through Dutch and sealed-bid
auctions.
"""

__version__ = "0.1.0"
