"""Ledger access: node REST client and contract surface"""
from intent_solver.core.chain.client import MAX_SUBMIT_ATTEMPTS, ChainClient, is_sequence_race
from intent_solver.core.chain.ledger import IntentLedger

__all__ = [
    "MAX_SUBMIT_ATTEMPTS",
    "ChainClient",
    "is_sequence_race",
    "IntentLedger",
]
