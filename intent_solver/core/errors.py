"""
Exception hierarchy for the solver.

Race losses and "no viable solution" are not exceptions; engines and
strategies return None for those. Exceptions are reserved for faults.
"""

from typing import Optional


class SolverError(Exception):
    """Base class for all solver errors"""


class ConfigurationError(SolverError):
    """Invalid or missing configuration. Fatal at startup."""


class IntentDecodeError(SolverError):
    """A ledger record could not be decoded into a known intent shape."""

    def __init__(self, message: str, intent_id: Optional[int] = None):
        super().__init__(message)
        self.intent_id = intent_id


class ChainError(SolverError):
    """Failure talking to the ledger."""


class ChainRpcError(ChainError):
    """The RPC endpoint returned an error or an unusable response."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class NoAccountConfigured(ChainError):
    """A transaction was requested but no signing key is configured."""


class TransactionFailed(ChainError):
    """A submitted transaction was committed with a failure status."""

    def __init__(self, message: str, tx_hash: Optional[str] = None, vm_status: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash
        self.vm_status = vm_status


class FinalityTimeout(ChainError):
    """A submitted transaction did not reach finality in time."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash
