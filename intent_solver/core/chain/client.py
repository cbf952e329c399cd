"""
Chain Client - view calls and signed transaction submission.

Talks to a Move node's REST API (base URL ending in /v1):
- POST /view                              side-effect-free function call
- GET  /accounts/{address}                account sequence number
- POST /transactions/encode_submission    BCS signing message for a payload
- POST /transactions                      signed transaction, returns the hash
- GET  /transactions/by_hash/{hash}       status lookup, polled until finality

Submission retries only sequence-number races (SEQUENCE_NUMBER_TOO_OLD /
SEQUENCE_NUMBER_TOO_NEW): at most MAX_SUBMIT_ATTEMPTS attempts with a
linear backoff of attempt * backoff_seconds. Any other failure, including
a competitor having already acted, surfaces immediately.
"""

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from intent_solver.core.errors import (
    ChainError,
    ChainRpcError,
    FinalityTimeout,
    NoAccountConfigured,
    TransactionFailed,
)
from intent_solver.crypto import KeyPair, bytes_to_hex, hex_to_bytes, keypair_from_hex, sign
from intent_solver.utils.logger import get_logger

logger = get_logger("chain")


# =============================================================================
# Constants
# =============================================================================

MAX_SUBMIT_ATTEMPTS = 3
SEQUENCE_RACE_MARKERS = ("SEQUENCE_NUMBER_TOO_OLD", "SEQUENCE_NUMBER_TOO_NEW")

DEFAULT_MAX_GAS_AMOUNT = 200_000
TX_EXPIRATION_SECONDS = 60

PENDING_TRANSACTION = "pending_transaction"
ENTRY_FUNCTION_PAYLOAD = "entry_function_payload"
ED25519_SIGNATURE = "ed25519_signature"

API_KEY_HEADER = "X-API-Key"


def is_sequence_race(error: BaseException) -> bool:
    """True if the error message reports a sequence-number race."""
    message = str(error).upper()
    return any(marker in message for marker in SEQUENCE_RACE_MARKERS)


def encode_arguments(args: Optional[List[Any]]) -> List[Any]:
    """Move u64/u128 arguments travel as decimal strings."""
    return [str(a) if isinstance(a, int) and not isinstance(a, bool) else a for a in (args or [])]


# =============================================================================
# Client
# =============================================================================


class ChainClient:
    """
    Async ledger client.

    A client without a private key can still run view calls (status
    checks, dry runs); submit() then raises NoAccountConfigured.

    Args:
        rpc_url: Node REST base URL, e.g. https://testnet.example/v1
        private_key: Hex Ed25519 seed of the solver account
        api_key: Sent as X-API-Key for gated node providers
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: Optional[str] = None,
        timeout: float = 15.0,
        finality_timeout: float = 30.0,
        finality_poll_interval: float = 1.0,
        backoff_seconds: float = 1.0,
        gas_price: int = 100,
        max_gas_amount: int = DEFAULT_MAX_GAS_AMOUNT,
        api_key: Optional[str] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.timeout = timeout
        self.finality_timeout = finality_timeout
        self.finality_poll_interval = finality_poll_interval
        self.backoff_seconds = backoff_seconds
        self.gas_price = gas_price
        self.max_gas_amount = max_gas_amount
        self.api_key = api_key
        self._sleep = sleep
        self._keypair: Optional[KeyPair] = keypair_from_hex(private_key) if private_key else None

    # =========================================================================
    # Account
    # =========================================================================

    @property
    def has_account(self) -> bool:
        return self._keypair is not None

    @property
    def address(self) -> Optional[str]:
        return self._keypair.address if self._keypair else None

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request(self, method: str, path: str, body: Optional[Any] = None) -> Any:
        """
        Single REST call. Transport and API errors become ChainRpcError.

        Error bodies carry {"message", "error_code"}; both end up in the
        exception text so sequence races can be recognized.
        """
        url = f"{self.rpc_url}{path}"
        headers = {API_KEY_HEADER: self.api_key} if self.api_key else None
        try:
            timeout_obj = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout_obj) as session:
                async with session.request(method, url, json=body, headers=headers) as resp:
                    text = await resp.text()
                    status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ChainRpcError(f"{method} {path} failed: {e}") from e

        try:
            data = json.loads(text) if text else None
        except ValueError as e:
            if status >= 400:
                raise ChainRpcError(f"HTTP {status}: {text[:200]}", code=status) from e
            raise ChainRpcError(f"{method} {path}: invalid JSON response: {e}") from e

        if status >= 400:
            if isinstance(data, dict) and data.get("message"):
                message = str(data["message"])
                if data.get("error_code"):
                    message = f"{message} ({data['error_code']})"
            else:
                message = text[:200]
            raise ChainRpcError(f"HTTP {status}: {message}", code=status)

        return data

    # =========================================================================
    # Views
    # =========================================================================

    async def view(self, function: str, args: Optional[List[Any]] = None) -> List[Any]:
        """
        Call a view function.

        Returns:
            List of return values (Move views return a tuple)
        """
        result = await self._request("POST", "/view", {
            "function": function,
            "type_arguments": [],
            "arguments": encode_arguments(args),
        })
        if result is None:
            return []
        return result if isinstance(result, list) else [result]

    async def get_sequence_number(self, address: Optional[str] = None) -> int:
        address = address or self.address
        if not address:
            raise NoAccountConfigured("No account configured")
        account = await self._request("GET", f"/accounts/{address}")
        if not isinstance(account, dict) or "sequence_number" not in account:
            raise ChainRpcError(f"account {address} not found")
        return int(account["sequence_number"])

    async def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Transaction by hash, or None while the node does not know it yet."""
        try:
            return await self._request("GET", f"/transactions/by_hash/{tx_hash}")
        except ChainRpcError as e:
            if e.code == 404:
                return None
            raise

    # =========================================================================
    # Transactions
    # =========================================================================

    def _build_transaction(self, function: str, args: List[Any], sequence_number: int) -> Dict[str, Any]:
        return {
            "sender": self.address,
            "sequence_number": str(sequence_number),
            "max_gas_amount": str(self.max_gas_amount),
            "gas_unit_price": str(self.gas_price),
            "expiration_timestamp_secs": str(int(time.time()) + TX_EXPIRATION_SECONDS),
            "payload": {
                "type": ENTRY_FUNCTION_PAYLOAD,
                "function": function,
                "type_arguments": [],
                "arguments": encode_arguments(args),
            },
        }

    async def _submit_once(self, function: str, args: List[Any]) -> str:
        """Build, sign, submit and wait for finality. No retry."""
        sequence_number = await self.get_sequence_number()
        transaction = self._build_transaction(function, args, sequence_number)

        signing_message = await self._request("POST", "/transactions/encode_submission", transaction)
        if not isinstance(signing_message, str):
            raise ChainRpcError(f"{function}: node returned no signing message")
        signature = sign(hex_to_bytes(signing_message), self._keypair.private_key)

        submitted = await self._request("POST", "/transactions", {
            **transaction,
            "signature": {
                "type": ED25519_SIGNATURE,
                "public_key": bytes_to_hex(self._keypair.public_key),
                "signature": bytes_to_hex(signature),
            },
        })
        tx_hash = submitted.get("hash") if isinstance(submitted, dict) else None
        if not tx_hash:
            raise ChainRpcError(f"{function}: submission returned no hash")

        await self.wait_for_transaction(str(tx_hash))
        return str(tx_hash)

    async def wait_for_transaction(self, tx_hash: str) -> Dict[str, Any]:
        """
        Poll until the transaction is committed.

        Raises:
            TransactionFailed: committed with success == false
            FinalityTimeout: not committed within finality_timeout
        """
        deadline = time.monotonic() + self.finality_timeout
        while True:
            tx = await self.get_transaction(tx_hash)
            if isinstance(tx, dict) and tx.get("type") != PENDING_TRANSACTION and "success" in tx:
                if tx["success"]:
                    return tx
                vm_status = str(tx.get("vm_status", "unknown failure"))
                raise TransactionFailed(f"transaction {tx_hash} failed: {vm_status}", tx_hash, vm_status)
            if time.monotonic() >= deadline:
                raise FinalityTimeout(f"transaction {tx_hash} not final after {self.finality_timeout}s", tx_hash)
            await self._sleep(self.finality_poll_interval)

    async def submit(self, function: str, args: Optional[List[Any]] = None) -> str:
        """
        Submit a signed transaction and wait for finality.

        Returns:
            Transaction hash

        Raises:
            NoAccountConfigured: no signing key
            ChainError: after the retry window, or immediately for non-race errors
        """
        if not self.has_account:
            raise NoAccountConfigured("Solver account not configured")

        args = list(args or [])
        for attempt in range(1, MAX_SUBMIT_ATTEMPTS + 1):
            try:
                tx_hash = await self._submit_once(function, args)
                logger.debug(f"{function} committed: {tx_hash}")
                return tx_hash
            except ChainError as e:
                if not is_sequence_race(e) or attempt == MAX_SUBMIT_ATTEMPTS:
                    raise
                delay = self.backoff_seconds * attempt
                logger.warning(
                    f"{function}: sequence number race (attempt {attempt}/{MAX_SUBMIT_ATTEMPTS}), "
                    f"retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
