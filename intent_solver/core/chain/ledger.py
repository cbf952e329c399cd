"""
Intent ledger - the contract function surface the solver depends on.

Wraps a ChainClient and names every view and entry function the engines
use, decoding results into the types in core.intent. Entry functions are
addressed as "<contract>::<module>::<function>".
"""

from typing import Any, Callable, Dict, List, Optional

from intent_solver.core.chain.client import ChainClient
from intent_solver.core.errors import ChainRpcError, IntentDecodeError
from intent_solver.core.intent.codec import (
    IntentCodec,
    as_bool,
    as_int,
    decode_dutch_auction,
    decode_sealed_bid_auction,
)
from intent_solver.core.intent.intent import DutchAuction, Intent, SealedBidAuction
from intent_solver.utils.logger import get_logger

logger = get_logger("ledger")

# Contract modules
SUBMISSION = "submission"
SETTLEMENT = "settlement"
AUCTION = "auction"
SCHEDULED = "scheduled"
REGISTRY = "solver_registry"

# Fee assumed when get_fee_bps cannot be read (0.3%)
DEFAULT_FEE_BPS = 30

ErrorHandler = Callable[[Exception], Any]


class IntentLedger:
    """
    Typed access to the intent contract.

    Views return decoded values; entry functions return the committed
    transaction hash and raise ChainError subclasses on failure.
    """

    def __init__(
        self,
        client: ChainClient,
        contract_address: str,
        codec: Optional[IntentCodec] = None,
        fee_config_address: Optional[str] = None,
    ):
        self.client = client
        self.contract_address = contract_address
        self.fee_config_address = fee_config_address or contract_address
        self.codec = codec or IntentCodec()

    @property
    def address(self) -> Optional[str]:
        """The solver's own address (None without a signing key)."""
        return self.client.address

    def _fn(self, module: str, name: str) -> str:
        return f"{self.contract_address}::{module}::{name}"

    async def _view_one(self, module: str, name: str, *args: Any) -> Any:
        result = await self.client.view(self._fn(module, name), [self.contract_address, *args])
        if not result:
            raise ChainRpcError(f"{name}: empty view result")
        return result[0]

    async def _submit(self, module: str, name: str, *args: Any) -> str:
        return await self.client.submit(self._fn(module, name), [self.contract_address, *args])

    # =========================================================================
    # Discovery
    # =========================================================================

    async def total_intent_count(self) -> int:
        return as_int(await self._view_one(SUBMISSION, "total_intent_count"), "total_intent_count")

    async def get_intent_record(self, intent_id: int) -> Dict[str, Any]:
        return await self._view_one(SUBMISSION, "get_intent", intent_id)

    async def get_intent(self, intent_id: int) -> Intent:
        return self.codec.decode(await self.get_intent_record(intent_id), intent_id)

    async def get_pending_intents(self, on_error: Optional[ErrorHandler] = None) -> List[Intent]:
        """
        All intents whose status is still open.

        A record that fails to load or decode is skipped and reported to
        on_error; the rest of the scan continues. A failure to read the
        intent count propagates.
        """
        total = await self.total_intent_count()
        pending: List[Intent] = []
        for intent_id in range(total):
            try:
                intent = self.codec.decode(await self.get_intent_record(intent_id), intent_id)
            except (IntentDecodeError, ChainRpcError) as e:
                logger.warning(f"Skipping intent {intent_id}: {e}")
                if on_error:
                    on_error(e)
                continue
            if intent.status.is_open:
                pending.append(intent)
        return pending

    # =========================================================================
    # Direct fills
    # =========================================================================

    async def solve_swap(self, intent_id: int, output_amount: int) -> str:
        return await self._submit(SETTLEMENT, "solve_swap", intent_id, output_amount)

    async def solve_limit_order(self, intent_id: int, output_amount: int) -> str:
        return await self._submit(SETTLEMENT, "solve_limit_order", intent_id, output_amount)

    async def solve_twap_chunk(self, intent_id: int, output_amount: int) -> str:
        return await self._submit(SETTLEMENT, "solve_twap_chunk", intent_id, output_amount)

    async def solve_dca_period(self, intent_id: int, output_amount: int) -> str:
        return await self._submit(SETTLEMENT, "solve_dca_period", intent_id, output_amount)

    # =========================================================================
    # Settlement checks
    # =========================================================================

    async def can_fill(self, intent_id: int, solver: Optional[str] = None) -> bool:
        """Whether the solver may fill the intent now. A failed view reads as False."""
        solver = solver or self.address
        if not solver:
            return False
        try:
            return as_bool(await self._view_one(SETTLEMENT, "can_fill", intent_id, solver))
        except ChainRpcError as e:
            logger.debug(f"can_fill({intent_id}) failed: {e}")
            return False

    async def calculate_min_output_for_fill(self, intent_id: int, fill_input: int) -> int:
        """Least output the ledger accepts for fill_input of the intent's input."""
        result = await self._view_one(SETTLEMENT, "calculate_min_output_for_fill", intent_id, fill_input)
        return as_int(result, "min_output")

    async def get_fee_bps(self) -> int:
        """Protocol fee in basis points; DEFAULT_FEE_BPS when the view fails."""
        try:
            result = await self.client.view(self._fn(SETTLEMENT, "get_fee_bps"), [self.fee_config_address])
            if result:
                return as_int(result[0], "fee_bps")
        except (ChainRpcError, IntentDecodeError) as e:
            logger.warning(f"get_fee_bps failed, assuming {DEFAULT_FEE_BPS} bps: {e}")
            return DEFAULT_FEE_BPS
        logger.warning(f"get_fee_bps returned nothing, assuming {DEFAULT_FEE_BPS} bps")
        return DEFAULT_FEE_BPS

    # =========================================================================
    # Dutch auctions
    # =========================================================================

    async def get_dutch_auction(self, intent_id: int) -> DutchAuction:
        return decode_dutch_auction(await self._view_one(AUCTION, "get_dutch_auction", intent_id))

    async def get_dutch_price(self, intent_id: int) -> int:
        return as_int(await self._view_one(AUCTION, "get_dutch_price", intent_id), "dutch_price")

    async def is_dutch_active(self, intent_id: int) -> bool:
        return as_bool(await self._view_one(AUCTION, "is_dutch_active", intent_id))

    async def accept_dutch_auction(self, intent_id: int) -> str:
        return await self._submit(AUCTION, "accept_dutch_auction", intent_id)

    async def settle_dutch_auction(self, intent_id: int) -> str:
        return await self._submit(AUCTION, "settle_dutch_auction", intent_id)

    # =========================================================================
    # Sealed-bid auctions
    # =========================================================================

    async def is_auction_active(self, intent_id: int) -> bool:
        return as_bool(await self._view_one(AUCTION, "is_auction_active", intent_id))

    async def get_auction(self, intent_id: int) -> SealedBidAuction:
        return decode_sealed_bid_auction(await self._view_one(AUCTION, "get_auction", intent_id))

    async def get_time_remaining(self, intent_id: int) -> int:
        return as_int(await self._view_one(AUCTION, "get_time_remaining", intent_id), "time_remaining")

    async def submit_solution(self, intent_id: int, output_amount: int, execution_price: int) -> str:
        return await self._submit(AUCTION, "submit_solution", intent_id, output_amount, execution_price)

    async def close_auction(self, intent_id: int) -> str:
        return await self._submit(AUCTION, "close_auction", intent_id)

    async def settle_from_auction(self, intent_id: int) -> str:
        return await self._submit(SETTLEMENT, "settle_from_auction", intent_id)

    # =========================================================================
    # Scheduled intents
    # =========================================================================

    async def is_ready_for_execution(self, intent_id: int) -> bool:
        return as_bool(await self._view_one(SCHEDULED, "is_ready_for_execution", intent_id))

    async def is_completed(self, intent_id: int) -> bool:
        return as_bool(await self._view_one(SCHEDULED, "is_completed", intent_id))

    async def get_chunks_executed(self, intent_id: int) -> int:
        return as_int(await self._view_one(SCHEDULED, "get_chunks_executed", intent_id), "chunks_executed")

    # =========================================================================
    # Solver registry
    # =========================================================================

    async def get_solver_info(self, address: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Registry entry for a solver, or None if it is not registered."""
        address = address or self.address
        if not address:
            return None
        try:
            info = await self._view_one(REGISTRY, "get_solver_info", address)
        except ChainRpcError as e:
            logger.debug(f"get_solver_info({address}) failed: {e}")
            return None
        return info if isinstance(info, dict) else None
