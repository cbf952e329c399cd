"""
Decoding of raw ledger records into Intent objects.

The ledger encodes its enums in several ways depending on the RPC layer:
- tagged:      {"__variant__": "Swap", "amount_in": "100", ...}
- typed:       {"type": "Swap", ...}
- single key:  {"Swap": {"amount_in": "100", ...}}
- bare string: "Active" (fieldless variants)

Everything is decoded here, at the boundary, into the closed types in
intent.py; unknown shapes raise IntentDecodeError so the caller can skip
the record.
"""

from typing import Any, Dict, Mapping, Optional, Tuple

from intent_solver.core.errors import IntentDecodeError
from intent_solver.core.intent.intent import (
    AuctionState,
    DcaTerms,
    DutchAuction,
    Intent,
    IntentStatus,
    IntentTerms,
    LimitOrderTerms,
    SealedBidAuction,
    SealedBidStatus,
    SwapTerms,
    TokenInfo,
    TwapTerms,
)
from intent_solver.crypto import normalize_address

UNKNOWN_SYMBOL = "UNKNOWN"
DEFAULT_DECIMALS = 8

_TAG_KEYS = ("__variant__", "type", "variant")


# =============================================================================
# Token directory
# =============================================================================


class TokenDirectory:
    """Address -> TokenInfo lookup with an UNKNOWN fallback."""

    def __init__(self, tokens: Optional[Mapping[str, Any]] = None):
        self._tokens: Dict[str, TokenInfo] = {}
        for address, meta in (tokens or {}).items():
            symbol = meta["symbol"] if isinstance(meta, Mapping) else meta.symbol
            decimals = meta.get("decimals", DEFAULT_DECIMALS) if isinstance(meta, Mapping) else meta.decimals
            self.register(TokenInfo(address=address, symbol=symbol, decimals=int(decimals)))

    def register(self, token: TokenInfo) -> None:
        self._tokens[normalize_address(token.address)] = token

    def resolve(self, address: str) -> TokenInfo:
        found = self._tokens.get(normalize_address(address))
        if found:
            return found
        return TokenInfo(address=address, symbol=UNKNOWN_SYMBOL, decimals=DEFAULT_DECIMALS)

    def by_symbol(self, symbol: str) -> Optional[TokenInfo]:
        wanted = symbol.strip().upper()
        for token in self._tokens.values():
            if token.symbol.upper() == wanted:
                return token
        return None

    def __len__(self) -> int:
        return len(self._tokens)


# =============================================================================
# Primitive decoders
# =============================================================================


def _normalize_tag(tag: str) -> str:
    return tag.replace("_", "").replace("-", "").upper()


def split_variant(raw: Any) -> Tuple[str, Dict[str, Any]]:
    """
    Return (normalized variant name, fields) for any supported enum encoding.

    Raises:
        IntentDecodeError: if the value has no recognizable tag
    """
    if isinstance(raw, str):
        return _normalize_tag(raw), {}

    if not isinstance(raw, Mapping):
        raise IntentDecodeError(f"expected enum object, got {type(raw).__name__}")

    for key in _TAG_KEYS:
        tag = raw.get(key)
        if isinstance(tag, str):
            return _normalize_tag(tag), {k: v for k, v in raw.items() if k not in _TAG_KEYS}

    if len(raw) == 1:
        (tag, body), = raw.items()
        if body is None:
            body = {}
        if isinstance(body, Mapping):
            return _normalize_tag(tag), dict(body)

    raise IntentDecodeError(f"unrecognized enum encoding with keys {sorted(raw)}")


def as_int(value: Any, name: str, default: Optional[int] = None) -> int:
    """Decode u64/u128 values that arrive as strings or numbers."""
    if value is None or value == "":
        if default is None:
            raise IntentDecodeError(f"missing field: {name}")
        return default
    if isinstance(value, bool):
        raise IntentDecodeError(f"{name} must be an integer, got bool")
    try:
        return int(str(value), 10)
    except ValueError as e:
        raise IntentDecodeError(f"{name} is not an integer: {value!r}") from e


def as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def as_option(value: Any) -> Any:
    """Unwrap a Move Option ({"vec": [x]} or {"vec": []}) or pass through."""
    if isinstance(value, Mapping) and "vec" in value:
        items = value["vec"]
        return items[0] if items else None
    if value == "":
        return None
    return value


def as_address(value: Any, name: str) -> str:
    """Token references arrive as plain addresses or {"inner": address} objects."""
    if isinstance(value, Mapping) and "inner" in value:
        value = value["inner"]
    if not isinstance(value, str) or not value:
        raise IntentDecodeError(f"missing address field: {name}")
    return value


# =============================================================================
# Enum decoders
# =============================================================================

_STATUS_NAMES = {
    "ACTIVE": IntentStatus.PENDING,
    "PENDING": IntentStatus.PENDING,
    "OPEN": IntentStatus.PENDING,
    "PARTIALLYFILLED": IntentStatus.PARTIALLY_FILLED,
    "FILLED": IntentStatus.FILLED,
    "COMPLETED": IntentStatus.FILLED,
    "CANCELLED": IntentStatus.CANCELLED,
    "CANCELED": IntentStatus.CANCELLED,
    "EXPIRED": IntentStatus.EXPIRED,
}

_SEALED_STATUS_NAMES = {
    "ACTIVE": SealedBidStatus.ACTIVE,
    "SELECTING": SealedBidStatus.SELECTING,
    "COMPLETED": SealedBidStatus.COMPLETED,
    "CANCELLED": SealedBidStatus.CANCELLED,
    "CANCELED": SealedBidStatus.CANCELLED,
}


def decode_status(raw: Any) -> IntentStatus:
    """Missing status means the ledger predates the field: treat as pending."""
    if raw is None:
        return IntentStatus.PENDING
    if isinstance(raw, int) and not isinstance(raw, bool):
        try:
            return IntentStatus(raw)
        except ValueError as e:
            raise IntentDecodeError(f"unknown intent status code {raw}") from e
    name, _ = split_variant(raw)
    if name not in _STATUS_NAMES:
        raise IntentDecodeError(f"unknown intent status {name}")
    return _STATUS_NAMES[name]


def decode_sealed_status(raw: Any) -> SealedBidStatus:
    if isinstance(raw, int) and not isinstance(raw, bool):
        try:
            return SealedBidStatus(raw)
        except ValueError as e:
            raise IntentDecodeError(f"unknown auction status code {raw}") from e
    if isinstance(raw, str) and raw.isdigit():
        return decode_sealed_status(int(raw))
    name, _ = split_variant(raw)
    if name not in _SEALED_STATUS_NAMES:
        raise IntentDecodeError(f"unknown auction status {name}")
    return _SEALED_STATUS_NAMES[name]


def decode_terms(name: str, fields: Mapping[str, Any]) -> IntentTerms:
    """Build the terms object for one intent variant."""
    if name == "SWAP":
        return SwapTerms(
            amount_in=as_int(fields.get("amount_in"), "amount_in"),
            min_amount_out=as_int(fields.get("min_amount_out"), "min_amount_out", 0),
            deadline=as_int(fields.get("deadline"), "deadline", 0),
        )
    if name == "LIMITORDER":
        return LimitOrderTerms(
            amount_in=as_int(fields.get("amount_in"), "amount_in"),
            limit_price=as_int(fields.get("limit_price"), "limit_price"),
            expiry=as_int(fields.get("expiry", fields.get("deadline")), "expiry", 0),
        )
    if name == "TWAP":
        num_chunks = as_int(fields.get("num_chunks"), "num_chunks")
        if num_chunks <= 0:
            raise IntentDecodeError("num_chunks must be positive")
        return TwapTerms(
            total_amount=as_int(fields.get("total_amount"), "total_amount"),
            num_chunks=num_chunks,
            interval_seconds=as_int(fields.get("interval_seconds"), "interval_seconds"),
            max_slippage_bps=as_int(fields.get("max_slippage_bps"), "max_slippage_bps", 0),
            start_time=as_int(fields.get("start_time"), "start_time", 0),
        )
    if name == "DCA":
        total_periods = as_int(fields.get("total_periods"), "total_periods")
        if total_periods <= 0:
            raise IntentDecodeError("total_periods must be positive")
        return DcaTerms(
            amount_per_period=as_int(fields.get("amount_per_period"), "amount_per_period"),
            total_periods=total_periods,
            interval_seconds=as_int(fields.get("interval_seconds"), "interval_seconds"),
        )
    raise IntentDecodeError(f"unknown intent variant {name}")


def decode_dutch_auction(raw: Mapping[str, Any]) -> DutchAuction:
    """Decode a Dutch auction view result or attached DutchActive/DutchAccepted state."""
    start_price = as_int(raw.get("start_price"), "start_price")
    end_price = as_int(raw.get("end_price"), "end_price")
    if end_price > start_price:
        raise IntentDecodeError("dutch end_price exceeds start_price")

    winner = as_option(raw.get("winner"))
    accepted_price = as_option(raw.get("accepted_price"))
    is_active = raw.get("is_active")
    if is_active is None:
        is_active = winner is None and accepted_price is None

    return DutchAuction(
        start_time=as_int(raw.get("start_time"), "start_time", 0),
        start_price=start_price,
        end_price=end_price,
        duration=as_int(raw.get("duration"), "duration", 0),
        is_active=as_bool(is_active),
        winner=str(winner) if winner else None,
        accepted_price=as_int(accepted_price, "accepted_price") if accepted_price is not None else None,
    )


def decode_sealed_bid_auction(raw: Mapping[str, Any], status: Optional[SealedBidStatus] = None) -> SealedBidAuction:
    """Decode a sealed-bid auction view result or attached SealedBid* state."""
    if status is None:
        status = decode_sealed_status(raw.get("status", "Active"))

    solution_count = raw.get("solution_count")
    if solution_count is None and isinstance(raw.get("bids"), list):
        solution_count = len(raw["bids"])

    winner = as_option(raw.get("winner"))
    if status != SealedBidStatus.COMPLETED:
        winner = None
    elif not winner:
        raise IntentDecodeError("completed auction without a winner")

    winning_bid = as_option(raw.get("winning_bid"))
    try:
        return SealedBidAuction(
            start_time=as_int(raw.get("start_time"), "start_time", 0),
            end_time=as_int(raw.get("end_time"), "end_time", 0),
            solution_count=as_int(solution_count, "solution_count", 0),
            status=status,
            winner=str(winner) if winner else None,
            winning_bid=as_int(winning_bid, "winning_bid") if winning_bid is not None else None,
        )
    except ValueError as e:
        raise IntentDecodeError(str(e)) from e


def decode_auction_state(raw: Any) -> Optional[AuctionState]:
    """Decode the auction state attached to an intent record."""
    if raw is None:
        return None
    name, fields = split_variant(raw)
    if name in ("NONE", ""):
        return None
    if name == "DUTCHACTIVE":
        return decode_dutch_auction({**fields, "is_active": fields.get("is_active", True)})
    if name == "DUTCHACCEPTED":
        return decode_dutch_auction({**fields, "is_active": False})
    if name == "SEALEDBIDACTIVE":
        return decode_sealed_bid_auction(fields, SealedBidStatus.ACTIVE)
    if name == "SEALEDBIDSELECTING":
        return decode_sealed_bid_auction(fields, SealedBidStatus.SELECTING)
    if name == "SEALEDBIDCOMPLETED":
        return decode_sealed_bid_auction(fields, SealedBidStatus.COMPLETED)
    if name in ("FAILED", "CANCELLED", "SEALEDBIDCANCELLED"):
        return decode_sealed_bid_auction(fields, SealedBidStatus.CANCELLED)
    raise IntentDecodeError(f"unknown auction variant {name}")


# =============================================================================
# Intent records
# =============================================================================


def _deadline_for(terms: IntentTerms, created_at: int) -> int:
    if isinstance(terms, SwapTerms):
        return terms.deadline
    if isinstance(terms, LimitOrderTerms):
        return terms.expiry
    if isinstance(terms, TwapTerms):
        start = terms.start_time or created_at
        return start + terms.num_chunks * terms.interval_seconds
    return created_at + terms.total_periods * terms.interval_seconds


class IntentCodec:
    """Decodes ledger intent records, resolving token metadata."""

    def __init__(self, tokens: Optional[TokenDirectory] = None):
        self.tokens = tokens or TokenDirectory()

    def decode(self, record: Any, intent_id: Optional[int] = None) -> Intent:
        """
        Decode one intent record.

        Args:
            record: Raw record as returned by get_intent
            intent_id: Id used to query the record, used when the record omits it

        Raises:
            IntentDecodeError: on any unexpected shape
        """
        if not isinstance(record, Mapping):
            raise IntentDecodeError(f"intent record must be an object, got {type(record).__name__}", intent_id)

        try:
            record_id = as_int(record.get("id"), "id", intent_id if intent_id is not None else None)
            raw_intent = record.get("intent")
            if raw_intent is None:
                raise IntentDecodeError("record has no intent field")
            name, fields = split_variant(raw_intent)
            terms = decode_terms(name, fields)

            created_at = as_int(record.get("created_at"), "created_at", 0)
            escrow = record.get("escrow_remaining", record.get("escrowed_amount"))

            return Intent(
                id=record_id,
                user=str(record.get("user", "")),
                input_token=self.tokens.resolve(as_address(fields.get("input_token"), "input_token")),
                output_token=self.tokens.resolve(as_address(fields.get("output_token"), "output_token")),
                created_at=created_at,
                deadline=_deadline_for(terms, created_at),
                status=decode_status(record.get("status")),
                terms=terms,
                auction=decode_auction_state(record.get("auction")),
                escrow_remaining=as_int(escrow, "escrow_remaining", 0),
                chunks_executed=as_int(record.get("chunks_executed"), "chunks_executed", 0),
                next_execution=as_int(record.get("next_execution"), "next_execution", 0),
            )
        except IntentDecodeError as e:
            if e.intent_id is None:
                e.intent_id = intent_id
            raise
