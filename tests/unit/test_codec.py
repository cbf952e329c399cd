"""
Unit tests for ledger record decoding.

Tests cover:
1. Enum encodings (tagged, typed, single key, bare string)
2. Terms for every intent variant
3. Attached auction states
4. Token resolution and malformed records
"""

import pytest

from intent_solver.core.errors import IntentDecodeError
from intent_solver.core.intent.codec import (
    IntentCodec,
    TokenDirectory,
    as_int,
    as_option,
    decode_auction_state,
    decode_status,
    split_variant,
)
from intent_solver.core.intent.intent import (
    DcaTerms,
    DutchAuction,
    IntentStatus,
    IntentType,
    LimitOrderTerms,
    SealedBidAuction,
    SealedBidStatus,
    SwapTerms,
    TwapTerms,
)

TOKEN_A = "0x000000000000000000000000000000000000000000000000000000000000000a"
TOKEN_B = "0xb"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def codec():
    return IntentCodec(TokenDirectory({
        TOKEN_A: {"symbol": "tMOVE", "decimals": 8},
        TOKEN_B: {"symbol": "tUSDC", "decimals": 6},
    }))


def record(intent, **extra):
    base = {"id": "5", "user": "0xu5er", "created_at": "1700000000", "status": "Active", "intent": intent}
    base.update(extra)
    return base


def swap_fields(**extra):
    fields = {"input_token": {"inner": "0xa"}, "output_token": TOKEN_B,
              "amount_in": "1000", "min_amount_out": "900", "deadline": "1700000600"}
    fields.update(extra)
    return fields


# =============================================================================
# Primitive Tests
# =============================================================================


class TestPrimitives:
    """Tests for enum and value helpers."""

    def test_variant_encodings(self):
        assert split_variant({"__variant__": "Limit_Order", "a": 1}) == ("LIMITORDER", {"a": 1})
        assert split_variant({"type": "Swap", "a": 1}) == ("SWAP", {"a": 1})
        assert split_variant({"Twap": {"a": 1}}) == ("TWAP", {"a": 1})
        assert split_variant("Active") == ("ACTIVE", {})
        assert split_variant({"None": None}) == ("NONE", {})

    def test_unrecognized_variant(self):
        with pytest.raises(IntentDecodeError):
            split_variant({"a": 1, "b": 2})
        with pytest.raises(IntentDecodeError):
            split_variant(42)

    def test_as_int(self):
        assert as_int("18446744073709551615", "x") == 2**64 - 1
        assert as_int(None, "x", 3) == 3
        with pytest.raises(IntentDecodeError):
            as_int(None, "x")
        with pytest.raises(IntentDecodeError):
            as_int("1.5", "x")
        with pytest.raises(IntentDecodeError):
            as_int(True, "x")

    def test_move_option(self):
        assert as_option({"vec": ["0x1"]}) == "0x1"
        assert as_option({"vec": []}) is None
        assert as_option("0x2") == "0x2"

    def test_status(self):
        assert decode_status("Active") == IntentStatus.PENDING
        assert decode_status({"__variant__": "PartiallyFilled"}) == IntentStatus.PARTIALLY_FILLED
        assert decode_status(2) == IntentStatus.FILLED
        assert decode_status(None) == IntentStatus.PENDING
        with pytest.raises(IntentDecodeError):
            decode_status("Exploded")


# =============================================================================
# Intent Record Tests
# =============================================================================


class TestDecodeIntent:
    """Tests for IntentCodec.decode."""

    def test_swap(self, codec):
        intent = codec.decode(record({"__variant__": "Swap", **swap_fields()}))

        assert intent.id == 5
        assert intent.intent_type == IntentType.SWAP
        assert intent.terms == SwapTerms(amount_in=1000, min_amount_out=900, deadline=1_700_000_600)
        assert intent.deadline == 1_700_000_600
        assert intent.input_token.symbol == "tMOVE"
        assert intent.output_token.decimals == 6
        assert intent.status == IntentStatus.PENDING
        assert intent.auction is None

    def test_limit_order(self, codec):
        fields = {"input_token": TOKEN_A, "output_token": TOKEN_B, "amount_in": "1000",
                  "limit_price": "5000", "expiry": "1700000900"}
        intent = codec.decode(record({"LimitOrder": fields}, escrow_remaining="400"))

        assert intent.terms == LimitOrderTerms(amount_in=1000, limit_price=5000, expiry=1_700_000_900)
        assert intent.deadline == 1_700_000_900
        assert intent.fill_amount == 400

    def test_twap_deadline_from_schedule(self, codec):
        fields = {"input_token": TOKEN_A, "output_token": TOKEN_B, "total_amount": "400",
                  "num_chunks": "4", "interval_seconds": "60", "max_slippage_bps": "50",
                  "start_time": "0"}
        intent = codec.decode(record({"type": "TWAP", **fields}, chunks_executed="1"))

        assert isinstance(intent.terms, TwapTerms)
        assert intent.fill_amount == 100
        assert intent.chunks_executed == 1
        assert intent.deadline == 1_700_000_000 + 240

    def test_dca(self, codec):
        fields = {"input_token": TOKEN_A, "output_token": TOKEN_B, "amount_per_period": "10",
                  "total_periods": "3", "interval_seconds": "3600"}
        intent = codec.decode(record({"Dca": fields}))

        assert intent.terms == DcaTerms(amount_per_period=10, total_periods=3, interval_seconds=3600)
        assert intent.input_amount == 30
        assert intent.total_chunks == 3

    def test_zero_chunks_rejected(self, codec):
        fields = {"input_token": TOKEN_A, "output_token": TOKEN_B, "total_amount": "400",
                  "num_chunks": "0", "interval_seconds": "60"}
        with pytest.raises(IntentDecodeError):
            codec.decode(record({"Twap": fields}))

    def test_unknown_variant_carries_id(self, codec):
        with pytest.raises(IntentDecodeError) as exc_info:
            codec.decode({"intent": {"Perpetual": {}}}, intent_id=12)
        assert exc_info.value.intent_id == 12

    def test_non_object_record(self, codec):
        with pytest.raises(IntentDecodeError):
            codec.decode(["not", "a", "record"], intent_id=1)

    def test_unknown_token(self, codec):
        intent = codec.decode(record({"Swap": swap_fields(output_token="0xdead")}))
        assert intent.output_token.symbol == "UNKNOWN"
        assert intent.output_token.decimals == 8


# =============================================================================
# Auction State Tests
# =============================================================================


class TestAuctionState:
    """Tests for attached auction decoding."""

    def test_none(self):
        assert decode_auction_state(None) is None
        assert decode_auction_state("None") is None

    def test_dutch_active(self):
        auction = decode_auction_state({"DutchActive": {
            "start_time": "100", "start_price": "1000", "end_price": "500", "duration": "60",
        }})
        assert auction == DutchAuction(start_time=100, start_price=1000, end_price=500, duration=60)

    def test_dutch_accepted(self):
        auction = decode_auction_state({"DutchAccepted": {
            "start_time": "100", "start_price": "1000", "end_price": "500", "duration": "60",
            "winner": "0xabc", "accepted_price": "750",
        }})
        assert not auction.is_active
        assert auction.winner == "0xabc"
        assert auction.accepted_price == 750

    def test_dutch_end_above_start_rejected(self):
        with pytest.raises(IntentDecodeError):
            decode_auction_state({"DutchActive": {"start_price": "10", "end_price": "20"}})

    def test_sealed_bid_active(self):
        auction = decode_auction_state({"SealedBidActive": {"start_time": "1", "end_time": "61", "bids": [1, 2]}})
        assert isinstance(auction, SealedBidAuction)
        assert auction.status == SealedBidStatus.ACTIVE
        assert auction.solution_count == 2
        assert auction.winner is None

    def test_sealed_bid_completed(self):
        auction = decode_auction_state({"SealedBidCompleted": {
            "start_time": "1", "end_time": "61", "winner": {"vec": ["0xabc"]}, "winning_bid": {"vec": ["99"]},
        }})
        assert auction.status == SealedBidStatus.COMPLETED
        assert auction.winner == "0xabc"
        assert auction.winning_bid == 99

    def test_completed_without_winner_rejected(self):
        with pytest.raises(IntentDecodeError):
            decode_auction_state({"SealedBidCompleted": {"end_time": "61", "winner": {"vec": []}}})

    def test_failed_auction_is_cancelled(self):
        auction = decode_auction_state("Failed")
        assert auction.status == SealedBidStatus.CANCELLED

    def test_attached_to_intent(self, codec):
        intent = codec.decode(record({"Swap": swap_fields()}, auction={
            "__variant__": "SealedBidActive", "start_time": "1", "end_time": "61",
        }))
        assert intent.sealed_bid_auction is not None
        assert intent.dutch_auction is None


# =============================================================================
# Token Directory Tests
# =============================================================================


class TestTokenDirectory:
    """Tests for TokenDirectory."""

    def test_lookup_ignores_padding(self, codec):
        assert codec.tokens.resolve("0xA").symbol == "tMOVE"
        assert codec.tokens.resolve(TOKEN_A).symbol == "tMOVE"

    def test_by_symbol(self, codec):
        assert codec.tokens.by_symbol("tusdc").address == TOKEN_B
        assert codec.tokens.by_symbol("ETH") is None
        assert len(codec.tokens) == 2
