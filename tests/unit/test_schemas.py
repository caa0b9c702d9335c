"""Unit tests for event schemas and row builders."""

from datetime import datetime, timezone

import pytest

from dexpipe.schemas.events import LiquidityEvent, PoolCreatedEvent, Reserve, SwapEvent, digits_or_none, parse_timestamp
from dexpipe.schemas.models import PoolMeta, PriceTick
from dexpipe.schemas.rows import liquidity_trade_row, swap_trade_row
from dexpipe.utils.errors import ValidationError


class TestParseTimestamp:
    """Test timestamp parsing."""

    def test_iso_with_z(self):
        assert parse_timestamp("2024-01-01T00:00:30Z") == datetime(2024, 1, 1, 0, 0, 30, tzinfo=timezone.utc)

    def test_naive_iso_is_utc(self):
        assert parse_timestamp("2024-01-01T00:00:30").tzinfo == timezone.utc

    def test_epoch_seconds_and_millis(self):
        expected = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert parse_timestamp(1704067200) == expected
        assert parse_timestamp(1704067200000) == expected
        assert parse_timestamp("1704067200") == expected

    @pytest.mark.parametrize("value", [None, "", "yesterday", True])
    def test_invalid_values(self, value):
        with pytest.raises(ValidationError):
            parse_timestamp(value)

    @pytest.mark.parametrize("value", [99999999999999999, "99999999999999999", 10**400, "-99999999999999999"])
    def test_out_of_range_epochs(self, value):
        with pytest.raises(ValidationError) as exc_info:
            parse_timestamp(value)
        assert exc_info.value.field == "created_at"


class TestAmounts:

    def test_digits_or_none(self):
        assert digits_or_none("123456789012345678901234567890") == "123456789012345678901234567890"
        assert digits_or_none(42) == "42"
        assert digits_or_none("-5") is None
        assert digits_or_none("1.5") is None
        assert digits_or_none(None) is None


class TestPoolCreatedEvent:

    def test_from_dict(self, sample_pool_event):
        event = PoolCreatedEvent.from_dict(sample_pool_event)

        assert event.pair_contract == "zig1pair"
        assert event.base_denom == "uabc"
        assert event.quote_denom == "uzig"
        assert event.height == 100
        assert event.created_at.year == 2024

    def test_missing_required_field(self, sample_pool_event):
        del sample_pool_event["quote_denom"]

        with pytest.raises(ValidationError) as exc_info:
            PoolCreatedEvent.from_dict(sample_pool_event)
        assert exc_info.value.field == "quote_denom"

    def test_pair_type_defaults_to_xyk(self, sample_pool_event):
        del sample_pool_event["pair_type"]
        assert PoolCreatedEvent.from_dict(sample_pool_event).pair_type == "xyk"


class TestSwapEvent:

    def test_from_dict(self, sample_swap_event):
        swap = SwapEvent.from_dict(sample_swap_event)

        assert swap.offer_asset_denom == "uzig"
        assert swap.offer_amount_base == "1000000000"
        assert swap.msg_index == 0
        assert swap.reserves() == [Reserve("uzig", "2000000"), Reserve("uabc", "1000000000")]

    def test_reserves_need_both_sides(self, sample_swap_event):
        del sample_swap_event["reserve_asset2_amount_base"]
        assert SwapEvent.from_dict(sample_swap_event).reserves() == []

    def test_bad_height(self, sample_swap_event):
        sample_swap_event["height"] = "tall"
        with pytest.raises(ValidationError):
            SwapEvent.from_dict(sample_swap_event)


class TestLiquidityEvent:

    def test_from_dict(self, sample_liquidity_event):
        event = LiquidityEvent.from_dict(sample_liquidity_event)

        assert event.action == "provide"
        assert event.share_base == "12345"
        assert len(event.reserves()) == 2

    def test_unknown_action(self, sample_liquidity_event):
        sample_liquidity_event["action"] = "migrate"
        with pytest.raises(ValidationError):
            LiquidityEvent.from_dict(sample_liquidity_event)


class TestPoolMeta:

    def test_dict_round_trip_keeps_identity(self, pool_meta):
        restored = PoolMeta.from_dict(pool_meta.to_dict())

        assert restored == pool_meta
        assert restored.base.exponent == 6

    def test_missing_identity(self):
        with pytest.raises(ValidationError):
            PoolMeta.from_dict({"pair_contract": "zig1pair"})

    def test_price_tick_row(self):
        ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
        row = PriceTick(pool_id=7, token_id=11, price_in_zig=0.002, ts=ts).to_row()
        assert row == {"pool_id": 7, "token_id": 11, "price_in_zig": 0.002, "ts": ts}


class TestTradeRows:

    def test_swap_and_liquidity_rows_share_columns(self, sample_swap_event, sample_liquidity_event):
        swap_row = swap_trade_row(SwapEvent.from_dict(sample_swap_event), 7, "buy")
        liquidity_row = liquidity_trade_row(LiquidityEvent.from_dict(sample_liquidity_event), 7)

        assert set(swap_row) == set(liquidity_row)
        assert swap_row["action"] == "swap"
        assert swap_row["direction"] == "buy"
        assert liquidity_row["action"] == "provide"
        assert liquidity_row["return_amount_base"] == "12345"
        assert liquidity_row["offer_asset_denom"] is None
