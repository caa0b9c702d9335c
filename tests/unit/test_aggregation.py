"""Unit tests for price derivation and OHLCV aggregation."""

from datetime import datetime, timedelta, timezone
from itertools import permutations

import pytest

from dexpipe.aggregation.ohlcv import OHLCVAccumulator, OHLCVBucket, bucket_start, tick_sequence
from dexpipe.aggregation.prices import classify_direction, price_from_reserves, quote_volume
from dexpipe.schemas.events import Reserve
from dexpipe.schemas.models import AssetDescriptor


T0 = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


class TestPriceFromReserves:

    def test_normalizes_both_sides(self):
        reserves = [
            {"denom": "uzig", "amount_base": "2000000"},
            {"denom": "uabc", "amount_base": "1000000000"},
        ]
        price = price_from_reserves(AssetDescriptor("uabc", 6), reserves)
        assert price == pytest.approx(0.002)

    def test_accepts_reserve_objects(self):
        reserves = [Reserve("uabc", "1000000000"), Reserve("uzig", "2000000")]
        assert price_from_reserves(AssetDescriptor("uabc", 6), reserves) == pytest.approx(0.002)

    def test_base_exponent_matters(self):
        reserves = [Reserve("uzig", "1000000"), Reserve("wei", "1000000000000000000")]
        assert price_from_reserves(AssetDescriptor("wei", 18), reserves) == pytest.approx(1.0)

    @pytest.mark.parametrize(
        "reserves",
        [
            [Reserve("uabc", "1000")],
            [Reserve("uzig", "1000")],
            [Reserve("uzig", "0"), Reserve("uabc", "1000")],
            [Reserve("uzig", "1000"), Reserve("uabc", "0")],
            [Reserve("uzig", "abc"), Reserve("uabc", "1000")],
            [Reserve("uatom", "1000"), Reserve("uabc", "1000")],
        ],
    )
    def test_unpriceable_reserves(self, reserves):
        assert price_from_reserves(AssetDescriptor("uabc", 6), reserves) is None


class TestTradeClassification:

    def test_offering_quote_is_buy(self):
        assert classify_direction("uzig", "uzig") == "buy"
        assert classify_direction("uabc", "uzig") == "sell"

    def test_volume_uses_quote_side(self):
        assert quote_volume("uzig", "5000000", "100", "uzig", 6) == pytest.approx(5.0)
        assert quote_volume("uabc", "100", "2500000", "uzig", 6) == pytest.approx(2.5)
        assert quote_volume("uabc", "100", None, "uzig", 6) == 0


class TestBucketStart:

    def test_floors_to_interval(self):
        assert bucket_start(T0 + timedelta(seconds=59)) == T0
        assert bucket_start(T0 + timedelta(seconds=60)) == T0 + timedelta(minutes=1)
        assert bucket_start(T0 + timedelta(minutes=7, seconds=3), 300) == T0 + timedelta(minutes=5)

    def test_naive_timestamps_are_utc(self):
        assert bucket_start(datetime(2024, 1, 1, 0, 0, 30)) == T0


class TestOHLCVAccumulator:

    TICKS = [
        (1.0, 10.0, T0 + timedelta(seconds=1)),
        (1.5, 20.0, T0 + timedelta(seconds=2)),
        (0.8, 5.0, T0 + timedelta(seconds=3)),
    ]

    def test_bucket_from_three_ticks(self):
        acc = OHLCVAccumulator()
        for price, volume, ts in self.TICKS:
            acc.add(7, price, volume, ts)

        [bucket] = acc.drain()
        assert (bucket.open, bucket.high, bucket.low, bucket.close) == (1.0, 1.5, 0.8, 0.8)
        assert bucket.volume == pytest.approx(35.0)
        assert bucket.trade_count == 3
        assert bucket.bucket_start == T0
        assert len(acc) == 0

    def test_merge_is_order_independent(self):
        results = set()
        for order in permutations(self.TICKS):
            acc = OHLCVAccumulator()
            for price, volume, ts in order:
                acc.add(7, price, volume, ts)
            [bucket] = acc.drain()
            results.add((bucket.open, bucket.high, bucket.low, bucket.close, bucket.volume, bucket.trade_count))

        assert results == {(1.0, 1.5, 0.8, 0.8, 35.0, 3)}

    def test_pools_and_intervals_are_separate_buckets(self):
        acc = OHLCVAccumulator()
        acc.add(7, 1.0, 1.0, T0)
        acc.add(8, 2.0, 1.0, T0)
        acc.add(7, 3.0, 1.0, T0 + timedelta(minutes=1))

        keys = [bucket.key for bucket in acc.drain()]
        assert keys == [(7, T0), (7, T0 + timedelta(minutes=1)), (8, T0)]

    def test_same_timestamp_orders_by_message(self):
        ticks = [(1.0, tick_sequence(101, 0)), (2.0, tick_sequence(101, 1)), (0.5, tick_sequence(100, 3))]
        results = set()

        for order in permutations(ticks):
            acc = OHLCVAccumulator()
            for price, seq in order:
                acc.add(7, price, 1.0, T0, seq=seq)
            [bucket] = acc.drain()
            results.add((bucket.open, bucket.close, bucket.first_seq, bucket.last_seq))

        assert results == {(0.5, 2.0, tick_sequence(100, 3), tick_sequence(101, 1))}

    def test_exact_duplicate_ticks_order_by_price(self):
        for first, second in ((1.0, 2.0), (2.0, 1.0)):
            acc = OHLCVAccumulator()
            acc.add(7, first, 1.0, T0, seq=5)
            acc.add(7, second, 1.0, T0, seq=5)

            [bucket] = acc.drain()
            assert (bucket.open, bucket.close) == (1.0, 2.0)


class TestOHLCVBucketCombine:

    def test_combining_partial_buckets(self):
        early = OHLCVBucket.from_tick(7, T0, 1.0, 10.0, T0 + timedelta(seconds=1))
        late = OHLCVBucket.from_tick(7, T0, 0.8, 5.0, T0 + timedelta(seconds=3))
        late.merge_tick(1.5, 20.0, T0 + timedelta(seconds=2))

        merged = late.combine(early)

        assert (merged.open, merged.high, merged.low, merged.close) == (1.0, 1.5, 0.8, 0.8)
        assert merged.trade_count == 3
        assert merged.first_ts == T0 + timedelta(seconds=1)
        assert merged.last_ts == T0 + timedelta(seconds=3)

    def test_key_mismatch_is_rejected(self):
        bucket = OHLCVBucket.from_tick(7, T0, 1.0, 1.0, T0)
        other = OHLCVBucket.from_tick(8, T0, 1.0, 1.0, T0)

        with pytest.raises(ValueError):
            bucket.combine(other)
