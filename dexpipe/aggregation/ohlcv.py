"""
OHLCV bucket aggregation.

Buckets are keyed by ``(pool_id, bucket_start)``. Each bucket remembers
the ordering keys of its earliest and latest ticks so that merging is
independent of delivery order: ``open`` always comes from the earliest
tick and ``close`` from the latest one.

Ticks are ordered by ``(ts, seq, price)``. ``seq`` positions a tick
inside its block (see ``tick_sequence``), since every swap of a block
carries the block timestamp. Price only separates exact duplicates.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

# Messages per block never reach this
MSG_INDEX_SPAN = 1 << 20


def bucket_start(ts: datetime, interval_seconds: int = 60) -> datetime:
    """Floor ``ts`` to the start of its bucket, in UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    epoch = int(ts.timestamp())
    return datetime.fromtimestamp(epoch - epoch % interval_seconds, tz=timezone.utc)


def tick_sequence(height: Optional[int], msg_index: Optional[int]) -> int:
    """Position of a tick within equal timestamps: block height, then message index."""
    return (height or 0) * MSG_INDEX_SPAN + (msg_index or 0)


@dataclass
class OHLCVBucket:
    """Open/high/low/close/volume aggregate for one pool and interval."""
    pool_id: int
    bucket_start: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    trade_count: int
    first_ts: datetime
    last_ts: datetime
    first_seq: int = 0
    last_seq: int = 0

    @property
    def key(self) -> Tuple[int, datetime]:
        return (self.pool_id, self.bucket_start)

    @property
    def first_key(self) -> Tuple[datetime, int, float]:
        return (self.first_ts, self.first_seq, self.open)

    @property
    def last_key(self) -> Tuple[datetime, int, float]:
        return (self.last_ts, self.last_seq, self.close)

    @classmethod
    def from_tick(
        cls,
        pool_id: int,
        start: datetime,
        price: float,
        volume: float,
        ts: datetime,
        trades: int = 1,
        seq: int = 0,
    ) -> "OHLCVBucket":
        return cls(
            pool_id=pool_id,
            bucket_start=start,
            open=price,
            high=price,
            low=price,
            close=price,
            volume=volume,
            trade_count=trades,
            first_ts=ts,
            last_ts=ts,
            first_seq=seq,
            last_seq=seq,
        )

    def merge_tick(self, price: float, volume: float, ts: datetime, trades: int = 1, seq: int = 0) -> "OHLCVBucket":
        """Merge one tick into this bucket in place."""
        return self.combine(
            OHLCVBucket.from_tick(self.pool_id, self.bucket_start, price, volume, ts, trades, seq)
        )

    def combine(self, other: "OHLCVBucket") -> "OHLCVBucket":
        """Merge another partial bucket with the same key into this one."""
        if other.key != self.key:
            raise ValueError(f"Cannot merge bucket {other.key} into {self.key}")

        self.high = max(self.high, other.high)
        self.low = min(self.low, other.low)
        self.volume += other.volume
        self.trade_count += other.trade_count

        if other.first_key < self.first_key:
            self.open = other.open
            self.first_ts = other.first_ts
            self.first_seq = other.first_seq
        if other.last_key > self.last_key:
            self.close = other.close
            self.last_ts = other.last_ts
            self.last_seq = other.last_seq
        return self

    def to_row(self) -> Dict[str, object]:
        return {
            "pool_id": self.pool_id,
            "bucket_start": self.bucket_start,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "trade_count": self.trade_count,
            "first_ts": self.first_ts,
            "last_ts": self.last_ts,
            "first_seq": self.first_seq,
            "last_seq": self.last_seq,
        }


class OHLCVAccumulator:
    """In-memory pre-aggregation of ticks for one batch."""

    def __init__(self, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self.buckets: Dict[Tuple[int, datetime], OHLCVBucket] = {}

    def __len__(self) -> int:
        return len(self.buckets)

    def add(self, pool_id: int, price: float, volume: float, ts: datetime, seq: int = 0) -> OHLCVBucket:
        """Merge a tick into the bucket it falls in."""
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        start = bucket_start(ts, self.interval_seconds)
        bucket = self.buckets.get((pool_id, start))
        if bucket is None:
            bucket = OHLCVBucket.from_tick(pool_id, start, price, volume, ts, seq=seq)
            self.buckets[bucket.key] = bucket
        else:
            bucket.merge_tick(price, volume, ts, seq=seq)
        return bucket

    def drain(self) -> List[OHLCVBucket]:
        """Return all buckets in key order and reset."""
        buckets = [self.buckets[key] for key in sorted(self.buckets)]
        self.buckets = {}
        return buckets
