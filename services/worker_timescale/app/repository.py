"""
SQL access for the Timescale warehouse.

The worker owns the surrogate keys of pools and tokens: both are created
with ``INSERT ... ON CONFLICT ... RETURNING`` so replays return the ids
assigned the first time.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import structlog

from dexpipe.aggregation.ohlcv import OHLCVBucket
from dexpipe.schemas.events import PoolCreatedEvent, Reserve
from dexpipe.schemas.models import PoolMeta
from dexpipe.storage.postgres import PostgresClient

logger = structlog.get_logger(__name__)


UPSERT_TOKEN_SQL = """
INSERT INTO tokens (denom, exponent)
VALUES ($1, $2)
ON CONFLICT (denom) DO UPDATE SET denom = EXCLUDED.denom
RETURNING token_id
"""

UPSERT_POOL_SQL = """
INSERT INTO pools (
    pair_contract, base_token_id, quote_token_id, pair_type, is_uzig_quote,
    created_at, created_height, created_tx_hash, signer
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
ON CONFLICT (pair_contract) DO UPDATE SET pair_type = EXCLUDED.pair_type
RETURNING pool_id
"""

POOL_WITH_TOKENS_SQL = """
SELECT p.pool_id, p.pair_contract, p.pair_type, p.is_uzig_quote, p.created_at,
       b.token_id AS base_id, b.denom AS base_denom, b.exponent AS base_exp,
       q.token_id AS quote_id, q.denom AS quote_denom, q.exponent AS quote_exp
FROM pools p
JOIN tokens b ON b.token_id = p.base_token_id
JOIN tokens q ON q.token_id = p.quote_token_id
WHERE p.pair_contract = $1
"""

UPSERT_POOL_STATE_SQL = """
INSERT INTO pool_state (pool_id, reserve_base_base, reserve_quote_base, updated_at)
VALUES ($1, $2, $3, $4)
ON CONFLICT (pool_id) DO UPDATE SET
    reserve_base_base = EXCLUDED.reserve_base_base,
    reserve_quote_base = EXCLUDED.reserve_quote_base,
    updated_at = EXCLUDED.updated_at
WHERE pool_state.updated_at <= EXCLUDED.updated_at
"""

UPSERT_PRICE_SQL = """
INSERT INTO prices (token_id, pool_id, price_in_zig, is_pool_price, updated_at)
VALUES ($1, $2, $3, TRUE, $4)
ON CONFLICT (token_id, pool_id) DO UPDATE SET
    price_in_zig = EXCLUDED.price_in_zig,
    updated_at = EXCLUDED.updated_at
WHERE prices.updated_at <= EXCLUDED.updated_at
"""

# Open and close follow the earliest and latest ticks by
# (ts, seq, price), so partial buckets can be merged in any order.
# Right-hand sides see the stored row.
UPSERT_OHLCV_SQL = """
INSERT INTO ohlcv_1m AS o (
    pool_id, bucket_start, open, high, low, close,
    volume_zig, trade_count, first_ts, last_ts, first_seq, last_seq
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
ON CONFLICT (pool_id, bucket_start) DO UPDATE SET
    open = CASE WHEN (EXCLUDED.first_ts, EXCLUDED.first_seq, EXCLUDED.open) < (o.first_ts, o.first_seq, o.open)
        THEN EXCLUDED.open ELSE o.open END,
    first_ts = CASE WHEN (EXCLUDED.first_ts, EXCLUDED.first_seq, EXCLUDED.open) < (o.first_ts, o.first_seq, o.open)
        THEN EXCLUDED.first_ts ELSE o.first_ts END,
    first_seq = CASE WHEN (EXCLUDED.first_ts, EXCLUDED.first_seq, EXCLUDED.open) < (o.first_ts, o.first_seq, o.open)
        THEN EXCLUDED.first_seq ELSE o.first_seq END,
    close = CASE WHEN (EXCLUDED.last_ts, EXCLUDED.last_seq, EXCLUDED.close) > (o.last_ts, o.last_seq, o.close)
        THEN EXCLUDED.close ELSE o.close END,
    last_ts = CASE WHEN (EXCLUDED.last_ts, EXCLUDED.last_seq, EXCLUDED.close) > (o.last_ts, o.last_seq, o.close)
        THEN EXCLUDED.last_ts ELSE o.last_ts END,
    last_seq = CASE WHEN (EXCLUDED.last_ts, EXCLUDED.last_seq, EXCLUDED.close) > (o.last_ts, o.last_seq, o.close)
        THEN EXCLUDED.last_seq ELSE o.last_seq END,
    high = GREATEST(o.high, EXCLUDED.high),
    low = LEAST(o.low, EXCLUDED.low),
    volume_zig = o.volume_zig + EXCLUDED.volume_zig,
    trade_count = o.trade_count + EXCLUDED.trade_count
"""

UPDATE_TOKEN_METADATA_SQL = """
UPDATE tokens SET
    name = COALESCE($2, name),
    symbol = COALESCE($3, symbol),
    display = COALESCE($4, display),
    exponent = COALESCE($5, exponent)
WHERE denom = $1
"""


class TimescaleRepository:
    """Pools, tokens, live state, prices and candles in PostgreSQL/TimescaleDB."""

    def __init__(self, db: PostgresClient, quote_denom: str = "uzig", quote_exponent: int = 6):
        self.db = db
        self.quote_denom = quote_denom
        self.quote_exponent = quote_exponent

    async def upsert_token(self, denom: str) -> int:
        exponent = self.quote_exponent if denom == self.quote_denom else 0
        return await self.db.execute_scalar(UPSERT_TOKEN_SQL, denom, exponent)

    async def upsert_pool(self, event: PoolCreatedEvent) -> int:
        """Create the pool and its tokens; returns the pool id."""
        base_id = await self.upsert_token(event.base_denom)
        quote_id = await self.upsert_token(event.quote_denom)

        return await self.db.execute_scalar(
            UPSERT_POOL_SQL,
            event.pair_contract,
            base_id,
            quote_id,
            event.pair_type,
            event.quote_denom == self.quote_denom,
            event.created_at,
            event.height,
            event.tx_hash,
            event.signer,
        )

    async def pool_with_tokens(self, pair_contract: str) -> Optional[PoolMeta]:
        row = await self.db.execute_one(POOL_WITH_TOKENS_SQL, pair_contract)
        if row is None:
            return None
        return PoolMeta.from_dict(row)

    async def upsert_pool_state(
        self,
        meta: PoolMeta,
        reserves: Sequence[Reserve],
        at: datetime,
    ) -> bool:
        """Store live reserves; returns False when the event carries no reserves for this pool."""
        amounts: Dict[str, str] = {reserve.denom: reserve.amount_base for reserve in reserves}
        base_amount = amounts.get(meta.base_denom)
        quote_amount = amounts.get(meta.quote_denom)
        if base_amount is None or quote_amount is None:
            return False

        await self.db.execute(
            UPSERT_POOL_STATE_SQL, meta.pool_id, Decimal(base_amount), Decimal(quote_amount), at
        )
        return True

    async def upsert_prices(self, prices: List[Dict[str, Any]]) -> None:
        """Latest price per ``(token_id, pool_id)``; older observations never overwrite newer ones."""
        await self.db.execute_many(
            UPSERT_PRICE_SQL,
            [(p["token_id"], p["pool_id"], p["price"], p["ts"]) for p in prices],
        )

    async def upsert_ohlcv(self, buckets: List[OHLCVBucket]) -> None:
        await self.db.execute_many(
            UPSERT_OHLCV_SQL,
            [
                (
                    b.pool_id, b.bucket_start, b.open, b.high, b.low, b.close,
                    b.volume, b.trade_count, b.first_ts, b.last_ts, b.first_seq, b.last_seq,
                )
                for b in buckets
            ],
        )

    async def update_token_metadata(
        self,
        denom: str,
        name: Optional[str],
        symbol: Optional[str],
        display: Optional[str],
        exponent: Optional[int],
    ) -> None:
        await self.db.execute(UPDATE_TOKEN_METADATA_SQL, denom, name, symbol, display, exponent)
