"""
Swap and liquidity handlers for the Timescale worker.

Trades go through the buffered writer. Live reserves are upserted per
event. For pools quoted in the canonical asset, swaps also produce a
price and an OHLCV tick; both are pre-aggregated over the batch and
written once the batch has been handled.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Tuple

import structlog

from dexpipe.aggregation.ohlcv import OHLCVAccumulator, tick_sequence
from dexpipe.aggregation.prices import classify_direction, price_from_reserves, quote_volume
from dexpipe.framework.dispatcher import EventHandler
from dexpipe.lookup.resolver import EventualResolver
from dexpipe.schemas.events import LiquidityEvent, SwapEvent
from dexpipe.schemas.models import PoolMeta
from dexpipe.schemas.rows import liquidity_trade_row, swap_trade_row
from dexpipe.storage.batch_writer import BufferedBatchWriter

from ..repository import TimescaleRepository

logger = structlog.get_logger(__name__)

TRADES_TABLE = "trades"
AMOUNT_COLUMNS = (
    "offer_amount_base",
    "ask_amount_base",
    "return_amount_base",
    "reserve_asset1_amount_base",
    "reserve_asset2_amount_base",
)


def numeric_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Raw amounts travel as digit strings; NUMERIC columns take Decimals."""
    for column in AMOUNT_COLUMNS:
        if row.get(column) is not None:
            row[column] = Decimal(row[column])
    return row


class PoolLookup:
    """
    Pool descriptors for trade handlers, read from the warehouse.

    A pool not found yet is usually still being created by this worker's
    pool consumer, so the resolver waits for its published metadata
    before the warehouse is read again.
    """

    def __init__(
        self,
        repository: TimescaleRepository,
        resolver: EventualResolver,
        retries: int = 10,
        delay: float = 0.5,
    ):
        self.repository = repository
        self.resolver = resolver
        self.retries = retries
        self.delay = delay

    async def get(self, pair_contract: str) -> PoolMeta:
        meta = await self.repository.pool_with_tokens(pair_contract)
        if meta is not None:
            return meta

        published = await self.resolver.get_pool_meta(pair_contract, retries=self.retries, delay=self.delay)
        return await self.repository.pool_with_tokens(pair_contract) or published


class SwapWriter(EventHandler):
    """Handles ``events:swap``."""

    name = "swaps"

    def __init__(
        self,
        repository: TimescaleRepository,
        pools: PoolLookup,
        writer: BufferedBatchWriter,
        quote_denom: str = "uzig",
        quote_exponent: int = 6,
        interval_seconds: int = 60,
    ):
        self.repository = repository
        self.pools = pools
        self.writer = writer
        self.quote_denom = quote_denom
        self.quote_exponent = quote_exponent

        self.ohlcv = OHLCVAccumulator(interval_seconds)
        self.latest_prices: Dict[Tuple[int, int], Dict[str, Any]] = {}

        self.swaps_written = 0
        self.prices_derived = 0

    async def handle(self, event: Dict[str, Any]) -> None:
        swap = SwapEvent.from_dict(event)
        meta = await self.pools.get(swap.pair_contract)

        direction = classify_direction(swap.offer_asset_denom, meta.quote_denom)
        await self.writer.push(TRADES_TABLE, numeric_row(swap_trade_row(swap, meta.pool_id, direction)))
        self.swaps_written += 1

        reserves = swap.reserves()
        if not reserves:
            return
        await self.repository.upsert_pool_state(meta, reserves, swap.created_at)

        if meta.is_uzig_quote:
            price = price_from_reserves(meta.base, reserves, self.quote_denom, self.quote_exponent)
            if price is not None:
                self._record_price(meta, swap, price)

    def _record_price(self, meta: PoolMeta, swap: SwapEvent, price: float) -> None:
        volume = quote_volume(
            swap.offer_asset_denom,
            swap.offer_amount_base,
            swap.return_amount_base,
            meta.quote_denom,
            self.quote_exponent,
        )
        seq = tick_sequence(swap.height, swap.msg_index)
        self.ohlcv.add(meta.pool_id, price, volume, swap.created_at, seq=seq)
        self.prices_derived += 1

        if meta.base_id is None:
            return
        key = (meta.base_id, meta.pool_id)
        current = self.latest_prices.get(key)
        order = (swap.created_at, seq, price)
        if current is None or order > current["order"]:
            self.latest_prices[key] = {
                "token_id": meta.base_id,
                "pool_id": meta.pool_id,
                "price": price,
                "ts": swap.created_at,
                "order": order,
            }

    async def on_batch_end(self) -> None:
        buckets = self.ohlcv.drain()
        prices = list(self.latest_prices.values())
        self.latest_prices = {}

        if buckets:
            await self.repository.upsert_ohlcv(buckets)
        if prices:
            await self.repository.upsert_prices(prices)

    async def on_batch_failed(self) -> None:
        # The batch is delivered again; its ticks must not be counted twice
        self.ohlcv.drain()
        self.latest_prices = {}


class LiquidityWriter(EventHandler):
    """Handles ``events:liquidity``."""

    name = "liquidity"

    def __init__(self, repository: TimescaleRepository, pools: PoolLookup, writer: BufferedBatchWriter):
        self.repository = repository
        self.pools = pools
        self.writer = writer

        self.events_written = 0

    async def handle(self, event: Dict[str, Any]) -> None:
        liquidity = LiquidityEvent.from_dict(event)
        meta = await self.pools.get(liquidity.pair_contract)

        await self.writer.push(TRADES_TABLE, numeric_row(liquidity_trade_row(liquidity, meta.pool_id)))
        self.events_written += 1

        reserves = liquidity.reserves()
        if reserves:
            await self.repository.upsert_pool_state(meta, reserves, liquidity.created_at)
