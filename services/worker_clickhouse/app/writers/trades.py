"""
Swap and liquidity handlers for the ClickHouse worker.
"""

from __future__ import annotations

from typing import Any, Dict

import structlog

from dexpipe.aggregation.prices import classify_direction
from dexpipe.framework.dispatcher import EventHandler
from dexpipe.lookup.resolver import EventualResolver
from dexpipe.schemas.events import LiquidityEvent, SwapEvent
from dexpipe.schemas.models import PoolMeta
from dexpipe.schemas.rows import liquidity_trade_row, swap_trade_row
from dexpipe.storage.batch_writer import BufferedBatchWriter

from .prices import PriceTickWriter

logger = structlog.get_logger(__name__)

TRADES_TABLE = "trades"


class _TradeHandler(EventHandler):

    def __init__(
        self,
        resolver: EventualResolver,
        writer: BufferedBatchWriter,
        prices: PriceTickWriter,
        retries: int = 10,
        delay: float = 0.5,
    ):
        self.resolver = resolver
        self.writer = writer
        self.prices = prices
        self.retries = retries
        self.delay = delay

        self.rows_written = 0

    async def pool(self, pair_contract: str) -> PoolMeta:
        return await self.resolver.get_pool_meta(pair_contract, retries=self.retries, delay=self.delay)


class ClickHouseSwapWriter(_TradeHandler):
    """Handles ``events:swap``."""

    name = "swaps"

    async def handle(self, event: Dict[str, Any]) -> None:
        swap = SwapEvent.from_dict(event)
        meta = await self.pool(swap.pair_contract)

        direction = classify_direction(swap.offer_asset_denom, meta.quote_denom)
        await self.writer.push(TRADES_TABLE, swap_trade_row(swap, meta.pool_id, direction))
        self.rows_written += 1

        reserves = swap.reserves()
        if reserves:
            await self.prices.push_from_reserves(meta, reserves, swap.created_at)


class ClickHouseLiquidityWriter(_TradeHandler):
    """Handles ``events:liquidity``."""

    name = "liquidity"

    async def handle(self, event: Dict[str, Any]) -> None:
        liquidity = LiquidityEvent.from_dict(event)
        meta = await self.pool(liquidity.pair_contract)

        await self.writer.push(TRADES_TABLE, liquidity_trade_row(liquidity, meta.pool_id))
        self.rows_written += 1

        reserves = liquidity.reserves()
        if reserves:
            await self.prices.push_from_reserves(meta, reserves, liquidity.created_at)
