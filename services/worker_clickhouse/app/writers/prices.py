"""
Price ticks derived from the reserves carried on pool events.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import structlog

from dexpipe.aggregation.prices import price_from_reserves
from dexpipe.schemas.events import Reserve
from dexpipe.schemas.models import PoolMeta, PriceTick
from dexpipe.storage.batch_writer import BufferedBatchWriter

logger = structlog.get_logger(__name__)

PRICE_TICKS_TABLE = "price_ticks"


class PriceTickWriter:
    """Buffers one tick per priced event into ``price_ticks``."""

    def __init__(self, writer: BufferedBatchWriter, quote_denom: str = "uzig", quote_exponent: int = 6):
        self.writer = writer
        self.quote_denom = quote_denom
        self.quote_exponent = quote_exponent

        self.ticks_written = 0

    def tick_from_reserves(self, meta: PoolMeta, reserves: Sequence[Reserve], at: datetime) -> Optional[PriceTick]:
        """Tick for ``meta``'s base token, or None when the pool cannot be priced."""
        if not meta.is_uzig_quote or meta.base_id is None:
            return None

        price = price_from_reserves(meta.base, reserves, self.quote_denom, self.quote_exponent)
        if price is None:
            return None
        return PriceTick(pool_id=meta.pool_id, token_id=meta.base_id, price_in_zig=price, ts=at)

    async def push_from_reserves(self, meta: PoolMeta, reserves: Sequence[Reserve], at: datetime) -> bool:
        tick = self.tick_from_reserves(meta, reserves, at)
        if tick is None:
            return False

        await self.writer.push(PRICE_TICKS_TABLE, tick.to_row())
        self.ticks_written += 1
        return True
