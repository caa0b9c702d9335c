"""
New-pool handler for the ClickHouse worker.

Ids are never assigned here: the pool and its tokens are resolved from
the mappings the Timescale worker publishes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import structlog

from dexpipe.framework.dispatcher import EventHandler
from dexpipe.lookup.resolver import EventualResolver
from dexpipe.schemas.events import PoolCreatedEvent
from dexpipe.schemas.models import PoolMeta
from dexpipe.storage.batch_writer import BufferedBatchWriter

logger = structlog.get_logger(__name__)

POOLS_TABLE = "pools"
TOKENS_TABLE = "tokens"


def token_row(token_id: int, denom: str, exponent: int, created_at: Optional[datetime]) -> Dict[str, Any]:
    """A token row with its descriptive columns left empty."""
    return {
        "token_id": token_id,
        "denom": denom,
        "type": "",
        "name": "",
        "symbol": "",
        "display": "",
        "exponent": exponent,
        "image_uri": "",
        "website": "",
        "twitter": "",
        "telegram": "",
        "max_supply_base": "0",
        "total_supply_base": "0",
        "description": "",
        "created_at": created_at or datetime.now(timezone.utc),
    }


class ClickHousePoolWriter(EventHandler):
    """Handles ``events:new_pool``."""

    name = "pools"

    def __init__(
        self,
        resolver: EventualResolver,
        writer: BufferedBatchWriter,
        retries: int = 20,
        delay: float = 0.5,
        factory_contract: str = "",
        router_contract: str = "",
    ):
        self.resolver = resolver
        self.writer = writer
        self.retries = retries
        self.delay = delay
        self.factory_contract = factory_contract
        self.router_contract = router_contract

        self.seen_tokens: Set[int] = set()
        self.pools_written = 0

    async def handle(self, event: Dict[str, Any]) -> None:
        pool = PoolCreatedEvent.from_dict(event)
        meta = await self.resolver.get_pool_meta(pool.pair_contract, retries=self.retries, delay=self.delay)

        base_id = meta.base_id
        if base_id is None:
            base_id = await self.resolver.get_token_id(meta.base_denom, retries=self.retries, delay=self.delay)
        quote_id = meta.quote_id
        if quote_id is None:
            quote_id = await self.resolver.get_token_id(meta.quote_denom, retries=self.retries, delay=self.delay)

        created_at = meta.created_at or pool.created_at
        await self._push_token(base_id, meta.base_denom, meta.base_exp, created_at)
        await self._push_token(quote_id, meta.quote_denom, meta.quote_exp, created_at)

        await self.writer.push(POOLS_TABLE, self.pool_row(pool, meta, base_id, quote_id))
        self.pools_written += 1
        logger.info("Pool recorded", pair_contract=pool.pair_contract, pool_id=meta.pool_id)

    def pool_row(self, pool: PoolCreatedEvent, meta: PoolMeta, base_id: int, quote_id: int) -> Dict[str, Any]:
        return {
            "pool_id": meta.pool_id,
            "pair_contract": pool.pair_contract,
            "base_token_id": base_id,
            "quote_token_id": quote_id,
            "lp_token_denom": "",
            "pair_type": meta.pair_type or pool.pair_type,
            "is_uzig_quote": 1 if meta.is_uzig_quote else 0,
            "factory_contract": self.factory_contract,
            "router_contract": self.router_contract,
            "created_at": pool.created_at,
            "created_height": pool.height or 0,
            "created_tx_hash": pool.tx_hash or "",
            "signer": pool.signer or "",
        }

    async def _push_token(self, token_id: int, denom: str, exponent: int, created_at: Optional[datetime]) -> None:
        # Once per process; the table engine collapses duplicates across restarts
        if token_id in self.seen_tokens:
            return
        await self.writer.push(TOKENS_TABLE, token_row(token_id, denom, exponent, created_at))
        self.seen_tokens.add(token_id)
