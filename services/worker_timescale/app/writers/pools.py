"""
New-pool handler for the Timescale worker.

Materializes the pool and its tokens, then publishes the identifier
mappings other workers resolve:

- ``pool_id:<pair_contract>`` and ``token_id:<denom>`` are write-once
- ``pool_meta:<pair_contract>`` is overwritten with the latest descriptor
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import structlog

from dexpipe.framework.background import BackgroundTaskPool
from dexpipe.framework.dispatcher import EventHandler
from dexpipe.lookup.resolver import EventualResolver, pool_id_key, pool_meta_key, token_id_key
from dexpipe.schemas.events import PoolCreatedEvent
from dexpipe.schemas.models import PoolMeta
from dexpipe.storage.redis import RedisClient

from ..metadata import TokenMetadataRefresher
from ..repository import TimescaleRepository

logger = structlog.get_logger(__name__)


class PoolWriter(EventHandler):
    """Handles ``events:new_pool``."""

    name = "pools"

    def __init__(
        self,
        repository: TimescaleRepository,
        redis: RedisClient,
        resolver: EventualResolver,
        background: Optional[BackgroundTaskPool] = None,
        refresher: Optional[TokenMetadataRefresher] = None,
    ):
        self.repository = repository
        self.redis = redis
        self.resolver = resolver
        self.background = background
        self.refresher = refresher

        self.pools_written = 0

    async def handle(self, event: Dict[str, Any]) -> None:
        pool = PoolCreatedEvent.from_dict(event)

        pool_id = await self.repository.upsert_pool(pool)
        meta = await self.repository.pool_with_tokens(pool.pair_contract)
        if meta is None:
            # Pool row not readable back; publish what the event carries
            meta = PoolMeta(
                pool_id=pool_id,
                pair_contract=pool.pair_contract,
                base_denom=pool.base_denom,
                quote_denom=pool.quote_denom,
                pair_type=pool.pair_type,
                is_uzig_quote=pool.quote_denom == self.repository.quote_denom,
                created_at=pool.created_at,
            )

        await self.publish(meta)
        self.resolver.remember_pool(meta)
        self._refresh_metadata(meta)

        self.pools_written += 1
        logger.info("Pool upserted", pair_contract=pool.pair_contract, pool_id=meta.pool_id)

    async def publish(self, meta: PoolMeta) -> None:
        """Publish identifier mappings for ``meta`` in one round trip."""
        values = {
            pool_id_key(meta.pair_contract): str(meta.pool_id),
            pool_meta_key(meta.pair_contract): json.dumps(meta.to_dict()),
        }
        write_once = {pool_id_key(meta.pair_contract)}
        if meta.base_id is not None:
            values[token_id_key(meta.base_denom)] = str(meta.base_id)
            write_once.add(token_id_key(meta.base_denom))
        if meta.quote_id is not None:
            values[token_id_key(meta.quote_denom)] = str(meta.quote_id)
            write_once.add(token_id_key(meta.quote_denom))

        await self.redis.set_many(values, nx_keys=write_once)

    def _refresh_metadata(self, meta: PoolMeta) -> None:
        if not (self.background and self.refresher):
            return
        for denom in (meta.base_denom, meta.quote_denom):
            self.background.submit(
                lambda denom=denom: self.refresher.refresh(denom),
                name=f"token-metadata:{denom}",
            )
