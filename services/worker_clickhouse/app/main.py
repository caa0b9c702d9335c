"""
Entry point for the worker-clickhouse service.

Mirrors pools, tokens, trades and price ticks into ClickHouse using the
identifiers the Timescale worker publishes. Buffered rows are flushed
before the process exits.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from dexpipe.framework.consumer import ConsumerConfig, StreamConsumer
from dexpipe.framework.dispatcher import EventHandler, JsonEventDispatcher
from dexpipe.framework.health import HealthCheck
from dexpipe.framework.service import AsyncService
from dexpipe.lookup.resolver import EventualResolver
from dexpipe.storage.batch_writer import BufferedBatchWriter, TableBufferConfig
from dexpipe.storage.clickhouse import ClickHouseClient, ClickHouseConfig
from dexpipe.storage.redis import RedisClient, RedisConfig

from .config import ClickHouseWorkerConfig
from .writers.pools import POOLS_TABLE, TOKENS_TABLE, ClickHousePoolWriter
from .writers.prices import PRICE_TICKS_TABLE, PriceTickWriter
from .writers.trades import TRADES_TABLE, ClickHouseLiquidityWriter, ClickHouseSwapWriter

logger = structlog.get_logger(__name__)


class ClickHouseWorkerService(AsyncService):
    """Mirrors DEX events into ClickHouse."""

    def __init__(
        self,
        config: Optional[ClickHouseWorkerConfig] = None,
        redis: Optional[RedisClient] = None,
        clickhouse: Optional[ClickHouseClient] = None,
    ) -> None:
        config = config or ClickHouseWorkerConfig()
        super().__init__(config)
        self.config = config

        self.redis = redis or RedisClient(
            RedisConfig(
                url=config.redis.url,
                max_connections=config.redis.max_connections,
                timeout=config.redis.timeout,
            )
        )
        self.clickhouse = clickhouse or ClickHouseClient(
            ClickHouseConfig(
                url=config.database.clickhouse_url,
                database=config.database.clickhouse_database,
                username=config.database.clickhouse_user,
                password=config.database.clickhouse_password,
            )
        )

        self.resolver = EventualResolver(
            self.redis,
            retries=config.trade_resolve_retries,
            delay=config.trade_resolve_delay,
            metrics=self.metrics,
        )

        self.writer = BufferedBatchWriter(self.clickhouse, metrics=self.metrics)
        pool_buffer = TableBufferConfig(max_rows=config.pool_buffer_rows, flush_interval=config.pool_flush_seconds)
        self.writer.register(POOLS_TABLE, pool_buffer)
        self.writer.register(TOKENS_TABLE, pool_buffer)
        self.writer.register(
            TRADES_TABLE,
            TableBufferConfig(max_rows=config.trade_buffer_rows, flush_interval=config.trade_flush_seconds),
        )
        self.writer.register(
            PRICE_TICKS_TABLE,
            TableBufferConfig(max_rows=config.price_buffer_rows, flush_interval=config.price_flush_seconds),
        )

        self.prices = PriceTickWriter(
            self.writer,
            quote_denom=config.pricing.quote_denom,
            quote_exponent=config.pricing.quote_exponent,
        )
        self.pool_writer = ClickHousePoolWriter(
            self.resolver,
            self.writer,
            retries=config.pool_resolve_retries,
            delay=config.pool_resolve_delay,
            factory_contract=config.factory_contract,
            router_contract=config.router_contract,
        )
        self.swap_writer = ClickHouseSwapWriter(
            self.resolver, self.writer, self.prices,
            retries=config.trade_resolve_retries, delay=config.trade_resolve_delay,
        )
        self.liquidity_writer = ClickHouseLiquidityWriter(
            self.resolver, self.writer, self.prices,
            retries=config.trade_resolve_retries, delay=config.trade_resolve_delay,
        )

        self._add_reader(config.streams.new_pool, self.pool_writer)
        self._add_reader(config.streams.swap, self.swap_writer)
        self._add_reader(config.streams.liquidity, self.liquidity_writer)

        self.health_checker.add_check(
            HealthCheck(name="redis", check_func=self.redis.health_check, description="Stream broker")
        )
        self.health_checker.add_check(
            HealthCheck(name="clickhouse", check_func=self.clickhouse.health_check, description="Analytics warehouse")
        )

    def _add_reader(self, stream: str, handler: EventHandler) -> None:
        consumer = StreamConsumer(
            ConsumerConfig(
                stream=stream,
                group=self.config.consumer_group,
                consumer_name=f"{self.config.consumer_prefix}-{stream}",
                batch_size=self.config.batch_size,
                block_ms=self.config.block_ms,
                error_backoff=self.config.error_backoff_seconds,
                claim_min_idle_ms=self.config.claim_min_idle_ms,
                claim_interval=self.config.claim_interval_seconds,
            ),
            self.redis,
            self.metrics,
        )
        self.add_consumer(consumer, JsonEventDispatcher(stream, handler, self.metrics))

    async def _startup_hook(self) -> None:
        await self.redis.connect()
        await self.clickhouse.connect()
        await self.writer.start()
        logger.info("ClickHouse worker ready", group=self.config.consumer_group)

    async def _shutdown_hook(self) -> None:
        """Flush every table buffer, then close clients."""
        try:
            await self.writer.stop()
        finally:
            await self.clickhouse.close()
            await self.redis.close()
        logger.info("ClickHouse worker stopped", writer=self.writer.get_stats())


async def main() -> None:
    """Service entrypoint."""
    service = ClickHouseWorkerService()
    await service.run()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
