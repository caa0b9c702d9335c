"""
Entry point for the worker-timescale service.

One consumer per event stream, all in the ``timescale`` group. This
worker assigns pool and token ids and publishes them for the other
warehouse workers.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from dexpipe.framework.background import BackgroundTaskPool
from dexpipe.framework.consumer import ConsumerConfig, StreamConsumer
from dexpipe.framework.dispatcher import EventHandler, JsonEventDispatcher
from dexpipe.framework.health import HealthCheck
from dexpipe.framework.service import AsyncService
from dexpipe.lookup.resolver import EventualResolver
from dexpipe.storage.batch_writer import BufferedBatchWriter, TableBufferConfig
from dexpipe.storage.postgres import PostgresClient, PostgresConfig
from dexpipe.storage.redis import RedisClient, RedisConfig

from .config import TimescaleWorkerConfig
from .metadata import TokenMetadataRefresher
from .repository import TimescaleRepository
from .writers.pools import PoolWriter
from .writers.trades import TRADES_TABLE, LiquidityWriter, PoolLookup, SwapWriter

logger = structlog.get_logger(__name__)


class TimescaleWorkerService(AsyncService):
    """Materializes DEX events into PostgreSQL/TimescaleDB."""

    def __init__(
        self,
        config: Optional[TimescaleWorkerConfig] = None,
        redis: Optional[RedisClient] = None,
        postgres: Optional[PostgresClient] = None,
    ) -> None:
        config = config or TimescaleWorkerConfig()
        super().__init__(config)
        self.config = config

        self.redis = redis or RedisClient(
            RedisConfig(
                url=config.redis.url,
                max_connections=config.redis.max_connections,
                timeout=config.redis.timeout,
            )
        )
        self.postgres = postgres or PostgresClient(PostgresConfig(dsn=config.database.postgres_dsn))

        self.repository = TimescaleRepository(
            self.postgres,
            quote_denom=config.pricing.quote_denom,
            quote_exponent=config.pricing.quote_exponent,
        )
        self.resolver = EventualResolver(
            self.redis,
            retries=config.pool_wait_retries,
            delay=config.pool_wait_delay,
            metrics=self.metrics,
        )
        self.writer = BufferedBatchWriter(self.postgres, metrics=self.metrics)
        self.writer.register(
            TRADES_TABLE,
            TableBufferConfig(max_rows=config.trade_buffer_rows, flush_interval=config.trade_flush_seconds),
        )

        self.background = BackgroundTaskPool(config.metadata_concurrency, name="token-metadata")
        self.refresher: Optional[TokenMetadataRefresher] = None
        if config.lcd_url:
            self.refresher = TokenMetadataRefresher(config.lcd_url, self.repository, config.metadata_timeout)

        pools = PoolLookup(self.repository, self.resolver, config.pool_wait_retries, config.pool_wait_delay)
        self.pool_writer = PoolWriter(self.repository, self.redis, self.resolver, self.background, self.refresher)
        self.swap_writer = SwapWriter(
            self.repository,
            pools,
            self.writer,
            quote_denom=config.pricing.quote_denom,
            quote_exponent=config.pricing.quote_exponent,
            interval_seconds=config.pricing.ohlcv_interval_seconds,
        )
        self.liquidity_writer = LiquidityWriter(self.repository, pools, self.writer)

        self._add_reader(config.streams.new_pool, self.pool_writer)
        self._add_reader(config.streams.swap, self.swap_writer)
        self._add_reader(config.streams.liquidity, self.liquidity_writer)

        self.health_checker.add_check(
            HealthCheck(name="redis", check_func=self.redis.health_check, description="Stream broker")
        )
        self.health_checker.add_check(
            HealthCheck(name="postgres", check_func=self.postgres.health_check, description="Timescale warehouse")
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
        await self.postgres.connect()
        if self.refresher:
            await self.refresher.start()
        await self.writer.start()
        logger.info(
            "Timescale worker ready",
            group=self.config.consumer_group,
            metadata_refresh=bool(self.refresher),
        )

    async def _shutdown_hook(self) -> None:
        """Flush buffered trades, finish metadata refreshes, close clients."""
        try:
            await self.writer.stop()
        finally:
            await self.background.drain(timeout=5.0)
            if self.refresher:
                await self.refresher.close()
            await self.postgres.close()
            await self.redis.close()
        logger.info("Timescale worker stopped", writer=self.writer.get_stats())


async def main() -> None:
    """Service entrypoint."""
    service = TimescaleWorkerService()
    await service.run()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
