"""
Entry point for the processor-core service.

Reads raw blocks from ``chain:raw_blocks``, decodes them into DEX events
and appends those to the new-pool, swap and liquidity streams.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import structlog

from dexpipe.framework.consumer import ConsumerConfig, StreamConsumer
from dexpipe.framework.dispatcher import EventHandler, JsonEventDispatcher
from dexpipe.framework.health import HealthCheck
from dexpipe.framework.producer import StreamProducer
from dexpipe.framework.service import AsyncService
from dexpipe.framework.config import StreamsConfig
from dexpipe.storage.redis import RedisClient, RedisConfig

from .config import ProcessorConfig
from .parser import BlockParser, load_block_parser, parse_block

logger = structlog.get_logger(__name__)


class BlockHandler(EventHandler):
    """Decodes one raw block and emits its events."""

    name = "blocks"

    def __init__(self, producer: StreamProducer, streams: StreamsConfig, parser: Optional[BlockParser] = None):
        self.producer = producer
        self.streams = streams
        self.parser = parser

        self.blocks_parsed = 0
        self.events_emitted = 0

    async def handle(self, event: Dict[str, Any]) -> None:
        parsed = await parse_block(self.parser, event)
        self.blocks_parsed += 1

        # Emission failures are broker failures and leave the block pending
        await self.producer.emit_many(self.streams.new_pool, parsed.pools)
        await self.producer.emit_many(self.streams.swap, parsed.swaps)
        await self.producer.emit_many(self.streams.liquidity, parsed.liquidity)
        self.events_emitted += len(parsed)

        if len(parsed):
            logger.debug(
                "Block processed",
                height=event.get("height"),
                pools=len(parsed.pools),
                swaps=len(parsed.swaps),
                liquidity=len(parsed.liquidity),
            )


class ProcessorService(AsyncService):
    """Service turning raw blocks into DEX event streams."""

    def __init__(
        self,
        config: Optional[ProcessorConfig] = None,
        redis: Optional[RedisClient] = None,
        parser: Optional[BlockParser] = None,
    ) -> None:
        config = config or ProcessorConfig()
        super().__init__(config)
        self.config = config

        self.redis = redis or RedisClient(
            RedisConfig(
                url=config.redis.url,
                max_connections=config.redis.max_connections,
                timeout=config.redis.timeout,
            )
        )
        self.producer = StreamProducer(self.redis, maxlen=config.event_stream_maxlen)
        self.handler = BlockHandler(self.producer, config.streams, parser)

        self.consumer = StreamConsumer(
            ConsumerConfig(
                stream=config.streams.raw_blocks,
                group=config.consumer_group,
                consumer_name=config.consumer_name,
                batch_size=config.batch_size,
                block_ms=config.block_ms,
                error_backoff=config.error_backoff_seconds,
                claim_min_idle_ms=config.claim_min_idle_ms,
                claim_interval=config.claim_interval_seconds,
            ),
            self.redis,
            self.metrics,
        )
        self.add_consumer(
            self.consumer,
            JsonEventDispatcher(config.streams.raw_blocks, self.handler, self.metrics),
        )

        self.health_checker.add_check(
            HealthCheck(name="redis", check_func=self.redis.health_check, description="Stream broker")
        )

    async def _startup_hook(self) -> None:
        """Load the decoder and connect to the broker."""
        if self.handler.parser is None:
            self.handler.parser = load_block_parser(self.config.block_parser)

        await self.redis.connect()
        logger.info(
            "Processor ready",
            input_stream=self.config.streams.raw_blocks,
            group=self.config.consumer_group,
            consumer=self.config.consumer_name,
        )

    async def _shutdown_hook(self) -> None:
        await self.redis.close()
        logger.info(
            "Processor stopped",
            producer=self.producer.get_metrics(),
            consumer=self.consumer.get_metrics(),
        )


async def main() -> None:
    """Service entrypoint."""
    service = ProcessorService()
    await service.run()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
