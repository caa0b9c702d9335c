"""
Redis Streams consumer-group abstraction for pipeline services.

Provides a competing-consumer read loop with explicit acknowledgement,
batched blocking reads, and reclamation of entries abandoned by
consumers that died before acknowledging them.
"""

import asyncio
import time
from typing import Optional, Callable, Any, Awaitable, Dict, List
from dataclasses import dataclass, field

import structlog

from dexpipe.storage.redis import RedisClient, StreamEntry
from .metrics import MetricsCollector


logger = structlog.get_logger()


@dataclass(frozen=True)
class StreamRecord:
    """One delivered stream entry. Identity is the broker-assigned id."""
    id: str
    fields: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PendingEntry:
    """An entry delivered to a consumer but not yet acknowledged."""
    id: str
    consumer: str
    idle_ms: int
    times_delivered: int


class StreamAcknowledger:
    """Acknowledgement functions handed to a batch handler."""

    def __init__(self, redis: RedisClient, stream: str, group: str):
        self._redis = redis
        self.stream = stream
        self.group = group
        self.acked = 0

    async def ack(self, record_id: str) -> int:
        return await self.ack_many([record_id])

    async def ack_many(self, record_ids: List[str]) -> int:
        if not record_ids:
            return 0
        count = await self._redis.xack(self.stream, self.group, *record_ids)
        self.acked += len(record_ids)
        return count


BatchHandler = Callable[[List[StreamRecord], StreamAcknowledger], Awaitable[Any]]


@dataclass
class ConsumerConfig:
    """Consumer configuration."""
    stream: str
    group: str
    consumer_name: str
    batch_size: int = 100
    block_ms: int = 5000
    auto_ack: bool = False
    error_backoff: float = 1.0
    start_id: str = "$"
    claim_min_idle_ms: int = 60000
    claim_count: int = 100
    claim_interval: float = 30.0


class StreamConsumer:
    """
    Competing consumer over one stream and consumer group.

    Features:
    - Idempotent group creation
    - Blocking batched reads handed to a handler as one call
    - Acknowledgement only after the handler returns (or by the handler itself)
    - Fixed backoff on handler or broker errors, never terminating the loop
    - Idle-based reclamation of entries held by dead consumers
    """

    def __init__(
        self,
        config: ConsumerConfig,
        redis: RedisClient,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config
        self.redis = redis
        self.metrics = metrics

        self.logger = structlog.get_logger("stream-consumer").bind(
            stream=config.stream,
            group=config.group,
            consumer=config.consumer_name,
        )
        self.running = False
        self.task: Optional[asyncio.Task] = None
        self.reclaim_task: Optional[asyncio.Task] = None
        # Read loop and reclaim loop share one handler; batches run one at a time
        self._dispatch_lock = asyncio.Lock()

        # Metrics
        self.batches_processed = 0
        self.batches_failed = 0
        self.records_processed = 0
        self.records_reclaimed = 0
        self.last_batch_time: Optional[float] = None

    async def ensure_group(self) -> None:
        """Create the consumer group if absent; an existing group is not an error."""
        created = await self.redis.create_group(
            self.config.stream, self.config.group, start_id=self.config.start_id
        )
        if created:
            self.logger.info("Consumer group created", start_id=self.config.start_id)
        else:
            self.logger.info("Consumer group exists")

    async def start(self, handler: BatchHandler) -> None:
        """Start the read loop and, if configured, the reclaim supervisor."""
        if self.running:
            return

        await self.ensure_group()
        self.running = True
        self.task = asyncio.create_task(self.consume(handler))
        if self.config.claim_interval > 0:
            self.reclaim_task = asyncio.create_task(self._reclaim_loop(handler))

    async def stop(self) -> None:
        """Stop the consumer."""
        if not self.running:
            return

        self.logger.info("Stopping stream consumer")
        self.running = False

        for task in (self.task, self.reclaim_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self.task = None
        self.reclaim_task = None
        self.logger.info("Stream consumer stopped")

    async def consume(self, handler: BatchHandler) -> None:
        """
        Unbounded read-handle-acknowledge loop.

        A read timeout with no entries simply repeats. Any error raised by
        the broker or the handler is logged and followed by a fixed backoff;
        the failed batch stays pending so it is delivered again.
        """
        self.logger.info(
            "Starting stream consumer",
            batch_size=self.config.batch_size,
            block_ms=self.config.block_ms,
            auto_ack=self.config.auto_ack,
        )

        while True:
            try:
                await self.process_next_batch(handler)
            except Exception as e:
                self.batches_failed += 1
                if self.metrics:
                    self.metrics.record_error(type(e).__name__, "stream-consumer")
                self.logger.warning("Stream batch failed", error=str(e), exc_info=True)
                await asyncio.sleep(self.config.error_backoff)

    async def process_next_batch(self, handler: BatchHandler) -> int:
        """Read one batch and hand it to ``handler``. Returns the batch size."""
        entries = await self.redis.xreadgroup(
            self.config.group,
            self.config.consumer_name,
            self.config.stream,
            count=self.config.batch_size,
            block_ms=self.config.block_ms,
        )
        if not entries:
            return 0

        self.logger.debug("Batch received", size=len(entries))
        await self._dispatch(self._to_records(entries), handler)
        return len(entries)

    async def claim_stale(
        self,
        min_idle_ms: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[str]:
        """
        Take over pending entries idle for at least ``min_idle_ms``.

        Returns the ids now owned by this consumer.
        """
        records = await self._claim(min_idle_ms, limit)
        return [record.id for record in records]

    async def reclaim_once(self, handler: BatchHandler) -> List[str]:
        """Claim stale entries and drive them through ``handler`` like a fresh batch."""
        records = await self._claim(None, None)
        if records:
            await self._dispatch(records, handler)
        return [record.id for record in records]

    async def pending(self, limit: Optional[int] = None) -> List[PendingEntry]:
        """Inspect up to ``limit`` pending entries of the group."""
        rows = await self.redis.xpending_range(
            self.config.stream, self.config.group, count=limit or self.config.claim_count
        )
        return [
            PendingEntry(
                id=row["message_id"],
                consumer=row["consumer"],
                idle_ms=int(row["time_since_delivered"]),
                times_delivered=int(row["times_delivered"]),
            )
            for row in rows
        ]

    async def _claim(self, min_idle_ms: Optional[int], limit: Optional[int]) -> List[StreamRecord]:
        min_idle_ms = self.config.claim_min_idle_ms if min_idle_ms is None else min_idle_ms
        entries = await self.pending(limit)

        stale = [entry.id for entry in entries if entry.idle_ms >= min_idle_ms]
        if not stale:
            return []

        # XCLAIM re-checks idleness on the broker side
        claimed = await self.redis.xclaim(
            self.config.stream,
            self.config.group,
            self.config.consumer_name,
            min_idle_ms,
            stale,
        )
        records = self._to_records(claimed)
        self.records_reclaimed += len(records)
        if records:
            self.logger.info("Stale entries claimed", count=len(records), min_idle_ms=min_idle_ms)
        return records

    async def _dispatch(self, records: List[StreamRecord], handler: BatchHandler) -> None:
        acks = StreamAcknowledger(self.redis, self.config.stream, self.config.group)

        async with self._dispatch_lock:
            start = time.monotonic()
            await handler(records, acks)

            if self.config.auto_ack:
                await acks.ack_many([record.id for record in records])

        self.batches_processed += 1
        self.records_processed += len(records)
        self.last_batch_time = time.time()
        if self.metrics:
            self.metrics.record_batch(self.config.stream, len(records), time.monotonic() - start)

    async def _reclaim_loop(self, handler: BatchHandler) -> None:
        """Periodically re-drive entries abandoned by dead consumers."""
        while self.running:
            await asyncio.sleep(self.config.claim_interval)
            try:
                await self.reclaim_once(handler)
            except Exception as e:
                self.logger.warning("Reclaim failed", error=str(e))

    @staticmethod
    def _to_records(entries: List[StreamEntry]) -> List[StreamRecord]:
        return [StreamRecord(id=entry_id, fields=fields) for entry_id, fields in entries]

    def get_metrics(self) -> Dict[str, Any]:
        """Get consumer metrics."""
        return {
            "batches_processed": self.batches_processed,
            "batches_failed": self.batches_failed,
            "records_processed": self.records_processed,
            "records_reclaimed": self.records_reclaimed,
            "last_batch_time": self.last_batch_time,
            "running": self.running,
        }
