"""
Buffered batch writer for warehouse sinks.

Rows are accumulated per table in memory and written to the sink in one
bulk call when the buffer fills up or when the flush timer fires.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import structlog

from dexpipe.utils.errors import StorageError

logger = structlog.get_logger()


class BatchSink(Protocol):
    """A destination accepting bulk row writes for a named table."""

    async def write_batch(self, table: str, rows: List[Dict[str, Any]]) -> None:
        ...


@dataclass
class TableBufferConfig:
    """Configuration for one table buffer."""
    max_rows: int = 200
    flush_interval: float = 2.0  # seconds
    max_retries: int = 3
    retry_delay: float = 0.5
    max_pending_rows: int = 10000


class BufferedTableWriter:
    """
    Buffer for a single table.

    ``push`` appends under the buffer lock and, once the buffer reaches
    ``max_rows``, flushes before returning. ``flush`` swaps the buffer for
    an empty one under the lock and performs the sink write outside it, so
    rows pushed while a write is in flight land in the new buffer.
    """

    def __init__(
        self,
        table: str,
        sink: BatchSink,
        config: Optional[TableBufferConfig] = None,
        metrics=None,
    ):
        self.table = table
        self.sink = sink
        self.config = config or TableBufferConfig()
        self.metrics = metrics
        self.logger = logger.bind(component="batch_writer", table=table)

        self.buffer: List[Dict[str, Any]] = []
        self._lock = asyncio.Lock()
        # Serializes sink writes so batches land in swap order
        self._flush_lock = asyncio.Lock()

        self.stats = {
            "batches_written": 0,
            "rows_written": 0,
            "error_count": 0,
            "rows_dropped": 0,
        }
        self.last_flush: Optional[float] = None

        self._flush_task: Optional[asyncio.Task] = None
        self._running = False

    def __len__(self) -> int:
        return len(self.buffer)

    async def start(self) -> None:
        """Start the periodic flush timer."""
        if self._running:
            return

        self._running = True
        self._flush_task = asyncio.create_task(self._periodic_flush())
        self.logger.info(
            "Table writer started",
            max_rows=self.config.max_rows,
            flush_interval=self.config.flush_interval,
        )

    async def stop(self) -> None:
        """Stop the timer and flush remaining rows."""
        if self._running:
            self._running = False
            if self._flush_task:
                self._flush_task.cancel()
                try:
                    await self._flush_task
                except asyncio.CancelledError:
                    pass
                self._flush_task = None

        await self.flush()
        self.logger.info("Table writer stopped", stats=self.stats)

    async def push(self, row: Dict[str, Any]) -> None:
        """Add one row; flushes synchronously when the buffer is full."""
        async with self._lock:
            self.buffer.append(row)
            full = len(self.buffer) >= self.config.max_rows
            self._report_buffered()

        if full:
            await self.flush()

    async def push_many(self, rows: List[Dict[str, Any]]) -> None:
        """Add several rows at once."""
        if not rows:
            return

        async with self._lock:
            self.buffer.extend(rows)
            full = len(self.buffer) >= self.config.max_rows
            self._report_buffered()

        if full:
            await self.flush()

    async def flush(self) -> int:
        """
        Write buffered rows to the sink.

        Returns the number of rows written. An empty buffer is a no-op.
        After ``max_retries`` failed attempts the batch goes back to the
        head of the buffer and ``StorageError`` is raised.
        """
        async with self._flush_lock:
            async with self._lock:
                if not self.buffer:
                    return 0
                batch, self.buffer = self.buffer, []
                self._report_buffered()

            last_error: Optional[Exception] = None
            for attempt in range(self.config.max_retries):
                try:
                    start_time = time.time()
                    await self.sink.write_batch(self.table, batch)

                    self.stats["batches_written"] += 1
                    self.stats["rows_written"] += len(batch)
                    self.last_flush = time.time()
                    if self.metrics:
                        self.metrics.record_rows_written(self.table, len(batch))

                    self.logger.debug(
                        "Batch written",
                        rows=len(batch),
                        duration_ms=int((time.time() - start_time) * 1000),
                        attempt=attempt + 1,
                    )
                    return len(batch)

                except Exception as e:
                    last_error = e
                    self.stats["error_count"] += 1
                    if self.metrics:
                        self.metrics.record_sink_failure(self.table)
                    self.logger.error(
                        "Batch write failed",
                        rows=len(batch),
                        attempt=attempt + 1,
                        error=str(e),
                    )

                    if attempt < self.config.max_retries - 1:
                        await asyncio.sleep(self.config.retry_delay * (2 ** attempt))

            await self._requeue(batch)
            raise StorageError(
                f"Failed to write {len(batch)} rows to {self.table}",
                operation="write_batch",
                table=self.table,
                details={"attempts": self.config.max_retries},
            ) from last_error

    async def _requeue(self, batch: List[Dict[str, Any]]) -> None:
        async with self._lock:
            self.buffer = batch + self.buffer
            overflow = len(self.buffer) - self.config.max_pending_rows
            if overflow > 0:
                # Oldest rows go first
                del self.buffer[:overflow]
                self.stats["rows_dropped"] += overflow
                self.logger.error("Buffer overflow, rows dropped", dropped=overflow)
            self._report_buffered()

    async def _periodic_flush(self) -> None:
        """Background task flushing on a fixed interval regardless of size."""
        while self._running:
            try:
                await asyncio.sleep(self.config.flush_interval)
                await self.flush()
            except asyncio.CancelledError:
                break
            except StorageError as e:
                self.logger.error("Periodic flush failed", error=str(e))

    def _report_buffered(self) -> None:
        if self.metrics:
            self.metrics.set_buffered_rows(self.table, len(self.buffer))

    def get_stats(self) -> Dict[str, Any]:
        return {**self.stats, "buffered": len(self.buffer)}


class BufferedBatchWriter:
    """Registry of table writers sharing one sink."""

    def __init__(
        self,
        sink: BatchSink,
        default_config: Optional[TableBufferConfig] = None,
        metrics=None,
    ):
        self.sink = sink
        self.default_config = default_config or TableBufferConfig()
        self.metrics = metrics
        self.writers: Dict[str, BufferedTableWriter] = {}
        self.logger = logger.bind(component="batch_writer")
        self._running = False

    def register(self, table: str, config: Optional[TableBufferConfig] = None) -> BufferedTableWriter:
        """Register a table with its own buffer settings."""
        writer = self.writers.get(table)
        if writer is None:
            writer = BufferedTableWriter(table, self.sink, config or self.default_config, self.metrics)
            self.writers[table] = writer
        return writer

    def writer(self, table: str) -> BufferedTableWriter:
        return self.register(table)

    async def start(self) -> None:
        """Start flush timers for every registered table."""
        self._running = True
        for writer in self.writers.values():
            await writer.start()

    async def stop(self) -> None:
        """Stop timers and flush every table."""
        self._running = False
        await self._each("stop")
        self.logger.info("Batch writer stopped", stats=self.get_stats())

    async def push(self, table: str, row: Dict[str, Any]) -> None:
        writer = self.writers.get(table)
        if writer is None:
            writer = self.register(table)
            if self._running:
                await writer.start()
        await writer.push(row)

    async def flush(self, table: str) -> int:
        writer = self.writers.get(table)
        if writer is None:
            return 0
        return await writer.flush()

    async def flush_all(self) -> None:
        """Flush all tables; raises the first failure after attempting all."""
        await self._each("flush")

    async def _each(self, method: str) -> None:
        writers = list(self.writers.values())
        results = await asyncio.gather(
            *[getattr(writer, method)() for writer in writers],
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, Exception)]
        for writer, result in zip(writers, results):
            if isinstance(result, Exception):
                self.logger.error("Table flush failed", table=writer.table, error=str(result))
        if errors:
            raise errors[0]

    def get_stats(self) -> Dict[str, Any]:
        return {table: writer.get_stats() for table, writer in self.writers.items()}
