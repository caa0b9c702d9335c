"""
Storage abstractions for pipeline services.

Provides async clients for:
- ClickHouse (analytical warehouse)
- PostgreSQL / TimescaleDB (relational warehouse)
- Redis (stream broker and shared identifier store)

plus the buffered batch writer that fronts either warehouse.
"""

from .batch_writer import BatchSink, BufferedBatchWriter, BufferedTableWriter, TableBufferConfig
from .clickhouse import ClickHouseClient, ClickHouseConfig
from .postgres import PostgresClient, PostgresConfig
from .redis import RedisClient, RedisConfig

__all__ = [
    "BatchSink",
    "BufferedBatchWriter",
    "BufferedTableWriter",
    "TableBufferConfig",
    "ClickHouseClient",
    "ClickHouseConfig",
    "PostgresClient",
    "PostgresConfig",
    "RedisClient",
    "RedisConfig",
]
