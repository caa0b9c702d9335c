"""
PostgreSQL / TimescaleDB async client wrapper.

Provides query helpers over an asyncpg pool and a ``write_batch`` sink
method for the buffered batch writer.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union
from dataclasses import dataclass
import structlog

import asyncpg


logger = structlog.get_logger()


@dataclass
class PostgresConfig:
    """PostgreSQL configuration."""
    dsn: str
    min_size: int = 2
    max_size: int = 10
    timeout: int = 30


class PostgresClient:
    """
    Async PostgreSQL client with connection pooling.

    Errors are logged with the failing statement and re-raised.
    """

    def __init__(self, config: Union[PostgresConfig, str]):
        if isinstance(config, str):
            config = PostgresConfig(dsn=config)
        self.config = config

        self.logger = structlog.get_logger("postgres-client")
        self._pool: Optional[asyncpg.Pool] = None
        self.is_connected: bool = False

    @property
    def pool(self) -> Optional[asyncpg.Pool]:
        return self._pool

    async def connect(self) -> None:
        """Connect to PostgreSQL."""
        if self._pool:
            self.is_connected = True
            return

        self._pool = await asyncpg.create_pool(
            self.config.dsn,
            min_size=self.config.min_size,
            max_size=self.config.max_size,
            command_timeout=self.config.timeout
        )

        self.is_connected = True
        self.logger.info("Connected to PostgreSQL")

    async def disconnect(self) -> None:
        """Disconnect from PostgreSQL."""
        if self._pool:
            await self._pool.close()
            self._pool = None

        self.is_connected = False
        self.logger.info("Disconnected from PostgreSQL")

    async def close(self) -> None:
        """Alias for disconnect to mirror other storage clients."""
        await self.disconnect()

    async def execute(self, query: str, *args: Any) -> List[Dict[str, Any]]:
        """Execute a query and return list of rows."""
        if not self._pool:
            await self.connect()

        async with self._pool.acquire() as conn:
            try:
                rows = await conn.fetch(query, *args)
                return [dict(row) for row in rows]
            except Exception as e:
                self.logger.error("PostgreSQL query error", error=str(e), query=query)
                raise

    async def execute_one(self, query: str, *args: Any) -> Optional[Dict[str, Any]]:
        """Execute a query returning a single row."""
        if not self._pool:
            await self.connect()

        async with self._pool.acquire() as conn:
            try:
                row = await conn.fetchrow(query, *args)
                return dict(row) if row else None
            except Exception as e:
                self.logger.error("PostgreSQL query error", error=str(e), query=query)
                raise

    async def execute_scalar(self, query: str, *args: Any) -> Any:
        """Execute a query returning a scalar value."""
        if not self._pool:
            await self.connect()

        async with self._pool.acquire() as conn:
            try:
                return await conn.fetchval(query, *args)
            except Exception as e:
                self.logger.error("PostgreSQL query error", error=str(e), query=query)
                raise

    async def execute_many(self, query: str, args: List[tuple]) -> None:
        """Run one statement for every argument tuple."""
        if not args:
            return
        if not self._pool:
            await self.connect()

        async with self._pool.acquire() as conn:
            try:
                await conn.executemany(query, args)
            except Exception as e:
                self.logger.error("PostgreSQL executemany error", error=str(e), query=query)
                raise

    async def insert_many(self, table: str, data: List[Dict[str, Any]]) -> None:
        """Insert multiple records in a single batch. All rows share the first row's columns."""
        if not data:
            return

        columns = list(data[0].keys())
        values_list = [tuple(record.get(col) for col in columns) for record in data]
        placeholders = ", ".join(f"${i+1}" for i in range(len(columns)))
        insert_sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"

        await self.execute_many(insert_sql, values_list)
        self.logger.debug("Records inserted", table=table, count=len(data))

    async def write_batch(self, table: str, rows: List[Dict[str, Any]]) -> None:
        await self.insert_many(table, rows)

    async def health_check(self) -> bool:
        """Check PostgreSQL health."""
        try:
            result = await self.execute_scalar("SELECT 1")
            return result == 1
        except Exception as e:
            self.logger.error("PostgreSQL health check failed", error=str(e))
            return False

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
