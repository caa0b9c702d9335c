"""
ClickHouse async client over the HTTP interface.

Used by the ClickHouse worker as the sink behind the buffered batch
writer: rows are posted as ``JSONEachRow``.
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import aiohttp
import structlog

from dexpipe.utils.errors import StorageError


logger = structlog.get_logger()


@dataclass
class ClickHouseConfig:
    """ClickHouse configuration."""
    url: str
    database: str = "default"
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: int = 30
    max_connections: int = 10


class ClickHouseClient:
    """
    Async ClickHouse client with connection pooling.

    Implements ``write_batch`` so it can be handed to a
    ``BufferedBatchWriter`` directly.
    """

    def __init__(self, config: Union[ClickHouseConfig, str]):
        if isinstance(config, str):
            config = ClickHouseConfig(url=config)
        self.config = config

        self.logger = structlog.get_logger("clickhouse-client")
        self.session: Optional[aiohttp.ClientSession] = None
        self._semaphore = asyncio.Semaphore(self.config.max_connections)
        self.is_connected: bool = False

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self.is_connected:
            return

        connector = aiohttp.TCPConnector(limit=self.config.max_connections)
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        auth = None
        if self.config.username:
            auth = aiohttp.BasicAuth(self.config.username, self.config.password or "")

        self.session = aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            auth=auth
        )

        self.is_connected = True
        self.logger.info("Connected to ClickHouse", url=self.config.url)

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

        self.is_connected = False
        self.logger.info("Disconnected from ClickHouse")

    async def close(self) -> None:
        """Alias for disconnect."""
        await self.disconnect()

    async def execute(self, query: str) -> List[Dict[str, Any]]:
        """Execute a query and return rows for ``FORMAT JSON`` results."""
        async with self._semaphore:
            if not self.session:
                await self.connect()

            try:
                async with self.session.post(
                    f"{self.config.url}/",
                    data=query,
                    params={"database": self.config.database}
                ) as response:
                    text_result = await response.text()
                    if response.status != 200:
                        raise StorageError(
                            f"ClickHouse error {response.status}: {text_result}",
                            operation="execute",
                        )

                    if not text_result.strip().startswith("{"):
                        return []
                    return json.loads(text_result).get("data", [])

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self.logger.error("ClickHouse query error", error=str(e), query=query)
                raise StorageError(str(e), operation="execute") from e

    async def insert(self, table: str, data: List[Dict[str, Any]]) -> None:
        """Insert rows into ``table`` as JSON lines."""
        if not data:
            return

        async with self._semaphore:
            if not self.session:
                await self.connect()

            try:
                payload = self._dicts_to_jsonl(data)
                query = f"INSERT INTO {table} FORMAT JSONEachRow"

                async with self.session.post(
                    f"{self.config.url}/",
                    data=payload,
                    params={
                        "query": query,
                        "database": self.config.database
                    }
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise StorageError(
                            f"ClickHouse insert error {response.status}: {error_text}",
                            operation="insert",
                            table=table,
                        )

                    self.logger.debug("Data inserted", table=table, count=len(data))

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self.logger.error("ClickHouse insert error", error=str(e), table=table)
                raise StorageError(str(e), operation="insert", table=table) from e

    async def write_batch(self, table: str, rows: List[Dict[str, Any]]) -> None:
        await self.insert(table, rows)

    async def health_check(self) -> bool:
        """Check ClickHouse health."""
        try:
            result = await self.execute("SELECT 1 AS ok FORMAT JSON")
            return bool(result) and result[0].get("ok") == 1
        except StorageError as e:
            self.logger.error("ClickHouse health check failed", error=str(e))
            return False

    @staticmethod
    def _dicts_to_jsonl(data: List[Dict[str, Any]]) -> str:
        """Convert rows to JSON Lines for ClickHouse ingestion."""
        def _default(value: Any) -> Any:
            if isinstance(value, datetime):
                if value.tzinfo is None:
                    value = value.replace(tzinfo=timezone.utc)
                # DateTime64 columns accept "YYYY-MM-DD hh:mm:ss.fff"
                return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
            if isinstance(value, Decimal):
                return str(value)
            if isinstance(value, (set, tuple)):
                return list(value)
            if isinstance(value, Enum):
                return value.value
            return str(value)

        return "\n".join(json.dumps(record, default=_default, separators=(",", ":")) for record in data)

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
