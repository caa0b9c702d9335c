"""Redis async client wrapper for streams and shared state.

Provides high-level interface for Redis operations: the key/value
surface used for identifier mappings, and the stream/consumer-group
commands used by the stream consumer and producer.
"""

from typing import Dict, Any, List, Optional, Tuple, Union
from dataclasses import dataclass
import json
import structlog

import redis.asyncio as redis
from redis.exceptions import RedisError, ResponseError

from dexpipe.utils.errors import StreamError


logger = structlog.get_logger()

StreamEntry = Tuple[str, Dict[str, str]]


@dataclass
class RedisConfig:
    """Redis connection configuration."""
    url: str
    max_connections: int = 20
    timeout: int = 30
    retry_on_timeout: bool = True


class RedisClient:
    """
    Async Redis client with connection pooling.

    Key/value helpers decode JSON transparently; stream helpers
    normalize replies into ``(id, fields)`` tuples and wrap broker
    failures in ``StreamError``.
    """

    def __init__(self, config: Union[RedisConfig, str]):
        if isinstance(config, str):
            config = RedisConfig(url=config)
        self.config = config
        self.logger = structlog.get_logger("redis-client")
        self.client: Optional[redis.Redis] = None
        self.is_connected: bool = False

    async def connect(self) -> None:
        """Connect to Redis."""
        if self.client:
            return

        self.client = redis.from_url(
            self.config.url,
            decode_responses=True,
            max_connections=self.config.max_connections,
            socket_timeout=self.config.timeout,
            retry_on_timeout=self.config.retry_on_timeout
        )

        await self.client.ping()
        self.is_connected = True
        self.logger.info("Connected to Redis")

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.client:
            await self.client.aclose()
            self.client = None
            self.is_connected = False
            self.logger.info("Disconnected from Redis")

    async def close(self) -> None:
        """Close Redis connection."""
        await self.disconnect()

    # ------------------------------------------------------------------
    # Key/value
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[Any]:
        """Get value by key, decoding JSON when possible."""
        if not self.client:
            await self.connect()

        try:
            value = await self.client.get(key)
            if value is None:
                return None

            if isinstance(value, str):
                try:
                    return json.loads(value)
                except json.JSONDecodeError:
                    return value

            return value
        except RedisError as e:
            self.logger.error("Redis get error", error=str(e), key=key)
            raise

    async def set(self, key: str, value: Any, ttl: Optional[int] = None, nx: bool = False) -> bool:
        """Set value with optional TTL. Returns False when ``nx`` and the key exists."""
        if not self.client:
            await self.connect()

        stored_value = value
        if not isinstance(value, (str, bytes)):
            stored_value = json.dumps(value)

        try:
            result = await self.client.set(key, stored_value, ex=ttl, nx=nx)
            self.logger.debug("Value set", key=key, ttl=ttl, nx=nx)
            return bool(result)
        except RedisError as e:
            self.logger.error("Redis set error", error=str(e), key=key)
            raise

    async def set_many(self, values: Dict[str, Any], nx_keys: Optional[set] = None) -> None:
        """
        Write several keys in one pipeline round trip.

        Keys listed in ``nx_keys`` are written only if absent.
        """
        if not values:
            return
        if not self.client:
            await self.connect()

        nx_keys = nx_keys or set()
        try:
            async with self.client.pipeline(transaction=False) as pipe:
                for key, value in values.items():
                    stored_value = value if isinstance(value, (str, bytes)) else json.dumps(value)
                    pipe.set(key, stored_value, nx=key in nx_keys)
                await pipe.execute()
            self.logger.debug("Values set", count=len(values))
        except RedisError as e:
            self.logger.error("Redis pipeline set error", error=str(e), keys=list(values))
            raise

    async def delete(self, key: str) -> int:
        """Delete key."""
        if not self.client:
            await self.connect()

        try:
            deleted = await self.client.delete(key)
            self.logger.debug("Key deleted", key=key, deleted=deleted)
            return deleted
        except RedisError as e:
            self.logger.error("Redis delete error", error=str(e), key=key)
            raise

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Get JSON object by key; anything else reads as absent."""
        value = await self.get(key)
        if isinstance(value, dict):
            return value
        return None

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    async def create_group(self, stream: str, group: str, start_id: str = "$") -> bool:
        """
        Create a consumer group, creating the stream if needed.

        Returns True if the group was created, False if it already existed.
        """
        if not self.client:
            await self.connect()

        try:
            await self.client.xgroup_create(stream, group, id=start_id, mkstream=True)
            return True
        except ResponseError as e:
            if "BUSYGROUP" in str(e):
                return False
            raise StreamError(str(e), stream=stream, group=group, operation="xgroup_create") from e
        except RedisError as e:
            raise StreamError(str(e), stream=stream, group=group, operation="xgroup_create") from e

    async def xadd(self, stream: str, fields: Dict[str, str], maxlen: Optional[int] = None) -> str:
        """Append an entry to a stream and return its id."""
        if not self.client:
            await self.connect()

        try:
            return await self.client.xadd(stream, fields, id="*", maxlen=maxlen, approximate=True)
        except RedisError as e:
            self.logger.error("Redis xadd error", error=str(e), stream=stream)
            raise StreamError(str(e), stream=stream, operation="xadd") from e

    async def xreadgroup(
        self,
        group: str,
        consumer: str,
        stream: str,
        count: int,
        block_ms: int,
    ) -> List[StreamEntry]:
        """Blocking read of undelivered entries for this consumer."""
        if not self.client:
            await self.connect()

        try:
            reply = await self.client.xreadgroup(
                group, consumer, {stream: ">"}, count=count, block=block_ms
            )
        except RedisError as e:
            raise StreamError(str(e), stream=stream, group=group, operation="xreadgroup") from e

        entries: List[StreamEntry] = []
        for _name, messages in reply or []:
            entries.extend(self._normalize_entries(messages))
        return entries

    async def xack(self, stream: str, group: str, *ids: str) -> int:
        """Acknowledge entries."""
        if not ids:
            return 0
        if not self.client:
            await self.connect()

        try:
            return await self.client.xack(stream, group, *ids)
        except RedisError as e:
            raise StreamError(str(e), stream=stream, group=group, operation="xack") from e

    async def xpending_range(self, stream: str, group: str, count: int) -> List[Dict[str, Any]]:
        """
        List up to ``count`` pending entries of a group, oldest first.

        Each entry is ``{"message_id", "consumer", "time_since_delivered",
        "times_delivered"}``.
        """
        if not self.client:
            await self.connect()

        try:
            return await self.client.xpending_range(stream, group, min="-", max="+", count=count)
        except RedisError as e:
            raise StreamError(str(e), stream=stream, group=group, operation="xpending") from e

    async def xclaim(
        self,
        stream: str,
        group: str,
        consumer: str,
        min_idle_ms: int,
        ids: List[str],
    ) -> List[StreamEntry]:
        """Transfer ownership of pending entries still idle for ``min_idle_ms``."""
        if not ids:
            return []
        if not self.client:
            await self.connect()

        try:
            reply = await self.client.xclaim(stream, group, consumer, min_idle_ms, ids)
        except RedisError as e:
            raise StreamError(str(e), stream=stream, group=group, operation="xclaim") from e
        return self._normalize_entries(reply)

    @staticmethod
    def _normalize_entries(messages: Union[List[Any], None]) -> List[StreamEntry]:
        # Entries trimmed from the stream come back with no field map
        entries: List[StreamEntry] = []
        for message in messages or []:
            if message is None:
                continue
            entry_id, fields = message
            entries.append((entry_id, dict(fields or {})))
        return entries

    async def health_check(self) -> bool:
        """Check Redis health."""
        if not self.client:
            await self.connect()

        try:
            result = await self.client.ping()
            return result is True
        except RedisError as e:
            self.logger.error("Redis health check failed", error=str(e))
            return False

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
