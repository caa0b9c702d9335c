"""
Redis Streams producer for pipeline services.

Appends derived records onto named output streams. The producer is
stateless apart from counters and may be shared by every role.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog

from dexpipe.storage.redis import RedisClient


logger = structlog.get_logger()

PAYLOAD_FIELD = "j"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (set, tuple)):
        return list(value)
    return str(value)


def encode_payload(record: Dict[str, Any]) -> Dict[str, str]:
    """Serialize a record into the single-field stream entry shape."""
    return {PAYLOAD_FIELD: json.dumps(record, default=_json_default, separators=(",", ":"))}


class StreamProducer:
    """
    Event emitter over Redis Streams.

    Strict append order is preserved within one stream; nothing is
    guaranteed across different streams.
    """

    def __init__(self, redis: RedisClient, maxlen: Optional[int] = None):
        self.redis = redis
        self.maxlen = maxlen
        self.logger = structlog.get_logger("stream-producer")

        # Metrics
        self.messages_sent = 0
        self.messages_failed = 0

    async def emit(self, stream: str, record: Dict[str, Any]) -> str:
        """Append one record to ``stream`` and return the assigned id."""
        try:
            entry_id = await self.redis.xadd(stream, encode_payload(record), maxlen=self.maxlen)
        except Exception as e:
            self.messages_failed += 1
            self.logger.error("Emit failed", stream=stream, error=str(e))
            raise

        self.messages_sent += 1
        self.logger.debug("Record emitted", stream=stream, id=entry_id)
        return entry_id

    async def emit_many(self, stream: str, records: List[Dict[str, Any]]) -> List[str]:
        """Append records in order; stops at the first failure."""
        ids = []
        for record in records:
            ids.append(await self.emit(stream, record))
        return ids

    def get_metrics(self) -> Dict[str, Any]:
        """Get producer metrics."""
        return {
            "messages_sent": self.messages_sent,
            "messages_failed": self.messages_failed,
        }
