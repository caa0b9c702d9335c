"""
JSON event dispatch for stream consumers.

Every event stream carries one JSON document per entry in the ``j``
field. The dispatcher decodes each record, hands it to an event handler
and acknowledges the whole batch once the handler has seen all of it.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import structlog

from dexpipe.utils.errors import DataProcessingError, ResolutionError, ValidationError, create_error_context
from .consumer import StreamAcknowledger, StreamRecord
from .metrics import MetricsCollector
from .producer import PAYLOAD_FIELD


logger = structlog.get_logger()


class EventHandler(ABC):
    """Per-stream event handler."""

    name: str = "handler"

    @abstractmethod
    async def handle(self, event: Dict[str, Any]) -> None:
        """Handle one decoded event."""

    async def on_batch_end(self) -> None:
        """Called once after every record of a batch was handled."""

    async def on_batch_failed(self) -> None:
        """Called when the batch is abandoned and will be delivered again."""


class JsonEventDispatcher:
    """
    Batch handler decoding ``j`` payloads and dispatching them.

    Per-record failures (malformed JSON, invalid events, identifiers not
    yet resolvable) are logged and skipped. Anything else propagates, so
    the batch stays pending and is delivered again.
    """

    def __init__(
        self,
        stream: str,
        handler: EventHandler,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.stream = stream
        self.handler = handler
        self.metrics = metrics
        self.logger = structlog.get_logger("event-dispatcher").bind(stream=stream, handler=handler.name)

        self.events_handled = 0
        self.events_skipped = 0

    async def __call__(self, records: List[StreamRecord], acks: StreamAcknowledger) -> None:
        try:
            for record in records:
                await self._dispatch_one(record)
            await self.handler.on_batch_end()
        except Exception:
            await self.handler.on_batch_failed()
            raise

        await acks.ack_many([record.id for record in records])

    async def _dispatch_one(self, record: StreamRecord) -> None:
        event = self._decode(record)
        if event is None:
            return

        try:
            await self.handler.handle(event)
            self.events_handled += 1
        except ValidationError as e:
            self._skip(record, "invalid", self._attach_context(e, record, event))
        except ResolutionError as e:
            self._skip(record, "unresolved", self._attach_context(e, record, event))

    def _attach_context(
        self, error: DataProcessingError, record: StreamRecord, event: Dict[str, Any]
    ) -> DataProcessingError:
        if error.context is None:
            error.context = create_error_context(
                service=self.handler.name,
                operation="handle",
                stream=self.stream,
                pair_contract=event.get("pair_contract"),
                record_id=record.id,
            )
        return error

    def _decode(self, record: StreamRecord) -> Optional[Dict[str, Any]]:
        raw = record.fields.get(PAYLOAD_FIELD)
        if not raw:
            self._skip(record, "empty", None)
            return None

        try:
            event = json.loads(raw)
        except json.JSONDecodeError as e:
            self._skip(record, "malformed", e)
            return None

        if not isinstance(event, dict):
            self._skip(record, "malformed", None)
            return None
        return event

    def _skip(self, record: StreamRecord, reason: str, error: Optional[Exception]) -> None:
        self.events_skipped += 1
        if self.metrics:
            self.metrics.record_skipped(self.stream, reason)
        self.logger.warning(
            "Event skipped",
            record_id=record.id,
            reason=reason,
            error=self._describe(error),
        )

    @staticmethod
    def _describe(error: Optional[Exception]) -> Any:
        if isinstance(error, DataProcessingError):
            return error.to_dict()
        return str(error) if error else None
