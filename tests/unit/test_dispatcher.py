"""Unit tests for JSON event dispatch."""

import json
from typing import Any, Dict, List

import pytest

from dexpipe.framework.consumer import StreamAcknowledger, StreamRecord
from dexpipe.framework.dispatcher import EventHandler, JsonEventDispatcher
from dexpipe.schemas.events import SwapEvent
from dexpipe.utils.errors import ResolutionError, StorageError, ValidationError


class RecordingHandler(EventHandler):
    name = "recording"

    def __init__(self, fail_on: Dict[int, Exception] = None):
        self.fail_on = fail_on or {}
        self.events: List[Dict[str, Any]] = []
        self.batches_ended = 0
        self.batches_failed = 0

    async def handle(self, event: Dict[str, Any]) -> None:
        error = self.fail_on.get(event.get("n"))
        if error:
            raise error
        self.events.append(event)

    async def on_batch_end(self) -> None:
        self.batches_ended += 1

    async def on_batch_failed(self) -> None:
        self.batches_failed += 1


async def pending_batch(redis, payloads: List[str]) -> List[StreamRecord]:
    await redis.create_group("events:swap", "g", start_id="0")
    for payload in payloads:
        await redis.xadd("events:swap", {"j": payload} if payload is not None else {"other": "x"})
    entries = await redis.xreadgroup("g", "c", "events:swap", count=100, block_ms=10)
    return [StreamRecord(id=entry_id, fields=fields) for entry_id, fields in entries]


class TestJsonEventDispatcher:

    @pytest.mark.asyncio
    async def test_handles_and_acks_batch(self, mock_redis_client):
        records = await pending_batch(mock_redis_client, ['{"n": 1}', '{"n": 2}'])
        handler = RecordingHandler()
        dispatcher = JsonEventDispatcher("events:swap", handler)

        await dispatcher(records, StreamAcknowledger(mock_redis_client, "events:swap", "g"))

        assert handler.events == [{"n": 1}, {"n": 2}]
        assert handler.batches_ended == 1
        assert mock_redis_client.pending_ids("events:swap", "g") == []

    @pytest.mark.asyncio
    async def test_malformed_payloads_are_skipped(self, mock_redis_client, metrics):
        records = await pending_batch(mock_redis_client, ["{not json", None, "[1, 2]", '{"n": 3}'])
        handler = RecordingHandler()
        dispatcher = JsonEventDispatcher("events:swap", handler, metrics)

        await dispatcher(records, StreamAcknowledger(mock_redis_client, "events:swap", "g"))

        assert handler.events == [{"n": 3}]
        assert dispatcher.events_skipped == 3
        assert mock_redis_client.pending_ids("events:swap", "g") == []
        assert metrics.registry.get_sample_value(
            "test_service_events_skipped_total", {"stream": "events:swap", "reason": "malformed"}
        ) == 2.0

    @pytest.mark.asyncio
    async def test_invalid_and_unresolved_events_are_skipped(self, mock_redis_client):
        records = await pending_batch(mock_redis_client, ['{"n": 1}', '{"n": 2}', '{"n": 3}'])
        handler = RecordingHandler(
            fail_on={
                1: ValidationError("missing pair_contract", field="pair_contract"),
                2: ResolutionError("pool_meta:x not ready", key="pool_meta:x", attempts=21),
            }
        )
        dispatcher = JsonEventDispatcher("events:swap", handler)

        await dispatcher(records, StreamAcknowledger(mock_redis_client, "events:swap", "g"))

        assert handler.events == [{"n": 3}]
        assert dispatcher.events_handled == 1
        assert dispatcher.events_skipped == 2
        assert mock_redis_client.pending_ids("events:swap", "g") == []

    @pytest.mark.asyncio
    async def test_skipped_errors_carry_record_context(self, mock_redis_client):
        records = await pending_batch(mock_redis_client, ['{"n": 1, "pair_contract": "zig1pair"}', '{"n": 2}'])
        invalid = ValidationError("missing offer_asset_denom", field="offer_asset_denom")
        unresolved = ResolutionError("pool_meta:x not ready", key="pool_meta:x", attempts=21)
        dispatcher = JsonEventDispatcher("events:swap", RecordingHandler(fail_on={1: invalid, 2: unresolved}))

        await dispatcher(records, StreamAcknowledger(mock_redis_client, "events:swap", "g"))

        assert (invalid.context.service, invalid.context.operation) == ("recording", "handle")
        assert invalid.context.stream == "events:swap"
        assert invalid.context.record_id == records[0].id
        assert invalid.context.pair_contract == "zig1pair"
        assert unresolved.context.record_id == records[1].id
        assert unresolved.context.pair_contract is None
        assert unresolved.to_dict()["context"]["stream"] == "events:swap"

    @pytest.mark.asyncio
    async def test_systemic_failure_leaves_batch_pending(self, mock_redis_client):
        records = await pending_batch(mock_redis_client, ['{"n": 1}', '{"n": 2}'])
        handler = RecordingHandler(fail_on={2: StorageError("warehouse down", table="trades")})
        dispatcher = JsonEventDispatcher("events:swap", handler)

        with pytest.raises(StorageError):
            await dispatcher(records, StreamAcknowledger(mock_redis_client, "events:swap", "g"))

        assert handler.batches_failed == 1
        assert handler.batches_ended == 0
        assert mock_redis_client.pending_ids("events:swap", "g") == [r.id for r in records]

    @pytest.mark.asyncio
    async def test_batch_end_failure_leaves_batch_pending(self, mock_redis_client):
        records = await pending_batch(mock_redis_client, ['{"n": 1}'])

        class FlushFails(RecordingHandler):
            async def on_batch_end(self) -> None:
                raise StorageError("candle upsert failed")

        handler = FlushFails()
        dispatcher = JsonEventDispatcher("events:swap", handler)

        with pytest.raises(StorageError):
            await dispatcher(records, StreamAcknowledger(mock_redis_client, "events:swap", "g"))

        assert handler.batches_failed == 1
        assert len(mock_redis_client.pending_ids("events:swap", "g")) == 1

    @pytest.mark.asyncio
    async def test_out_of_range_timestamp_is_skipped(self, mock_redis_client, sample_swap_event):
        bad = dict(sample_swap_event, created_at=99999999999999999)
        bad_text = dict(sample_swap_event, created_at="99999999999999999")
        records = await pending_batch(
            mock_redis_client, [json.dumps(bad), json.dumps(sample_swap_event), json.dumps(bad_text)]
        )

        class SwapHandler(RecordingHandler):
            async def handle(self, event):
                self.events.append(SwapEvent.from_dict(event))

        handler = SwapHandler()
        dispatcher = JsonEventDispatcher("events:swap", handler)

        await dispatcher(records, StreamAcknowledger(mock_redis_client, "events:swap", "g"))

        assert len(handler.events) == 1
        assert dispatcher.events_skipped == 2
        assert handler.batches_failed == 0
        assert mock_redis_client.pending_ids("events:swap", "g") == []
