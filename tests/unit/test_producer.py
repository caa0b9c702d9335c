"""Unit tests for the stream producer."""

import json
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from dexpipe.framework.producer import PAYLOAD_FIELD, StreamProducer, encode_payload
from dexpipe.utils.errors import StreamError


class TestEncodePayload:

    def test_single_json_field(self):
        fields = encode_payload({"pair_contract": "zig1pair", "height": 5})

        assert list(fields) == [PAYLOAD_FIELD]
        assert json.loads(fields["j"]) == {"pair_contract": "zig1pair", "height": 5}

    def test_datetimes_become_utc_iso_strings(self):
        fields = encode_payload({"created_at": datetime(2024, 1, 1, 12, 30)})
        assert json.loads(fields["j"])["created_at"] == "2024-01-01T12:30:00+00:00"

    def test_decimals_keep_full_precision(self):
        fields = encode_payload({"amount": Decimal("123456789012345678901234567890")})
        assert json.loads(fields["j"])["amount"] == "123456789012345678901234567890"


class TestStreamProducer:

    @pytest.mark.asyncio
    async def test_emit_appends_in_order(self, mock_redis_client):
        producer = StreamProducer(mock_redis_client)

        ids = await producer.emit_many("events:swap", [{"n": 1}, {"n": 2}, {"n": 3}])

        assert len(ids) == 3
        assert mock_redis_client.payloads("events:swap") == [{"n": 1}, {"n": 2}, {"n": 3}]
        assert producer.get_metrics()["messages_sent"] == 3

    @pytest.mark.asyncio
    async def test_emit_failure_propagates(self):
        redis = AsyncMock()
        redis.xadd.side_effect = StreamError("connection refused", stream="events:swap", operation="xadd")
        producer = StreamProducer(redis)

        with pytest.raises(StreamError):
            await producer.emit("events:swap", {"n": 1})

        assert producer.messages_failed == 1
        assert producer.messages_sent == 0

    @pytest.mark.asyncio
    async def test_maxlen_is_passed_to_broker(self):
        redis = AsyncMock()
        redis.xadd.return_value = "1-0"
        producer = StreamProducer(redis, maxlen=1000)

        await producer.emit("events:swap", {"n": 1})

        redis.xadd.assert_awaited_once_with("events:swap", {"j": '{"n":1}'}, maxlen=1000)
