"""Unit tests for the stream consumer."""

import asyncio

import pytest

from dexpipe.framework.consumer import ConsumerConfig, StreamConsumer


STREAM = "events:swap"
GROUP = "timescale"


def make_consumer(redis, **overrides) -> StreamConsumer:
    config = ConsumerConfig(
        stream=STREAM,
        group=GROUP,
        consumer_name=overrides.pop("consumer_name", "worker-1"),
        block_ms=10,
        start_id="0",
        **overrides,
    )
    return StreamConsumer(config, redis)


async def fill(redis, count: int):
    return [await redis.xadd(STREAM, {"j": f'{{"n": {i}}}'}) for i in range(count)]


class TestConsumerGroup:
    """Group creation."""

    @pytest.mark.asyncio
    async def test_group_creation_is_idempotent(self, mock_redis_client):
        consumer = make_consumer(mock_redis_client)

        await consumer.ensure_group()
        await consumer.ensure_group()

        assert (STREAM, GROUP) in mock_redis_client.groups

    @pytest.mark.asyncio
    async def test_group_creation_creates_stream(self, mock_redis_client):
        await make_consumer(mock_redis_client).ensure_group()
        assert STREAM in mock_redis_client.streams


class TestBatchAcknowledgement:
    """Acknowledgement only after the handler succeeds."""

    @pytest.mark.asyncio
    async def test_handler_failure_leaves_batch_pending(self, mock_redis_client):
        consumer = make_consumer(mock_redis_client)
        await consumer.ensure_group()
        ids = await fill(mock_redis_client, 3)

        async def failing(records, acks):
            raise RuntimeError("warehouse down")

        with pytest.raises(RuntimeError):
            await consumer.process_next_batch(failing)

        assert mock_redis_client.pending_ids(STREAM, GROUP) == ids
        assert consumer.batches_processed == 0

    @pytest.mark.asyncio
    async def test_handler_acks_whole_batch(self, mock_redis_client):
        consumer = make_consumer(mock_redis_client, batch_size=10)
        await consumer.ensure_group()
        await fill(mock_redis_client, 4)
        seen = []

        async def handler(records, acks):
            seen.extend(records)
            await acks.ack_many([record.id for record in records])

        assert await consumer.process_next_batch(handler) == 4
        assert [record.fields["j"] for record in seen][0] == '{"n": 0}'
        assert mock_redis_client.pending_ids(STREAM, GROUP) == []
        assert consumer.records_processed == 4

    @pytest.mark.asyncio
    async def test_auto_ack(self, mock_redis_client):
        consumer = make_consumer(mock_redis_client, auto_ack=True)
        await consumer.ensure_group()
        await fill(mock_redis_client, 2)

        async def handler(records, acks):
            return None

        await consumer.process_next_batch(handler)
        assert mock_redis_client.pending_ids(STREAM, GROUP) == []

    @pytest.mark.asyncio
    async def test_empty_read_returns_zero(self, mock_redis_client):
        consumer = make_consumer(mock_redis_client)
        await consumer.ensure_group()

        async def handler(records, acks):
            raise AssertionError("handler must not run on an empty read")

        assert await consumer.process_next_batch(handler) == 0

    @pytest.mark.asyncio
    async def test_batch_size_limits_read(self, mock_redis_client):
        consumer = make_consumer(mock_redis_client, batch_size=2, auto_ack=True)
        await consumer.ensure_group()
        await fill(mock_redis_client, 5)

        async def handler(records, acks):
            return None

        assert await consumer.process_next_batch(handler) == 2
        assert await consumer.process_next_batch(handler) == 2
        assert await consumer.process_next_batch(handler) == 1


class TestConsumeLoop:
    """The unbounded read loop."""

    @pytest.mark.asyncio
    async def test_loop_survives_handler_errors(self, mock_redis_client):
        consumer = make_consumer(mock_redis_client, batch_size=1, error_backoff=0.01)
        await fill(mock_redis_client, 2)
        handled = []

        async def handler(records, acks):
            if not handled:
                handled.append("failed")
                raise RuntimeError("transient")
            handled.extend(record.id for record in records)
            await acks.ack_many([record.id for record in records])

        await consumer.start(handler)
        for _ in range(100):
            if len(handled) >= 2:
                break
            await asyncio.sleep(0.01)
        await consumer.stop()

        assert handled[0] == "failed"
        assert consumer.batches_failed == 1
        # The failed entry is still pending; the second one was acknowledged
        assert mock_redis_client.pending_ids(STREAM, GROUP) == ["1-0"]
        assert not consumer.running


class TestReclaim:
    """Idle-based reclamation."""

    @pytest.mark.asyncio
    async def test_claim_stale_takes_over_idle_entries(self, mock_redis_client):
        dead = make_consumer(mock_redis_client, consumer_name="dead")
        await dead.ensure_group()
        ids = await fill(mock_redis_client, 2)

        async def crash(records, acks):
            raise RuntimeError("crashed")

        with pytest.raises(RuntimeError):
            await dead.process_next_batch(crash)

        survivor = make_consumer(mock_redis_client, consumer_name="survivor")
        assert await survivor.claim_stale(min_idle_ms=60000) == []

        mock_redis_client.age_pending(STREAM, GROUP, 61000)
        assert await survivor.claim_stale(min_idle_ms=60000) == ids

        pending = await survivor.pending()
        assert {entry.consumer for entry in pending} == {"survivor"}
        assert all(entry.times_delivered == 2 for entry in pending)

    @pytest.mark.asyncio
    async def test_reclaim_once_redrives_handler(self, mock_redis_client):
        consumer = make_consumer(mock_redis_client, claim_min_idle_ms=1000)
        await consumer.ensure_group()
        await fill(mock_redis_client, 3)

        async def crash(records, acks):
            raise RuntimeError("crashed")

        with pytest.raises(RuntimeError):
            await consumer.process_next_batch(crash)
        mock_redis_client.age_pending(STREAM, GROUP, 5000)

        async def handler(records, acks):
            await acks.ack_many([record.id for record in records])

        reclaimed = await consumer.reclaim_once(handler)

        assert len(reclaimed) == 3
        assert consumer.records_reclaimed == 3
        assert mock_redis_client.pending_ids(STREAM, GROUP) == []

    @pytest.mark.asyncio
    async def test_reclaimed_batch_waits_for_batch_in_flight(self, mock_redis_client):
        consumer = make_consumer(mock_redis_client, claim_min_idle_ms=1000)
        await consumer.ensure_group()
        await fill(mock_redis_client, 1)

        async def crash(records, acks):
            raise RuntimeError("crashed")

        with pytest.raises(RuntimeError):
            await consumer.process_next_batch(crash)
        mock_redis_client.age_pending(STREAM, GROUP, 5000)
        await fill(mock_redis_client, 2)

        gate = asyncio.Event()
        active = []
        batches = []

        async def handler(records, acks):
            active.append(1)
            assert len(active) == 1
            if not batches:
                batches.append([record.id for record in records])
                await gate.wait()
            else:
                batches.append([record.id for record in records])
            await acks.ack_many([record.id for record in records])
            active.pop()

        reading = asyncio.create_task(consumer.process_next_batch(handler))
        await asyncio.sleep(0.01)
        reclaiming = asyncio.create_task(consumer.reclaim_once(handler))
        await asyncio.sleep(0.01)

        assert batches == [["2-0", "3-0"]]

        gate.set()
        await asyncio.gather(reading, reclaiming)

        assert batches == [["2-0", "3-0"], ["1-0"]]
        assert mock_redis_client.pending_ids(STREAM, GROUP) == []
