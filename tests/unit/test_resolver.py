"""Unit tests for the eventual-consistency resolver."""

import asyncio
import json
import time

import pytest

from dexpipe.lookup.resolver import EventualResolver, RetrySchedule, RetryState, pool_id_key, pool_meta_key, token_id_key
from dexpipe.utils.errors import ResolutionError


class TestRetrySchedule:

    def test_retries_plus_one_polls(self):
        schedule = RetrySchedule(retries=2, delay=0.1)

        assert schedule.miss() == 0.1
        assert schedule.miss() == 0.1
        assert schedule.miss() is None
        assert schedule.state is RetryState.EXHAUSTED
        assert schedule.attempts == 3

    def test_zero_retries_polls_once(self):
        schedule = RetrySchedule(retries=0, delay=1.0)

        assert schedule.miss() is None
        assert schedule.done


class TestEventualResolver:

    @pytest.mark.asyncio
    async def test_absent_key_raises_after_schedule(self, mock_redis_client):
        resolver = EventualResolver(mock_redis_client)

        started = time.monotonic()
        with pytest.raises(ResolutionError) as exc_info:
            await resolver.get_token_id("uabc", retries=3, delay=0.1)
        elapsed = time.monotonic() - started

        assert 0.3 <= elapsed < 0.4
        assert exc_info.value.attempts == 4
        assert exc_info.value.key == "token_id:uabc"
        assert mock_redis_client.get_calls == 4

    @pytest.mark.asyncio
    async def test_present_key_returns_without_waiting(self, mock_redis_client):
        await mock_redis_client.set(pool_id_key("zig1pair"), "123")
        resolver = EventualResolver(mock_redis_client)

        started = time.monotonic()
        assert await resolver.get_pool_id("zig1pair", retries=3, delay=0.1) == 123
        assert time.monotonic() - started < 0.05

    @pytest.mark.asyncio
    async def test_key_published_while_waiting(self, mock_redis_client):
        resolver = EventualResolver(mock_redis_client)

        async def publish_later():
            await asyncio.sleep(0.05)
            await mock_redis_client.set(token_id_key("uabc"), "11")

        publisher = asyncio.create_task(publish_later())
        assert await resolver.get_token_id("uabc", retries=10, delay=0.02) == 11
        await publisher

    @pytest.mark.asyncio
    async def test_hits_are_cached_for_process_lifetime(self, mock_redis_client):
        await mock_redis_client.set(token_id_key("uabc"), "11")
        resolver = EventualResolver(mock_redis_client)

        await resolver.get_token_id("uabc")
        await mock_redis_client.delete(token_id_key("uabc"))

        assert await resolver.get_token_id("uabc") == 11
        assert mock_redis_client.get_calls == 1

    @pytest.mark.asyncio
    async def test_undecodable_values_count_as_absent(self, mock_redis_client):
        await mock_redis_client.set(token_id_key("uabc"), "not-a-number")
        await mock_redis_client.set(pool_meta_key("zig1pair"), json.dumps({"pool_id": 7}))
        resolver = EventualResolver(mock_redis_client)

        with pytest.raises(ResolutionError):
            await resolver.get_token_id("uabc", retries=1, delay=0.01)
        with pytest.raises(ResolutionError):
            await resolver.get_pool_meta("zig1pair", retries=1, delay=0.01)

    @pytest.mark.asyncio
    async def test_pool_meta_decodes_published_blob(self, mock_redis_client, pool_meta):
        await mock_redis_client.set(pool_meta_key(pool_meta.pair_contract), json.dumps(pool_meta.to_dict()))
        resolver = EventualResolver(mock_redis_client)

        meta = await resolver.get_pool_meta(pool_meta.pair_contract, retries=0)

        assert meta.pool_id == 7
        assert meta.base_id == 11
        assert meta.is_uzig_quote
        # The pool id comes from the metadata cache without another read
        assert await resolver.get_pool_id(pool_meta.pair_contract) == 7
        assert mock_redis_client.get_calls == 1

    @pytest.mark.asyncio
    async def test_remember_pool_seeds_caches(self, mock_redis_client, pool_meta):
        resolver = EventualResolver(mock_redis_client)

        resolver.remember_pool(pool_meta)

        assert await resolver.get_pool_meta("zig1pair", retries=0) is pool_meta
        assert await resolver.get_token_id("uabc", retries=0) == 11
        assert await resolver.get_token_id("uzig", retries=0) == 1
        assert mock_redis_client.get_calls == 0
        assert resolver.get_stats()["token_id_cached"] == 2

    @pytest.mark.asyncio
    async def test_exhaustion_is_counted(self, mock_redis_client, metrics):
        resolver = EventualResolver(mock_redis_client, metrics=metrics)

        with pytest.raises(ResolutionError):
            await resolver.get_pool_id("missing", retries=0)

        value = metrics.registry.get_sample_value(
            "test_service_resolver_lookups_total", {"kind": "pool_id", "outcome": "exhausted"}
        )
        assert value == 1.0
