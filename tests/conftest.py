"""Pytest configuration and fixtures."""

from datetime import datetime, timezone

import pytest

from dexpipe.framework.metrics import MetricsCollector
from dexpipe.schemas.models import PoolMeta
from tests.fixtures.mock_services import MockRedisClient, RecordingSink


@pytest.fixture
async def mock_redis_client():
    """Mock Redis client fixture."""
    client = MockRedisClient()
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def metrics():
    return MetricsCollector("test-service")


@pytest.fixture
def pool_meta():
    """A uzig-quoted pool as published by the Timescale worker."""
    return PoolMeta(
        pool_id=7,
        pair_contract="zig1pair",
        base_denom="uabc",
        quote_denom="uzig",
        base_id=11,
        quote_id=1,
        base_exp=6,
        quote_exp=6,
        is_uzig_quote=True,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_pool_event():
    return {
        "pair_contract": "zig1pair",
        "base_denom": "uabc",
        "quote_denom": "uzig",
        "pair_type": "xyk",
        "created_at": "2024-01-01T00:00:00Z",
        "height": 100,
        "tx_hash": "AA11",
        "signer": "zig1signer",
    }


@pytest.fixture
def sample_swap_event():
    """Buy of uabc with 1000 zig; reserves price uabc at 0.002 zig."""
    return {
        "pair_contract": "zig1pair",
        "offer_asset_denom": "uzig",
        "offer_amount_base": "1000000000",
        "ask_asset_denom": "uabc",
        "ask_amount_base": "500000000000",
        "return_amount_base": "499000000000",
        "reserve_asset1_denom": "uzig",
        "reserve_asset1_amount_base": "2000000",
        "reserve_asset2_denom": "uabc",
        "reserve_asset2_amount_base": "1000000000",
        "created_at": "2024-01-01T00:00:30Z",
        "height": 101,
        "tx_hash": "BB22",
        "signer": "zig1trader",
        "msg_index": 0,
    }


@pytest.fixture
def sample_liquidity_event():
    return {
        "pair_contract": "zig1pair",
        "action": "provide",
        "share_base": "12345",
        "reserve_asset1_denom": "uzig",
        "reserve_asset1_amount_base": "3000000",
        "reserve_asset2_denom": "uabc",
        "reserve_asset2_amount_base": "1500000000",
        "created_at": "2024-01-01T00:01:10Z",
        "height": 102,
        "tx_hash": "CC33",
        "signer": "zig1lp",
        "msg_index": 1,
    }
