"""
Eventual-consistency resolver for identifiers published by another worker.

The Timescale worker owns the surrogate keys for pools and tokens and
publishes them into Redis. Other consumers poll for those keys with a
bounded retry schedule and keep every hit in a local cache for the
lifetime of the process.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, TypeVar

import structlog

from dexpipe.schemas.models import PoolMeta
from dexpipe.storage.redis import RedisClient
from dexpipe.utils.errors import ResolutionError, ValidationError

logger = structlog.get_logger()

T = TypeVar("T")

POOL_META_PREFIX = "pool_meta:"
POOL_ID_PREFIX = "pool_id:"
TOKEN_ID_PREFIX = "token_id:"


def pool_meta_key(pair_contract: str) -> str:
    return f"{POOL_META_PREFIX}{pair_contract}"


def pool_id_key(pair_contract: str) -> str:
    return f"{POOL_ID_PREFIX}{pair_contract}"


def token_id_key(denom: str) -> str:
    return f"{TOKEN_ID_PREFIX}{denom}"


class RetryState(Enum):
    POLLING = "polling"
    HIT = "hit"
    EXHAUSTED = "exhausted"


@dataclass
class RetrySchedule:
    """
    Bounded poll schedule: one initial poll plus ``retries`` retries,
    each retry preceded by a sleep of ``delay`` seconds.
    """
    retries: int
    delay: float
    attempts: int = 0
    state: RetryState = RetryState.POLLING

    @property
    def done(self) -> bool:
        return self.state is not RetryState.POLLING

    @property
    def waited(self) -> float:
        return max(self.attempts - 1, 0) * self.delay

    def hit(self) -> None:
        self.attempts += 1
        self.state = RetryState.HIT

    def miss(self) -> Optional[float]:
        """Record an absent poll. Returns the sleep before the next poll, or None when exhausted."""
        self.attempts += 1
        if self.attempts > self.retries:
            self.state = RetryState.EXHAUSTED
            return None
        return self.delay


def _decode_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


def _decode_meta(value: Any) -> Optional[PoolMeta]:
    if not isinstance(value, dict):
        return None
    try:
        return PoolMeta.from_dict(value)
    except ValidationError:
        return None


class EventualResolver:
    """
    Resolve pool metadata, pool ids and token ids from the shared store.

    One instance per process; the three caches are independent and are
    never invalidated.
    """

    def __init__(
        self,
        store: RedisClient,
        retries: int = 10,
        delay: float = 0.5,
        metrics=None,
    ):
        self.store = store
        self.retries = retries
        self.delay = delay
        self.metrics = metrics
        self.logger = structlog.get_logger("eventual-resolver")

        self.pool_meta_cache: Dict[str, PoolMeta] = {}
        self.pool_id_cache: Dict[str, int] = {}
        self.token_id_cache: Dict[str, int] = {}

    async def resolve(
        self,
        key: str,
        decode: Callable[[Any], Optional[T]],
        cache: Optional[Dict[str, T]] = None,
        cache_key: Optional[str] = None,
        retries: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> T:
        """
        Return the decoded value stored at ``key``, polling until it appears.

        Raises ``ResolutionError`` once the schedule is exhausted. Values
        that fail to decode count as absent.
        """
        cache_key = cache_key or key
        if cache is not None and cache_key in cache:
            return cache[cache_key]

        schedule = RetrySchedule(
            retries=self.retries if retries is None else retries,
            delay=self.delay if delay is None else delay,
        )
        started = time.monotonic()
        kind = key.split(":", 1)[0]

        while not schedule.done:
            value = decode(await self.store.get(key))
            if value is not None:
                schedule.hit()
                if cache is not None:
                    cache[cache_key] = value
                if self.metrics:
                    self.metrics.record_resolver_lookup(kind, "hit")
                if schedule.attempts > 1:
                    self.logger.debug("Key resolved after waiting", key=key, attempts=schedule.attempts)
                return value

            wait = schedule.miss()
            if wait is not None:
                await asyncio.sleep(wait)

        if self.metrics:
            self.metrics.record_resolver_lookup(kind, "exhausted")
        waited = time.monotonic() - started
        self.logger.warning("Key not ready", key=key, attempts=schedule.attempts, waited=round(waited, 3))
        raise ResolutionError(
            f"{key} not ready",
            key=key,
            attempts=schedule.attempts,
            waited_seconds=waited,
        )

    async def get_pool_meta(
        self,
        pair_contract: str,
        retries: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> PoolMeta:
        return await self.resolve(
            pool_meta_key(pair_contract),
            _decode_meta,
            cache=self.pool_meta_cache,
            cache_key=pair_contract,
            retries=retries,
            delay=delay,
        )

    async def get_pool_id(
        self,
        pair_contract: str,
        retries: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> int:
        meta = self.pool_meta_cache.get(pair_contract)
        if meta is not None:
            return meta.pool_id

        return await self.resolve(
            pool_id_key(pair_contract),
            _decode_id,
            cache=self.pool_id_cache,
            cache_key=pair_contract,
            retries=retries,
            delay=delay,
        )

    async def get_token_id(
        self,
        denom: str,
        retries: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> int:
        return await self.resolve(
            token_id_key(denom),
            _decode_id,
            cache=self.token_id_cache,
            cache_key=denom,
            retries=retries,
            delay=delay,
        )

    def remember_pool(self, meta: PoolMeta) -> None:
        """Seed the local caches with metadata this process just published."""
        self.pool_meta_cache[meta.pair_contract] = meta
        self.pool_id_cache[meta.pair_contract] = meta.pool_id
        if meta.base_id is not None:
            self.token_id_cache[meta.base_denom] = meta.base_id
        if meta.quote_id is not None:
            self.token_id_cache[meta.quote_denom] = meta.quote_id

    def get_stats(self) -> Dict[str, int]:
        return {
            "pool_meta_cached": len(self.pool_meta_cache),
            "pool_id_cached": len(self.pool_id_cache),
            "token_id_cached": len(self.token_id_cache),
        }
