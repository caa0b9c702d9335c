"""
Identifier lookups across independently scheduled workers.
"""

from .resolver import (
    EventualResolver,
    RetrySchedule,
    RetryState,
    pool_id_key,
    pool_meta_key,
    token_id_key,
)

__all__ = [
    "EventualResolver",
    "RetrySchedule",
    "RetryState",
    "pool_id_key",
    "pool_meta_key",
    "token_id_key",
]
