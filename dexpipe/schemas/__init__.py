"""
Event and model definitions for the DEX pipeline.
"""

from .events import (
    LiquidityEvent,
    PoolCreatedEvent,
    Reserve,
    SwapEvent,
    digits_or_none,
    parse_timestamp,
)
from .models import AssetDescriptor, PoolMeta, PriceTick
from .rows import liquidity_trade_row, swap_trade_row

__all__ = [
    "LiquidityEvent",
    "PoolCreatedEvent",
    "Reserve",
    "SwapEvent",
    "digits_or_none",
    "parse_timestamp",
    "AssetDescriptor",
    "PoolMeta",
    "PriceTick",
    "liquidity_trade_row",
    "swap_trade_row",
]
