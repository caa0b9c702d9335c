"""
Event handlers for the Timescale worker.
"""

from .pools import PoolWriter
from .trades import LiquidityWriter, PoolLookup, SwapWriter

__all__ = ["PoolWriter", "PoolLookup", "SwapWriter", "LiquidityWriter"]
