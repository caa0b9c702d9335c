"""
Event handlers for the ClickHouse worker.
"""

from .pools import ClickHousePoolWriter
from .prices import PriceTickWriter
from .trades import ClickHouseLiquidityWriter, ClickHouseSwapWriter

__all__ = [
    "ClickHousePoolWriter",
    "PriceTickWriter",
    "ClickHouseSwapWriter",
    "ClickHouseLiquidityWriter",
]
