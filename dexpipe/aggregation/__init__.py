"""
Price and OHLCV derivation for swap events.
"""

from .ohlcv import OHLCVAccumulator, OHLCVBucket, bucket_start
from .prices import (
    CANONICAL_QUOTE_DENOM,
    CANONICAL_QUOTE_EXPONENT,
    classify_direction,
    price_from_reserves,
    quote_volume,
)

__all__ = [
    "OHLCVAccumulator",
    "OHLCVBucket",
    "bucket_start",
    "CANONICAL_QUOTE_DENOM",
    "CANONICAL_QUOTE_EXPONENT",
    "classify_direction",
    "price_from_reserves",
    "quote_volume",
]
