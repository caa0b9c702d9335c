"""
Price derivation from pool reserves.
"""

import math
from typing import Any, Mapping, Optional, Sequence, Union

from dexpipe.schemas.models import AssetDescriptor
from dexpipe.schemas.events import Reserve

CANONICAL_QUOTE_DENOM = "uzig"
CANONICAL_QUOTE_EXPONENT = 6

ReserveLike = Union[Reserve, Mapping[str, Any]]


def _reserve_parts(reserve: ReserveLike):
    if isinstance(reserve, Reserve):
        return reserve.denom, reserve.amount_base
    return reserve.get("denom"), reserve.get("amount_base")


def _amount(value: Any) -> Optional[int]:
    try:
        amount = int(str(value))
    except (TypeError, ValueError):
        return None
    return amount if amount > 0 else None


def price_from_reserves(
    base: AssetDescriptor,
    reserves: Sequence[ReserveLike],
    quote_denom: str = CANONICAL_QUOTE_DENOM,
    quote_exponent: int = CANONICAL_QUOTE_EXPONENT,
) -> Optional[float]:
    """
    Price of ``base`` in the canonical quote asset.

    Each side is normalized by its decimal exponent. Returns None when the
    quote asset or the base asset is not among the reserves, when either
    side is zero or unparsable, or when the result is not finite and
    positive.
    """
    quote_raw = base_raw = None
    for reserve in reserves:
        denom, amount = _reserve_parts(reserve)
        if denom == quote_denom:
            quote_raw = _amount(amount)
        elif denom == base.denom:
            base_raw = _amount(amount)

    if quote_raw is None or base_raw is None:
        return None

    quote_units = quote_raw / (10 ** quote_exponent)
    base_units = base_raw / (10 ** base.exponent)
    if base_units == 0:
        return None

    price = quote_units / base_units
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def classify_direction(offer_denom: Optional[str], quote_denom: str) -> str:
    """A swap offering the quote asset buys the base asset."""
    return "buy" if offer_denom == quote_denom else "sell"


def quote_volume(
    offer_denom: Optional[str],
    offer_amount_base: Optional[str],
    return_amount_base: Optional[str],
    quote_denom: str = CANONICAL_QUOTE_DENOM,
    quote_exponent: int = CANONICAL_QUOTE_EXPONENT,
) -> float:
    """Traded volume in quote units: the offered side on buys, the returned side on sells."""
    raw = offer_amount_base if offer_denom == quote_denom else return_amount_base
    try:
        amount = int(str(raw)) if raw is not None else 0
    except ValueError:
        amount = 0
    return amount / (10 ** quote_exponent)
