"""
DEX domain events carried on the event streams.

Each event is emitted by the processor as a flat JSON object and decoded
by the warehouse workers with ``from_dict``, which raises
``ValidationError`` when a required field is missing or malformed.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List

from dexpipe.utils.errors import ValidationError


def parse_timestamp(value: Any, field_name: str = "created_at") -> datetime:
    """
    Parse an event timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (with or without ``Z``) and epoch
    values in seconds or milliseconds.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, bool) or value is None or value == "":
        raise ValidationError(f"Invalid timestamp for {field_name}", field=field_name, value=value)

    if isinstance(value, str) and value.strip().lstrip("-").replace(".", "", 1).isdigit():
        value = float(value)

    if isinstance(value, (int, float)):
        try:
            seconds = value / 1000.0 if abs(value) >= 1e12 else float(value)
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (ValueError, OverflowError, OSError) as e:
            raise ValidationError(
                f"Timestamp out of range for {field_name}", field=field_name, value=value
            ) from e

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Invalid timestamp for {field_name}", field=field_name, value=value)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    raise ValidationError(f"Invalid timestamp for {field_name}", field=field_name, value=value)


def digits_or_none(value: Any) -> Optional[str]:
    """Normalize a raw integer amount to its decimal string, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value) if value >= 0 else None
    text = str(value).strip()
    return text if text.isdigit() else None


def _require(data: Dict[str, Any], name: str) -> Any:
    value = data.get(name)
    if value is None or value == "":
        raise ValidationError(f"Missing required field: {name}", field=name)
    return value


def _optional_int(data: Dict[str, Any], name: str) -> Optional[int]:
    value = data.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid integer for {name}", field=name, value=value)


@dataclass(frozen=True)
class Reserve:
    """One side of a pool's reserves, in raw base units."""
    denom: str
    amount_base: str


@dataclass
class PoolCreatedEvent:
    """A new trading pair created on the factory."""
    pair_contract: str
    base_denom: str
    quote_denom: str
    created_at: datetime
    pair_type: str = "xyk"
    height: Optional[int] = None
    tx_hash: Optional[str] = None
    signer: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoolCreatedEvent":
        return cls(
            pair_contract=_require(data, "pair_contract"),
            base_denom=_require(data, "base_denom"),
            quote_denom=_require(data, "quote_denom"),
            created_at=parse_timestamp(_require(data, "created_at")),
            pair_type=data.get("pair_type") or "xyk",
            height=_optional_int(data, "height"),
            tx_hash=data.get("tx_hash"),
            signer=data.get("signer"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class _ReserveCarrier:
    reserve_asset1_denom: Optional[str] = None
    reserve_asset1_amount_base: Optional[str] = None
    reserve_asset2_denom: Optional[str] = None
    reserve_asset2_amount_base: Optional[str] = None

    def reserves(self) -> List[Reserve]:
        """Post-trade reserves; empty unless both sides are present."""
        if not (
            self.reserve_asset1_denom and self.reserve_asset1_amount_base
            and self.reserve_asset2_denom and self.reserve_asset2_amount_base
        ):
            return []
        return [
            Reserve(self.reserve_asset1_denom, self.reserve_asset1_amount_base),
            Reserve(self.reserve_asset2_denom, self.reserve_asset2_amount_base),
        ]

    @staticmethod
    def _reserve_fields(data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "reserve_asset1_denom": data.get("reserve_asset1_denom") or None,
            "reserve_asset1_amount_base": digits_or_none(data.get("reserve_asset1_amount_base")),
            "reserve_asset2_denom": data.get("reserve_asset2_denom") or None,
            "reserve_asset2_amount_base": digits_or_none(data.get("reserve_asset2_amount_base")),
        }


@dataclass
class SwapEvent(_ReserveCarrier):
    """A swap executed against a pair."""
    pair_contract: str = ""
    offer_asset_denom: str = ""
    offer_amount_base: Optional[str] = None
    ask_asset_denom: Optional[str] = None
    ask_amount_base: Optional[str] = None
    return_amount_base: Optional[str] = None
    is_router: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    height: Optional[int] = None
    tx_hash: Optional[str] = None
    signer: Optional[str] = None
    msg_index: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwapEvent":
        return cls(
            pair_contract=_require(data, "pair_contract"),
            offer_asset_denom=_require(data, "offer_asset_denom"),
            offer_amount_base=digits_or_none(data.get("offer_amount_base")),
            ask_asset_denom=data.get("ask_asset_denom") or None,
            ask_amount_base=digits_or_none(data.get("ask_amount_base")),
            return_amount_base=digits_or_none(data.get("return_amount_base")),
            is_router=bool(data.get("is_router")),
            created_at=parse_timestamp(_require(data, "created_at")),
            height=_optional_int(data, "height"),
            tx_hash=data.get("tx_hash"),
            signer=data.get("signer"),
            msg_index=_optional_int(data, "msg_index"),
            **cls._reserve_fields(data),
        )


@dataclass
class LiquidityEvent(_ReserveCarrier):
    """Liquidity provided to or withdrawn from a pair."""
    pair_contract: str = ""
    action: str = "provide"
    share_base: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    height: Optional[int] = None
    tx_hash: Optional[str] = None
    signer: Optional[str] = None
    msg_index: Optional[int] = None

    ACTIONS = ("provide", "withdraw")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LiquidityEvent":
        action = _require(data, "action")
        if action not in cls.ACTIONS:
            raise ValidationError(f"Unknown liquidity action: {action}", field="action", value=action)

        return cls(
            pair_contract=_require(data, "pair_contract"),
            action=action,
            share_base=digits_or_none(data.get("share_base")),
            created_at=parse_timestamp(_require(data, "created_at")),
            height=_optional_int(data, "height"),
            tx_hash=data.get("tx_hash"),
            signer=data.get("signer"),
            msg_index=_optional_int(data, "msg_index"),
            **cls._reserve_fields(data),
        )
