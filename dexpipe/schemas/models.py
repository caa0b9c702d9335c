"""
Data models shared between the warehouse workers.

``PoolMeta`` is the blob published under ``pool_meta:<pair_contract>``
by the Timescale worker and read back through the resolver.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Any, Optional

from dexpipe.utils.errors import ValidationError
from .events import parse_timestamp


@dataclass(frozen=True)
class AssetDescriptor:
    """An asset and its declared decimal exponent."""
    denom: str
    exponent: int = 0


@dataclass
class PoolMeta:
    """Pool identity with both token sides."""
    pool_id: int
    pair_contract: str
    base_denom: str
    quote_denom: str
    base_id: Optional[int] = None
    quote_id: Optional[int] = None
    base_exp: int = 0
    quote_exp: int = 0
    pair_type: str = "xyk"
    is_uzig_quote: bool = False
    created_at: Optional[datetime] = None

    @property
    def base(self) -> AssetDescriptor:
        return AssetDescriptor(self.base_denom, self.base_exp)

    @property
    def quote(self) -> AssetDescriptor:
        return AssetDescriptor(self.quote_denom, self.quote_exp)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON-ready mapping stored in the shared store."""
        return {
            "pool_id": self.pool_id,
            "pair_contract": self.pair_contract,
            "base_id": self.base_id,
            "quote_id": self.quote_id,
            "base_denom": self.base_denom,
            "quote_denom": self.quote_denom,
            "base_exp": self.base_exp,
            "quote_exp": self.quote_exp,
            "pair_type": self.pair_type,
            "is_uzig_quote": self.is_uzig_quote,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoolMeta":
        """Create from dictionary; ``ValidationError`` on missing identity fields."""
        try:
            return cls(
                pool_id=int(data["pool_id"]),
                pair_contract=data["pair_contract"],
                base_denom=data["base_denom"],
                quote_denom=data["quote_denom"],
                base_id=int(data["base_id"]) if data.get("base_id") is not None else None,
                quote_id=int(data["quote_id"]) if data.get("quote_id") is not None else None,
                base_exp=int(data.get("base_exp") or 0),
                quote_exp=int(data.get("quote_exp") or 0),
                pair_type=data.get("pair_type") or "xyk",
                is_uzig_quote=bool(data.get("is_uzig_quote")),
                created_at=parse_timestamp(data["created_at"]) if data.get("created_at") else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid pool metadata: {e}", details={"data": data})


@dataclass
class PriceTick:
    """A price observation of a base token in the canonical quote asset."""
    pool_id: int
    token_id: int
    price_in_zig: float
    ts: datetime

    def to_row(self) -> Dict[str, Any]:
        return {
            "pool_id": self.pool_id,
            "token_id": self.token_id,
            "price_in_zig": self.price_in_zig,
            "ts": self.ts,
        }
