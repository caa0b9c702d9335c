"""
Token metadata refresh from the chain LCD.

Runs detached from the pool handler; a failed or missing lookup leaves
the token row as it was.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiohttp
import structlog

from .repository import TimescaleRepository

logger = structlog.get_logger(__name__)

DENOM_METADATA_PATH = "/cosmos/bank/v1beta1/denoms_metadata/{denom}"


@dataclass
class TokenMetadata:
    denom: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    display: Optional[str] = None
    exponent: Optional[int] = None

    @classmethod
    def from_lcd(cls, denom: str, payload: Dict[str, Any]) -> "TokenMetadata":
        meta = payload.get("metadata") or {}
        units = meta.get("denom_units") or []
        display = meta.get("display") or None

        exponent = None
        for unit in units:
            if display and unit.get("denom") == display:
                exponent = int(unit.get("exponent") or 0)
                break
        if exponent is None and units:
            exponent = max(int(unit.get("exponent") or 0) for unit in units)

        return cls(
            denom=denom,
            name=meta.get("name") or None,
            symbol=meta.get("symbol") or None,
            display=display,
            exponent=exponent,
        )


class TokenMetadataRefresher:
    """Fetches denom metadata over HTTP and stores it on the token row."""

    def __init__(self, lcd_url: str, repository: TimescaleRepository, timeout: float = 10.0):
        self.lcd_url = lcd_url.rstrip("/")
        self.repository = repository
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = structlog.get_logger("token-metadata")

    async def start(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    async def fetch(self, denom: str) -> Optional[TokenMetadata]:
        """Return the LCD metadata for ``denom``, or None when the chain has none."""
        if self.session is None:
            await self.start()

        url = self.lcd_url + DENOM_METADATA_PATH.format(denom=quote(denom, safe="/"))
        async with self.session.get(url) as response:
            if response.status == 404:
                return None
            response.raise_for_status()
            payload = await response.json()

        return TokenMetadata.from_lcd(denom, payload)

    async def refresh(self, denom: str) -> Optional[TokenMetadata]:
        """Fetch and store metadata for one denom."""
        metadata = await self.fetch(denom)
        if metadata is None:
            self.logger.debug("No denom metadata", denom=denom)
            return None

        await self.repository.update_token_metadata(
            denom,
            metadata.name,
            metadata.symbol,
            metadata.display,
            metadata.exponent,
        )
        self.logger.info("Token metadata updated", denom=denom, symbol=metadata.symbol, exponent=metadata.exponent)
        return metadata
