"""
Block decoding interface.

Decoding chain-specific transactions into DEX events is provided by an
external module configured with ``DEXPIPE_BLOCK_PARSER``. The processor
only needs something that turns one raw block into three event lists.
"""

from __future__ import annotations

import importlib
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Union

from dexpipe.utils.errors import ConfigurationError, ValidationError


@dataclass
class ParsedBlock:
    """Events decoded from one raw block."""
    pools: List[Dict[str, Any]] = field(default_factory=list)
    swaps: List[Dict[str, Any]] = field(default_factory=list)
    liquidity: List[Dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.pools) + len(self.swaps) + len(self.liquidity)

    @classmethod
    def coerce(cls, value: Any) -> "ParsedBlock":
        """Accept a ParsedBlock or a mapping with ``pools``/``swaps``/``liqs`` lists."""
        if isinstance(value, ParsedBlock):
            return value
        if isinstance(value, dict):
            return cls(
                pools=list(value.get("pools") or []),
                swaps=list(value.get("swaps") or []),
                liquidity=list(value.get("liquidity") or value.get("liqs") or []),
            )
        raise ValidationError(f"Block parser returned {type(value).__name__}")


BlockParser = Callable[[Dict[str, Any]], Union[ParsedBlock, Dict[str, Any], Awaitable[Any]]]


async def parse_block(parser: BlockParser, block: Dict[str, Any]) -> ParsedBlock:
    """Run ``parser`` on one block; decoder failures become ``ValidationError``."""
    try:
        result = parser(block)
        if inspect.isawaitable(result):
            result = await result
    except ValidationError:
        raise
    except Exception as e:
        raise ValidationError(f"Block decode failed: {e}", field="block") from e
    return ParsedBlock.coerce(result)


def load_block_parser(path: str) -> BlockParser:
    """
    Import a parser from ``module:attribute``.

    A class is instantiated without arguments; an object exposing
    ``parse`` is used through that method.
    """
    if not path or ":" not in path:
        raise ConfigurationError(
            "Block parser must be given as 'module:attribute'",
            config_key="DEXPIPE_BLOCK_PARSER",
            config_value=path,
        )

    module_name, attr = path.split(":", 1)
    try:
        target = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(
            f"Cannot load block parser {path}: {e}",
            config_key="DEXPIPE_BLOCK_PARSER",
            config_value=path,
        ) from e

    if inspect.isclass(target):
        target = target()
    parse = getattr(target, "parse", None)
    if callable(parse):
        return parse
    if callable(target):
        return target

    raise ConfigurationError(
        f"Block parser {path} is not callable",
        config_key="DEXPIPE_BLOCK_PARSER",
        config_value=path,
    )
