"""
Warehouse row builders shared by both workers.

Every trade row carries the full column set so a buffered batch can be
written with a single column list.
"""

from typing import Any, Dict

from .events import LiquidityEvent, SwapEvent


def _reserve_columns(event) -> Dict[str, Any]:
    return {
        "reserve_asset1_denom": event.reserve_asset1_denom,
        "reserve_asset1_amount_base": event.reserve_asset1_amount_base,
        "reserve_asset2_denom": event.reserve_asset2_denom,
        "reserve_asset2_amount_base": event.reserve_asset2_amount_base,
    }


def swap_trade_row(event: SwapEvent, pool_id: int, direction: str) -> Dict[str, Any]:
    return {
        "pool_id": pool_id,
        "pair_contract": event.pair_contract,
        "action": "swap",
        "direction": direction,
        "offer_asset_denom": event.offer_asset_denom,
        "offer_amount_base": event.offer_amount_base,
        "ask_asset_denom": event.ask_asset_denom,
        "ask_amount_base": event.ask_amount_base,
        "return_amount_base": event.return_amount_base,
        "is_router": event.is_router,
        **_reserve_columns(event),
        "height": event.height,
        "tx_hash": event.tx_hash,
        "signer": event.signer,
        "msg_index": event.msg_index,
        "created_at": event.created_at,
    }


def liquidity_trade_row(event: LiquidityEvent, pool_id: int) -> Dict[str, Any]:
    # Liquidity rows reuse the trade columns; the share amount goes in return_amount_base
    return {
        "pool_id": pool_id,
        "pair_contract": event.pair_contract,
        "action": event.action,
        "direction": event.action,
        "offer_asset_denom": None,
        "offer_amount_base": None,
        "ask_asset_denom": None,
        "ask_amount_base": None,
        "return_amount_base": event.share_base,
        "is_router": False,
        **_reserve_columns(event),
        "height": event.height,
        "tx_hash": event.tx_hash,
        "signer": event.signer,
        "msg_index": event.msg_index,
        "created_at": event.created_at,
    }
