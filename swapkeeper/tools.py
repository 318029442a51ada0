"""
Agent-facing tool entry point for cross-chain swaps.

The tool layer turns loosely typed tool arguments into SwapParams, runs the
SwapInitiator and always returns a JSON-serialisable dict; errors are
reported in the result instead of raised.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, TYPE_CHECKING

from swapkeeper.config.chains import resolve_chain_id
from swapkeeper.core import json_utils
from swapkeeper.core.errors import InvalidArgument, SecretPersistenceFailed, SwapKeeperError
from swapkeeper.execution.models import SwapParams

if TYPE_CHECKING:
    from swapkeeper.execution.swap_initiator import SwapInitiator

log = logging.getLogger("swapkeeper")

SWAP_ETA_MESSAGE = "The swap will happen in 2-3 minutes."

CROSS_CHAIN_SWAP_TOOL: Dict[str, Any] = {
    "name": "cross_chain_swap",
    "description": "Swap tokens across different EVM chains using 1inch Fusion+",
    "input_schema": {
        "type": "object",
        "properties": {
            "srcChainId": {
                "type": ["integer", "string"],
                "description": "Source chain ID or name, e.g., 1 for Ethereum",
            },
            "dstChainId": {
                "type": ["integer", "string"],
                "description": "Destination chain ID or name, e.g., 8453 for Base mainnet",
            },
            "srcTokenAddress": {
                "type": "string",
                "description": 'Source token address, e.g., "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48" for USDC on Ethereum',
            },
            "dstTokenAddress": {
                "type": "string",
                "description": 'Destination token address, e.g., "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913" for USDC on Base',
            },
            "amount": {
                "type": "string",
                "description": 'Amount to swap in base units, e.g., "1000000" for 1 USDC',
            },
            "fromAddress": {
                "type": "string",
                "description": "The current owner's wallet address (e.g., '0x1234...')",
            },
            "walletId": {
                "type": "string",
                "description": "Custody wallet identifier, when it differs from fromAddress",
            },
            "preset": {
                "type": "string",
                "description": "Auction preset (fast, medium, slow); defaults to the recommended one",
            },
        },
        "required": ["srcChainId", "dstChainId", "srcTokenAddress", "dstTokenAddress", "amount", "fromAddress"],
    },
}

_REQUIRED = CROSS_CHAIN_SWAP_TOOL["input_schema"]["required"]


def _error(exc: SwapKeeperError) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "success": False,
        "isError": True,
        "error": exc.message,
        "errorCode": exc.code,
    }
    if isinstance(exc, SecretPersistenceFailed):
        out["orderHash"] = exc.order_hash
    return out


async def cross_chain_swap(initiator: "SwapInitiator", **arguments: Any) -> Dict[str, Any]:
    """
    Run one cross-chain swap from tool arguments.

    Returns:
        {"success": True, "orderHash": ..., "message": ...} or
        {"success": False, "isError": True, "error": ..., "errorCode": ...}
    """
    try:
        missing = [name for name in _REQUIRED if arguments.get(name) in (None, "")]
        if missing:
            raise InvalidArgument(f"missing required arguments: {', '.join(missing)}")
        params = SwapParams.create(
            src_chain_id=resolve_chain_id(arguments["srcChainId"]),
            dst_chain_id=resolve_chain_id(arguments["dstChainId"]),
            src_token_address=arguments["srcTokenAddress"],
            dst_token_address=arguments["dstTokenAddress"],
            amount=arguments["amount"],
            wallet_address=arguments["fromAddress"],
            wallet_id=arguments.get("walletId"),
            preset=arguments.get("preset"),
        )
        order_hash = await initiator.initiate(params)
    except SwapKeeperError as exc:
        log.warning(json_utils.dumps({"event": "tool_swap_failed", "code": exc.code, "error": exc.message}))
        return _error(exc)

    log.info(json_utils.dumps({"event": "tool_swap_ok", "order_hash": order_hash}))
    return {"success": True, "orderHash": order_hash, "message": SWAP_ETA_MESSAGE}
