"""
Execution layer for cross-chain swaps.

- OrderGateway: HTTP client for the order network
- SwapInitiator: quote, hash-lock, placement and secret persistence
- ReconciliationLoop: periodic secret reveal and terminal cleanup
- custody adapters: typed-data signing and approval transactions
"""

from swapkeeper.execution.models import (
    OrderStatus,
    OrderStatusReport,
    Fill,
    SwapParams,
    Quote,
    BuiltOrder,
    TERMINAL_STATUSES,
)
from swapkeeper.execution.order_gateway import OrderGateway, OrderGatewayConfig
from swapkeeper.execution.custody import HttpCustodyClient, LocalAccountSigner, TypedDataSigner, TransactionSender
from swapkeeper.execution.swap_initiator import SwapInitiator, SwapInitiatorConfig, AllowanceReader
from swapkeeper.execution.reconciliation_loop import ReconciliationLoop, ReconciliationLoopConfig, CycleResult

__all__ = [
    "OrderStatus",
    "OrderStatusReport",
    "Fill",
    "SwapParams",
    "Quote",
    "BuiltOrder",
    "TERMINAL_STATUSES",
    "OrderGateway",
    "OrderGatewayConfig",
    "HttpCustodyClient",
    "LocalAccountSigner",
    "TypedDataSigner",
    "TransactionSender",
    "SwapInitiator",
    "SwapInitiatorConfig",
    "AllowanceReader",
    "ReconciliationLoop",
    "ReconciliationLoopConfig",
    "CycleResult",
]
