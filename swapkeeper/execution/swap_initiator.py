"""
SwapInitiator: creates one cross-chain swap order.

Sequence (no step is skipped or reordered):
    1. quote            -> secrets_count
    2. HashLockBuilder  -> (secrets, lock)
    3. [approval]       -> ERC-20 approve for the spender, only when an
                           allowance reader and a transaction sender are wired
    4. place_order      -> order_hash     (failure: PlacementFailed, nothing stored)
    5. vault.put        -> persisted      (failure: SecretPersistenceFailed)

Secrets exist only in this call's memory until step 5 succeeds; after that
the vault is their only holder.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, TYPE_CHECKING

from eth_abi import encode as abi_encode

from swapkeeper.core import json_utils
from swapkeeper.core.errors import (
    InvalidArgument,
    PlacementFailed,
    SecretPersistenceFailed,
)
from swapkeeper.crypto.hashlock import HashLockBuilder
from swapkeeper.execution.models import SwapParams

if TYPE_CHECKING:
    from swapkeeper.config.chains import SpenderRegistry
    from swapkeeper.execution.custody import TransactionSender, TypedDataSigner
    from swapkeeper.execution.order_gateway import OrderGateway
    from swapkeeper.monitoring.alerting import AlertManager
    from swapkeeper.monitoring.metrics import CoordinatorMetrics
    from swapkeeper.state.vault import SecretVault

import logging

log = logging.getLogger("swapkeeper")

ERC20_APPROVE_SELECTOR = bytes.fromhex("095ea7b3")


class AllowanceReader(Protocol):
    """Reads ERC-20 allowances through the chain RPC layer."""

    async def allowance(self, chain_id: int, token: str, owner: str, spender: str) -> int: ...


def encode_approve(spender: str, amount: int) -> str:
    """Calldata for ERC-20 approve(spender, amount)."""
    return "0x" + (ERC20_APPROVE_SELECTOR + abi_encode(["address", "uint256"], [spender, amount])).hex()


@dataclass
class SwapInitiatorConfig:
    """Configuration for SwapInitiator."""
    # Logging callback
    log_event_callback: Optional[Callable[..., None]] = None


class SwapInitiator:
    """
    Orchestrates quote, hash-lock, placement and secret persistence.

    Usage:
        initiator = SwapInitiator(gateway, vault, signer)
        order_hash = await initiator.initiate(SwapParams.create(...))
    """

    def __init__(
        self,
        gateway: "OrderGateway",
        vault: "SecretVault",
        signer: "TypedDataSigner",
        hashlock_builder: Optional[HashLockBuilder] = None,
        spenders: Optional["SpenderRegistry"] = None,
        allowance_reader: Optional[AllowanceReader] = None,
        tx_sender: Optional["TransactionSender"] = None,
        metrics: Optional["CoordinatorMetrics"] = None,
        alerts: Optional["AlertManager"] = None,
        config: Optional[SwapInitiatorConfig] = None,
    ) -> None:
        self.gateway = gateway
        self.vault = vault
        self.signer = signer
        self.hashlock_builder = hashlock_builder or HashLockBuilder()
        self.spenders = spenders
        self.allowance_reader = allowance_reader
        self.tx_sender = tx_sender
        self.metrics = metrics
        self.alerts = alerts
        self.config = config or SwapInitiatorConfig()

        self._log_event = self.config.log_event_callback or self._default_log

    def _default_log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        payload = {"event": event, **kwargs}
        log.log(level, json_utils.dumps(payload))

    @property
    def approval_enabled(self) -> bool:
        return (
            self.spenders is not None
            and self.allowance_reader is not None
            and self.tx_sender is not None
        )

    async def initiate(self, params: SwapParams) -> str:
        """
        Create one swap order and persist its secrets.

        Returns:
            order_hash of the placed order

        Raises:
            InvalidArgument: bad params, or a quote needing fewer than 1 secret
            PlacementFailed: quote, approval or placement failed; nothing stored
            SecretPersistenceFailed: order placed, secrets not stored
        """
        if not isinstance(params, SwapParams):
            raise InvalidArgument(f"expected SwapParams, got {type(params).__name__}")

        # 1. Quote
        try:
            quote = await self.gateway.get_quote(params)
        except InvalidArgument:
            raise
        except Exception as exc:
            self._count_failure("quote")
            self._log_event("swap_quote_failed", error=str(exc), level=logging.WARNING)
            raise PlacementFailed(f"quote failed: {exc}") from exc

        # 2. Secrets and lock
        secrets, lock = self.hashlock_builder.build(quote.secrets_count)

        # 3. Approval, 4. Placement
        try:
            if self.approval_enabled:
                await self._ensure_allowance(params)
            order_hash = await self.gateway.place_order(quote, lock, self.signer)
        except InvalidArgument:
            raise
        except Exception as exc:
            self._count_failure("placement")
            self._log_event(
                "swap_placement_failed",
                quote_id=quote.quote_id,
                error=str(exc),
                level=logging.WARNING,
            )
            raise PlacementFailed(f"order placement failed: {exc}") from exc

        # 5. Persist
        try:
            await self.vault.put(order_hash, secrets)
        except Exception as exc:
            self._count_failure("persistence")
            self._log_event(
                "swap_secret_persistence_failed",
                order_hash=order_hash,
                error=str(exc),
                level=logging.CRITICAL,
            )
            if self.alerts:
                await self.alerts.alert_secret_persistence_failed(order_hash, str(exc))
            raise SecretPersistenceFailed(order_hash, str(exc)) from exc

        if self.metrics:
            self.metrics.orders_placed.labels(
                src_chain=str(params.src_chain_id), dst_chain=str(params.dst_chain_id)
            ).inc()
        self._log_event(
            "swap_initiated",
            order_hash=order_hash,
            src_chain=params.src_chain_id,
            dst_chain=params.dst_chain_id,
            secrets_count=quote.secrets_count,
            preset=quote.preset,
        )
        return order_hash

    async def _ensure_allowance(self, params: SwapParams) -> None:
        spender = self.spenders.spender_for(params.src_chain_id)
        amount = int(params.amount)
        current = await self.allowance_reader.allowance(
            params.src_chain_id, params.src_token_address, params.wallet_address, spender
        )
        if current >= amount:
            return
        tx = {
            "to": params.src_token_address,
            "data": encode_approve(spender, amount),
            "value": "0x0",
        }
        tx_hash = await self.tx_sender.send_transaction(params.signer_id, params.src_chain_id, tx)
        self._log_event(
            "swap_approval_sent",
            chain=params.src_chain_id,
            token=params.src_token_address,
            spender=spender,
            tx_hash=tx_hash,
        )

    def _count_failure(self, reason: str) -> None:
        if self.metrics:
            self.metrics.placement_failures.labels(reason=reason).inc()
