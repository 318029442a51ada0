"""
Component wiring: Settings -> a ready-to-run Coordinator.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from prometheus_client import CollectorRegistry

from swapkeeper.config.chains import SpenderRegistry
from swapkeeper.config.config import Settings
from swapkeeper.core.errors import ConfigError
from swapkeeper.execution.custody import HttpCustodyClient, LocalAccountSigner, TypedDataSigner
from swapkeeper.execution.order_gateway import OrderGateway, OrderGatewayConfig
from swapkeeper.execution.reconciliation_loop import ReconciliationLoop, ReconciliationLoopConfig
from swapkeeper.execution.swap_initiator import SwapInitiator
from swapkeeper.monitoring.alerting import AlertConfig, AlertManager, AlertSeverity
from swapkeeper.monitoring.metrics import CoordinatorMetrics
from swapkeeper.state.file_store import FileKeyValueStore
from swapkeeper.state.redis_store import RedisKeyValueStore
from swapkeeper.state.vault import KeyValueStore, SecretVault, SecretVaultConfig
from swapkeeper.tools import cross_chain_swap

log = logging.getLogger("swapkeeper")


@dataclass
class Coordinator:
    """Everything the process runs, with one place to start and close it."""
    settings: Settings
    store: KeyValueStore
    vault: SecretVault
    gateway: OrderGateway
    signer: TypedDataSigner
    initiator: SwapInitiator
    loop: ReconciliationLoop
    metrics: CoordinatorMetrics
    alerts: AlertManager
    _closeables: List[Any] = field(default_factory=list)

    async def start(self) -> None:
        if isinstance(self.store, RedisKeyValueStore):
            await self.store.connect()
        self.loop.start()

    async def swap(self, **arguments: Any) -> Dict[str, Any]:
        """Tool entry point bound to this coordinator's initiator."""
        return await cross_chain_swap(self.initiator, **arguments)

    async def close(self) -> None:
        """Stop the loop, then release HTTP clients and the store."""
        await self.loop.stop()
        for c in self._closeables:
            try:
                await c.close()
            except Exception as exc:
                log.warning(f"Error closing {type(c).__name__}: {exc}")
        await self.vault.close()


def build_store(settings: Settings) -> KeyValueStore:
    if settings.vault_backend == "redis":
        return RedisKeyValueStore(settings.redis_url, socket_timeout=settings.http_timeout)
    if settings.vault_backend == "file":
        os.makedirs(settings.state_dir, exist_ok=True)
        return FileKeyValueStore(settings.state_dir)
    raise ConfigError(f"unknown vault backend: {settings.vault_backend!r}")


def build_signer(settings: Settings) -> TypedDataSigner:
    if settings.custody_url:
        return HttpCustodyClient(
            settings.custody_url,
            settings.custody_app_id or "",
            settings.custody_app_secret or "",
            timeout=settings.http_timeout,
        )
    return LocalAccountSigner(settings.resolve_signer())


def build_coordinator(
    settings: Settings,
    registry: Optional[CollectorRegistry] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Coordinator:
    """
    Wire all components from settings.

    Args:
        settings: Loaded and validated settings
        registry: Prometheus registry (a private one when None)
        http_client: Shared client for the order network (owned by the gateway when None)
    """
    store = build_store(settings)
    vault = SecretVault(store, SecretVaultConfig(key_prefix=settings.key_prefix))
    gateway = OrderGateway(
        OrderGatewayConfig(
            base_url=settings.api_base_url,
            api_key=settings.api_key,
            http_timeout=settings.http_timeout,
        ),
        client=http_client,
    )
    signer = build_signer(settings)
    metrics = CoordinatorMetrics(registry)
    alerts = AlertManager(AlertConfig(
        webhook_url=settings.alert_webhook_url,
        webhook_type=settings.alert_webhook_type,
        min_severity=AlertSeverity[settings.alert_min_severity],
        enabled=settings.alert_enabled,
    ))

    # Approval stays off until an allowance reader from the chain RPC layer
    # is wired in; the spender table is still validated here.
    spenders = SpenderRegistry(overrides=settings.spender_overrides)
    initiator = SwapInitiator(
        gateway,
        vault,
        signer,
        spenders=spenders,
        tx_sender=signer if isinstance(signer, HttpCustodyClient) else None,
        metrics=metrics,
        alerts=alerts,
    )
    loop = ReconciliationLoop(
        vault,
        gateway,
        metrics=metrics,
        alerts=alerts,
        config=ReconciliationLoopConfig(interval_sec=settings.reconcile_interval_sec),
    )

    closeables: List[Any] = [gateway, alerts]
    if isinstance(signer, HttpCustodyClient):
        closeables.append(signer)

    return Coordinator(
        settings=settings,
        store=store,
        vault=vault,
        gateway=gateway,
        signer=signer,
        initiator=initiator,
        loop=loop,
        metrics=metrics,
        alerts=alerts,
        _closeables=closeables,
    )
