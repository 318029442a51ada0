"""
ReconciliationLoop: unattended secret-reveal and cleanup process.

Every interval the loop walks all orders known to the SecretVault and, for
each one:
    1. re-reads its status from the order network (nothing is cached)
    2. terminal (executed / cancelled / refunded) -> delete from the vault
    3. otherwise reveal the secret of every fill the network reports ready

Failure isolation:
    - a failed reveal affects only that fill; it is retried next cycle
      because the network keeps reporting the fill as ready
    - a failed status or ready-fills query affects only that order
    - a failed vault listing ends the cycle; the next tick tries again
    - nothing raised inside a cycle escapes the loop

Cycles never overlap: a tick that fires while a cycle is still running is
skipped without touching the vault or the gateway.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, TYPE_CHECKING

from swapkeeper.core import json_utils
from swapkeeper.core.errors import NotFound, RevealFailed, VaultCorrupted, VaultUnavailable
from swapkeeper.execution.models import OrderStatus

if TYPE_CHECKING:
    from swapkeeper.execution.order_gateway import OrderGateway
    from swapkeeper.monitoring.alerting import AlertManager
    from swapkeeper.monitoring.metrics import CoordinatorMetrics
    from swapkeeper.state.vault import SecretVault

log = logging.getLogger("swapkeeper")


@dataclass
class ReconciliationLoopConfig:
    """Configuration for ReconciliationLoop."""
    interval_sec: float = 10.0

    # Run the first cycle as soon as the loop starts instead of one
    # interval later; picks up orders left over from a previous process.
    run_on_start: bool = True

    # Logging callback
    log_event_callback: Optional[Callable[..., None]] = None


@dataclass
class CycleResult:
    """Outcome of one reconciliation cycle."""
    skipped: bool = False
    completed: bool = True
    orders_seen: int = 0
    secrets_revealed: int = 0
    reveal_failures: int = 0
    orders_removed: int = 0
    orders_errored: int = 0
    error: Optional[str] = None
    duration_ms: float = 0.0


class ReconciliationLoop:
    """
    Periodic reconciliation of vault contents against the order network.

    Usage:
        loop = ReconciliationLoop(vault, gateway, config=ReconciliationLoopConfig(interval_sec=10))
        loop.start()
        ...
        await loop.stop()

    run_cycle() can also be awaited directly (tests, one-shot tooling).
    """

    def __init__(
        self,
        vault: "SecretVault",
        gateway: "OrderGateway",
        metrics: Optional["CoordinatorMetrics"] = None,
        alerts: Optional["AlertManager"] = None,
        config: Optional[ReconciliationLoopConfig] = None,
    ) -> None:
        self.vault = vault
        self.gateway = gateway
        self.metrics = metrics
        self.alerts = alerts
        self.config = config or ReconciliationLoopConfig()
        if self.config.interval_sec <= 0:
            raise ValueError(f"interval_sec must be > 0, got {self.config.interval_sec}")

        # Reentrancy guard, owned by this instance only
        self._cycle_active = False
        self._ticker_task: Optional[asyncio.Task] = None
        self._cycle_tasks: Set[asyncio.Task] = set()

        # Fill indices reported ready whose reveal has not succeeded yet
        self._unrevealed: Dict[str, Set[int]] = {}

        # Stats
        self._cycles_run = 0
        self._cycles_skipped = 0

        self._log_event = self.config.log_event_callback or self._default_log

    def _default_log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        payload = {"event": event, **kwargs}
        log.log(level, json_utils.dumps(payload))

    # ========== Lifecycle ==========

    @property
    def is_running(self) -> bool:
        return self._ticker_task is not None and not self._ticker_task.done()

    @property
    def cycle_active(self) -> bool:
        return self._cycle_active

    def start(self) -> None:
        """Start the ticker. Must be called from a running event loop."""
        if self.is_running:
            return
        self._ticker_task = asyncio.create_task(self._ticker(), name="swap-reconcile-ticker")
        self._log_event("reconcile_loop_started", interval_sec=self.config.interval_sec)

    async def stop(self) -> None:
        """Stop ticking and wait for an in-flight cycle to finish."""
        task = self._ticker_task
        self._ticker_task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if self._cycle_tasks:
            await asyncio.gather(*self._cycle_tasks, return_exceptions=True)
        self._log_event(
            "reconcile_loop_stopped",
            cycles_run=self._cycles_run,
            cycles_skipped=self._cycles_skipped,
        )

    async def _ticker(self) -> None:
        if not self.config.run_on_start:
            await asyncio.sleep(self.config.interval_sec)
        while True:
            # A cycle runs in its own task so a slow cycle does not delay
            # the next tick; the tick then finds the guard held and skips.
            cycle = asyncio.create_task(self.run_cycle())
            self._cycle_tasks.add(cycle)
            cycle.add_done_callback(self._cycle_tasks.discard)
            await asyncio.sleep(self.config.interval_sec)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "cycles_run": self._cycles_run,
            "cycles_skipped": self._cycles_skipped,
            "cycle_active": self._cycle_active,
            "orders_with_unrevealed_fills": len(self._unrevealed),
        }

    # ========== Cycle ==========

    async def run_cycle(self) -> CycleResult:
        """
        Run one reconciliation cycle.

        Returns:
            CycleResult; skipped=True when another cycle was still running
        """
        if self._cycle_active:
            self._cycles_skipped += 1
            if self.metrics:
                self.metrics.cycles.labels(outcome="skipped").inc()
            self._log_event("reconcile_cycle_skipped", level=logging.WARNING, reason="previous_cycle_running")
            return CycleResult(skipped=True, completed=False)

        self._cycle_active = True
        start = time.monotonic()
        result = CycleResult()
        try:
            await self._reconcile(result)
        except Exception as exc:
            # Anything not handled per order ends this cycle only.
            result.completed = False
            result.error = str(exc)
            self._log_event("reconcile_cycle_error", level=logging.ERROR, error=str(exc))
        finally:
            self._cycle_active = False
            result.duration_ms = (time.monotonic() - start) * 1000
            self._cycles_run += 1
            self._record_cycle(result)

        return result

    async def _reconcile(self, result: CycleResult) -> None:
        try:
            orders = await self.vault.list_known_orders()
        except VaultUnavailable as exc:
            result.completed = False
            result.error = str(exc)
            self._log_event("vault_list_error", level=logging.ERROR, error=str(exc))
            if self.alerts:
                await self.alerts.alert_vault_unavailable(str(exc))
            return

        if self.metrics:
            self.metrics.known_orders.set(len(orders))
        result.orders_seen = len(orders)

        for order_hash in orders:
            try:
                await self._reconcile_order(order_hash, result)
            except Exception as exc:
                result.orders_errored += 1
                self._log_event(
                    "reconcile_order_error",
                    level=logging.ERROR,
                    order_hash=order_hash,
                    error=str(exc),
                )

        # Forget orders that left the vault by other means (operator cleanup).
        for order_hash in list(self._unrevealed):
            if order_hash not in orders:
                self._unrevealed.pop(order_hash, None)

    async def _reconcile_order(self, order_hash: str, result: CycleResult) -> None:
        # a. Secrets
        try:
            secrets = await self.vault.get(order_hash)
        except NotFound:
            self._unrevealed.pop(order_hash, None)
            self._log_event("reconcile_order_gone", level=logging.DEBUG, order_hash=order_hash)
            return
        except VaultCorrupted as exc:
            result.orders_errored += 1
            self._log_event(
                "vault_record_corrupted",
                level=logging.ERROR,
                order_hash=order_hash,
                reason=exc.reason,
            )
            return

        # b. Status, always fresh from the network
        try:
            report = await self.gateway.get_status(order_hash)
        except Exception as exc:
            result.orders_errored += 1
            self._count_gateway_error("status")
            self._log_event(
                "gateway_unavailable",
                level=logging.WARNING,
                call="get_status",
                order_hash=order_hash,
                error=str(exc),
            )
            return

        # c. Terminal cleanup replaces reveals
        if report.status.is_terminal:
            await self._remove_terminal(order_hash, report.status.value, result)
            return

        if report.status is OrderStatus.UNKNOWN:
            # Kept and polled until a terminal status arrives.
            self._log_event(
                "order_status_unknown",
                level=logging.WARNING,
                order_hash=order_hash,
                raw_status=report.raw_status,
            )

        # d. Reveal secrets for ready fills
        try:
            fills = await self.gateway.get_ready_fills(order_hash)
        except Exception as exc:
            result.orders_errored += 1
            self._count_gateway_error("ready_fills")
            self._log_event(
                "gateway_unavailable",
                level=logging.WARNING,
                call="get_ready_fills",
                order_hash=order_hash,
                error=str(exc),
            )
            return

        if fills:
            self._log_event(
                "fills_ready",
                order_hash=order_hash,
                status=report.status.value,
                fill_indices=[f.fill_index for f in fills],
            )

        for fill in fills:
            try:
                await self._reveal(order_hash, fill.fill_index, secrets)
            except RevealFailed as exc:
                result.reveal_failures += 1
                self._unrevealed.setdefault(order_hash, set()).add(fill.fill_index)
                if self.metrics:
                    self.metrics.reveal_failures.inc()
                self._log_event(
                    "secret_reveal_failed",
                    level=logging.WARNING,
                    order_hash=order_hash,
                    fill_index=fill.fill_index,
                    reason=exc.reason,
                )
                continue

            result.secrets_revealed += 1
            pending = self._unrevealed.get(order_hash)
            if pending is not None:
                pending.discard(fill.fill_index)
                if not pending:
                    del self._unrevealed[order_hash]
            if self.metrics:
                self.metrics.secrets_revealed.inc()
            self._log_event("secret_revealed", order_hash=order_hash, fill_index=fill.fill_index)

    async def _reveal(self, order_hash: str, fill_index: int, secrets: List[str]) -> None:
        if fill_index >= len(secrets):
            raise RevealFailed(
                order_hash,
                fill_index,
                f"fill index outside the {len(secrets)} stored secrets",
            )
        try:
            await self.gateway.reveal_secret(order_hash, fill_index, secrets[fill_index])
        except Exception as exc:
            raise RevealFailed(order_hash, fill_index, str(exc)) from exc

    async def _remove_terminal(self, order_hash: str, status: str, result: CycleResult) -> None:
        unrevealed = sorted(self._unrevealed.pop(order_hash, set()))
        if unrevealed:
            if self.metrics:
                self.metrics.unrevealed_on_terminal.inc()
            self._log_event(
                "terminal_with_unrevealed_fills",
                level=logging.ERROR,
                order_hash=order_hash,
                status=status,
                fill_indices=unrevealed,
            )
            if self.alerts:
                await self.alerts.alert_unrevealed_fills(order_hash, status, unrevealed)

        await self.vault.delete(order_hash)
        result.orders_removed += 1
        if self.metrics:
            self.metrics.orders_removed.labels(status=status).inc()
        self._log_event("order_removed", order_hash=order_hash, status=status)

    # ========== Metrics ==========

    def _count_gateway_error(self, call: str) -> None:
        if self.metrics:
            self.metrics.gateway_errors.labels(call=call).inc()

    def _record_cycle(self, result: CycleResult) -> None:
        if self.metrics:
            self.metrics.cycles.labels(outcome="completed" if result.completed else "failed").inc()
            self.metrics.cycle_duration_sec.observe(result.duration_ms / 1000)
        self._log_event(
            "reconcile_cycle_done",
            level=logging.INFO if result.completed else logging.WARNING,
            orders_seen=result.orders_seen,
            secrets_revealed=result.secrets_revealed,
            reveal_failures=result.reveal_failures,
            orders_removed=result.orders_removed,
            orders_errored=result.orders_errored,
            duration_ms=round(result.duration_ms, 1),
        )
