"""
Prometheus metrics for the swap coordinator.

Organized into: placement, reconciliation, vault.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


class CoordinatorMetrics:
    """Counters and gauges for order placement and the reconciliation loop."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()
        self._registry = reg

        # === Placement ===
        self.orders_placed = Counter(
            'swap_orders_placed_total',
            'Orders placed and persisted',
            labelnames=['src_chain', 'dst_chain'],
            registry=reg
        )
        self.placement_failures = Counter(
            'swap_placement_failures_total',
            'Swap initiations that failed',
            labelnames=['reason'],
            registry=reg
        )

        # === Reconciliation ===
        self.cycles = Counter(
            'swap_reconcile_cycles_total',
            'Reconciliation cycles by outcome',
            labelnames=['outcome'],  # completed, skipped, failed
            registry=reg
        )
        self.cycle_duration_sec = Histogram(
            'swap_reconcile_cycle_duration_sec',
            'Reconciliation cycle duration (seconds)',
            buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60],
            registry=reg
        )
        self.secrets_revealed = Counter(
            'swap_secrets_revealed_total',
            'Secrets submitted for ready fills',
            registry=reg
        )
        self.reveal_failures = Counter(
            'swap_reveal_failures_total',
            'Secret submissions that failed (retried next cycle)',
            registry=reg
        )
        self.gateway_errors = Counter(
            'swap_gateway_errors_total',
            'Order network errors during reconciliation',
            labelnames=['call'],
            registry=reg
        )
        self.orders_removed = Counter(
            'swap_orders_removed_total',
            'Orders removed from the vault on terminal status',
            labelnames=['status'],
            registry=reg
        )
        self.unrevealed_on_terminal = Counter(
            'swap_unrevealed_fills_on_terminal_total',
            'Terminal orders that still had ready fills without an accepted secret',
            registry=reg
        )

        # === Vault ===
        self.known_orders = Gauge(
            'swap_known_orders',
            'Orders with secrets in the vault at the start of the last cycle',
            registry=reg
        )

    def get_registry(self) -> CollectorRegistry:
        return self._registry

    def serve(self, port: int) -> None:
        """Expose /metrics on `port` from a daemon thread."""
        start_http_server(port, registry=self._registry)
