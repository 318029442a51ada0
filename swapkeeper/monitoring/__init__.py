"""
Monitoring package: Prometheus metrics and webhook alerting.
"""

from swapkeeper.monitoring.metrics import CoordinatorMetrics
from swapkeeper.monitoring.alerting import AlertManager, AlertConfig, AlertSeverity, AlertType, Alert

__all__ = [
    "CoordinatorMetrics",
    "AlertManager",
    "AlertConfig",
    "AlertSeverity",
    "AlertType",
    "Alert",
]
