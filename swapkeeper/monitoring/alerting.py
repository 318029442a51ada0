"""
Webhook alerts for conditions an operator has to act on.

The important one is SECRET_PERSISTENCE_FAILED: an order is live on the
network but its secrets exist nowhere durable, so nobody will ever reveal
them. UNREVEALED_FILLS flags an order that went terminal while some of its
ready fills never got their secret accepted.

Payloads can be generic JSON, Slack attachments or Discord embeds. Alerts
are rate limited per (type, order) and delivered in small batches from a
background task, so callers never wait on the webhook.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import httpx

logger = logging.getLogger("swapkeeper")


class AlertSeverity(Enum):
    """Lower value = more severe."""
    CRITICAL = 1
    WARNING = 2
    INFO = 3


class AlertType(Enum):
    SECRET_PERSISTENCE_FAILED = "secret_persistence_failed"
    UNREVEALED_FILLS = "unrevealed_fills"
    VAULT_UNAVAILABLE = "vault_unavailable"
    STARTUP = "startup"
    SHUTDOWN = "shutdown"


_PALETTE = {
    AlertSeverity.CRITICAL: 0xFF0000,
    AlertSeverity.WARNING: 0xFFA500,
    AlertSeverity.INFO: 0x0000FF,
}


@dataclass
class Alert:
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    order_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp_ms: int = field(default_factory=lambda: int(time.time() * 1000))

    @property
    def timestamp_iso(self) -> str:
        return datetime.fromtimestamp(self.timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.alert_type.name,
            "severity": self.severity.name,
            "title": self.title,
            "message": self.message,
            "order_hash": self.order_hash,
            "details": self.details,
            "timestamp_ms": self.timestamp_ms,
            "timestamp_iso": self.timestamp_iso,
        }


@dataclass
class AlertConfig:
    webhook_url: Optional[str] = None
    webhook_type: str = "generic"  # generic | slack | discord
    min_severity: AlertSeverity = AlertSeverity.WARNING
    rate_limit_seconds: float = 60.0
    batch_window_ms: int = 2000
    http_timeout: float = 10.0
    enabled: bool = True
    service_name: str = "swapkeeper"


class WebhookFormatter:
    """Alert -> webhook payload, one static method per webhook type."""

    @staticmethod
    def _fields(alert: Alert) -> Iterator[Tuple[str, str, bool]]:
        # (name, value, short)
        yield "Type", alert.alert_type.name, True
        if alert.order_hash:
            yield "Order", alert.order_hash, False
        for key, value in list(alert.details.items())[:5]:
            yield key, str(value), True

    @staticmethod
    def format_generic(alert: Alert, config: AlertConfig) -> Dict[str, Any]:
        return alert.to_dict()

    @staticmethod
    def format_slack(alert: Alert, config: AlertConfig) -> Dict[str, Any]:
        return {
            "username": config.service_name,
            "attachments": [{
                "color": f"#{_PALETTE.get(alert.severity, 0x808080):06X}",
                "title": alert.title,
                "text": alert.message,
                "fields": [
                    {"title": name, "value": value, "short": short}
                    for name, value, short in WebhookFormatter._fields(alert)
                ],
                "footer": f"{config.service_name} | {alert.severity.name}",
                "ts": alert.timestamp_ms // 1000,
            }],
        }

    @staticmethod
    def format_discord(alert: Alert, config: AlertConfig) -> Dict[str, Any]:
        return {
            "username": config.service_name,
            "embeds": [{
                "title": alert.title,
                "description": alert.message,
                "color": _PALETTE.get(alert.severity, 0x808080),
                "fields": [
                    {"name": name, "value": value, "inline": short}
                    for name, value, short in WebhookFormatter._fields(alert)
                ],
                "footer": {"text": f"{config.service_name} | {alert.severity.name}"},
                "timestamp": alert.timestamp_iso,
            }],
        }


_FORMATTERS: Dict[str, Tuple[Callable[[Alert, AlertConfig], Dict[str, Any]], Optional[str]]] = {
    # webhook type -> (formatter, list key that batches are merged into)
    "generic": (WebhookFormatter.format_generic, None),
    "slack": (WebhookFormatter.format_slack, "attachments"),
    "discord": (WebhookFormatter.format_discord, "embeds"),
}


class AlertManager:
    """
    Rate-limited, batched webhook delivery.

    send_alert() only queues; a background task posts the batch after
    batch_window_ms. Delivery failures are logged, never raised. Call
    close() on shutdown so the final batch is flushed.
    """

    def __init__(self, config: Optional[AlertConfig] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config or AlertConfig()
        self._client = client
        self._owns_client = client is None
        self._sent_at: Dict[Tuple[AlertType, Optional[str]], float] = {}
        self._pending: List[Alert] = []
        self._flush_task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self.config.enabled and bool(self.config.webhook_url)

    async def send_alert(self, alert: Alert) -> bool:
        """
        Queue an alert.

        Returns:
            False when alerting is off, the alert is below min_severity,
            or the same (type, order) alerted within rate_limit_seconds
        """
        if not self.active:
            logger.debug(f"Alert dropped, no webhook configured: {alert.title}")
            return False
        if alert.severity.value > self.config.min_severity.value:
            return False

        key = (alert.alert_type, alert.order_hash)
        now = time.monotonic()
        last = self._sent_at.get(key)
        if last is not None and now - last < self.config.rate_limit_seconds:
            logger.debug(f"Alert rate limited: {alert.alert_type.name} {alert.order_hash or ''}")
            return False
        self._sent_at[key] = now

        self._pending.append(alert)
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.create_task(self._flush_after_window())
        return True

    async def _flush_after_window(self) -> None:
        if self.config.batch_window_ms > 0:
            await asyncio.sleep(self.config.batch_window_ms / 1000)
        await self._drain()

    async def _drain(self) -> None:
        # Alerts queued while a POST is in flight go out in the next batch.
        while self._pending:
            batch, self._pending = self._pending, []
            await self._http_post(self._build_payload(batch))

    def _build_payload(self, batch: List[Alert]) -> Dict[str, Any]:
        fmt, merge_key = _FORMATTERS.get(self.config.webhook_type, _FORMATTERS["generic"])
        if len(batch) == 1:
            return fmt(batch[0], self.config)
        if merge_key is None:
            return {"alerts": [a.to_dict() for a in batch]}
        payload = fmt(batch[0], self.config)
        for alert in batch[1:]:
            payload[merge_key].extend(fmt(alert, self.config)[merge_key])
        return payload

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout)
        return self._client

    async def _http_post(self, payload: Dict[str, Any], retries: int = 2) -> bool:
        client = self._get_client()
        for attempt in range(1, retries + 2):
            try:
                resp = await client.post(self.config.webhook_url, json=payload)
            except httpx.HTTPError as exc:
                logger.warning(f"Alert delivery error (attempt {attempt}): {exc}")
            else:
                if resp.is_success:
                    return True
                logger.warning(f"Alert delivery failed (attempt {attempt}): HTTP {resp.status_code}")
            if attempt <= retries:
                await asyncio.sleep(attempt)
        return False

    async def close(self) -> None:
        """Deliver everything still queued, then release an owned HTTP client."""
        task = self._flush_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)
        if self._pending:
            await self._drain()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ========== Domain alerts ==========

    async def alert_secret_persistence_failed(self, order_hash: str, reason: str) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.SECRET_PERSISTENCE_FAILED,
            severity=AlertSeverity.CRITICAL,
            title="Secrets Lost For Placed Order",
            message=f"Order was placed but its secrets could not be stored: {reason}",
            order_hash=order_hash,
        ))

    async def alert_unrevealed_fills(self, order_hash: str, status: str, fill_indices: List[int]) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.UNREVEALED_FILLS,
            severity=AlertSeverity.CRITICAL,
            title="Order Finished With Unrevealed Fills",
            message=f"Order reached {status}; fills {fill_indices} never had their secret accepted",
            order_hash=order_hash,
            details={"status": status, "fill_indices": fill_indices},
        ))

    async def alert_vault_unavailable(self, reason: str) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.VAULT_UNAVAILABLE,
            severity=AlertSeverity.WARNING,
            title="Secret Vault Unavailable",
            message=reason,
        ))

    async def alert_startup(self, **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.STARTUP,
            severity=AlertSeverity.INFO,
            title="Coordinator Started",
            message="Swap secret coordinator started",
            details=details,
        ))

    async def alert_shutdown(self, reason: str = "normal", **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.SHUTDOWN,
            severity=AlertSeverity.INFO if reason == "normal" else AlertSeverity.WARNING,
            title="Coordinator Shutdown",
            message=f"Swap secret coordinator shutting down: {reason}",
            details=details,
        ))
