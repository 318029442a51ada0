"""
Tests for webhook alerting and coordinator metrics.
"""

import asyncio
import json

import httpx
import pytest
from prometheus_client import CollectorRegistry

from swapkeeper.monitoring.alerting import (
    Alert,
    AlertConfig,
    AlertManager,
    AlertSeverity,
    AlertType,
    WebhookFormatter,
)
from swapkeeper.monitoring.metrics import CoordinatorMetrics


def _manager(posts, **config):
    def handler(request):
        posts.append(json.loads(request.content))
        return httpx.Response(200)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    cfg = AlertConfig(webhook_url="https://hooks.test/alert", batch_window_ms=0, **config)
    return AlertManager(cfg, client=client)


class TestAlertManager:

    @pytest.mark.asyncio
    async def test_disabled_without_webhook(self):
        manager = AlertManager(AlertConfig(webhook_url=None))
        assert await manager.alert_secret_persistence_failed("0xabc", "redis down") is False

    @pytest.mark.asyncio
    async def test_delivers_generic_payload(self):
        posts = []
        manager = _manager(posts)

        assert await manager.alert_unrevealed_fills("0xabc", "cancelled", [1, 2]) is True
        await manager.close()

        assert len(posts) == 1
        assert posts[0]["type"] == "UNREVEALED_FILLS"
        assert posts[0]["severity"] == "CRITICAL"
        assert posts[0]["order_hash"] == "0xabc"
        assert posts[0]["details"]["fill_indices"] == [1, 2]

    @pytest.mark.asyncio
    async def test_rate_limited_per_order(self):
        posts = []
        manager = _manager(posts)

        assert await manager.alert_secret_persistence_failed("0xabc", "down") is True
        assert await manager.alert_secret_persistence_failed("0xabc", "down") is False
        assert await manager.alert_secret_persistence_failed("0xdef", "down") is True
        await manager.close()

    @pytest.mark.asyncio
    async def test_below_min_severity_is_dropped(self):
        posts = []
        manager = _manager(posts)
        assert await manager.alert_startup(vault_backend="file") is False

    @pytest.mark.asyncio
    async def test_info_alerts_when_threshold_allows(self):
        posts = []
        manager = _manager(posts, min_severity=AlertSeverity.INFO)
        assert await manager.alert_startup(vault_backend="file") is True
        await manager.close()
        assert posts[0]["type"] == "STARTUP"

    @pytest.mark.asyncio
    async def test_failed_delivery_does_not_raise(self):
        def handler(request):
            return httpx.Response(500)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        manager = AlertManager(AlertConfig(webhook_url="https://hooks.test", batch_window_ms=0), client=client)
        assert await manager._http_post({"x": 1}, retries=0) is False


    @pytest.mark.asyncio
    async def test_alert_raised_during_delivery_is_sent(self):
        posts = []
        in_flight = asyncio.Event()
        release = asyncio.Event()

        async def handler(request):
            posts.append(json.loads(request.content))
            in_flight.set()
            await release.wait()
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        manager = AlertManager(AlertConfig(webhook_url="https://hooks.test", batch_window_ms=0), client=client)

        assert await manager.alert_unrevealed_fills("0xabc", "cancelled", [1]) is True
        await asyncio.wait_for(in_flight.wait(), timeout=1.0)
        assert await manager.alert_secret_persistence_failed("0xdef", "redis down") is True
        release.set()
        await manager.close()

        assert [p["type"] for p in posts] == ["UNREVEALED_FILLS", "SECRET_PERSISTENCE_FAILED"]
        assert posts[1]["order_hash"] == "0xdef"


class TestFormatters:

    def _alert(self):
        return Alert(
            alert_type=AlertType.SECRET_PERSISTENCE_FAILED,
            severity=AlertSeverity.CRITICAL,
            title="Secrets Lost For Placed Order",
            message="redis down",
            order_hash="0xabc",
        )

    def test_slack(self):
        payload = WebhookFormatter.format_slack(self._alert(), AlertConfig())
        attachment = payload["attachments"][0]
        assert attachment["color"] == "#FF0000"
        assert {"title": "Order", "value": "0xabc", "short": False} in attachment["fields"]

    def test_discord(self):
        payload = WebhookFormatter.format_discord(self._alert(), AlertConfig())
        assert payload["embeds"][0]["color"] == 0xFF0000
        assert payload["username"] == "swapkeeper"


class TestMetrics:

    def test_private_registry(self):
        registry = CollectorRegistry()
        metrics = CoordinatorMetrics(registry)
        metrics.orders_removed.labels(status="executed").inc()
        metrics.known_orders.set(3)

        assert metrics.get_registry() is registry
        assert registry.get_sample_value("swap_orders_removed_total", {"status": "executed"}) == 1.0
        assert registry.get_sample_value("swap_known_orders") == 3.0

    def test_two_instances_do_not_collide(self):
        CoordinatorMetrics()
        CoordinatorMetrics()
