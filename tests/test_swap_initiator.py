"""
Tests for SwapInitiator: quote -> hash-lock -> placement -> persistence.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from eth_utils import to_checksum_address
from prometheus_client import CollectorRegistry

from swapkeeper.config.chains import SpenderRegistry
from swapkeeper.core.errors import (
    GatewayRejected,
    GatewayUnavailable,
    InvalidArgument,
    PlacementFailed,
    SecretPersistenceFailed,
    VaultUnavailable,
)
from swapkeeper.execution.models import Quote, SwapParams
from swapkeeper.execution.swap_initiator import SwapInitiator, SwapInitiatorConfig, encode_approve
from swapkeeper.monitoring.metrics import CoordinatorMetrics

from tests.conftest import USDC_BASE, USDC_ETH, WALLET


def _params(src_chain_id=1, dst_chain_id=8453):
    return SwapParams.create(
        src_chain_id=src_chain_id,
        dst_chain_id=dst_chain_id,
        src_token_address=USDC_ETH,
        dst_token_address=USDC_BASE,
        amount="1000000",
        wallet_address=WALLET,
    )


def _gateway(secrets_count=1, order_hash="0xabc"):
    gateway = MagicMock()

    async def get_quote(params):
        return Quote(quote_id="q-1", secrets_count=secrets_count, preset="fast", params=params)

    gateway.get_quote = AsyncMock(side_effect=get_quote)
    gateway.place_order = AsyncMock(return_value=order_hash)
    return gateway


class TestInitiate:

    @pytest.mark.asyncio
    async def test_success_persists_all_secrets(self, vault):
        gateway = _gateway(secrets_count=3)
        initiator = SwapInitiator(gateway, vault, signer=MagicMock())

        order_hash = await initiator.initiate(_params())

        assert order_hash == "0xabc"
        secrets = await vault.get("0xabc")
        assert len(secrets) == 3
        assert len(set(secrets)) == 3

        # The lock handed to the network commits to exactly the stored secrets.
        _, lock, _ = gateway.place_order.await_args.args
        for i, s in enumerate(secrets):
            assert lock.verify(s, i)

    @pytest.mark.asyncio
    async def test_single_secret_order(self, vault):
        initiator = SwapInitiator(_gateway(secrets_count=1), vault, signer=MagicMock())
        await initiator.initiate(_params())
        assert len(await vault.get("0xabc")) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        GatewayUnavailable("quote timed out"),
        RuntimeError("connector bug"),
    ])
    async def test_quote_failure_places_nothing(self, vault, error):
        gateway = _gateway()
        gateway.get_quote.side_effect = error
        initiator = SwapInitiator(gateway, vault, signer=MagicMock())

        with pytest.raises(PlacementFailed):
            await initiator.initiate(_params())
        gateway.place_order.assert_not_awaited()
        assert await vault.list_known_orders() == set()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        GatewayUnavailable("submit timed out"),
        GatewayRejected("bad signature", status_code=400),
        RuntimeError("custody crashed"),
    ])
    async def test_placement_failure_persists_nothing(self, vault, memory_store, error):
        gateway = _gateway()
        gateway.place_order.side_effect = error
        initiator = SwapInitiator(gateway, vault, signer=MagicMock())

        with pytest.raises(PlacementFailed):
            await initiator.initiate(_params())
        assert await vault.list_known_orders() == set()
        assert "set_if_absent" not in memory_store.calls

    @pytest.mark.asyncio
    async def test_zero_secrets_is_invalid(self, vault):
        gateway = _gateway(secrets_count=0)
        initiator = SwapInitiator(gateway, vault, signer=MagicMock())

        with pytest.raises(InvalidArgument):
            await initiator.initiate(_params())
        gateway.place_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_raw_dict(self, vault):
        initiator = SwapInitiator(_gateway(), vault, signer=MagicMock())
        with pytest.raises(InvalidArgument):
            await initiator.initiate({"srcChainId": 1})

    @pytest.mark.asyncio
    async def test_persistence_failure_is_distinct(self):
        vault = MagicMock()
        vault.put = AsyncMock(side_effect=VaultUnavailable("redis down"))
        alerts = MagicMock()
        alerts.alert_secret_persistence_failed = AsyncMock(return_value=True)
        initiator = SwapInitiator(_gateway(), vault, signer=MagicMock(), alerts=alerts)

        with pytest.raises(SecretPersistenceFailed) as exc_info:
            await initiator.initiate(_params())

        assert exc_info.value.order_hash == "0xabc"
        alerts.alert_secret_persistence_failed.assert_awaited_once()
        assert alerts.alert_secret_persistence_failed.await_args.args[0] == "0xabc"

    @pytest.mark.asyncio
    async def test_metrics(self, vault):
        registry = CollectorRegistry()
        metrics = CoordinatorMetrics(registry)
        gateway = _gateway()
        initiator = SwapInitiator(gateway, vault, signer=MagicMock(), metrics=metrics)

        await initiator.initiate(_params())
        assert registry.get_sample_value(
            "swap_orders_placed_total", {"src_chain": "1", "dst_chain": "8453"}
        ) == 1.0

        gateway.place_order.side_effect = GatewayUnavailable("down")
        with pytest.raises(PlacementFailed):
            await initiator.initiate(_params())
        assert registry.get_sample_value(
            "swap_placement_failures_total", {"reason": "placement"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_log_callback_never_sees_secrets(self, vault):
        events = []
        initiator = SwapInitiator(
            _gateway(secrets_count=2),
            vault,
            signer=MagicMock(),
            config=SwapInitiatorConfig(log_event_callback=lambda event, **kw: events.append((event, kw))),
        )
        await initiator.initiate(_params())

        secrets = await vault.get("0xabc")
        assert [e for e, _ in events] == ["swap_initiated"]
        flat = repr(events)
        assert all(s not in flat for s in secrets)


class TestApproval:

    def _initiator(self, vault, allowance):
        reader = MagicMock()
        reader.allowance = AsyncMock(return_value=allowance)
        sender = MagicMock()
        sender.send_transaction = AsyncMock(return_value="0x" + "ee" * 32)
        initiator = SwapInitiator(
            _gateway(),
            vault,
            signer=MagicMock(),
            spenders=SpenderRegistry(),
            allowance_reader=reader,
            tx_sender=sender,
        )
        return initiator, reader, sender

    def test_encode_approve(self):
        data = encode_approve("0x111111125421cA6dc452d289314280a0f8842A65", 5)
        assert data.startswith("0x095ea7b3")
        assert data.endswith(format(5, "064x"))
        assert len(data) == 2 + 8 + 128

    @pytest.mark.asyncio
    async def test_approves_when_allowance_short(self, vault):
        initiator, reader, sender = self._initiator(vault, allowance=0)
        assert initiator.approval_enabled

        await initiator.initiate(_params())

        wallet_id, chain_id, tx = sender.send_transaction.await_args.args
        assert wallet_id == to_checksum_address(WALLET)
        assert chain_id == 1
        assert tx["to"] == USDC_ETH
        assert tx["data"] == encode_approve("0x111111125421cA6dc452d289314280a0f8842A65", 1000000)

    @pytest.mark.asyncio
    async def test_zksync_spender(self, vault):
        initiator, reader, sender = self._initiator(vault, allowance=0)
        await initiator.initiate(_params(src_chain_id=324, dst_chain_id=1))

        _, _, tx = sender.send_transaction.await_args.args
        assert "6fd4383cb451173d5f9304f041c7bcbf27d561ff" in tx["data"]

    @pytest.mark.asyncio
    async def test_skips_when_allowance_sufficient(self, vault):
        initiator, reader, sender = self._initiator(vault, allowance=10 ** 18)
        await initiator.initiate(_params())
        sender.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_approval_failure_persists_nothing(self, vault):
        initiator, reader, sender = self._initiator(vault, allowance=0)
        sender.send_transaction.side_effect = GatewayUnavailable("rpc down")

        with pytest.raises(PlacementFailed):
            await initiator.initiate(_params())
        initiator.gateway.place_order.assert_not_awaited()
        assert await vault.list_known_orders() == set()

    def test_disabled_without_collaborators(self, vault):
        initiator = SwapInitiator(_gateway(), vault, signer=MagicMock(), spenders=SpenderRegistry())
        assert not initiator.approval_enabled
