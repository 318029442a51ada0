"""
Tests for OrderGateway against a mocked order network (httpx.MockTransport).
"""

import json

import httpx
import pytest

from swapkeeper.core.errors import GatewayRejected, GatewayUnavailable, InvalidArgument
from swapkeeper.crypto.hashlock import HashLockBuilder
from swapkeeper.execution.models import OrderStatus, SwapParams
from swapkeeper.execution.order_gateway import OrderGateway, OrderGatewayConfig

from tests.conftest import USDC_BASE, USDC_ETH, WALLET

ORDER_HASH = "0x" + "AB" * 32


def _params(**overrides):
    kwargs = dict(
        src_chain_id=1,
        dst_chain_id=8453,
        src_token_address=USDC_ETH,
        dst_token_address=USDC_BASE,
        amount="1000000",
        wallet_address=WALLET,
    )
    kwargs.update(overrides)
    return SwapParams.create(**kwargs)


QUOTE_BODY = {
    "quoteId": "q-123",
    "recommendedPreset": "fast",
    "presets": {
        "fast": {"secretsCount": 1},
        "slow": {"secretsCount": 3},
    },
}


class Recorder:
    """MockTransport handler that records requests and answers from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes.get((request.method, request.url.path))
        if answer is None:
            return httpx.Response(404, json={"error": "no route"})
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json=answer)


def _gateway(routes):
    recorder = Recorder(routes)
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder), base_url="https://fusion.test")
    gateway = OrderGateway(OrderGatewayConfig(api_key="test-key"), client=client)
    return gateway, recorder


class FakeSigner:
    def __init__(self):
        self.calls = []

    async def sign_typed_data(self, wallet_id, typed_data):
        self.calls.append((wallet_id, typed_data))
        return "0x" + "cd" * 65


class TestQuote:

    @pytest.mark.asyncio
    async def test_quote_uses_recommended_preset(self):
        gateway, rec = _gateway({("GET", "/quoter/v1.0/quote/receive"): QUOTE_BODY})
        quote = await gateway.get_quote(_params())

        assert quote.quote_id == "q-123"
        assert quote.preset == "fast"
        assert quote.secrets_count == 1

        req = rec.requests[0]
        assert req.headers["Authorization"] == "Bearer test-key"
        assert req.url.params["srcChain"] == "1"
        assert req.url.params["dstChain"] == "8453"
        assert req.url.params["walletAddress"].lower() == WALLET

    @pytest.mark.asyncio
    async def test_quote_with_explicit_preset(self):
        gateway, _ = _gateway({("GET", "/quoter/v1.0/quote/receive"): QUOTE_BODY})
        quote = await gateway.get_quote(_params(preset="slow"))
        assert quote.secrets_count == 3

    @pytest.mark.asyncio
    async def test_unknown_preset_is_invalid_argument(self):
        gateway, _ = _gateway({("GET", "/quoter/v1.0/quote/receive"): QUOTE_BODY})
        with pytest.raises(InvalidArgument):
            await gateway.get_quote(_params(preset="turbo"))

    @pytest.mark.asyncio
    async def test_quote_without_secrets_count(self):
        body = {"quoteId": "q", "recommendedPreset": "fast", "presets": {"fast": {}}}
        gateway, _ = _gateway({("GET", "/quoter/v1.0/quote/receive"): body})
        with pytest.raises(GatewayUnavailable):
            await gateway.get_quote(_params())


class TestPlaceOrder:

    def _routes(self):
        return {
            ("GET", "/quoter/v1.0/quote/receive"): QUOTE_BODY,
            ("POST", "/quoter/v1.0/quote/build"): {
                "orderHash": ORDER_HASH,
                "typedData": {"message": {"salt": "1", "maker": WALLET}, "primaryType": "Order"},
                "extension": "0xdeadbeef",
            },
            ("POST", "/relayer/v1.0/submit"): httpx.Response(201),
        }

    @pytest.mark.asyncio
    async def test_single_fill_submission(self):
        gateway, rec = _gateway(self._routes())
        signer = FakeSigner()
        quote = await gateway.get_quote(_params())
        _, lock = HashLockBuilder().build(1)

        order_hash = await gateway.place_order(quote, lock, signer)

        assert order_hash == ORDER_HASH.lower()
        assert signer.calls[0][0] == quote.params.wallet_address

        build_body = json.loads(rec.requests[1].content)
        assert build_body["hashLock"] == lock.value
        assert build_body["secretsHashList"] == list(lock.secret_hashes)

        submit_body = json.loads(rec.requests[2].content)
        assert submit_body["order"] == {"salt": "1", "maker": WALLET}
        assert submit_body["quoteId"] == "q-123"
        assert submit_body["extension"] == "0xdeadbeef"
        assert submit_body["srcChainId"] == 1
        assert "secretHashes" not in submit_body

    @pytest.mark.asyncio
    async def test_multi_fill_submission_sends_secret_hashes(self):
        gateway, rec = _gateway(self._routes())
        quote = await gateway.get_quote(_params(preset="slow"))
        _, lock = HashLockBuilder().build(quote.secrets_count)

        await gateway.place_order(quote, lock, FakeSigner())

        submit_body = json.loads(rec.requests[2].content)
        assert submit_body["secretHashes"] == list(lock.secret_hashes)

    @pytest.mark.asyncio
    async def test_wallet_id_is_used_for_signing(self):
        gateway, _ = _gateway(self._routes())
        signer = FakeSigner()
        quote = await gateway.get_quote(_params(wallet_id="wallet-42"))
        _, lock = HashLockBuilder().build(1)

        await gateway.place_order(quote, lock, signer)
        assert signer.calls[0][0] == "wallet-42"

    @pytest.mark.asyncio
    async def test_rejected_submission(self):
        routes = self._routes()
        routes[("POST", "/relayer/v1.0/submit")] = httpx.Response(400, json={"description": "bad signature"})
        gateway, _ = _gateway(routes)
        quote = await gateway.get_quote(_params())
        _, lock = HashLockBuilder().build(1)

        with pytest.raises(GatewayRejected) as exc_info:
            await gateway.place_order(quote, lock, FakeSigner())
        assert exc_info.value.status_code == 400


class TestStatus:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw,fills,expected", [
        ("pending", [], OrderStatus.CREATED),
        ("pending", [{"status": "pending"}], OrderStatus.PARTIALLY_FILLED),
        ("executed", [{}, {}], OrderStatus.EXECUTED),
        ("cancelled", [], OrderStatus.CANCELLED),
        ("refunded", [], OrderStatus.REFUNDED),
        ("Executed", [], OrderStatus.EXECUTED),
        ("expired", [], OrderStatus.UNKNOWN),
        ("refunding", [], OrderStatus.UNKNOWN),
    ])
    async def test_status_mapping(self, raw, fills, expected):
        path = f"/orders/v1.0/order/status/{ORDER_HASH}"
        gateway, _ = _gateway({("GET", path): {"status": raw, "fills": fills}})
        report = await gateway.get_status(ORDER_HASH)
        assert report.status is expected
        assert report.fills_count == len(fills)

    def test_terminal_statuses(self):
        terminal = {s for s in OrderStatus if s.is_terminal}
        assert terminal == {OrderStatus.EXECUTED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}

    @pytest.mark.asyncio
    async def test_ready_fills(self):
        path = f"/orders/v1.0/order/ready-to-accept-secret-fills/{ORDER_HASH}"
        gateway, _ = _gateway({("GET", path): {"fills": [{"idx": 0, "srcEscrowDeployTxHash": "0x1"}, {"idx": 2}]}})
        fills = await gateway.get_ready_fills(ORDER_HASH)
        assert [f.fill_index for f in fills] == [0, 2]

    @pytest.mark.asyncio
    async def test_ready_fills_bad_index(self):
        path = f"/orders/v1.0/order/ready-to-accept-secret-fills/{ORDER_HASH}"
        gateway, _ = _gateway({("GET", path): {"fills": [{"idx": "zero"}]}})
        with pytest.raises(GatewayUnavailable):
            await gateway.get_ready_fills(ORDER_HASH)

    @pytest.mark.asyncio
    async def test_reveal_secret_body(self):
        gateway, rec = _gateway({("POST", "/relayer/v1.0/submit/secret"): httpx.Response(201)})
        await gateway.reveal_secret("0xabc", 0, "0x" + "11" * 32)
        assert json.loads(rec.requests[0].content) == {"orderHash": "0xabc", "secret": "0x" + "11" * 32}


class TestErrorMapping:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response,error", [
        (httpx.Response(500), GatewayUnavailable),
        (httpx.Response(503), GatewayUnavailable),
        (httpx.Response(429), GatewayUnavailable),
        (httpx.Response(400, text="bad request"), GatewayRejected),
        (httpx.Response(404, text="no such order"), GatewayRejected),
        (httpx.Response(200, text="<html>"), GatewayUnavailable),
    ])
    async def test_http_errors(self, response, error):
        path = f"/orders/v1.0/order/status/{ORDER_HASH}"
        gateway, _ = _gateway({("GET", path): response})
        with pytest.raises(error):
            await gateway.get_status(ORDER_HASH)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        path = f"/orders/v1.0/order/status/{ORDER_HASH}"
        gateway, _ = _gateway({("GET", path): httpx.ConnectError("connection refused")})
        with pytest.raises(GatewayUnavailable):
            await gateway.get_status(ORDER_HASH)

    @pytest.mark.asyncio
    async def test_timeout(self):
        path = f"/orders/v1.0/order/status/{ORDER_HASH}"
        gateway, _ = _gateway({("GET", path): httpx.ReadTimeout("read timed out")})
        with pytest.raises(GatewayUnavailable):
            await gateway.get_status(ORDER_HASH)

    @pytest.mark.asyncio
    async def test_shared_client_left_open(self):
        gateway, _ = _gateway({})
        await gateway.close()
        assert not gateway.client.is_closed
