"""
OrderGateway: async HTTP client for the cross-chain order network.

Covers the calls the coordinator needs from a Fusion+ style API:
- quote (how many secrets the order needs)
- order build + signed submission with the hash-lock
- order status
- fills that are ready to accept their secret
- secret submission for one fill

Error mapping:
    transport errors, timeouts, 429 and 5xx -> GatewayUnavailable
    other 4xx                              -> GatewayRejected
    unparseable or unexpected payloads     -> GatewayUnavailable

No call is retried here. Placement failures go back to the caller of
SwapInitiator; status/fill/reveal failures are retried by the next
reconciliation cycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

import httpx

from swapkeeper.core import json_utils
from swapkeeper.core.errors import GatewayRejected, GatewayUnavailable, InvalidArgument
from swapkeeper.crypto.hashlock import HashLock
from swapkeeper.execution.models import (
    BuiltOrder,
    Fill,
    OrderStatus,
    OrderStatusReport,
    Quote,
    SwapParams,
)
from swapkeeper.state.vault import normalize_order_hash

if TYPE_CHECKING:
    from swapkeeper.execution.custody import TypedDataSigner

import logging

log = logging.getLogger("swapkeeper")

# Remote status string -> local status. Anything else maps to UNKNOWN
# (non-terminal), e.g. "expired" and "refunding" which still move on.
_STATUS_MAP: Dict[str, OrderStatus] = {
    "pending": OrderStatus.CREATED,
    "executed": OrderStatus.EXECUTED,
    "cancelled": OrderStatus.CANCELLED,
    "refunded": OrderStatus.REFUNDED,
}


@dataclass
class OrderGatewayConfig:
    """Configuration for OrderGateway."""
    base_url: str = "https://api.1inch.dev/fusion-plus"
    api_key: Optional[str] = None
    http_timeout: float = 10.0

    # Logging callback
    log_event_callback: Optional[Callable[..., None]] = None


class OrderGateway:
    """
    Client for the external order network.

    Usage:
        gateway = OrderGateway(OrderGatewayConfig(api_key=key))
        quote = await gateway.get_quote(params)
        order_hash = await gateway.place_order(quote, lock, signer)
        report = await gateway.get_status(order_hash)
    """

    def __init__(
        self,
        config: Optional[OrderGatewayConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or OrderGatewayConfig()
        # Sent per request so a shared client never carries the API key elsewhere.
        self._headers = {"Accept": "application/json"}
        if self.config.api_key:
            self._headers["Authorization"] = f"Bearer {self.config.api_key}"
        # A shared client is left open in close(); an owned one is closed.
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/"),
                timeout=self.config.http_timeout,
            )
            self._owns_client = True

        self._log_event = self.config.log_event_callback or self._default_log

    def _default_log(self, event: str, **kwargs: Any) -> None:
        payload = {"event": event, **kwargs}
        log.info(json_utils.dumps(payload))

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    # ========== Quote / placement ==========

    async def get_quote(self, params: SwapParams) -> Quote:
        data = await self._request(
            "GET",
            "/quoter/v1.0/quote/receive",
            params={**self._swap_query(params), "enableEstimate": "true"},
        )
        if not isinstance(data, dict):
            raise GatewayUnavailable("quote response is not an object")

        presets = data.get("presets")
        preset_name = params.preset or data.get("recommendedPreset")
        if not isinstance(presets, dict) or not preset_name:
            raise GatewayUnavailable("quote response has no presets")
        preset = presets.get(preset_name)
        if not isinstance(preset, dict):
            raise InvalidArgument(f"quote has no preset {preset_name!r}; available: {sorted(presets)}")

        secrets_count = preset.get("secretsCount")
        if isinstance(secrets_count, bool) or not isinstance(secrets_count, int):
            raise GatewayUnavailable(f"preset {preset_name!r} has no integer secretsCount")

        quote_id = data.get("quoteId")
        if not quote_id:
            raise GatewayUnavailable("quote response has no quoteId")

        return Quote(
            quote_id=str(quote_id),
            secrets_count=secrets_count,
            preset=str(preset_name),
            params=params,
            raw=data,
        )

    async def build_order(self, quote: Quote, lock: HashLock) -> BuiltOrder:
        """Ask the network to build the order for `quote`, committed to `lock`."""
        data = await self._request(
            "POST",
            "/quoter/v1.0/quote/build",
            params={**self._swap_query(quote.params), "preset": quote.preset},
            json={
                "quote": quote.raw,
                "secretsHashList": list(lock.secret_hashes),
                "hashLock": lock.value,
            },
        )
        if not isinstance(data, dict):
            raise GatewayUnavailable("build response is not an object")
        typed_data = data.get("typedData")
        order_hash = data.get("orderHash")
        if not isinstance(typed_data, dict) or not isinstance(typed_data.get("message"), dict):
            raise GatewayUnavailable("build response has no typedData.message")
        if not order_hash:
            raise GatewayUnavailable("build response has no orderHash")
        try:
            order_hash = normalize_order_hash(str(order_hash))
        except InvalidArgument as exc:
            raise GatewayUnavailable(f"build response has a malformed orderHash: {order_hash!r}") from exc
        return BuiltOrder(
            order_hash=order_hash,
            typed_data=typed_data,
            extension=str(data.get("extension") or "0x"),
        )

    async def place_order(
        self,
        quote: Quote,
        lock: HashLock,
        signer: "TypedDataSigner",
    ) -> str:
        """Build, sign and submit the order. Returns the order hash."""
        built = await self.build_order(quote, lock)
        signature = await signer.sign_typed_data(quote.params.signer_id, built.typed_data)

        body: Dict[str, Any] = {
            "order": built.typed_data["message"],
            "srcChainId": quote.params.src_chain_id,
            "signature": signature,
            "extension": built.extension,
            "quoteId": quote.quote_id,
        }
        if lock.is_multi_fill:
            body["secretHashes"] = list(lock.secret_hashes)

        await self._request("POST", "/relayer/v1.0/submit", json=body)
        self._log_event(
            "order_submitted",
            order_hash=built.order_hash,
            quote_id=quote.quote_id,
            secrets_count=lock.secrets_count,
        )
        return built.order_hash

    # ========== Reconciliation calls ==========

    async def get_status(self, order_hash: str) -> OrderStatusReport:
        data = await self._request("GET", f"/orders/v1.0/order/status/{order_hash}")
        if not isinstance(data, dict) or "status" not in data:
            raise GatewayUnavailable(f"status response for {order_hash} has no status")

        raw_status = str(data["status"]).lower()
        fills = data.get("fills") or []
        fills_count = len(fills) if isinstance(fills, list) else 0

        status = _STATUS_MAP.get(raw_status, OrderStatus.UNKNOWN)
        if status is OrderStatus.CREATED and fills_count > 0:
            status = OrderStatus.PARTIALLY_FILLED
        return OrderStatusReport(status=status, raw_status=raw_status, fills_count=fills_count)

    async def get_ready_fills(self, order_hash: str) -> List[Fill]:
        data = await self._request(
            "GET", f"/orders/v1.0/order/ready-to-accept-secret-fills/{order_hash}"
        )
        fills = data.get("fills") if isinstance(data, dict) else None
        if not isinstance(fills, list):
            raise GatewayUnavailable(f"ready-fills response for {order_hash} has no fills list")

        out: List[Fill] = []
        for f in fills:
            idx = f.get("idx") if isinstance(f, dict) else None
            if isinstance(idx, bool) or not isinstance(idx, int) or idx < 0:
                raise GatewayUnavailable(f"ready-fills response for {order_hash} has a bad idx: {f!r}")
            out.append(Fill(fill_index=idx))
        return out

    async def reveal_secret(self, order_hash: str, fill_index: int, secret: str) -> None:
        """Submit the secret for one fill. Resubmitting an accepted secret is harmless."""
        await self._request(
            "POST",
            "/relayer/v1.0/submit/secret",
            json={"orderHash": order_hash, "secret": secret},
        )

    # ========== HTTP ==========

    @staticmethod
    def _swap_query(params: SwapParams) -> Dict[str, Any]:
        return {
            "srcChain": params.src_chain_id,
            "dstChain": params.dst_chain_id,
            "srcTokenAddress": params.src_token_address,
            "dstTokenAddress": params.dst_token_address,
            "amount": params.amount,
            "walletAddress": params.wallet_address,
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        try:
            resp = await self.client.request(method, path, params=params, json=json, headers=self._headers)
        except httpx.TimeoutException as exc:
            raise GatewayUnavailable(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise GatewayUnavailable(f"{method} {path} failed: {exc}") from exc

        if resp.status_code == 429 or resp.status_code >= 500:
            raise GatewayUnavailable(f"{method} {path} returned HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise GatewayRejected(
                f"{method} {path} returned HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
                body=resp.text,
            )
        if not resp.content:
            return None
        try:
            return json_utils.loads(resp.content)
        except json_utils.JSONDecodeError as exc:
            raise GatewayUnavailable(f"{method} {path} returned invalid JSON") from exc
