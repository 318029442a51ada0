"""
Custody adapters: who signs orders and sends approval transactions.

The coordinator never holds user keys in the normal deployment; a custody
service signs on behalf of a wallet identifier. LocalAccountSigner covers
self-custody and development, backed by eth_account.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

import httpx
from eth_account import Account

from swapkeeper.core import json_utils
from swapkeeper.core.errors import CustodyError

import logging

log = logging.getLogger("swapkeeper")


class TypedDataSigner(Protocol):
    async def sign_typed_data(self, wallet_id: str, typed_data: Dict[str, Any]) -> str: ...


class TransactionSender(Protocol):
    async def send_transaction(self, wallet_id: str, chain_id: int, tx: Dict[str, Any]) -> str: ...


class HttpCustodyClient:
    """
    Remote wallet service speaking wallet JSON-RPC over HTTP.

    POST /v1/wallets/{wallet_id}/rpc
        {"method": "eth_signTypedData_v4", "params": {"typed_data": ...}}
        {"method": "eth_sendTransaction", "caip2": "eip155:<chain>", "params": {"transaction": ...}}
    """

    def __init__(
        self,
        base_url: str,
        app_id: str,
        app_secret: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = {"custody-app-id": app_id, "Content-Type": "application/json"}
        self._auth = httpx.BasicAuth(app_id, app_secret)
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
            self._owns_client = True

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def sign_typed_data(self, wallet_id: str, typed_data: Dict[str, Any]) -> str:
        data = await self._rpc(wallet_id, {
            "method": "eth_signTypedData_v4",
            "params": {"typed_data": typed_data},
        })
        signature = data.get("signature")
        if not isinstance(signature, str) or not signature.startswith("0x"):
            raise CustodyError(f"custody returned no signature for wallet {wallet_id}")
        return signature

    async def send_transaction(self, wallet_id: str, chain_id: int, tx: Dict[str, Any]) -> str:
        data = await self._rpc(wallet_id, {
            "method": "eth_sendTransaction",
            "caip2": f"eip155:{chain_id}",
            "params": {"transaction": tx},
        })
        tx_hash = data.get("hash")
        if not isinstance(tx_hash, str) or not tx_hash.startswith("0x"):
            raise CustodyError(f"custody returned no transaction hash for wallet {wallet_id}")
        return tx_hash

    async def _rpc(self, wallet_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        path = f"/v1/wallets/{wallet_id}/rpc"
        try:
            resp = await self.client.post(
                path,
                content=json_utils.dumps_bytes(body),
                headers=self._headers,
                auth=self._auth,
            )
        except httpx.HTTPError as exc:
            raise CustodyError(f"custody request {body['method']} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise CustodyError(
                f"custody request {body['method']} returned HTTP {resp.status_code}: {resp.text[:200]}"
            )
        try:
            payload = json_utils.loads(resp.content)
        except json_utils.JSONDecodeError as exc:
            raise CustodyError(f"custody request {body['method']} returned invalid JSON") from exc
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise CustodyError(f"custody request {body['method']} returned no data")
        return data


class LocalAccountSigner:
    """Sign EIP-712 orders with a local key. The wallet id must be its address."""

    def __init__(self, account) -> None:
        self.account = account

    @classmethod
    def from_key(cls, private_key: str) -> "LocalAccountSigner":
        return cls(Account.from_key(private_key))

    @property
    def address(self) -> str:
        return self.account.address

    async def sign_typed_data(self, wallet_id: str, typed_data: Dict[str, Any]) -> str:
        if wallet_id.lower() != self.account.address.lower():
            raise CustodyError(f"local signer holds {self.account.address}, not {wallet_id}")
        try:
            signed = self.account.sign_typed_data(full_message=typed_data)
        except (ValueError, TypeError, KeyError) as exc:
            raise CustodyError(f"cannot sign typed data: {exc}") from exc
        return "0x" + bytes(signed.signature).hex()
