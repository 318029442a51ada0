"""
SecretVault: durable order-hash -> secrets mapping.

The vault is the single source of truth for which swaps still need secret
management. If an order is not in the vault the coordinator has no further
obligation toward it, even if the order is still pending on the network.

Records are stored under `<prefix>:<orderHash>` as a JSON array of secret hex
strings, indexed by fill index.

Writers:
    SwapInitiator inserts each order exactly once (put is set-if-absent).
    ReconciliationLoop reads and deletes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol, Sequence, Set

from swapkeeper.core import json_utils
from swapkeeper.core.errors import AlreadyExists, InvalidArgument, NotFound, VaultCorrupted
from swapkeeper.crypto.hashlock import normalize_hex32

import logging

log = logging.getLogger("swapkeeper")

_ORDER_HASH = re.compile(r"^0x[0-9a-f]+$")


class KeyValueStore(Protocol):
    async def set_if_absent(self, key: str, value: str) -> bool: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def delete(self, key: str) -> None: ...

    async def keys(self, pattern: str) -> List[str]: ...

    async def close(self) -> None: ...


def normalize_order_hash(order_hash: str) -> str:
    if not isinstance(order_hash, str):
        raise InvalidArgument(f"order hash must be a string, got {type(order_hash).__name__}")
    h = order_hash.strip().lower()
    if not _ORDER_HASH.match(h):
        raise InvalidArgument(f"order hash must be 0x-prefixed hex, got {order_hash!r}")
    return h


@dataclass
class SecretVaultConfig:
    """Configuration for SecretVault."""
    key_prefix: str = "cross_chain_swap_order"

    # Logging callback
    log_event_callback: Optional[Callable[..., None]] = None


class SecretVault:
    """
    Durable store of each order's secret preimages.

    Usage:
        vault = SecretVault(RedisKeyValueStore(url))
        await vault.put(order_hash, secrets)
        for order_hash in await vault.list_known_orders():
            secrets = await vault.get(order_hash)
    """

    def __init__(self, store: KeyValueStore, config: Optional[SecretVaultConfig] = None) -> None:
        self.store = store
        self.config = config or SecretVaultConfig()
        self._log_event = self.config.log_event_callback or self._default_log

    def _default_log(self, event: str, **kwargs: Any) -> None:
        payload = {"event": event, **kwargs}
        log.info(json_utils.dumps(payload))

    def key_for(self, order_hash: str) -> str:
        return f"{self.config.key_prefix}:{normalize_order_hash(order_hash)}"

    def _order_hash_from_key(self, key: str) -> Optional[str]:
        prefix = f"{self.config.key_prefix}:"
        if not key.startswith(prefix):
            return None
        try:
            return normalize_order_hash(key[len(prefix):])
        except InvalidArgument:
            return None

    async def put(self, order_hash: str, secrets: Sequence[str]) -> None:
        """Store secrets for a new order. Raises AlreadyExists if one is stored."""
        key = self.key_for(order_hash)
        if isinstance(secrets, str) or not secrets:
            raise InvalidArgument("secrets must be a non-empty sequence of hex strings")
        values = [normalize_hex32(s, "secret") for s in secrets]

        stored = await self.store.set_if_absent(key, json_utils.dumps(values))
        if not stored:
            raise AlreadyExists(normalize_order_hash(order_hash))
        self._log_event("vault_put", order_hash=normalize_order_hash(order_hash), secrets_count=len(values))

    async def get(self, order_hash: str) -> List[str]:
        """Secrets for an order, by fill index. Raises NotFound if absent."""
        h = normalize_order_hash(order_hash)
        raw = await self.store.get(self.key_for(h))
        if raw is None:
            raise NotFound(h)
        try:
            data = json_utils.loads(raw)
        except json_utils.JSONDecodeError as exc:
            raise VaultCorrupted(h, f"invalid JSON: {exc}") from exc
        if not isinstance(data, list) or not data or not all(isinstance(s, str) for s in data):
            raise VaultCorrupted(h, "expected a non-empty JSON array of strings")
        return list(data)

    async def list_known_orders(self) -> Set[str]:
        """Order hashes with stored secrets. Iteration order is unspecified."""
        keys = await self.store.keys(f"{self.config.key_prefix}:*")
        out: Set[str] = set()
        for key in keys:
            h = self._order_hash_from_key(key)
            if h is None:
                self._log_event("vault_foreign_key_ignored", key=key)
                continue
            out.add(h)
        return out

    async def delete(self, order_hash: str) -> None:
        """Remove an order's record. No error if it is already gone."""
        h = normalize_order_hash(order_hash)
        await self.store.delete(self.key_for(h))
        self._log_event("vault_delete", order_hash=h)

    async def close(self) -> None:
        await self.store.close()
