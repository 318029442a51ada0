"""
Redis-backed key-value store.

Key design:
- cross_chain_swap_order:{orderHash}  - String (JSON array of secret hex strings)

Each operation is a single Redis command, so a crash between commands never
leaves a half-written record. Durability is whatever the Redis server is
configured for (AOF with appendfsync everysec or always is recommended).
Unlike a cache, there is no in-memory fallback: a secret that only lives in
process memory is lost on restart.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from swapkeeper.core.errors import VaultUnavailable

log = logging.getLogger("swapkeeper")


class RedisKeyValueStore:
    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        client: Optional[aioredis.Redis] = None,
        socket_timeout: float = 5.0,
    ) -> None:
        self.redis_url = redis_url
        if client is not None:
            self._redis = client
            self._owns_client = False
        else:
            self._redis = aioredis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=socket_timeout,
            )
            self._owns_client = True

    async def connect(self) -> None:
        """Fail fast at startup when Redis is unreachable."""
        try:
            await self._redis.ping()
        except RedisError as exc:
            raise VaultUnavailable(f"redis unavailable at {self.redis_url}: {exc}") from exc
        log.info(f"Redis connected: {self.redis_url}")

    async def close(self) -> None:
        if self._owns_client:
            await self._redis.aclose()

    async def set_if_absent(self, key: str, value: str) -> bool:
        try:
            return bool(await self._redis.set(key, value, nx=True))
        except RedisError as exc:
            raise VaultUnavailable(f"redis SET failed for {key}: {exc}") from exc

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except RedisError as exc:
            raise VaultUnavailable(f"redis GET failed for {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as exc:
            raise VaultUnavailable(f"redis DEL failed for {key}: {exc}") from exc

    async def keys(self, pattern: str) -> List[str]:
        # SCAN rather than KEYS so a large keyspace does not block the server.
        try:
            return [k async for k in self._redis.scan_iter(match=pattern, count=500)]
        except RedisError as exc:
            raise VaultUnavailable(f"redis SCAN failed for {pattern}: {exc}") from exc
