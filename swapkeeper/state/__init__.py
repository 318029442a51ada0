"""
State package: the secret vault and its backing stores.
"""

from swapkeeper.state.vault import SecretVault, SecretVaultConfig, KeyValueStore, normalize_order_hash
from swapkeeper.state.file_store import FileKeyValueStore
from swapkeeper.state.redis_store import RedisKeyValueStore

__all__ = [
    "SecretVault",
    "SecretVaultConfig",
    "KeyValueStore",
    "normalize_order_hash",
    "FileKeyValueStore",
    "RedisKeyValueStore",
]
