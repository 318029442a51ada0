from swapkeeper.crypto.hashlock import (
    HashLock,
    HashLockBuilder,
    MerkleTree,
    hash_secret,
    leaf_for,
)

__all__ = [
    "HashLock",
    "HashLockBuilder",
    "MerkleTree",
    "hash_secret",
    "leaf_for",
]
