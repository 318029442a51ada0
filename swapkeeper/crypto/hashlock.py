"""
Hash-lock construction for cross-chain swap orders.

A swap with N possible fills needs N secrets. With a single fill the lock is
keccak256(secret). With several fills every secret becomes a Merkle leaf

    leaf[i] = keccak256(abi.encodePacked(uint64(i), keccak256(secret[i])))

and the lock is the tree root with its top 16 bits replaced by N - 1, the
format the settlement contracts expect. Revealing secret i plus its proof
unlocks fill i without disclosing any other secret.

The tree is laid out the way OpenZeppelin's SimpleMerkleTree does it: a
complete binary tree stored in an array, leaves kept in fill order (not
sorted), and each node = keccak256(min(a, b) || max(a, b)).
"""

from __future__ import annotations

import re
import secrets as _secrets
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from eth_abi.packed import encode_packed
from eth_utils import keccak

from swapkeeper.core.errors import InvalidArgument

SECRET_BYTES = 32
COUNT_SHIFT = 240
ROOT_MASK = (1 << COUNT_SHIFT) - 1

_HEX32 = re.compile(r"^0x[0-9a-f]{64}$")


def _to_hex(b: bytes) -> str:
    return "0x" + b.hex()


def normalize_hex32(value: str, what: str = "value") -> str:
    """Lowercase and check a 0x-prefixed 32-byte hex string."""
    if not isinstance(value, str):
        raise InvalidArgument(f"{what} must be a hex string")
    v = value.lower()
    if not v.startswith("0x"):
        v = "0x" + v
    if not _HEX32.match(v):
        raise InvalidArgument(f"{what} must be 32 bytes of hex, got {value!r}")
    return v


def hash_secret(secret: str) -> str:
    """keccak256 of the secret bytes."""
    raw = bytes.fromhex(normalize_hex32(secret, "secret")[2:])
    return _to_hex(keccak(raw))


def leaf_for(index: int, secret_hash: str) -> str:
    """keccak256(uint64 index || bytes32 secret_hash), Solidity packed encoding."""
    if index < 0 or index >= 1 << 64:
        raise InvalidArgument(f"fill index out of uint64 range: {index}")
    h = bytes.fromhex(normalize_hex32(secret_hash, "secret hash")[2:])
    return _to_hex(keccak(encode_packed(["uint64", "bytes32"], [index, h])))


def _node_hash(a: bytes, b: bytes) -> bytes:
    if a > b:
        a, b = b, a
    return keccak(a + b)


class MerkleTree:
    """Array-form Merkle tree over pre-hashed 32-byte leaves, in given order."""

    def __init__(self, leaves: Sequence[str]) -> None:
        if not leaves:
            raise InvalidArgument("merkle tree needs at least one leaf")
        self.leaves: Tuple[str, ...] = tuple(normalize_hex32(x, "leaf") for x in leaves)
        n = len(self.leaves)
        tree: List[bytes] = [b""] * (2 * n - 1)
        for i, leaf in enumerate(self.leaves):
            tree[len(tree) - 1 - i] = bytes.fromhex(leaf[2:])
        for i in range(len(tree) - 1 - n, -1, -1):
            tree[i] = _node_hash(tree[2 * i + 1], tree[2 * i + 2])
        self._tree = tree

    @property
    def root(self) -> str:
        return _to_hex(self._tree[0])

    def proof(self, leaf_index: int) -> List[str]:
        if leaf_index < 0 or leaf_index >= len(self.leaves):
            raise InvalidArgument(f"leaf index out of range: {leaf_index}")
        i = len(self._tree) - 1 - leaf_index
        out: List[str] = []
        while i > 0:
            sibling = i + 1 if i % 2 == 1 else i - 1
            out.append(_to_hex(self._tree[sibling]))
            i = (i - 1) // 2
        return out

    @staticmethod
    def process_proof(leaf: str, proof: Sequence[str]) -> str:
        node = bytes.fromhex(normalize_hex32(leaf, "leaf")[2:])
        for p in proof:
            node = _node_hash(node, bytes.fromhex(normalize_hex32(p, "proof element")[2:]))
        return _to_hex(node)


@dataclass(frozen=True)
class HashLock:
    """
    Commitment to an order's secrets.

    `value` is what goes on the wire. For multi-fill locks `root` is the bare
    Merkle root and `value` carries the fill count in its top bits.
    """

    value: str
    secret_hashes: Tuple[str, ...]
    leaves: Tuple[str, ...] = ()
    root: Optional[str] = None

    @property
    def secrets_count(self) -> int:
        return len(self.secret_hashes)

    @property
    def is_multi_fill(self) -> bool:
        return self.secrets_count > 1

    @classmethod
    def for_single_fill(cls, secret: str) -> "HashLock":
        h = hash_secret(secret)
        return cls(value=h, secret_hashes=(h,))

    @classmethod
    def for_multiple_fills(cls, secret_list: Sequence[str]) -> "HashLock":
        if len(secret_list) < 2:
            raise InvalidArgument("multi-fill lock needs at least two secrets")
        hashes = tuple(hash_secret(s) for s in secret_list)
        leaves = tuple(leaf_for(i, h) for i, h in enumerate(hashes))
        root = MerkleTree(leaves).root
        with_count = (int(root, 16) & ROOT_MASK) | ((len(leaves) - 1) << COUNT_SHIFT)
        return cls(
            value="0x" + format(with_count, "064x"),
            secret_hashes=hashes,
            leaves=leaves,
            root=root,
        )

    def proof(self, fill_index: int) -> List[str]:
        """Merkle proof for one fill (empty for single-fill locks)."""
        if not self.is_multi_fill:
            if fill_index != 0:
                raise InvalidArgument(f"single-fill lock has no fill {fill_index}")
            return []
        return MerkleTree(self.leaves).proof(fill_index)

    def verify(self, secret: str, fill_index: int) -> bool:
        """Check that `secret` is the preimage committed for `fill_index`."""
        try:
            h = hash_secret(secret)
        except InvalidArgument:
            return False
        if not self.is_multi_fill:
            return fill_index == 0 and h == self.value
        if fill_index < 0 or fill_index >= self.secrets_count:
            return False
        leaf = leaf_for(fill_index, h)
        computed = MerkleTree.process_proof(leaf, self.proof(fill_index))
        return (int(computed, 16) & ROOT_MASK) == (int(self.value, 16) & ROOT_MASK)


class HashLockBuilder:
    """
    Generate an order's secrets and the matching lock.

    The random source is injectable so tests can be deterministic; it defaults
    to the OS CSPRNG.
    """

    def __init__(self, random_bytes: Callable[[int], bytes] = _secrets.token_bytes) -> None:
        self._random_bytes = random_bytes

    def generate_secret(self) -> str:
        raw = self._random_bytes(SECRET_BYTES)
        if len(raw) != SECRET_BYTES:
            raise ValueError(f"random source returned {len(raw)} bytes, expected {SECRET_BYTES}")
        return _to_hex(raw)

    def build(self, secrets_count: int) -> Tuple[List[str], HashLock]:
        if isinstance(secrets_count, bool) or not isinstance(secrets_count, int):
            raise InvalidArgument(f"secrets_count must be an integer, got {secrets_count!r}")
        if secrets_count < 1:
            raise InvalidArgument(f"secrets_count must be >= 1, got {secrets_count}")

        out: List[str] = []
        seen = set()
        attempts = 0
        while len(out) < secrets_count:
            attempts += 1
            if attempts > secrets_count * 8:
                raise RuntimeError("random source keeps repeating secrets")
            s = self.generate_secret()
            if s in seen:
                continue
            seen.add(s)
            out.append(s)

        if secrets_count == 1:
            return out, HashLock.for_single_fill(out[0])
        return out, HashLock.for_multiple_fills(out)
