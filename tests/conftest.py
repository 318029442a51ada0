"""
Pytest configuration and shared fakes.

Adds the repo root to sys.path so tests run without an editable install.
"""

import fnmatch
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from swapkeeper.core.errors import GatewayUnavailable  # noqa: E402
from swapkeeper.execution.models import Fill, OrderStatus, OrderStatusReport  # noqa: E402
from swapkeeper.state.vault import SecretVault  # noqa: E402

SECRET_A = "0x" + "11" * 32
SECRET_B = "0x" + "22" * 32
SECRET_C = "0x" + "33" * 32

USDC_ETH = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
USDC_BASE = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
WALLET = "0x" + "ab" * 20


class MemoryKeyValueStore:
    """Dict-backed store with the KeyValueStore interface, plus call counting."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.calls: List[str] = []

    async def set_if_absent(self, key: str, value: str) -> bool:
        self.calls.append("set_if_absent")
        if key in self.data:
            return False
        self.data[key] = value
        return True

    async def get(self, key: str) -> Optional[str]:
        self.calls.append("get")
        return self.data.get(key)

    async def delete(self, key: str) -> None:
        self.calls.append("delete")
        self.data.pop(key, None)

    async def keys(self, pattern: str) -> List[str]:
        self.calls.append("keys")
        return [k for k in self.data if fnmatch.fnmatchcase(k, pattern)]

    async def close(self) -> None:
        return None


@dataclass
class FakeGateway:
    """
    Scripted order network.

    statuses / ready hold one entry per cycle; the last entry repeats.
    """
    statuses: Dict[str, List[OrderStatus]] = field(default_factory=dict)
    ready: Dict[str, List[List[int]]] = field(default_factory=dict)
    status_errors: Set[str] = field(default_factory=set)
    reveal_errors: Set[Tuple[str, int]] = field(default_factory=set)
    status_calls: List[str] = field(default_factory=list)
    ready_calls: List[str] = field(default_factory=list)
    reveals: List[Tuple[str, int, str]] = field(default_factory=list)

    @staticmethod
    def _next(seq: List):
        return seq.pop(0) if len(seq) > 1 else seq[0]

    async def get_status(self, order_hash: str) -> OrderStatusReport:
        self.status_calls.append(order_hash)
        if order_hash in self.status_errors:
            raise GatewayUnavailable(f"status for {order_hash} timed out")
        status = self._next(self.statuses[order_hash])
        return OrderStatusReport(status=status, raw_status=status.value)

    async def get_ready_fills(self, order_hash: str) -> List[Fill]:
        self.ready_calls.append(order_hash)
        idxs = self._next(self.ready.get(order_hash, [[]]))
        return [Fill(fill_index=i) for i in idxs]

    async def reveal_secret(self, order_hash: str, fill_index: int, secret: str) -> None:
        if (order_hash, fill_index) in self.reveal_errors:
            raise GatewayUnavailable("submit secret returned HTTP 503")
        self.reveals.append((order_hash, fill_index, secret))


@pytest.fixture
def memory_store():
    return MemoryKeyValueStore()


@pytest.fixture
def vault(memory_store):
    return SecretVault(memory_store)


@pytest.fixture
def fake_gateway():
    return FakeGateway()
