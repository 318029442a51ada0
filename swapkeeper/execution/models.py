"""
Value types shared by the gateway, the initiator and the reconciliation loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from eth_utils import is_address, to_checksum_address

from swapkeeper.core.errors import InvalidArgument


class OrderStatus(Enum):
    """Order status as re-derived from the order network on every cycle."""
    CREATED = "created"
    PARTIALLY_FILLED = "partially_filled"
    EXECUTED = "executed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.EXECUTED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})


@dataclass(frozen=True)
class OrderStatusReport:
    status: OrderStatus
    raw_status: str = ""
    fills_count: int = 0


@dataclass(frozen=True)
class Fill:
    """A fill the network reports as ready to accept its secret."""
    fill_index: int


def _parse_amount(amount: Any) -> str:
    if isinstance(amount, bool):
        raise InvalidArgument(f"amount must be a positive integer in base units, got {amount!r}")
    if isinstance(amount, int):
        value = amount
    elif isinstance(amount, str) and amount.strip().isdigit():
        value = int(amount.strip())
    else:
        raise InvalidArgument(f"amount must be a positive integer in base units, got {amount!r}")
    if value <= 0:
        raise InvalidArgument(f"amount must be > 0, got {amount!r}")
    return str(value)


def _parse_chain_id(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidArgument(f"{name} must be a positive integer chain id, got {value!r}")
    return value


def _parse_address(name: str, value: Any) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise InvalidArgument(f"{name} is not a valid EVM address: {value!r}")
    return to_checksum_address(value)


@dataclass(frozen=True)
class SwapParams:
    """Parameters of one cross-chain swap request."""
    src_chain_id: int
    dst_chain_id: int
    src_token_address: str
    dst_token_address: str
    amount: str
    wallet_address: str
    wallet_id: Optional[str] = None
    preset: Optional[str] = None

    @classmethod
    def create(
        cls,
        src_chain_id: Any,
        dst_chain_id: Any,
        src_token_address: Any,
        dst_token_address: Any,
        amount: Any,
        wallet_address: Any,
        wallet_id: Optional[str] = None,
        preset: Optional[str] = None,
    ) -> "SwapParams":
        """Validate and normalise raw inputs. Raises InvalidArgument."""
        src = _parse_chain_id("src_chain_id", src_chain_id)
        dst = _parse_chain_id("dst_chain_id", dst_chain_id)
        if src == dst:
            raise InvalidArgument(f"source and destination chain are both {src}; use a same-chain swap")
        if wallet_id is not None and (not isinstance(wallet_id, str) or not wallet_id.strip()):
            raise InvalidArgument("wallet_id must be a non-empty string when given")
        if preset is not None and (not isinstance(preset, str) or not preset.strip()):
            raise InvalidArgument("preset must be a non-empty string when given")
        return cls(
            src_chain_id=src,
            dst_chain_id=dst,
            src_token_address=_parse_address("src_token_address", src_token_address),
            dst_token_address=_parse_address("dst_token_address", dst_token_address),
            amount=_parse_amount(amount),
            wallet_address=_parse_address("wallet_address", wallet_address),
            wallet_id=wallet_id.strip() if wallet_id else None,
            preset=preset.strip() if preset else None,
        )

    @property
    def signer_id(self) -> str:
        """Identifier the custody service knows the wallet by."""
        return self.wallet_id or self.wallet_address


@dataclass(frozen=True)
class Quote:
    quote_id: str
    secrets_count: int
    preset: str
    params: SwapParams
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class BuiltOrder:
    """Order as built by the network, ready for signing."""
    order_hash: str
    typed_data: Dict[str, Any] = field(compare=False, repr=False)
    extension: str = "0x"
