"""
Chain table for cross-chain swaps.

Maps a chain id to its name aliases and the contract that must be approved
to spend the source token before an order can be filled. Per-chain spender
differences live in this table (and in SWAP_SPENDER_OVERRIDES), not in
branches at the call site.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from eth_utils import is_address, to_checksum_address

from swapkeeper.core.errors import ConfigError, InvalidArgument

DEFAULT_SPENDER = "0x111111125421cA6dc452d289314280a0f8842A65"


@dataclass(frozen=True)
class ChainInfo:
    chain_id: int
    names: Tuple[str, ...]
    spender: str = DEFAULT_SPENDER


CHAINS: Dict[int, ChainInfo] = {
    1: ChainInfo(1, ("ethereum", "mainnet", "eth")),
    10: ChainInfo(10, ("optimism", "op")),
    56: ChainInfo(56, ("binance", "bsc")),
    100: ChainInfo(100, ("gnosis", "xdai")),
    137: ChainInfo(137, ("polygon", "matic")),
    146: ChainInfo(146, ("sonic",)),
    324: ChainInfo(324, ("zksync", "era"), spender="0x6fd4383cb451173d5f9304f041c7bcbf27d561ff"),
    8453: ChainInfo(8453, ("base",)),
    42161: ChainInfo(42161, ("arbitrum", "arb")),
    43114: ChainInfo(43114, ("avalanche", "avax")),
    59144: ChainInfo(59144, ("linea",)),
    130: ChainInfo(130, ("unichain",)),
}


@dataclass
class SpenderRegistry:
    """Chain id -> spender address lookup, with configured overrides on top."""

    chains: Mapping[int, ChainInfo] = field(default_factory=lambda: dict(CHAINS))
    overrides: Mapping[int, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for chain_id, addr in self.overrides.items():
            if not is_address(addr):
                raise ConfigError(f"spender override for chain {chain_id} is not an address: {addr!r}")

    def spender_for(self, chain_id: int) -> str:
        addr = self.overrides.get(chain_id)
        if addr is None:
            info = self.chains.get(chain_id)
            if info is None:
                raise InvalidArgument(f"unsupported chain id: {chain_id}")
            addr = info.spender
        return to_checksum_address(addr)


def resolve_chain_id(network: int | str) -> int:
    """Accept a chain id or a name alias ("base", "arbitrum", "8453")."""
    if isinstance(network, bool):
        raise InvalidArgument(f"unknown network: {network!r}")
    if isinstance(network, int):
        return network
    key = str(network).strip().lower()
    if key.isdigit():
        return int(key)
    for info in CHAINS.values():
        if key in info.names:
            return info.chain_id
    raise InvalidArgument(f"unknown network: {network!r}")


def parse_spender_overrides(raw: Optional[Mapping[str, str]]) -> Dict[int, str]:
    """Turn {"324": "0x..."} (decoded from SWAP_SPENDER_OVERRIDES) into {324: "0x..."}."""
    if not raw:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigError("SWAP_SPENDER_OVERRIDES must be a JSON object")
    out: Dict[int, str] = {}
    for key, addr in raw.items():
        try:
            out[int(key)] = str(addr)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid chain id in SWAP_SPENDER_OVERRIDES: {key!r}") from exc
    return out
