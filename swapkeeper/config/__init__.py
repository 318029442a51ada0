"""
Configuration package.

Settings loading and the chain / spender table.
"""

from swapkeeper.config.config import Settings
from swapkeeper.config.chains import CHAINS, ChainInfo, SpenderRegistry, resolve_chain_id

__all__ = [
    "Settings",
    "CHAINS",
    "ChainInfo",
    "SpenderRegistry",
    "resolve_chain_id",
]
