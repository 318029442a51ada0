"""
Core package: shared error types and JSON helpers.
"""

from swapkeeper.core.errors import (
    SwapKeeperError,
    ConfigError,
    InvalidArgument,
    VaultError,
    AlreadyExists,
    NotFound,
    VaultCorrupted,
    VaultUnavailable,
    GatewayError,
    GatewayUnavailable,
    GatewayRejected,
    CustodyError,
    PlacementFailed,
    SecretPersistenceFailed,
    RevealFailed,
)
from swapkeeper.core.json_utils import dumps, loads

__all__ = [
    "SwapKeeperError",
    "ConfigError",
    "InvalidArgument",
    "VaultError",
    "AlreadyExists",
    "NotFound",
    "VaultCorrupted",
    "VaultUnavailable",
    "GatewayError",
    "GatewayUnavailable",
    "GatewayRejected",
    "CustodyError",
    "PlacementFailed",
    "SecretPersistenceFailed",
    "RevealFailed",
    "dumps",
    "loads",
]
