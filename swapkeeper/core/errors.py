"""
Exception hierarchy for the swap coordinator.

Placement-time errors (InvalidArgument, PlacementFailed,
SecretPersistenceFailed) propagate to the caller of SwapInitiator.
Reconciliation-time errors are caught inside the loop and only logged.
"""

from __future__ import annotations

from typing import Optional


class SwapKeeperError(Exception):
    """Base class for all coordinator errors."""

    code = "SWAPKEEPER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class ConfigError(SwapKeeperError):
    code = "CONFIG_ERROR"


class InvalidArgument(SwapKeeperError):
    """Malformed swap parameters, rejected before any I/O."""

    code = "INVALID_ARGUMENT"


# ---- vault ----

class VaultError(SwapKeeperError):
    code = "VAULT_ERROR"


class AlreadyExists(VaultError):
    code = "ALREADY_EXISTS"

    def __init__(self, order_hash: str) -> None:
        super().__init__(f"secrets already stored for order {order_hash}")
        self.order_hash = order_hash


class NotFound(VaultError):
    code = "NOT_FOUND"

    def __init__(self, order_hash: str) -> None:
        super().__init__(f"no secrets stored for order {order_hash}")
        self.order_hash = order_hash


class VaultCorrupted(VaultError):
    """Stored record exists but cannot be decoded as a list of secrets."""

    code = "VAULT_CORRUPTED"

    def __init__(self, order_hash: str, reason: str) -> None:
        super().__init__(f"corrupt secret record for order {order_hash}: {reason}")
        self.order_hash = order_hash
        self.reason = reason


class VaultUnavailable(VaultError):
    """Backing store could not be reached or written."""

    code = "VAULT_UNAVAILABLE"


# ---- order network ----

class GatewayError(SwapKeeperError):
    code = "GATEWAY_ERROR"


class GatewayUnavailable(GatewayError):
    """Transport failure, timeout, 5xx/429 or malformed payload."""

    code = "GATEWAY_UNAVAILABLE"


class GatewayRejected(GatewayError):
    """The order network answered with a non-retryable error status."""

    code = "GATEWAY_REJECTED"

    def __init__(self, message: str, status_code: int, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class CustodyError(SwapKeeperError):
    code = "CUSTODY_ERROR"


# ---- swap lifecycle ----

class PlacementFailed(SwapKeeperError):
    """Quote, approval or placement failed. No local state was created."""

    code = "PLACEMENT_FAILED"


class SecretPersistenceFailed(SwapKeeperError):
    """
    The order was placed but its secrets could not be stored.

    The secrets only ever existed in process memory, so this needs an operator.
    """

    code = "SECRET_PERSISTENCE_FAILED"

    def __init__(self, order_hash: str, reason: str) -> None:
        super().__init__(
            f"order {order_hash} was placed but its secrets could not be persisted: {reason}"
        )
        self.order_hash = order_hash


class RevealFailed(SwapKeeperError):
    code = "REVEAL_FAILED"

    def __init__(self, order_hash: str, fill_index: int, reason: str) -> None:
        super().__init__(f"reveal failed for order {order_hash} fill {fill_index}: {reason}")
        self.order_hash = order_hash
        self.fill_index = fill_index
        self.reason = reason
