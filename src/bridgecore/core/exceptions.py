"""
Bridge-specific exception hierarchy for bridgecore.

Provides typed exceptions for custody, routing and payload decoding so that
callers can tell a rejected call apart from a failed asset contract and
react precisely. Every error is raised before or instead of a ledger
update; none of them leaves state partially applied.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class BridgeError(Exception):
    """Base exception for all bridge-related errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Authorization Errors ====================


class UnauthorizedCallerError(BridgeError):
    """Raised when the caller is not the configured bridge authority."""
    pass


# ==================== Routing Errors ====================


class RoutingError(BridgeError):
    """Raised when a resource id cannot be routed to a usable asset."""
    pass


class UnknownOrUnwhitelistedAssetError(RoutingError):
    """Raised when a resource id resolves to nothing or to a non-whitelisted asset."""
    pass


AssetNotWhitelistedError = UnknownOrUnwhitelistedAssetError


class ResourceConflictError(RoutingError):
    """Raised when an asset is already bound to a different resource id."""
    pass


# ==================== Payload Errors ====================


class MalformedPayloadError(BridgeError):
    """Raised when a transfer payload cannot be decoded.

    Examples: truncated amount word, declared recipient length overrunning
    the buffer, recipient shorter than the native address width.
    """
    pass


# ==================== Argument Errors ====================


class InvalidArgumentError(BridgeError):
    """Raised when an entry-point argument is malformed.

    Examples: a depositor that is not a 20-byte hex address, a boolean or
    negative deposit nonce, a withdrawal amount outside the uint256 range.
    """
    pass


# ==================== Custody Errors ====================


class CustodyError(BridgeError):
    """Raised when a custody ledger operation fails."""
    pass


class InsufficientCustodyError(CustodyError):
    """Raised when a release would drive a custody balance below zero."""

    def __init__(
        self,
        message: str,
        requested: Optional[int] = None,
        available: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.requested = requested
        self.available = available


class ExternalAssetCallError(CustodyError):
    """Raised when an asset contract call fails or returns an ambiguous result."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.operation = operation


# ==================== Record Errors ====================


class DuplicateDepositError(BridgeError):
    """Raised when a (destination chain, nonce) key already holds a deposit record."""
    pass


# ==================== Asset Contract Errors ====================


class AssetContractError(BridgeError):
    """Raised by the reference ERC20 contract when a token operation is rejected."""
    pass


# ==================== Configuration Errors ====================


class ConfigurationError(BridgeError):
    """Raised when handler configuration is missing or invalid."""
    recoverable = False


# ==================== Utility Functions ====================


def is_recoverable_error(exc: Exception) -> bool:
    """Check if an exception represents a recoverable error.

    Bridge errors are never retried automatically; value movement is not
    idempotent, so only transient transport-level errors qualify.

    Args:
        exc: The exception to check

    Returns:
        True if the error is recoverable and the operation can be retried
    """
    if isinstance(exc, BridgeError):
        return exc.recoverable

    recoverable_types = (
        ConnectionError,
        TimeoutError,
    )
    return isinstance(exc, recoverable_types)


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, BridgeError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, InsufficientCustodyError):
        if exc.requested is not None:
            context["requested"] = exc.requested
        if exc.available is not None:
            context["available"] = exc.available

    if isinstance(exc, ExternalAssetCallError) and exc.operation:
        context["operation"] = exc.operation

    return context
