"""
Error taxonomy shared by the gateway, order services and API layer.

Every error carries a human-readable message plus arbitrary keyword context
that is logged alongside it. The API layer maps each class to an HTTP status.
"""

from typing import Any


class CleanWashError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class GatewayError(CleanWashError):
    """Raised when the backing store or change feed cannot serve a request."""

    pass


class OrderValidationError(CleanWashError):
    """Raised when a request is rejected before reaching storage."""

    pass


class IdentityResolutionError(CleanWashError):
    """Raised when the acting user's identity is required but unavailable."""

    pass


class NotificationError(CleanWashError):
    """Raised when a notification cannot be delivered."""

    pass


class OrderNotFoundError(CleanWashError):
    """Raised when an order does not exist."""

    pass


class OrderPermissionError(CleanWashError):
    """Raised when an actor may not act on an order."""

    pass
