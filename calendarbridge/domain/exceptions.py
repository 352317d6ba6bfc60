"""
Domain-specific exception hierarchy for the calendar integration engine.

Every error carries the HTTP status the booking endpoints answer with, so
the outer layers can translate without knowing each subclass.
"""

from __future__ import annotations

from typing import Optional


class CalendarBridgeError(Exception):
    """Base class for all application-level errors."""

    status_code = 500
    error = "Calendar operation failed"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.error)
        self.message = message or self.error


class InvalidRequest(CalendarBridgeError):
    """Raised when a required input is missing or malformed."""

    status_code = 400
    error = "Invalid request"


class ConnectionNotFound(CalendarBridgeError):
    """Raised when no active calendar connection matches a business/program."""

    status_code = 404
    error = "No calendar connection found for this business/program"


class EventNotFound(CalendarBridgeError):
    """Raised when the vendor reports that an event does not exist."""

    status_code = 404
    error = "Event not found"


class ProviderCapabilityUnsupported(CalendarBridgeError):
    """Raised when an operation is attempted against a provider that cannot perform it."""

    error = "Operation not supported by calendar provider"

    def __init__(self, provider: str, operation: str) -> None:
        super().__init__(f"{provider} does not support {operation} via its API")
        self.provider = provider
        self.operation = operation


class ProviderAPIError(CalendarBridgeError):
    """Raised when a vendor API call fails or answers with a non-success status."""

    error = "Calendar provider request failed"

    def __init__(
        self,
        provider: str,
        message: str,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status = status


class TokenRefreshFailure(CalendarBridgeError):
    """Raised when an access token cannot be refreshed."""

    error = "Failed to refresh calendar access token"

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(message)
        self.provider = provider
