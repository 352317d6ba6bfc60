"""
Application services layer.
"""

from .booking_service import (
    AvailabilityResult,
    BookingDetails,
    BookingResult,
    BookingService,
    CancellationResult,
)
from .connection_resolver import ConnectionResolver
from .token_guard import TokenFreshnessGuard, ensure_fresh_token

__all__ = [
    "AvailabilityResult",
    "BookingDetails",
    "BookingResult",
    "BookingService",
    "CancellationResult",
    "ConnectionResolver",
    "TokenFreshnessGuard",
    "ensure_fresh_token",
]
