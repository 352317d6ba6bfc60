"""
Domain layer - Pure business logic without external dependencies.
"""

from .exceptions import (
    CalendarBridgeError,
    ConnectionNotFound,
    EventNotFound,
    InvalidRequest,
    ProviderAPIError,
    ProviderCapabilityUnsupported,
    TokenRefreshFailure,
)
from .models import (
    AccessToken,
    AvailabilityCheck,
    CalendarConnection,
    CalendarEvent,
    CancelMethod,
    EventTime,
    ProviderTag,
    Reminder,
    Slot,
    TimeRange,
)
from .slot_search import SlotSearchEngine

__all__ = [
    "AccessToken",
    "AvailabilityCheck",
    "CalendarBridgeError",
    "CalendarConnection",
    "CalendarEvent",
    "CancelMethod",
    "ConnectionNotFound",
    "EventNotFound",
    "EventTime",
    "InvalidRequest",
    "ProviderAPIError",
    "ProviderCapabilityUnsupported",
    "ProviderTag",
    "Reminder",
    "Slot",
    "SlotSearchEngine",
    "TimeRange",
    "TokenRefreshFailure",
]
