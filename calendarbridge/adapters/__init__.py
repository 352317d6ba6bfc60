"""
Adapters layer - External integrations (calendar vendors, connection storage).
"""

from .base import CalendarProviderAdapter
from .calendly import CalendlyProvider
from .connection_store import ConnectionStore, InMemoryConnectionStore
from .factory import adapter_factory, build_connection_store, get_calendar_provider
from .google_calendar import GoogleCalendarProvider
from .outlook_calendar import OutlookCalendarProvider

__all__ = [
    "CalendarProviderAdapter",
    "CalendlyProvider",
    "ConnectionStore",
    "GoogleCalendarProvider",
    "InMemoryConnectionStore",
    "OutlookCalendarProvider",
    "adapter_factory",
    "build_connection_store",
    "get_calendar_provider",
]
