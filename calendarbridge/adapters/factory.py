"""
Maps a connection's provider tag to its adapter.
"""

from __future__ import annotations

from typing import Callable, Optional, assert_never

import requests

from ..config import AppConfig
from ..domain.models import ProviderTag
from .base import CalendarProviderAdapter
from .calendly import CalendlyProvider
from .connection_store import ConnectionStore, InMemoryConnectionStore
from .google_calendar import GoogleCalendarProvider
from .outlook_calendar import OutlookCalendarProvider

AdapterFactory = Callable[[ProviderTag], CalendarProviderAdapter]


def get_calendar_provider(
    provider: ProviderTag,
    config: AppConfig,
    session: Optional[requests.Session] = None,
) -> CalendarProviderAdapter:
    """
    Build the adapter for ``provider``.

    The match is exhaustive over ``ProviderTag``; a type checker flags the
    ``assert_never`` branch if a new tag is added without an adapter.
    """
    timeout = config.http.timeout_seconds

    match provider:
        case ProviderTag.GOOGLE:
            return GoogleCalendarProvider(config.google, session=session, timeout=timeout)
        case ProviderTag.OUTLOOK:
            return OutlookCalendarProvider(config.outlook, session=session, timeout=timeout)
        case ProviderTag.CALENDLY:
            return CalendlyProvider(config.calendly, session=session, timeout=timeout)
        case _:
            assert_never(provider)


def adapter_factory(config: AppConfig, session: Optional[requests.Session] = None) -> AdapterFactory:
    """Bind ``config`` (and an optional shared session) into an adapter factory."""
    def build(provider: ProviderTag) -> CalendarProviderAdapter:
        return get_calendar_provider(provider, config, session=session)

    return build


def build_connection_store(config: AppConfig) -> ConnectionStore:
    """Open the connection store selected in ``config.storage``."""
    storage = config.storage

    match storage.backend:
        case "supabase":
            # Imported lazily so the memory backend works without Supabase credentials.
            from .supabase_store import SupabaseConnectionStore

            return SupabaseConnectionStore(storage.supabase_url, storage.supabase_key, table=storage.table)
        case "memory":
            if storage.connections_file is None:
                return InMemoryConnectionStore()
            return InMemoryConnectionStore.from_json_file(storage.connections_file)
        case _:
            raise ValueError(f"Unknown storage backend: {storage.backend}")
