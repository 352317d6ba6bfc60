"""
Calendly API v2 adapter.

Calendly only exposes scheduled events for reading and cancellation; new
bookings are made by invitees through scheduling links, so event creation
and updates are refused outright.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from pendulum import DateTime

from ..config import OAuthClientConfig
from ..domain.exceptions import ProviderCapabilityUnsupported, TokenRefreshFailure
from ..domain.models import (
    AccessToken,
    CalendarConnection,
    CalendarEvent,
    EventTime,
    ProviderTag,
)
from .base import DEFAULT_TIMEOUT_SECONDS, CalendarProviderAdapter

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "Cancelled via AI Receptionist"


class CalendlyProvider(CalendarProviderAdapter):
    """Read, list and cancel Calendly scheduled events."""

    provider = ProviderTag.CALENDLY
    supports_event_writes = False
    supports_soft_cancel = False

    BASE_URL = "https://api.calendly.com"
    TOKEN_URL = "https://auth.calendly.com/oauth/token"  # noqa: S105 - OAuth endpoint URL

    def __init__(
        self,
        client: OAuthClientConfig,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(session=session, timeout=timeout)
        self.client = client

    def refresh_token(self, connection: CalendarConnection) -> AccessToken:
        """
        Return a usable Calendly credential.

        OAuth connections are refreshed through Calendly's token endpoint;
        personal access tokens (``api_key``) do not expire and are returned as-is.
        """
        if connection.refresh_token and self.client.is_configured():
            return self._refresh_with_token_endpoint(
                self.TOKEN_URL,
                {
                    "grant_type": "refresh_token",
                    "refresh_token": connection.refresh_token,
                    "client_id": self.client.client_id,
                    "client_secret": self.client.client_secret,
                },
            )

        if connection.api_key:
            return AccessToken(token=connection.api_key)

        raise TokenRefreshFailure(self.provider.value, "Calendly API key not found")

    def create_event(self, connection: CalendarConnection, event: CalendarEvent) -> CalendarEvent:
        raise ProviderCapabilityUnsupported(self.provider.value, "event creation")

    def update_event(
        self,
        connection: CalendarConnection,
        event_id: str,
        event: CalendarEvent,
    ) -> CalendarEvent:
        raise ProviderCapabilityUnsupported(self.provider.value, "event updates")

    def get_event(self, connection: CalendarConnection, event_id: str) -> CalendarEvent:
        response = self._request(
            "GET",
            f"{self.BASE_URL}/scheduled_events/{quote(event_id, safe='')}",
            action="get Calendly event",
            token=self._credential(connection),
            event_id=event_id,
        )
        return self._parse_event(response.json()["resource"])

    def delete_event(
        self,
        connection: CalendarConnection,
        event_id: str,
        reason: Optional[str] = None,
    ) -> None:
        self._request(
            "POST",
            f"{self.BASE_URL}/scheduled_events/{quote(event_id, safe='')}/cancellation",
            action="cancel Calendly event",
            token=self._credential(connection),
            allow_missing=True,
            json={"reason": reason or DEFAULT_CANCEL_REASON},
        )

    def list_events(
        self,
        connection: CalendarConnection,
        start: DateTime,
        end: DateTime,
    ) -> List[CalendarEvent]:
        url: Optional[str] = f"{self.BASE_URL}/scheduled_events"
        params: Optional[Dict[str, str]] = {
            "user": connection.provider_config.get("user_uri") or connection.email,
            "min_start_time": start.in_timezone("UTC").to_iso8601_string(),
            "max_start_time": end.in_timezone("UTC").to_iso8601_string(),
            "status": "active",
        }
        events: List[CalendarEvent] = []

        while url:
            response = self._request(
                "GET",
                url,
                action="list Calendly events",
                token=self._credential(connection),
                params=params,
            )
            data = response.json()

            for item in data.get("collection", []):
                try:
                    events.append(self._parse_event(item))
                except (KeyError, ValueError) as e:
                    logger.warning("Skipping unparseable Calendly event %s: %s", item.get("uri"), e)

            url = (data.get("pagination") or {}).get("next_page")
            params = None

        return events

    @staticmethod
    def _credential(connection: CalendarConnection) -> str:
        return connection.api_key or connection.access_token

    def _parse_event(self, data: Dict[str, Any]) -> CalendarEvent:
        """
        Parse a Calendly scheduled event into the domain model.

        The event id is the last path segment of the event URI; the deep link
        is the meeting location (join URL) when one is set.
        """
        uri = data["uri"]
        zone = self._zone_or_utc(data.get("timezone"))
        location = data.get("location") or {}
        return CalendarEvent(
            id=uri.rstrip("/").rsplit("/", 1)[-1] or uri,
            summary=data.get("name") or "",
            description=data.get("description") or data.get("meeting_notes_plain") or "",
            start=EventTime(date_time=self._parse_datetime(data["start_time"], zone), time_zone=zone),
            end=EventTime(date_time=self._parse_datetime(data["end_time"], zone), time_zone=zone),
            html_link=location.get("join_url") or location.get("location") or uri,
        )
