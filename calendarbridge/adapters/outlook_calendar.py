"""
Microsoft Graph API adapter for Outlook calendars.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import msal
import pendulum
import requests
from pendulum import DateTime

from ..config import OutlookConfig
from ..domain.exceptions import TokenRefreshFailure
from ..domain.models import (
    AccessToken,
    CalendarConnection,
    CalendarEvent,
    EventTime,
    ProviderTag,
)
from .base import DEFAULT_TIMEOUT_SECONDS, CalendarProviderAdapter

logger = logging.getLogger(__name__)

ClientApplicationFactory = Callable[..., Any]


class OutlookCalendarProvider(CalendarProviderAdapter):
    """
    Client for Microsoft Graph calendar operations.

    Event CRUD goes through ``/me/calendars/{id}/events``; windows are
    listed with ``/calendarView`` so recurring meetings are expanded.
    Token refresh uses an MSAL confidential client against the tenant stored
    in the connection's ``provider_config`` (``common`` by default).
    """

    provider = ProviderTag.OUTLOOK

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"

    # Ask Graph for plain-text bodies so descriptions round-trip unchanged.
    READ_HEADERS = {"Prefer": 'outlook.body-content-type="text"'}

    def __init__(
        self,
        client: OutlookConfig,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        app_factory: ClientApplicationFactory = msal.ConfidentialClientApplication,
    ):
        """
        Initialize the Graph adapter.

        Args:
            client: Azure AD application credentials and scopes
            session: Optional requests session
            timeout: Per-request timeout in seconds
            app_factory: Builds the MSAL client application used for refreshes
        """
        super().__init__(session=session, timeout=timeout)
        self.client = client
        self._app_factory = app_factory

    def get_authority_url(self, connection: CalendarConnection) -> str:
        """Get the formatted authority URL for the connection's tenant."""
        tenant_id = connection.provider_config.get("tenant_id") or self.client.default_tenant_id
        return f"https://login.microsoftonline.com/{tenant_id}"

    def refresh_token(self, connection: CalendarConnection) -> AccessToken:
        if not connection.refresh_token:
            raise TokenRefreshFailure(
                self.provider.value, "Outlook connection has no refresh token; reconnect the calendar"
            )

        try:
            app = self._app_factory(
                client_id=self.client.client_id,
                client_credential=self.client.client_secret,
                authority=self.get_authority_url(connection),
            )
            result = app.acquire_token_by_refresh_token(
                connection.refresh_token,
                scopes=self.client.scopes,
            )
        except (ValueError, requests.exceptions.RequestException) as exc:
            raise TokenRefreshFailure(
                self.provider.value, f"Failed to refresh Outlook token: {exc}"
            ) from exc

        if "access_token" not in result:
            error = result.get("error_description") or result.get("error") or "Unknown error"
            raise TokenRefreshFailure(self.provider.value, f"Failed to refresh Outlook token: {error}")

        logger.info("Refreshed outlook access token")
        return AccessToken(
            token=result["access_token"],
            expires_at=pendulum.now("UTC").add(seconds=int(result.get("expires_in", 3600))),
            refreshed=True,
        )

    def create_event(self, connection: CalendarConnection, event: CalendarEvent) -> CalendarEvent:
        response = self._request(
            "POST",
            self._events_url(connection),
            action="create Outlook event",
            token=connection.access_token,
            headers=self.READ_HEADERS,
            json=self._to_payload(event),
        )
        return self._parse_event(response.json())

    def get_event(self, connection: CalendarConnection, event_id: str) -> CalendarEvent:
        response = self._request(
            "GET",
            self._event_url(connection, event_id),
            action="get Outlook event",
            token=connection.access_token,
            event_id=event_id,
            headers=self.READ_HEADERS,
        )
        return self._parse_event(response.json())

    def update_event(
        self,
        connection: CalendarConnection,
        event_id: str,
        event: CalendarEvent,
    ) -> CalendarEvent:
        response = self._request(
            "PATCH",
            self._event_url(connection, event_id),
            action="update Outlook event",
            token=connection.access_token,
            event_id=event_id,
            headers=self.READ_HEADERS,
            json=self._to_payload(event),
        )
        return self._parse_event(response.json())

    def delete_event(
        self,
        connection: CalendarConnection,
        event_id: str,
        reason: Optional[str] = None,
    ) -> None:
        self._request(
            "DELETE",
            self._event_url(connection, event_id),
            action="delete Outlook event",
            token=connection.access_token,
            allow_missing=True,
        )

    def list_events(
        self,
        connection: CalendarConnection,
        start: DateTime,
        end: DateTime,
    ) -> List[CalendarEvent]:
        url: Optional[str] = f"{self._calendar_url(connection)}/calendarView"
        params: Optional[Dict[str, str]] = {
            "startDateTime": start.in_timezone("UTC").to_iso8601_string(),
            "endDateTime": end.in_timezone("UTC").to_iso8601_string(),
        }
        events: List[CalendarEvent] = []

        while url:
            response = self._request(
                "GET",
                url,
                action="list Outlook events",
                token=connection.access_token,
                headers=self.READ_HEADERS,
                params=params,
            )
            data = response.json()

            for item in data.get("value", []):
                try:
                    events.append(self._parse_event(item))
                except (KeyError, ValueError) as e:
                    logger.warning("Skipping unparseable Outlook event %s: %s", item.get("id"), e)

            # nextLink already carries the query string
            url = data.get("@odata.nextLink")
            params = None

        return events

    def _calendar_url(self, connection: CalendarConnection) -> str:
        if not connection.calendar_id or connection.calendar_id == "primary":
            return f"{self.GRAPH_API_ENDPOINT}/me/calendar"
        return f"{self.GRAPH_API_ENDPOINT}/me/calendars/{quote(connection.calendar_id, safe='')}"

    def _events_url(self, connection: CalendarConnection) -> str:
        return f"{self._calendar_url(connection)}/events"

    def _event_url(self, connection: CalendarConnection, event_id: str) -> str:
        return f"{self._events_url(connection)}/{quote(event_id, safe='')}"

    @staticmethod
    def _to_payload(event: CalendarEvent) -> Dict[str, Any]:
        """Build a Graph event body; times are wall-clock values in their zone."""
        payload: Dict[str, Any] = {
            "subject": event.summary,
            "body": {
                "contentType": "text",
                "content": event.description,
            },
            "start": {
                "dateTime": event.start.local_string(),
                "timeZone": event.start.time_zone,
            },
            "end": {
                "dateTime": event.end.local_string(),
                "timeZone": event.end.time_zone,
            },
        }
        if event.reminders:
            payload["isReminderOn"] = True
            payload["reminderMinutesBeforeStart"] = min(r.minutes for r in event.reminders)
        return payload

    def _parse_event(self, data: Dict[str, Any]) -> CalendarEvent:
        """
        Parse a Graph event resource into the domain model.

        Response format (relevant parts):
        {
            "id": "AAMkAG...",
            "subject": "...",
            "body": {"contentType": "text", "content": "..."},
            "start": {"dateTime": "2024-06-10T18:00:00.0000000", "timeZone": "UTC"},
            "end": {"dateTime": "2024-06-10T18:30:00.0000000", "timeZone": "UTC"},
            "webLink": "https://outlook.office365.com/owa/?itemid=..."
        }
        """
        return CalendarEvent(
            id=data.get("id", ""),
            summary=data.get("subject") or "",
            description=(data.get("body") or {}).get("content") or "",
            start=self._parse_time(data["start"]),
            end=self._parse_time(data["end"]),
            html_link=data.get("webLink"),
        )

    def _parse_time(self, node: Dict[str, Any]) -> EventTime:
        zone = self._zone_or_utc(node.get("timeZone"))
        return EventTime(date_time=self._parse_datetime(node["dateTime"], zone), time_zone=zone)
