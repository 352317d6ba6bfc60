"""
Google Calendar API v3 adapter.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from pendulum import DateTime

from ..config import OAuthClientConfig
from ..domain.exceptions import ProviderAPIError, TokenRefreshFailure
from ..domain.models import (
    AccessToken,
    CalendarConnection,
    CalendarEvent,
    EventTime,
    ProviderTag,
    Reminder,
)
from .base import DEFAULT_TIMEOUT_SECONDS, CalendarProviderAdapter

logger = logging.getLogger(__name__)


class GoogleCalendarProvider(CalendarProviderAdapter):
    """
    Client for Google Calendar event operations.

    Events are written with ``POST``/``PATCH`` on
    ``/calendars/{calendarId}/events`` and listed with ``singleEvents=true``
    so recurring series are expanded into their instances.
    """

    provider = ProviderTag.GOOGLE

    CALENDAR_API_ENDPOINT = "https://www.googleapis.com/calendar/v3"
    TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL

    def __init__(
        self,
        client: OAuthClientConfig,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(session=session, timeout=timeout)
        self.client = client

    def refresh_token(self, connection: CalendarConnection) -> AccessToken:
        if not connection.refresh_token:
            raise TokenRefreshFailure(
                self.provider.value, "Google connection has no refresh token; reconnect the calendar"
            )

        return self._refresh_with_token_endpoint(
            self.TOKEN_URL,
            {
                "client_id": self.client.client_id,
                "client_secret": self.client.client_secret,
                "refresh_token": connection.refresh_token,
                "grant_type": "refresh_token",
            },
        )

    def get_primary_calendar_id(self, connection: CalendarConnection) -> str:
        """
        Look up the id of the account's primary calendar.

        Booking operations never call this; they use the stored
        ``calendar_id`` (``primary`` by default). It exists for the external
        OAuth onboarding flow, which records the real id on a new
        connection. Falls back to the ``primary`` alias when the lookup is
        refused.
        """
        url = f"{self.CALENDAR_API_ENDPOINT}/users/me/calendarList/primary"
        try:
            response = self._request("GET", url, action="look up primary calendar", token=connection.access_token)
        except ProviderAPIError as exc:
            logger.warning("Primary calendar lookup failed, using 'primary': %s", exc)
            return "primary"
        return response.json().get("id") or "primary"

    def create_event(self, connection: CalendarConnection, event: CalendarEvent) -> CalendarEvent:
        response = self._request(
            "POST",
            self._events_url(connection),
            action="create Google event",
            token=connection.access_token,
            json=self._to_payload(event),
        )
        return self._parse_event(response.json())

    def get_event(self, connection: CalendarConnection, event_id: str) -> CalendarEvent:
        response = self._request(
            "GET",
            self._event_url(connection, event_id),
            action="get Google event",
            token=connection.access_token,
            event_id=event_id,
        )
        return self._parse_event(response.json())

    def update_event(
        self,
        connection: CalendarConnection,
        event_id: str,
        event: CalendarEvent,
    ) -> CalendarEvent:
        # PATCH keeps attendees, conferencing and other fields we do not model.
        response = self._request(
            "PATCH",
            self._event_url(connection, event_id),
            action="update Google event",
            token=connection.access_token,
            event_id=event_id,
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
            action="delete Google event",
            token=connection.access_token,
            allow_missing=True,
        )

    def list_events(
        self,
        connection: CalendarConnection,
        start: DateTime,
        end: DateTime,
    ) -> List[CalendarEvent]:
        params: Dict[str, Any] = {
            "timeMin": start.in_timezone("UTC").to_iso8601_string(),
            "timeMax": end.in_timezone("UTC").to_iso8601_string(),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        events: List[CalendarEvent] = []

        while True:
            response = self._request(
                "GET",
                self._events_url(connection),
                action="list Google events",
                token=connection.access_token,
                params=params,
            )
            data = response.json()
            calendar_zone = data.get("timeZone")

            for item in data.get("items", []):
                try:
                    events.append(self._parse_event(item, default_zone=calendar_zone))
                except (KeyError, ValueError) as e:
                    logger.warning("Skipping unparseable Google event %s: %s", item.get("id"), e)

            page_token = data.get("nextPageToken")
            if not page_token:
                return events
            params = {**params, "pageToken": page_token}

    def _events_url(self, connection: CalendarConnection) -> str:
        calendar_id = quote(connection.calendar_id or "primary", safe="")
        return f"{self.CALENDAR_API_ENDPOINT}/calendars/{calendar_id}/events"

    def _event_url(self, connection: CalendarConnection, event_id: str) -> str:
        return f"{self._events_url(connection)}/{quote(event_id, safe='')}"

    @staticmethod
    def _to_payload(event: CalendarEvent) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "summary": event.summary,
            "description": event.description,
            "start": {
                "dateTime": event.start.to_iso8601_string(),
                "timeZone": event.start.time_zone,
            },
            "end": {
                "dateTime": event.end.to_iso8601_string(),
                "timeZone": event.end.time_zone,
            },
        }
        if event.reminders:
            payload["reminders"] = {
                "useDefault": False,
                "overrides": [
                    {"method": reminder.method, "minutes": reminder.minutes}
                    for reminder in event.reminders
                ],
            }
        return payload

    def _parse_event(self, data: Dict[str, Any], default_zone: Optional[str] = None) -> CalendarEvent:
        """
        Parse a Google event resource into the domain model.

        Timed events carry ``dateTime``; all-day events only a ``date``,
        which is read as midnight in the event (or calendar) zone.
        """
        overrides = (data.get("reminders") or {}).get("overrides") or []
        return CalendarEvent(
            id=data.get("id", ""),
            summary=data.get("summary", ""),
            description=data.get("description") or "",
            start=self._parse_time(data["start"], default_zone),
            end=self._parse_time(data["end"], default_zone),
            html_link=data.get("htmlLink"),
            reminders=tuple(
                Reminder(method=item["method"], minutes=int(item["minutes"]))
                for item in overrides
                if "method" in item and "minutes" in item
            ),
        )

    def _parse_time(self, node: Dict[str, Any], default_zone: Optional[str]) -> EventTime:
        zone = self._zone_or_utc(node.get("timeZone") or default_zone)
        if "dateTime" in node:
            return EventTime(date_time=self._parse_datetime(node["dateTime"], zone), time_zone=zone)
        return EventTime(date_time=self._parse_datetime(node["date"], zone), time_zone=zone)
