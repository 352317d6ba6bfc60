"""
Tests for the Microsoft Graph (Outlook) adapter.
"""

import json

import pendulum
import pytest
import responses
from responses import matchers

from calendarbridge.adapters.outlook_calendar import OutlookCalendarProvider
from calendarbridge.config import OutlookConfig
from calendarbridge.domain.exceptions import EventNotFound, TokenRefreshFailure
from calendarbridge.domain.models import CalendarEvent, EventTime, ProviderTag, Reminder

TZ = "America/New_York"
GRAPH = "https://graph.microsoft.com/v1.0"


class FakeClientApplication:
    """Stands in for msal.ConfidentialClientApplication."""

    instances = []

    def __init__(self, client_id, client_credential, authority, result=None):
        self.client_id = client_id
        self.client_credential = client_credential
        self.authority = authority
        self.result = result
        self.refresh_calls = []
        FakeClientApplication.instances.append(self)

    def acquire_token_by_refresh_token(self, refresh_token, scopes):
        self.refresh_calls.append((refresh_token, scopes))
        return self.result


def _factory(result):
    FakeClientApplication.instances = []

    def build(**kwargs):
        return FakeClientApplication(result=result, **kwargs)

    return build


def _provider(result=None) -> OutlookCalendarProvider:
    return OutlookCalendarProvider(
        OutlookConfig(client_id="oid", client_secret="osecret"),
        app_factory=_factory(result or {}),
    )


def _connection(make_connection, **overrides):
    return make_connection(provider=ProviderTag.OUTLOOK, **overrides)


def _graph_event(event_id="AAMk-1", start="2024-06-10T18:00:00.0000000", end="2024-06-10T18:30:00.0000000"):
    return {
        "id": event_id,
        "subject": "Appointment: Jane Doe",
        "body": {"contentType": "text", "content": "Patient: Jane Doe"},
        "start": {"dateTime": start, "timeZone": "UTC"},
        "end": {"dateTime": end, "timeZone": "UTC"},
        "webLink": f"https://outlook.office365.com/owa/?itemid={event_id}",
    }


def _event(**overrides) -> CalendarEvent:
    start = pendulum.parse("2024-06-10 14:00", tz=TZ)
    values = {
        "summary": "Appointment: Jane Doe",
        "description": "Patient: Jane Doe",
        "start": EventTime(date_time=start, time_zone=TZ),
        "end": EventTime(date_time=start.add(minutes=30), time_zone=TZ),
    }
    values.update(overrides)
    return CalendarEvent(**values)


class TestOutlookEvents:
    """Event CRUD against Microsoft Graph."""

    @responses.activate
    def test_create_event_on_default_calendar(self, make_connection):
        """Times are sent as wall-clock values tagged with their zone."""
        responses.add(responses.POST, f"{GRAPH}/me/calendar/events", json=_graph_event(), status=201)
        event = _event(reminders=(Reminder("email", 1440), Reminder("popup", 60)))

        created = _provider().create_event(_connection(make_connection), event)

        request = responses.calls[0].request
        body = json.loads(request.body)
        assert body["subject"] == "Appointment: Jane Doe"
        assert body["body"] == {"contentType": "text", "content": "Patient: Jane Doe"}
        assert body["start"] == {"dateTime": "2024-06-10T14:00:00", "timeZone": TZ}
        assert body["end"] == {"dateTime": "2024-06-10T14:30:00", "timeZone": TZ}
        assert body["isReminderOn"] is True
        assert body["reminderMinutesBeforeStart"] == 60
        assert request.headers["Prefer"] == 'outlook.body-content-type="text"'
        assert created.id == "AAMk-1"
        assert created.html_link.endswith("itemid=AAMk-1")
        assert created.start.date_time == event.start.date_time
        assert created.end.date_time == event.end.date_time

    @responses.activate
    def test_seven_digit_fractions_are_parsed(self, make_connection):
        """Graph timestamps with 100ns precision parse to the right instant."""
        responses.add(responses.GET, f"{GRAPH}/me/calendar/events/AAMk-1", json=_graph_event())

        event = _provider().get_event(_connection(make_connection), "AAMk-1")

        assert event.start.date_time == pendulum.parse("2024-06-10T18:00:00+00:00")
        assert event.duration_minutes() == 30

    @responses.activate
    def test_named_calendar_url(self, make_connection):
        responses.add(responses.PATCH, f"{GRAPH}/me/calendars/cal-42/events/AAMk-1", json=_graph_event())

        _provider().update_event(_connection(make_connection, calendar_id="cal-42"), "AAMk-1", _event())

        assert responses.calls[0].request.method == "PATCH"

    @responses.activate
    def test_get_missing_event(self, make_connection):
        responses.add(
            responses.GET,
            f"{GRAPH}/me/calendar/events/nope",
            json={"error": {"code": "ErrorItemNotFound", "message": "The specified object was not found in the store."}},
            status=404,
        )

        with pytest.raises(EventNotFound, match="not found in the store"):
            _provider().get_event(_connection(make_connection), "nope")

    @responses.activate
    def test_delete_tolerates_missing_event(self, make_connection):
        responses.add(responses.DELETE, f"{GRAPH}/me/calendar/events/nope", status=404)

        _provider().delete_event(_connection(make_connection), "nope")

    @responses.activate
    def test_list_events_follows_next_link(self, make_connection):
        next_link = f"{GRAPH}/me/calendar/calendarView?$skiptoken=abc"
        responses.add(
            responses.GET,
            f"{GRAPH}/me/calendar/calendarView",
            match=[matchers.query_param_matcher(
                {
                    "startDateTime": "2024-06-10T18:00:00Z",
                    "endDateTime": "2024-06-10T18:30:00Z",
                }
            )],
            json={"value": [_graph_event("AAMk-1")], "@odata.nextLink": next_link},
        )
        responses.add(
            responses.GET,
            f"{GRAPH}/me/calendar/calendarView",
            match=[matchers.query_param_matcher({"$skiptoken": "abc"})],
            json={"value": [_graph_event("AAMk-2")]},
        )
        start = pendulum.parse("2024-06-10 14:00", tz=TZ)

        events = _provider().list_events(_connection(make_connection), start, start.add(minutes=30))

        assert [e.id for e in events] == ["AAMk-1", "AAMk-2"]


class TestOutlookTokens:
    """MSAL-backed token refresh."""

    def test_refresh_uses_connection_tenant(self, make_connection):
        provider = _provider({"access_token": "graph-token", "expires_in": 3600})
        connection = _connection(make_connection, provider_config={"tenant_id": "tenant-123"})

        token = provider.refresh_token(connection)

        app = FakeClientApplication.instances[0]
        assert app.authority == "https://login.microsoftonline.com/tenant-123"
        assert app.client_id == "oid"
        assert app.client_credential == "osecret"
        assert app.refresh_calls == [
            ("refresh-token", ["https://graph.microsoft.com/Calendars.ReadWrite"])
        ]
        assert token.token == "graph-token"
        assert token.refreshed is True

    def test_default_tenant_is_common(self, make_connection):
        provider = _provider()

        assert provider.get_authority_url(_connection(make_connection)) == "https://login.microsoftonline.com/common"

    def test_refresh_error_result(self, make_connection):
        provider = _provider({"error": "invalid_grant", "error_description": "AADSTS70008: expired"})

        with pytest.raises(TokenRefreshFailure, match="AADSTS70008"):
            provider.refresh_token(_connection(make_connection))

    def test_refresh_without_refresh_token(self, make_connection):
        with pytest.raises(TokenRefreshFailure):
            _provider().refresh_token(_connection(make_connection, refresh_token=None))
