"""
Tests for domain models.
"""

import pendulum
import pytest

from calendarbridge.domain.exceptions import InvalidRequest
from calendarbridge.domain.models import (
    AccessToken,
    CalendarConnection,
    CalendarEvent,
    EventTime,
    ProviderTag,
    Slot,
    TimeRange,
    local_datetime,
)


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        start = pendulum.parse("2024-06-10 09:00", tz="America/New_York")
        end = pendulum.parse("2024-06-10 09:45", tz="America/New_York")

        tr = TimeRange(start=start, end=end)

        assert tr.duration_minutes() == 45

    def test_invalid_time_range_raises_error(self):
        """Test that creating an invalid time range raises ValueError."""
        start = pendulum.parse("2024-06-10 17:00", tz="America/New_York")
        end = pendulum.parse("2024-06-10 09:00", tz="America/New_York")

        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            TimeRange(start=start, end=end)

    def test_adjacent_ranges_do_not_overlap(self):
        """Back-to-back windows share only a boundary."""
        first = TimeRange(
            start=pendulum.parse("2024-06-10 13:00", tz="America/New_York"),
            end=pendulum.parse("2024-06-10 14:00", tz="America/New_York"),
        )
        second = TimeRange(
            start=pendulum.parse("2024-06-10 14:00", tz="America/New_York"),
            end=pendulum.parse("2024-06-10 14:30", tz="America/New_York"),
        )

        assert not first.overlaps(second)
        assert not second.overlaps(first)


class TestCalendarEvent:
    """Tests for the vendor-neutral event."""

    def _event(self, start: str, end: str) -> CalendarEvent:
        tz = "America/New_York"
        return CalendarEvent(
            summary="Appointment",
            description="",
            start=EventTime(date_time=pendulum.parse(start, tz=tz), time_zone=tz),
            end=EventTime(date_time=pendulum.parse(end, tz=tz), time_zone=tz),
        )

    def test_duration_in_minutes(self):
        """Duration is derived from start and end."""
        assert self._event("2024-06-10 14:00", "2024-06-10 15:15").duration_minutes() == 75

    def test_start_must_precede_end(self):
        """Zero-length events are rejected."""
        with pytest.raises(ValueError):
            self._event("2024-06-10 14:00", "2024-06-10 14:00")

    def test_event_time_renders_in_its_zone(self):
        """An instant stored in UTC is shown in the event's own zone."""
        instant = pendulum.parse("2024-06-10T18:00:00+00:00")
        event_time = EventTime(date_time=instant, time_zone="America/New_York")

        assert event_time.to_iso8601_string() == "2024-06-10T14:00:00-04:00"
        assert event_time.local_string() == "2024-06-10T14:00:00"


class TestSlot:
    """Tests for booking slots."""

    def test_window_spans_duration(self):
        """The absolute window starts at the local time and lasts the duration."""
        slot = Slot(date=pendulum.date(2024, 6, 10), time="14:00", duration_minutes=30)

        window = slot.window("America/New_York")

        assert window.start.to_iso8601_string() == "2024-06-10T14:00:00-04:00"
        assert window.duration_minutes() == 30

    def test_to_dict(self):
        """Slots serialize to date and time strings."""
        slot = Slot(date=pendulum.date(2024, 6, 11), time="09:00", duration_minutes=30)

        assert slot.to_dict() == {"date": "2024-06-11", "time": "09:00"}


class TestLocalDatetime:
    """Tests for combining request dates and times."""

    def test_parses_in_zone(self):
        dt = local_datetime("2024-06-10", "14:00", "America/New_York")

        assert dt.hour == 14
        assert dt.in_timezone("UTC").hour == 18

    @pytest.mark.parametrize(
        "date,time",
        [("10/06/2024", "14:00"), ("2024-06-10", "2pm"), ("2024-02-30", "10:00")],
    )
    def test_malformed_input_is_invalid_request(self, date, time):
        with pytest.raises(InvalidRequest):
            local_datetime(date, time, "America/New_York")


class TestCalendarConnection:
    """Tests for connection records."""

    def test_from_record_defaults(self):
        """Missing optional columns fall back to defaults."""
        connection = CalendarConnection.from_record(
            {
                "id": 7,
                "business_id": "biz-1",
                "provider": "outlook",
                "access_token": "tok",
                "token_expires_at": "2024-06-10T12:00:00Z",
            }
        )

        assert connection.id == "7"
        assert connection.provider is ProviderTag.OUTLOOK
        assert connection.calendar_id == "primary"
        assert connection.program_id is None
        assert connection.is_active is True
        assert connection.provider_config == {}

    def test_from_record_rejects_unknown_provider(self):
        with pytest.raises(ValueError, match="Invalid calendar connection record"):
            CalendarConnection.from_record(
                {
                    "id": "c",
                    "business_id": "b",
                    "provider": "icloud",
                    "token_expires_at": "2024-06-10T12:00:00Z",
                }
            )

    def test_record_round_trip(self, make_connection):
        """to_record output is accepted by from_record."""
        connection = make_connection(program_id="prog-1", provider_config={"tenant_id": "t-1"})

        assert CalendarConnection.from_record(connection.to_record()) == connection

    def test_with_token_replaces_token_and_expiry(self, make_connection):
        connection = make_connection()
        expiry = pendulum.parse("2024-06-10T17:00:00+00:00")

        updated = connection.with_token(AccessToken(token="new", expires_at=expiry, refreshed=True))

        assert updated.access_token == "new"
        assert updated.token_expires_at == expiry
        assert connection.access_token == "stored-token"

    def test_with_token_keeps_expiry_when_unknown(self, make_connection):
        connection = make_connection()

        updated = connection.with_token(AccessToken(token="api-key"))

        assert updated.token_expires_at == connection.token_expires_at
