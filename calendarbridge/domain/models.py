"""
Domain models for calendar connections, normalized events and booking slots.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pendulum
from pendulum import Date, DateTime

from .exceptions import InvalidRequest


class ProviderTag(str, Enum):
    """The calendar vendors a connection can point at."""
    GOOGLE = "google"
    OUTLOOK = "outlook"
    CALENDLY = "calendly"


class CancelMethod(str, Enum):
    """How a cancellation was carried out."""
    MARKED_CANCELLED = "marked_cancelled"
    DELETED = "deleted"


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and self.end > other.start

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class EventTime:
    """An absolute instant together with the named zone it should be shown in."""
    date_time: DateTime
    time_zone: str

    def to_iso8601_string(self) -> str:
        return self.date_time.in_timezone(self.time_zone).to_iso8601_string()

    def local_string(self) -> str:
        """Wall-clock time in the event's zone, without an offset."""
        return self.date_time.in_timezone(self.time_zone).format("YYYY-MM-DDTHH:mm:ss")


@dataclass(frozen=True)
class Reminder:
    """A notification the vendor should send ahead of an event."""
    method: str
    minutes: int


@dataclass(frozen=True)
class CalendarEvent:
    """
    Vendor-neutral calendar event.

    Invariant: start must strictly precede end.
    """
    summary: str
    description: str
    start: EventTime
    end: EventTime
    id: str = ""
    html_link: Optional[str] = None
    reminders: Tuple[Reminder, ...] = ()

    def __post_init__(self):
        if self.start.date_time >= self.end.date_time:
            raise ValueError(
                f"Event start {self.start.date_time} must be before end {self.end.date_time}"
            )

    def duration_minutes(self) -> int:
        """Return the event length in whole minutes."""
        return round((self.end.date_time - self.start.date_time).total_seconds() / 60)

    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start.date_time, end=self.end.date_time)

    def replace(self, **changes: Any) -> "CalendarEvent":
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class AvailabilityCheck:
    """Outcome of probing a single window."""
    available: bool
    conflicts: List[CalendarEvent] = field(default_factory=list)


@dataclass(frozen=True)
class Slot:
    """A candidate booking window expressed in local date and time."""
    date: Date
    time: str
    duration_minutes: int

    def window(self, timezone: str) -> TimeRange:
        """Return the absolute ``[start, start + duration)`` range in ``timezone``."""
        start = local_datetime(self.date.to_date_string(), self.time, timezone)
        return TimeRange(start=start, end=start.add(minutes=self.duration_minutes))

    def to_dict(self) -> Dict[str, str]:
        return {"date": self.date.to_date_string(), "time": self.time}


@dataclass(frozen=True)
class AccessToken:
    """A usable access token, possibly freshly obtained from the vendor."""
    token: str
    expires_at: Optional[DateTime] = None
    refreshed: bool = False


@dataclass(frozen=True)
class CalendarConnection:
    """
    A business (and optionally one of its programs) bound to one vendor calendar.
    """
    id: str
    business_id: str
    provider: ProviderTag
    calendar_id: str
    email: str
    access_token: str
    token_expires_at: DateTime
    program_id: Optional[str] = None
    refresh_token: Optional[str] = None
    is_active: bool = True
    sync_status: str = "pending"
    api_key: Optional[str] = None
    provider_config: Mapping[str, Any] = field(default_factory=dict)

    def with_token(self, token: AccessToken) -> "CalendarConnection":
        """Return a copy carrying ``token`` (and its expiry, when known)."""
        changes: Dict[str, Any] = {"access_token": token.token}
        if token.expires_at is not None:
            changes["token_expires_at"] = token.expires_at
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "CalendarConnection":
        """Build a connection from a ``calendar_connections`` row."""
        try:
            return cls(
                id=str(record["id"]),
                business_id=str(record["business_id"]),
                program_id=record.get("program_id") or None,
                provider=ProviderTag(record.get("provider") or ProviderTag.GOOGLE.value),
                calendar_id=record.get("calendar_id") or "primary",
                email=record.get("email") or "",
                access_token=record.get("access_token") or "",
                refresh_token=record.get("refresh_token"),
                token_expires_at=pendulum.parse(record["token_expires_at"]),
                is_active=bool(record.get("is_active", True)),
                sync_status=record.get("sync_status") or "pending",
                api_key=record.get("api_key"),
                provider_config=record.get("provider_config") or {},
            )
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Invalid calendar connection record: {exc}") from exc

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "program_id": self.program_id,
            "provider": self.provider.value,
            "calendar_id": self.calendar_id,
            "email": self.email,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_expires_at": self.token_expires_at.to_iso8601_string(),
            "is_active": self.is_active,
            "sync_status": self.sync_status,
            "api_key": self.api_key,
            "provider_config": dict(self.provider_config),
        }


def local_datetime(date: str, time: str, timezone: str) -> DateTime:
    """
    Combine a ``YYYY-MM-DD`` date and an ``HH:mm`` time in ``timezone``.

    Raises:
        InvalidRequest: If either part cannot be parsed
    """
    try:
        return pendulum.from_format(f"{date} {time}", "YYYY-MM-DD HH:mm", tz=timezone)
    except ValueError as exc:
        raise InvalidRequest(
            f"Invalid date/time '{date} {time}': expected YYYY-MM-DD and HH:MM"
        ) from exc
