"""
Booking orchestration for phone-based appointment requests.

Each public operation resolves the applicable calendar connection, makes
sure its access token is usable (persisting a refreshed one), and then
drives the vendor adapter. Operations are independent request/response
units; nothing is kept between calls.

Known limitations: two requests refreshing the same token concurrently both
persist their result (last write wins), and nothing stops two callers from
booking the same free slot between a check and a create.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pendulum
import requests
from pendulum import DateTime

from ..adapters.base import CalendarProviderAdapter
from ..adapters.connection_store import ConnectionStore
from ..adapters.factory import AdapterFactory, adapter_factory
from ..config import AppConfig
from ..domain.exceptions import (
    CalendarBridgeError,
    InvalidRequest,
    ProviderCapabilityUnsupported,
)
from ..domain.models import (
    CalendarConnection,
    CalendarEvent,
    CancelMethod,
    EventTime,
    ProviderTag,
    Reminder,
    Slot,
    local_datetime,
)
from ..domain.slot_search import SlotSearchEngine
from .connection_resolver import ConnectionResolver
from .token_guard import TokenFreshnessGuard

logger = logging.getLogger(__name__)

CANCELLED_PREFIX = "[CANCELLED] "
DEFAULT_DESCRIPTION = "Appointment scheduled via {source}"


@dataclass(frozen=True)
class BookingDetails:
    """Caller-supplied facts written into the event description."""
    patient_name: Optional[str] = None
    service: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None

    def description_lines(self) -> List[str]:
        labelled = (
            ("Patient", self.patient_name),
            ("Service", self.service),
            ("Phone", self.phone),
            ("Email", self.email),
            ("Notes", self.notes),
        )
        return [f"{label}: {value}" for label, value in labelled if value]


@dataclass(frozen=True)
class BookingResult:
    event_id: str
    event_link: Optional[str]
    start: EventTime
    end: EventTime
    provider: ProviderTag

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_link": self.event_link,
            "start_time": self.start.to_iso8601_string(),
            "end_time": self.end.to_iso8601_string(),
            "provider": self.provider.value,
        }


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    requested: Slot
    provider: ProviderTag
    alternatives: List[Slot] = field(default_factory=list)
    conflicts: List[CalendarEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "requested_slot": {
                **self.requested.to_dict(),
                "duration_minutes": self.requested.duration_minutes,
            },
            "next_available_slots": [slot.to_dict() for slot in self.alternatives],
            "provider": self.provider.value,
        }


@dataclass(frozen=True)
class CancellationResult:
    event_id: str
    method: CancelMethod
    provider: ProviderTag

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "cancelled": True,
            "method": self.method.value,
            "provider": self.provider.value,
        }


class BookingService:
    """
    Create, reschedule, cancel and check bookings on whichever calendar a
    business has connected.

    Dependencies are injected so the service can run against the in-memory
    store and stub adapters in tests.
    """

    def __init__(
        self,
        store: ConnectionStore,
        adapters: AdapterFactory,
        *,
        timezone: str = "America/New_York",
        default_duration_minutes: int = 30,
        reminders: Sequence[Reminder] = (),
        source: str = "AI Receptionist",
        token_guard: Optional[TokenFreshnessGuard] = None,
        slot_search: Optional[SlotSearchEngine] = None,
        clock: Optional[Callable[[], DateTime]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._store = store
        self._adapters = adapters
        self._resolver = ConnectionResolver(store)
        self._token_guard = token_guard or TokenFreshnessGuard()
        self._slot_search = slot_search or SlotSearchEngine()
        self._clock = clock or (lambda: pendulum.now("UTC"))
        self.timezone = timezone
        self.default_duration_minutes = default_duration_minutes
        self.reminders: Tuple[Reminder, ...] = tuple(reminders)
        self.source = source
        # set when the service owns the HTTP session its adapters share
        self._session = session

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        store: ConnectionStore,
        session: Optional[requests.Session] = None,
    ) -> "BookingService":
        """
        Wire a service from application configuration.

        All adapters share one ``requests.Session``. A session passed in
        stays the caller's; otherwise the service creates one and releases it
        in ``close()``.
        """
        owned = None if session is not None else requests.Session()
        return cls(
            store,
            adapter_factory(config, session=session or owned),
            timezone=config.default_timezone,
            default_duration_minutes=config.booking.default_duration_minutes,
            reminders=[
                Reminder(method=r.method, minutes=r.minutes) for r in config.booking.reminders
            ],
            source=config.booking.source,
            token_guard=TokenFreshnessGuard(buffer_minutes=config.tokens.refresh_buffer_minutes),
            slot_search=SlotSearchEngine(
                start_times=config.search.start_times,
                days=config.search.days,
                max_results=config.search.max_alternatives,
            ),
            session=owned,
        )

    def close(self) -> None:
        """Close the HTTP session created by ``from_config``, if any."""
        if self._session is not None:
            self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create_booking(
        self,
        business_id: str,
        date: str,
        time: str,
        duration_minutes: Optional[int] = None,
        program_id: Optional[str] = None,
        details: Optional[BookingDetails] = None,
    ) -> BookingResult:
        """
        Create a new appointment event.

        Raises:
            InvalidRequest: If business_id, date or time is missing or malformed
            ConnectionNotFound: If the business has no active calendar connection
            ProviderCapabilityUnsupported: If the provider cannot create events
            ProviderAPIError: If the vendor rejects the request
        """
        _require(business_id=business_id, date=date, time=time)
        duration = self._duration(duration_minutes)
        details = details or BookingDetails()

        start = local_datetime(date, time, self.timezone)
        end = start.add(minutes=duration)

        connection, adapter = self._prepare(business_id, program_id)
        self._require_writes(adapter, "event creation")

        lines = details.description_lines()
        event = CalendarEvent(
            summary=f"Appointment: {details.patient_name}" if details.patient_name else "Appointment",
            description="\n".join(lines) if lines else DEFAULT_DESCRIPTION.format(source=self.source),
            start=EventTime(date_time=start, time_zone=self.timezone),
            end=EventTime(date_time=end, time_zone=self.timezone),
            reminders=self.reminders,
        )

        created = adapter.create_event(connection, event)
        logger.info(
            "Created %s event %s for business %s at %s",
            connection.provider.value,
            created.id,
            business_id,
            created.start.to_iso8601_string(),
        )
        return BookingResult(
            event_id=created.id,
            event_link=created.html_link,
            start=created.start,
            end=created.end,
            provider=connection.provider,
        )

    def reschedule_booking(
        self,
        business_id: str,
        event_id: str,
        new_date: str,
        new_time: str,
        duration_minutes: Optional[int] = None,
        program_id: Optional[str] = None,
    ) -> BookingResult:
        """
        Move an existing event to a new date and time.

        Without an explicit duration the event keeps its current length. The
        new date and time are read in the service time zone, like create and
        check; the event's own zone stays as the tag on both ends.

        Raises:
            EventNotFound: If the vendor has no such event
        """
        _require(business_id=business_id, event_id=event_id, new_date=new_date, new_time=new_time)
        if duration_minutes is not None:
            self._duration(duration_minutes)

        connection, adapter = self._prepare(business_id, program_id)
        self._require_writes(adapter, "event updates")

        existing = adapter.get_event(connection, event_id)
        duration = duration_minutes or existing.duration_minutes()

        # vendors report the zone they store in (Graph defaults to UTC)
        new_start = local_datetime(new_date, new_time, self.timezone)
        new_end = new_start.add(minutes=duration)
        moved = existing.replace(
            start=EventTime(
                date_time=new_start.in_timezone(existing.start.time_zone),
                time_zone=existing.start.time_zone,
            ),
            end=EventTime(
                date_time=new_end.in_timezone(existing.end.time_zone),
                time_zone=existing.end.time_zone,
            ),
        )

        updated = adapter.update_event(connection, event_id, moved)
        logger.info(
            "Rescheduled %s event %s to %s (%d min)",
            connection.provider.value,
            event_id,
            updated.start.to_iso8601_string(),
            duration,
        )
        return BookingResult(
            event_id=updated.id or event_id,
            event_link=updated.html_link,
            start=updated.start,
            end=updated.end,
            provider=connection.provider,
        )

    def cancel_booking(
        self,
        business_id: str,
        event_id: str,
        reason: Optional[str] = None,
        program_id: Optional[str] = None,
    ) -> CancellationResult:
        """
        Cancel an event, preferring to keep it visible as cancelled.

        Providers that support soft cancel get the event's summary and
        description marked; if that update fails for any reason (vendor error
        or an unreadable response) the event is deleted instead. Other providers go straight to deletion.

        Raises:
            EventNotFound: If the event to mark cannot be fetched
            ProviderAPIError: If the hard delete fails
        """
        _require(business_id=business_id, event_id=event_id)
        connection, adapter = self._prepare(business_id, program_id)

        if adapter.supports_soft_cancel:
            existing = adapter.get_event(connection, event_id)
            try:
                adapter.update_event(connection, event_id, self._mark_cancelled(existing, reason))
            # KeyError/ValueError: the vendor accepted the update but returned an unparseable event
            except (CalendarBridgeError, KeyError, ValueError) as exc:
                logger.warning(
                    "Marking %s event %s as cancelled failed (%s); deleting it instead",
                    connection.provider.value,
                    event_id,
                    exc,
                )
            else:
                logger.info("Marked %s event %s as cancelled", connection.provider.value, event_id)
                return CancellationResult(event_id, CancelMethod.MARKED_CANCELLED, connection.provider)

        adapter.delete_event(connection, event_id, reason=reason)
        logger.info("Deleted %s event %s", connection.provider.value, event_id)
        return CancellationResult(event_id, CancelMethod.DELETED, connection.provider)

    def check_availability(
        self,
        business_id: str,
        date: str,
        time: str,
        duration_minutes: Optional[int] = None,
        program_id: Optional[str] = None,
    ) -> AvailabilityResult:
        """
        Check whether a slot is free and suggest alternatives when it is not.
        """
        _require(business_id=business_id, date=date, time=time)
        duration = self._duration(duration_minutes)

        start = local_datetime(date, time, self.timezone)
        requested = Slot(date=start.date(), time=start.format("HH:mm"), duration_minutes=duration)
        window = requested.window(self.timezone)

        connection, adapter = self._prepare(business_id, program_id)
        check = adapter.check_availability(connection, window.start, window.end)

        if check.available:
            return AvailabilityResult(available=True, requested=requested, provider=connection.provider)

        logger.info(
            "Requested slot %s is busy (%d conflicts); searching alternatives",
            window,
            len(check.conflicts),
        )
        alternatives = self._slot_search.find_alternatives(
            requested,
            self.timezone,
            lambda w: adapter.check_availability(connection, w.start, w.end).available,
        )
        return AvailabilityResult(
            available=False,
            requested=requested,
            provider=connection.provider,
            alternatives=alternatives,
            conflicts=check.conflicts,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prepare(
        self,
        business_id: str,
        program_id: Optional[str],
    ) -> Tuple[CalendarConnection, CalendarProviderAdapter]:
        """Resolve the connection and make sure it carries a usable token."""
        connection = self._resolver.resolve(business_id, program_id)
        adapter = self._adapters(connection.provider)

        token = self._token_guard.ensure_fresh_token(connection, adapter)
        if token.refreshed:
            expires_at = token.expires_at or connection.token_expires_at
            self._store.update_token(connection.id, token.token, expires_at)
            logger.info("Stored refreshed token for connection %s", connection.id)

        return connection.with_token(token), adapter

    def _duration(self, duration_minutes: Optional[int]) -> int:
        duration = self.default_duration_minutes if duration_minutes is None else duration_minutes
        if duration <= 0:
            raise InvalidRequest("duration_minutes must be greater than zero")
        return duration

    @staticmethod
    def _require_writes(adapter: CalendarProviderAdapter, operation: str) -> None:
        if not adapter.supports_event_writes:
            raise ProviderCapabilityUnsupported(adapter.provider.value, operation)

    def _mark_cancelled(self, event: CalendarEvent, reason: Optional[str]) -> CalendarEvent:
        stamp = self._clock().in_timezone(self.timezone).format("YYYY-MM-DD HH:mm zz")
        note = f"CANCELLED: {reason}" if reason else "CANCELLED"
        summary = event.summary
        if not summary.startswith(CANCELLED_PREFIX):
            summary = f"{CANCELLED_PREFIX}{summary}"
        return event.replace(
            summary=summary,
            description=f"{event.description}\n\n---\n{note}\nCancelled via {self.source} on {stamp}",
        )


def _require(**fields: Optional[str]) -> None:
    """Raise ``InvalidRequest`` naming every missing field."""
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise InvalidRequest(f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")
