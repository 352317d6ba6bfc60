"""
Common contract and HTTP plumbing for calendar provider adapters.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import EventNotFound, ProviderAPIError, TokenRefreshFailure
from ..domain.models import (
    AccessToken,
    AvailabilityCheck,
    CalendarConnection,
    CalendarEvent,
    ProviderTag,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


class CalendarProviderAdapter(ABC):
    """
    Vendor-neutral calendar operations.

    Adapters never retry; any non-success answer from the vendor becomes a
    ``ProviderAPIError``. Adapters that cannot write events set
    ``supports_event_writes`` to ``False`` and raise
    ``ProviderCapabilityUnsupported`` from ``create_event``/``update_event``.
    """

    provider: ProviderTag
    supports_event_writes: bool = True
    supports_soft_cancel: bool = True

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """
        Initialize the adapter.

        Args:
            session: Optional requests session (a new one is created if omitted)
            timeout: Per-request timeout in seconds
        """
        self.session = session or requests.Session()
        self.timeout = timeout

    @abstractmethod
    def refresh_token(self, connection: CalendarConnection) -> AccessToken:
        """Obtain a new access token for ``connection``."""

    @abstractmethod
    def create_event(self, connection: CalendarConnection, event: CalendarEvent) -> CalendarEvent:
        """Create ``event`` and return it as stored by the vendor."""

    @abstractmethod
    def get_event(self, connection: CalendarConnection, event_id: str) -> CalendarEvent:
        """Fetch a single event, raising ``EventNotFound`` if it does not exist."""

    @abstractmethod
    def update_event(
        self,
        connection: CalendarConnection,
        event_id: str,
        event: CalendarEvent,
    ) -> CalendarEvent:
        """Replace the editable fields of an existing event."""

    @abstractmethod
    def delete_event(
        self,
        connection: CalendarConnection,
        event_id: str,
        reason: Optional[str] = None,
    ) -> None:
        """Remove (or cancel) an event. Already-missing events are not an error."""

    @abstractmethod
    def list_events(
        self,
        connection: CalendarConnection,
        start: DateTime,
        end: DateTime,
    ) -> List[CalendarEvent]:
        """List the events falling inside ``[start, end)``."""

    def check_availability(
        self,
        connection: CalendarConnection,
        start: DateTime,
        end: DateTime,
    ) -> AvailabilityCheck:
        """A window is available when the vendor lists no events inside it."""
        events = self.list_events(connection, start, end)
        return AvailabilityCheck(available=not events, conflicts=events)

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        *,
        action: str,
        token: Optional[str] = None,
        event_id: Optional[str] = None,
        allow_missing: bool = False,
        **kwargs: Any,
    ) -> requests.Response:
        """
        Perform a vendor request and translate failures into domain errors.

        Args:
            method: HTTP method
            url: Absolute endpoint URL
            action: Human-readable description used in error messages
            token: Bearer token for the Authorization header
            event_id: When set, 404/410 answers raise ``EventNotFound``
            allow_missing: When set, a 404 answer is returned instead of raised

        Raises:
            EventNotFound: If ``event_id`` is set and the vendor reports no such event
            ProviderAPIError: If the call fails or the vendor answers with an error
        """
        headers: Dict[str, str] = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            raise ProviderAPIError(self.provider.value, f"Failed to {action}: {e}") from e

        if response.ok:
            return response

        if allow_missing and response.status_code == 404:
            logger.info("%s: target already gone (404) while trying to %s", self.provider.value, action)
            return response

        message = self._error_message(response)

        if event_id is not None and response.status_code in (404, 410):
            raise EventNotFound(f"Event {event_id} not found: {message}")

        logger.error(
            "%s API error while trying to %s (HTTP %s): %s",
            self.provider.value,
            action,
            response.status_code,
            message,
        )
        raise ProviderAPIError(
            self.provider.value,
            f"Failed to {action}: {message}",
            status=response.status_code,
        )

    def _refresh_with_token_endpoint(self, url: str, data: Dict[str, str]) -> AccessToken:
        """Run a standard OAuth ``refresh_token`` grant against ``url``."""
        try:
            response = self.session.post(url, data=data, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TokenRefreshFailure(
                self.provider.value, f"Failed to refresh {self.provider.value} token: {e}"
            ) from e

        if not response.ok:
            raise TokenRefreshFailure(
                self.provider.value,
                f"Failed to refresh {self.provider.value} token: {self._error_message(response)}",
            )

        payload = response.json()
        if "access_token" not in payload:
            raise TokenRefreshFailure(
                self.provider.value, "Token endpoint answered without an access_token"
            )

        logger.info("Refreshed %s access token", self.provider.value)
        return AccessToken(
            token=payload["access_token"],
            expires_at=pendulum.now("UTC").add(seconds=int(payload.get("expires_in", 3600))),
            refreshed=True,
        )

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        """Extract the vendor's error message from an error response."""
        try:
            data = response.json()
        except ValueError:
            return response.text or response.reason or f"HTTP {response.status_code}"

        if not isinstance(data, dict):
            return str(data)

        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if data.get("error_description"):
            return str(data["error_description"])
        if data.get("message"):
            return str(data["message"])
        if isinstance(error, str):
            return error
        return str(data)

    @staticmethod
    def _parse_datetime(value: str, timezone: str) -> DateTime:
        """
        Parse a vendor timestamp to a pendulum DateTime.

        Naive values are interpreted in ``timezone``. Fractions beyond
        microseconds (Graph sends seven digits) are truncated.
        """
        dt = pendulum.parse(_FRACTION_RE.sub(r"\1", value), tz=timezone)
        if isinstance(dt, DateTime):
            return dt
        raise ValueError(f"Could not parse datetime: {value}")

    @staticmethod
    def _zone_or_utc(name: Optional[str]) -> str:
        """Return ``name`` if it is a known IANA zone, otherwise ``UTC``."""
        if not name:
            return "UTC"
        try:
            pendulum.timezone(name)
        except (ValueError, KeyError):
            return "UTC"
        return name
