"""
Access-token freshness checks.
"""

from __future__ import annotations

import logging
from typing import Callable

import pendulum
from pendulum import DateTime

from ..adapters.base import CalendarProviderAdapter
from ..domain.models import AccessToken, CalendarConnection

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_BUFFER_MINUTES = 5


def _utc_now() -> DateTime:
    return pendulum.now("UTC")


class TokenFreshnessGuard:
    """
    Decides whether a connection's stored token can still be used.

    A token is refreshed once its expiry is at most ``buffer_minutes``
    away. The refreshed token is returned, not persisted; storing it is the
    caller's job.
    """

    def __init__(
        self,
        buffer_minutes: int = DEFAULT_REFRESH_BUFFER_MINUTES,
        clock: Callable[[], DateTime] = _utc_now,
    ) -> None:
        self.buffer_minutes = buffer_minutes
        self._clock = clock

    def needs_refresh(self, connection: CalendarConnection) -> bool:
        remaining = connection.token_expires_at - self._clock()
        return remaining.total_seconds() <= self.buffer_minutes * 60

    def ensure_fresh_token(
        self,
        connection: CalendarConnection,
        adapter: CalendarProviderAdapter,
    ) -> AccessToken:
        """
        Return a usable access token for ``connection``.

        Raises:
            TokenRefreshFailure: If the vendor refuses the refresh
        """
        if not self.needs_refresh(connection):
            return AccessToken(token=connection.access_token, expires_at=connection.token_expires_at)

        logger.info(
            "Access token for connection %s (%s) expires at %s; refreshing",
            connection.id,
            connection.provider.value,
            connection.token_expires_at.to_iso8601_string(),
        )
        return adapter.refresh_token(connection)


def ensure_fresh_token(
    connection: CalendarConnection,
    adapter: CalendarProviderAdapter,
    buffer_minutes: int = DEFAULT_REFRESH_BUFFER_MINUTES,
) -> AccessToken:
    """Convenience wrapper around ``TokenFreshnessGuard`` using the wall clock."""
    return TokenFreshnessGuard(buffer_minutes=buffer_minutes).ensure_fresh_token(connection, adapter)
