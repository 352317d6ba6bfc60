"""
Tests for the access-token freshness guard.
"""

import pendulum
import pytest

from calendarbridge.domain.exceptions import TokenRefreshFailure
from calendarbridge.domain.models import AccessToken
from calendarbridge.services.token_guard import TokenFreshnessGuard

NOW = pendulum.parse("2024-06-10T15:00:00+00:00")


class StubAdapter:
    """Records refresh calls and returns a canned token."""

    def __init__(self, token=None, error=None):
        self.token = token or AccessToken(
            token="fresh", expires_at=NOW.add(hours=1), refreshed=True
        )
        self.error = error
        self.refreshed = []

    def refresh_token(self, connection):
        self.refreshed.append(connection.id)
        if self.error:
            raise self.error
        return self.token


def _guard() -> TokenFreshnessGuard:
    return TokenFreshnessGuard(buffer_minutes=5, clock=lambda: NOW)


class TestTokenFreshnessGuard:
    """Tests for TokenFreshnessGuard."""

    def test_valid_token_is_reused(self, make_connection):
        """A token valid for more than the buffer is returned unchanged."""
        adapter = StubAdapter()
        connection = make_connection(token_expires_at=NOW.add(minutes=30))

        token = _guard().ensure_fresh_token(connection, adapter)

        assert token.token == "stored-token"
        assert token.refreshed is False
        assert adapter.refreshed == []

    def test_token_inside_buffer_is_refreshed(self, make_connection):
        """Expiring within five minutes triggers a refresh."""
        adapter = StubAdapter()
        connection = make_connection(token_expires_at=NOW.add(minutes=4))

        token = _guard().ensure_fresh_token(connection, adapter)

        assert token.token == "fresh"
        assert token.refreshed is True
        assert adapter.refreshed == ["conn-1"]

    def test_expired_token_is_refreshed(self, make_connection):
        adapter = StubAdapter()
        connection = make_connection(token_expires_at=NOW.subtract(hours=2))

        assert _guard().ensure_fresh_token(connection, adapter).token == "fresh"

    def test_buffer_boundary(self, make_connection):
        """Expiring exactly at the buffer edge is refreshed; a second later is not."""
        assert _guard().needs_refresh(make_connection(token_expires_at=NOW.add(minutes=5))) is True
        assert _guard().needs_refresh(make_connection(token_expires_at=NOW.add(minutes=5, seconds=1))) is False

    def test_refresh_failure_propagates(self, make_connection):
        adapter = StubAdapter(error=TokenRefreshFailure("google", "revoked"))
        connection = make_connection(token_expires_at=NOW)

        with pytest.raises(TokenRefreshFailure):
            _guard().ensure_fresh_token(connection, adapter)
