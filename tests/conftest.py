"""
Shared fixtures.
"""

import pendulum
import pytest

from calendarbridge.domain.models import CalendarConnection, ProviderTag


@pytest.fixture
def make_connection():
    """Build a CalendarConnection with sensible defaults for tests."""

    def _make(**overrides):
        values = {
            "id": "conn-1",
            "business_id": "biz-1",
            "provider": ProviderTag.GOOGLE,
            "calendar_id": "primary",
            "email": "frontdesk@example.com",
            "access_token": "stored-token",
            "refresh_token": "refresh-token",
            "token_expires_at": pendulum.parse("2024-06-10T16:00:00+00:00"),
        }
        values.update(overrides)
        return CalendarConnection(**values)

    return _make
