"""
Picks the calendar connection that applies to a business and program.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..adapters.connection_store import ConnectionStore
from ..domain.exceptions import ConnectionNotFound
from ..domain.models import CalendarConnection

logger = logging.getLogger(__name__)


class ConnectionResolver:
    """
    Resolves connections in priority order.

    A program's own calendar always wins; the business-wide calendar is
    used when the program has none or no program was given.
    """

    def __init__(self, store: ConnectionStore) -> None:
        self._store = store

    def resolve(self, business_id: str, program_id: Optional[str] = None) -> CalendarConnection:
        """
        Return the applicable active connection.

        Raises:
            ConnectionNotFound: If neither lookup yields a connection
        """
        if program_id:
            connection = self._store.find_active(business_id, program_id)
            if connection is not None:
                return connection
            logger.debug(
                "No program calendar for business %s program %s; trying business calendar",
                business_id,
                program_id,
            )

        connection = self._store.find_active(business_id, None)
        if connection is None:
            raise ConnectionNotFound()
        return connection
