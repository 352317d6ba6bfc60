"""
Storage abstraction for calendar connection records.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

from pendulum import DateTime

from ..domain.models import CalendarConnection

logger = logging.getLogger(__name__)


class ConnectionStore(Protocol):
    """Protocol describing the persistence operations the booking service needs."""

    def find_active(
        self,
        business_id: str,
        program_id: Optional[str],
    ) -> Optional[CalendarConnection]:
        """
        Return the active connection scoped exactly to ``(business_id, program_id)``.

        ``program_id=None`` matches only business-wide connections.
        """

    def update_token(
        self,
        connection_id: str,
        access_token: str,
        token_expires_at: DateTime,
    ) -> None:
        """Persist a refreshed access token and its expiry."""

    def list_connections(self, business_id: Optional[str] = None) -> List[CalendarConnection]:
        """List stored connections, optionally for one business."""


class InMemoryConnectionStore:
    """
    Dictionary-backed store, optionally mirrored to a JSON file.

    The JSON file holds a list of ``calendar_connections`` rows. When a file
    is attached, token updates are written back to it.
    """

    def __init__(
        self,
        connections: Iterable[CalendarConnection] = (),
        path: Optional[Path] = None,
    ):
        self._connections: Dict[str, CalendarConnection] = {c.id: c for c in connections}
        self._path = path
        self._lock = threading.Lock()

    @classmethod
    def from_json_file(cls, path: Path) -> "InMemoryConnectionStore":
        """
        Load connections from a JSON file.

        A missing file yields an empty store that will be created on first write.
        """
        if not path.exists():
            logger.warning("Connections file %s not found; starting with an empty store", path)
            return cls(path=path)

        with open(path, "r", encoding="utf-8") as f:
            records = json.load(f)

        if not isinstance(records, list):
            raise ValueError(f"Connections file {path} must contain a JSON list")

        return cls((CalendarConnection.from_record(r) for r in records), path=path)

    def add(self, connection: CalendarConnection) -> None:
        with self._lock:
            self._connections[connection.id] = connection
            self._save()

    def get(self, connection_id: str) -> Optional[CalendarConnection]:
        return self._connections.get(connection_id)

    def find_active(
        self,
        business_id: str,
        program_id: Optional[str],
    ) -> Optional[CalendarConnection]:
        matches = [
            c for c in self._connections.values()
            if c.is_active and c.business_id == business_id and c.program_id == program_id
        ]
        if not matches:
            return None
        # Several rows (one per provider/calendar) may match; pick deterministically.
        return min(matches, key=lambda c: c.id)

    def update_token(
        self,
        connection_id: str,
        access_token: str,
        token_expires_at: DateTime,
    ) -> None:
        with self._lock:
            current = self._connections.get(connection_id)
            if current is None:
                raise KeyError(f"Unknown calendar connection: {connection_id}")
            self._connections[connection_id] = dataclasses.replace(
                current,
                access_token=access_token,
                token_expires_at=token_expires_at,
            )
            self._save()

    def list_connections(self, business_id: Optional[str] = None) -> List[CalendarConnection]:
        connections = sorted(self._connections.values(), key=lambda c: c.id)
        if business_id is None:
            return connections
        return [c for c in connections if c.business_id == business_id]

    def _save(self) -> None:
        if self._path is None:
            return
        records = [c.to_record() for c in sorted(self._connections.values(), key=lambda c: c.id)]
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)
        self._path.chmod(0o600)
