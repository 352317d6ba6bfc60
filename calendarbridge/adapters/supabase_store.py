"""
Supabase-backed storage for calendar connection records.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pendulum import DateTime
from supabase import Client, create_client

from ..domain.models import CalendarConnection


class SupabaseConnectionStore:
    """Reads and updates rows of the ``calendar_connections`` table."""

    def __init__(
        self,
        supabase_url: str = "",
        service_role_key: str = "",
        table: str = "calendar_connections",
        client: Optional[Client] = None,
    ):
        self.supabase: Client = client or create_client(supabase_url, service_role_key)
        self.table = table

    def find_active(
        self,
        business_id: str,
        program_id: Optional[str],
    ) -> Optional[CalendarConnection]:
        query = (
            self.supabase
            .table(self.table)
            .select("*")
            .eq("business_id", business_id)
            .eq("is_active", True)
        )
        if program_id:
            query = query.eq("program_id", program_id)
        else:
            query = query.is_("program_id", "null")

        resp = query.order("id").limit(1).execute()
        data = resp.data or []
        if not data:
            return None
        return CalendarConnection.from_record(data[0])

    def update_token(
        self,
        connection_id: str,
        access_token: str,
        token_expires_at: DateTime,
    ) -> None:
        payload: dict[str, Any] = {
            "access_token": access_token,
            "token_expires_at": token_expires_at.to_iso8601_string(),
        }
        self.supabase.table(self.table).update(payload).eq("id", connection_id).execute()

    def list_connections(self, business_id: Optional[str] = None) -> List[CalendarConnection]:
        query = self.supabase.table(self.table).select("*")
        if business_id is not None:
            query = query.eq("business_id", business_id)
        resp = query.order("id").execute()
        return [CalendarConnection.from_record(row) for row in (resp.data or [])]
