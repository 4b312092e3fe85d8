"""Supabase-backed session store."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from supabase import Client

from dining_score.domain.sessions import (
    SESSION_CLOSED,
    SESSION_OPEN,
    Guest,
    SessionRecord,
)
from dining_score.services.sessions import SessionCallback, SessionStore

logger = logging.getLogger(__name__)

_COLUMNS = "id, created_at, name, place_id, number_of_guests, guests, guest_count"


@dataclass
class SupabaseSessionRepository(SessionStore):
    """Supabase implementation for voting sessions."""

    client: Client
    table_name: str = "sessions"
    poll_interval_seconds: float = 2.0

    def create_session(self, payload: dict[str, object]) -> SessionRecord:
        """Insert a session row and return it."""
        response = (
            self.client.table(self.table_name)
            .insert(
                {
                    "created_at": payload["date"],
                    "name": payload["name"],
                    "place_id": payload.get("place_id"),
                    "number_of_guests": payload["number_of_guests"],
                    "guests": [],
                    "guest_count": 0,
                    "guests_uid": [],
                    "status": SESSION_OPEN,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create session")
        return _parse_row(response.data[0])

    def get_session(self, session_id: str) -> SessionRecord | None:
        """Return a session by id, if present."""
        response = (
            self.client.table(self.table_name)
            .select(_COLUMNS)
            .eq("id", session_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_row(response.data[0])

    def append_guest(
        self, session_id: str, guest: Guest, expected_version: int
    ) -> bool:
        """Append a guest with a compare-and-swap on guest_count."""
        response = (
            self.client.table(self.table_name)
            .select("guests, guests_uid, guest_count, number_of_guests")
            .eq("id", session_id)
            .eq("guest_count", expected_version)
            .limit(1)
            .execute()
        )
        if not response.data:
            return False
        row = response.data[0]
        guests = list(row.get("guests") or [])
        guests.append(guest.to_document())
        voter_uids = list(row.get("guests_uid") or [])
        if guest.uid:
            voter_uids.append(guest.uid)
        guest_count = expected_version + 1
        status = (
            SESSION_CLOSED
            if guest_count >= int(row.get("number_of_guests", 0))
            else SESSION_OPEN
        )
        updated = (
            self.client.table(self.table_name)
            .update(
                {
                    "guests": guests,
                    "guests_uid": voter_uids,
                    "guest_count": guest_count,
                    "status": status,
                }
            )
            .eq("id", session_id)
            .eq("guest_count", expected_version)
            .execute()
        )
        return bool(updated.data)

    def list_sessions(self, limit: int) -> list[SessionRecord]:
        """Return the most recent sessions."""
        response = (
            self.client.table(self.table_name)
            .select(_COLUMNS)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]

    def list_sessions_for_voter(self, uid: str, limit: int) -> list[SessionRecord]:
        """Return recent sessions that include a vote from ``uid``."""
        response = (
            self.client.table(self.table_name)
            .select(_COLUMNS)
            .contains("guests_uid", [uid])
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]

    def subscribe(
        self, session_id: str, callback: SessionCallback, known_version: int = 0
    ) -> Callable[[], None]:
        """Poll the row and report changes in guest_count.

        Must be called from a running event loop; the disposer cancels the
        polling task.
        """
        task = asyncio.get_running_loop().create_task(
            self._poll(session_id, callback, known_version)
        )
        return task.cancel

    async def _poll(
        self, session_id: str, callback: SessionCallback, known_version: int
    ) -> None:
        last_version = known_version
        while True:
            await asyncio.sleep(self.poll_interval_seconds)
            try:
                session = await asyncio.to_thread(self.get_session, session_id)
            except Exception:
                logger.warning(
                    "Session poll failed, will retry",
                    extra={"session_id": session_id},
                    exc_info=True,
                )
                continue
            if session is None or session.version == last_version:
                continue
            last_version = session.version
            callback(session)


def _parse_row(row: dict[str, object]) -> SessionRecord:
    raw_guests = row.get("guests") or []
    guests = tuple(
        Guest.from_document(item)
        for item in raw_guests  # type: ignore[union-attr]
        if isinstance(item, dict)
    )
    place_id = row.get("place_id")
    return SessionRecord(
        id=str(row["id"]),
        date=str(row.get("created_at") or ""),
        name=str(row.get("name") or ""),
        place_id=str(place_id) if place_id else None,
        number_of_guests=int(row.get("number_of_guests", 0)),  # type: ignore[arg-type]
        guests=guests,
    )
