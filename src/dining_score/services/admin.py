"""Admin service for reporting."""

from dataclasses import dataclass

from dining_score.domain.sessions import SessionRecord
from dining_score.services.sessions import SessionStore


@dataclass
class AdminService:
    """Service for admin dashboards."""

    store: SessionStore

    def list_sessions(self, limit: int = 20) -> list[dict[str, object]]:
        """Return recent sessions with voting progress."""
        return [_serialize_session(session) for session in self.store.list_sessions(limit)]


def _serialize_session(session: SessionRecord) -> dict[str, object]:
    return {
        "id": session.id,
        "date": session.date,
        "name": session.name,
        "place_id": session.place_id,
        "status": session.status,
        "guests": len(session.guests),
        "number_of_guests": session.number_of_guests,
    }
