"""In-memory session store with push notifications."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from uuid import uuid4

from dining_score.domain.sessions import Guest, SessionRecord
from dining_score.services.sessions import SessionCallback, SessionStore

logger = logging.getLogger(__name__)


@dataclass
class InMemorySessionRepository(SessionStore):
    """Dict-backed session store for local runs and tests."""

    sessions: dict[str, SessionRecord] = field(default_factory=dict)
    _subscribers: dict[str, list[SessionCallback]] = field(
        default_factory=dict, init=False, repr=False
    )
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )

    def create_session(self, payload: dict[str, object]) -> SessionRecord:
        """Store a new session under a generated id."""
        session = SessionRecord(
            id=uuid4().hex,
            date=str(payload["date"]),
            name=str(payload["name"]),
            place_id=payload.get("place_id"),  # type: ignore[arg-type]
            number_of_guests=int(payload["number_of_guests"]),  # type: ignore[arg-type]
        )
        with self._lock:
            self.sessions[session.id] = session
        return session

    def get_session(self, session_id: str) -> SessionRecord | None:
        return self.sessions.get(session_id)

    def append_guest(
        self, session_id: str, guest: Guest, expected_version: int
    ) -> bool:
        """Append under the store lock when the version still matches."""
        with self._lock:
            current = self.sessions.get(session_id)
            if current is None or current.version != expected_version:
                return False
            updated = replace(current, guests=(*current.guests, guest))
            self.sessions[session_id] = updated
            callbacks = list(self._subscribers.get(session_id, []))
        for callback in callbacks:
            try:
                callback(updated)
            except Exception:
                logger.exception(
                    "Session subscriber failed", extra={"session_id": session_id}
                )
        return True

    def list_sessions(self, limit: int) -> list[SessionRecord]:
        ordered = sorted(
            self.sessions.values(), key=lambda session: session.date, reverse=True
        )
        return ordered[:limit]

    def list_sessions_for_voter(self, uid: str, limit: int) -> list[SessionRecord]:
        return [
            session for session in self.list_sessions(len(self.sessions))
            if session.has_voter(uid)
        ][:limit]

    def subscribe(
        self, session_id: str, callback: SessionCallback, known_version: int = 0
    ) -> Callable[[], None]:
        """Register a callback for appends to a session."""
        with self._lock:
            self._subscribers.setdefault(session_id, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(session_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(session_id, None)

        return unsubscribe

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, []))
