"""Shared test fixtures."""

from dataclasses import dataclass, field

import pytest

from dining_score.adapters.memory_session_repository import InMemorySessionRepository
from dining_score.config import Settings
from dining_score.containers import AppContainer
from dining_score.domain.sessions import Guest, GuestVote, SessionRecord
from dining_score.services.admin import AdminService
from dining_score.services.history import HistoryService
from dining_score.services.results import ResultsService
from dining_score.services.sessions import SessionService

VOTE_KEYS = ("location", "service", "menu", "bill", "pizzaDough", "ingredients")


def make_votes(*values: float) -> dict[str, float]:
    """Build a vote payload; a single value fills every category."""
    if len(values) == 1:
        values = values * len(VOTE_KEYS)
    return dict(zip(VOTE_KEYS, values, strict=True))


def make_guest(
    *values: float, name: str = "Guest", uid: str | None = None, meal: str = "Pizza"
) -> Guest:
    return Guest(
        name=name,
        meal=meal,
        votes=GuestVote.from_mapping(make_votes(*values)),
        uid=uid,
    )


def make_session(
    *guests: Guest, number_of_guests: int | None = None, session_id: str = "s-1"
) -> SessionRecord:
    return SessionRecord(
        id=session_id,
        date="2024-05-01T19:30:00+00:00",
        name="Vito",
        number_of_guests=number_of_guests or max(len(guests), 1),
        guests=tuple(guests),
    )


@dataclass
class RacingSessionRepository(InMemorySessionRepository):
    """Store where another writer wins the first ``conflicts`` appends."""

    conflicts: int = 1
    intruders: list[Guest] = field(default_factory=list)

    def append_guest(
        self, session_id: str, guest: Guest, expected_version: int
    ) -> bool:
        if self.conflicts > 0 and self.intruders:
            self.conflicts -= 1
            intruder = self.intruders.pop(0)
            super().append_guest(session_id, intruder, expected_version)
            return super().append_guest(session_id, guest, expected_version)
        if self.conflicts > 0:
            self.conflicts -= 1
            return False
        return super().append_guest(session_id, guest, expected_version)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        admin_token="admin-token",
        session_store="memory",
        reveal_interval_seconds=0.01,
    )


@pytest.fixture
def store() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def session_service(store: InMemorySessionRepository) -> SessionService:
    return SessionService(store)


@pytest.fixture
def container(
    settings: Settings,
    store: InMemorySessionRepository,
    session_service: SessionService,
) -> AppContainer:
    return AppContainer(
        settings=settings,
        session_service=session_service,
        results_service=ResultsService(
            session_service=session_service,
            reveal_interval_seconds=settings.reveal_interval_seconds,
        ),
        history_service=HistoryService(store),
        admin_service=AdminService(store),
    )
