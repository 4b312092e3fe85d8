"""Tests for the session lifecycle."""

import asyncio

import pytest

from dining_score.adapters.memory_session_repository import InMemorySessionRepository
from dining_score.domain.errors import (
    DuplicateVoteError,
    NotFoundError,
    SessionFullError,
    StoreConflictError,
    ValidationError,
)
from dining_score.domain.sessions import SESSION_CLOSED, SESSION_OPEN
from dining_score.services.sessions import (
    GuestSubmission,
    Identity,
    SessionService,
    is_complete,
)
from tests.conftest import RacingSessionRepository, make_guest, make_session, make_votes


def _submission(*values: float, meal: str = "Diavola") -> GuestSubmission:
    return GuestSubmission(meal=meal, votes=make_votes(*values))


def test_create_session_starts_open_and_empty(
    session_service: SessionService, store: InMemorySessionRepository
) -> None:
    session = asyncio.run(
        session_service.create_session("Vito", 3, place_id="place-123")
    )

    assert session.id in store.sessions
    assert session.guests == ()
    assert session.status == SESSION_OPEN
    assert session.place_id == "place-123"
    assert session.number_of_guests == 3
    assert session.date


def test_create_session_accepts_integral_strings(
    session_service: SessionService,
) -> None:
    session = asyncio.run(session_service.create_session("Vito", "4"))

    assert session.number_of_guests == 4


@pytest.mark.parametrize("count", [0, -2, "abc", 2.5, True, None, ""])
def test_create_session_rejects_bad_guest_counts(
    session_service: SessionService, store: InMemorySessionRepository, count: object
) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(session_service.create_session("Vito", count))

    assert store.sessions == {}


def test_create_session_requires_name(session_service: SessionService) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(session_service.create_session("  ", 2))


def test_add_guest_appends_and_closes_at_target(
    session_service: SessionService,
) -> None:
    session = asyncio.run(session_service.create_session("Vito", 2))

    first = asyncio.run(session_service.add_guest(session.id, _submission(5)))
    assert first.status == SESSION_OPEN
    second = asyncio.run(session_service.add_guest(session.id, _submission(3)))

    assert len(second.guests) == 2
    assert second.status == SESSION_CLOSED
    assert second.guests[0].votes.location == 5.0


def test_add_guest_uses_identity_and_name_fallback(
    session_service: SessionService,
) -> None:
    session = asyncio.run(session_service.create_session("Vito", 3))

    asyncio.run(
        session_service.add_guest(
            session.id,
            GuestSubmission(meal="Marinara", votes=make_votes(4), name="typed"),
            identity=Identity(uid="u-1", display_name="Ada", photo_url="https://a"),
        )
    )
    asyncio.run(
        session_service.add_guest(
            session.id, GuestSubmission(meal="Calzone", votes=make_votes(4))
        )
    )
    updated = asyncio.run(session_service.get_session(session.id))

    assert updated.guests[0].name == "Ada"
    assert updated.guests[0].uid == "u-1"
    assert updated.guests[0].photo_url == "https://a"
    assert updated.guests[1].name == "Guest"
    assert updated.guests[1].uid is None


def test_duplicate_voter_is_rejected(session_service: SessionService) -> None:
    session = asyncio.run(session_service.create_session("Vito", 3))
    identity = Identity(uid="u-1")

    asyncio.run(session_service.add_guest(session.id, _submission(4), identity))
    with pytest.raises(DuplicateVoteError):
        asyncio.run(session_service.add_guest(session.id, _submission(2), identity))

    updated = asyncio.run(session_service.get_session(session.id))
    assert len(updated.guests) == 1


def test_anonymous_guests_are_not_deduplicated(
    session_service: SessionService,
) -> None:
    session = asyncio.run(session_service.create_session("Vito", 2))

    asyncio.run(session_service.add_guest(session.id, _submission(4)))
    updated = asyncio.run(session_service.add_guest(session.id, _submission(4)))

    assert len(updated.guests) == 2


def test_sentinel_vote_is_rejected_without_mutation(
    session_service: SessionService, store: InMemorySessionRepository
) -> None:
    session = asyncio.run(session_service.create_session("Vito", 2))
    votes = make_votes(4)
    votes["bill"] = -1

    with pytest.raises(ValidationError):
        asyncio.run(
            session_service.add_guest(
                session.id, GuestSubmission(meal="Diavola", votes=votes)
            )
        )

    assert store.sessions[session.id].guests == ()


@pytest.mark.parametrize(
    "votes",
    [
        {"location": 4, "service": 4, "menu": 4, "bill": 4, "pizzaDough": 4},
        {**make_votes(4), "menu": "4"},
        {**make_votes(4), "menu": True},
        {**make_votes(4), "menu": 5.5},
        {**make_votes(4), "menu": 0.5},
        {**make_votes(4), "menu": float("nan")},
        {**make_votes(4), "menu": float("inf")},
        {**make_votes(4), "location": 10**400},
        {**make_votes(4), "dessert": 4},
    ],
)
def test_malformed_votes_are_rejected(
    session_service: SessionService, votes: dict[str, object]
) -> None:
    session = asyncio.run(session_service.create_session("Vito", 2))

    with pytest.raises(ValidationError):
        asyncio.run(
            session_service.add_guest(
                session.id, GuestSubmission(meal="Diavola", votes=votes)
            )
        )


def test_fractional_ratings_are_accepted(session_service: SessionService) -> None:
    session = asyncio.run(session_service.create_session("Vito", 1))

    updated = asyncio.run(
        session_service.add_guest(
            session.id, _submission(1.0, 1.25, 2.5, 3.75, 4.99, 5.0)
        )
    )

    assert updated.guests[0].votes.pizza_dough == 4.99


def test_missing_meal_is_rejected(session_service: SessionService) -> None:
    session = asyncio.run(session_service.create_session("Vito", 1))

    with pytest.raises(ValidationError):
        asyncio.run(session_service.add_guest(session.id, _submission(4, meal=" ")))


def test_full_session_rejects_more_guests(session_service: SessionService) -> None:
    session = asyncio.run(session_service.create_session("Vito", 1))
    asyncio.run(session_service.add_guest(session.id, _submission(4)))

    with pytest.raises(SessionFullError):
        asyncio.run(session_service.add_guest(session.id, _submission(4)))


def test_unknown_session_is_not_found(session_service: SessionService) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(session_service.get_session("missing"))
    with pytest.raises(NotFoundError):
        asyncio.run(session_service.add_guest("missing", _submission(4)))


def test_completion_threshold() -> None:
    guests = [make_guest(4), make_guest(4), make_guest(4), make_guest(4)]

    assert not is_complete(make_session(number_of_guests=3))
    assert not is_complete(make_session(*guests[:1], number_of_guests=3))
    assert not is_complete(make_session(*guests[:2], number_of_guests=3))
    assert is_complete(make_session(*guests[:3], number_of_guests=3))
    assert is_complete(make_session(*guests, number_of_guests=3))


def test_lost_append_race_is_retried_with_fresh_snapshot() -> None:
    store = RacingSessionRepository(
        intruders=[make_guest(2, name="Intruder", uid="u-2")]
    )
    service = SessionService(store)
    session = asyncio.run(service.create_session("Vito", 3))

    updated = asyncio.run(
        service.add_guest(session.id, _submission(5), Identity(uid="u-1"))
    )

    assert [guest.uid for guest in updated.guests] == ["u-2", "u-1"]


def test_lost_race_against_same_voter_reports_duplicate() -> None:
    store = RacingSessionRepository(
        intruders=[make_guest(2, name="Other tab", uid="u-1")]
    )
    service = SessionService(store)
    session = asyncio.run(service.create_session("Vito", 3))

    with pytest.raises(DuplicateVoteError):
        asyncio.run(service.add_guest(session.id, _submission(5), Identity(uid="u-1")))

    assert len(store.sessions[session.id].guests) == 1


def test_exhausted_retries_raise_conflict() -> None:
    store = RacingSessionRepository(conflicts=10)
    service = SessionService(store, max_append_attempts=3)
    session = asyncio.run(service.create_session("Vito", 3))

    with pytest.raises(StoreConflictError):
        asyncio.run(service.add_guest(session.id, _submission(5)))

    assert store.sessions[session.id].guests == ()


def test_concurrent_votes_are_all_recorded(session_service: SessionService) -> None:
    async def scenario() -> int:
        session = await session_service.create_session("Vito", 5)
        await asyncio.gather(
            *(
                session_service.add_guest(
                    session.id, _submission(3), Identity(uid=f"u-{index}")
                )
                for index in range(5)
            )
        )
        updated = await session_service.get_session(session.id)
        return len(updated.guests)

    assert asyncio.run(scenario()) == 5


def test_unknown_sessions_leave_no_locks_behind(
    session_service: SessionService,
) -> None:
    async def scenario() -> None:
        for index in range(50):
            with pytest.raises(NotFoundError):
                await session_service.add_guest(f"missing-{index}", _submission(4))

    asyncio.run(scenario())

    assert session_service._locks == {}


def test_session_locks_are_released_after_appends(
    session_service: SessionService,
) -> None:
    async def scenario() -> None:
        session = await session_service.create_session("Vito", 3)
        await asyncio.gather(
            *(
                session_service.add_guest(
                    session.id, _submission(4), Identity(uid=f"u-{index}")
                )
                for index in range(3)
            )
        )
        with pytest.raises(SessionFullError):
            await session_service.add_guest(session.id, _submission(4))

    asyncio.run(scenario())

    assert session_service._locks == {}
    assert session_service._lock_users == {}
