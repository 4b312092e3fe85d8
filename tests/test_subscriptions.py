"""Tests for live session subscriptions."""

import asyncio

import pytest

from dining_score.adapters.memory_session_repository import InMemorySessionRepository
from dining_score.domain.errors import NotFoundError
from dining_score.domain.sessions import SessionRecord
from dining_score.services.sessions import GuestSubmission, SessionService
from tests.conftest import make_votes


def _vote() -> GuestSubmission:
    return GuestSubmission(meal="Quattro formaggi", votes=make_votes(4))


def test_subscribe_delivers_initial_snapshot_and_updates(
    session_service: SessionService,
) -> None:
    seen: list[SessionRecord] = []

    async def scenario() -> None:
        session = await session_service.create_session("Vito", 2)
        subscription = await session_service.subscribe_session(
            session.id, seen.append
        )
        assert len(seen) == 1
        await session_service.add_guest(session.id, _vote())
        await session_service.add_guest(session.id, _vote())
        subscription.close()

    asyncio.run(scenario())

    assert [len(snapshot.guests) for snapshot in seen] == [0, 1, 2]
    assert seen[-1].is_complete


def test_closed_subscription_stops_notifications(
    session_service: SessionService, store: InMemorySessionRepository
) -> None:
    seen: list[SessionRecord] = []

    async def scenario() -> str:
        session = await session_service.create_session("Vito", 3)
        with await session_service.subscribe_session(session.id, seen.append):
            await session_service.add_guest(session.id, _vote())
        await session_service.add_guest(session.id, _vote())
        return session.id

    session_id = asyncio.run(scenario())

    assert len(seen) == 2
    assert store.subscriber_count(session_id) == 0


def test_close_is_idempotent(session_service: SessionService) -> None:
    async def scenario() -> None:
        session = await session_service.create_session("Vito", 1)
        subscription = await session_service.subscribe_session(
            session.id, lambda _: None
        )
        subscription.close()
        subscription.close()
        assert subscription.closed

    asyncio.run(scenario())


def test_subscribe_to_missing_session_is_not_found(
    session_service: SessionService,
) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(session_service.subscribe_session("missing", lambda _: None))
