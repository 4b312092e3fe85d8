"""Lifecycle of a voting session: creation, guest admission and snapshots."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import TracebackType
from typing import Protocol

from dining_score.domain.errors import (
    DuplicateVoteError,
    NotFoundError,
    SessionFullError,
    StoreConflictError,
    ValidationError,
)
from dining_score.domain.questions import (
    MAX_RATING,
    MIN_RATING,
    QUESTIONS,
)
from dining_score.domain.sessions import (
    DEFAULT_GUEST_NAME,
    Guest,
    GuestVote,
    SessionRecord,
)

logger = logging.getLogger(__name__)

SessionCallback = Callable[[SessionRecord], None]


class SessionStore(Protocol):
    """Persistence interface for voting sessions."""

    def create_session(self, payload: dict[str, object]) -> SessionRecord:
        """Persist a new session and return it with its assigned id."""

    def get_session(self, session_id: str) -> SessionRecord | None:
        """Return a session by id, if present."""

    def append_guest(
        self, session_id: str, guest: Guest, expected_version: int
    ) -> bool:
        """Append a guest if the session is still at ``expected_version``.

        Returns False when another writer appended first.
        """

    def list_sessions(self, limit: int) -> list[SessionRecord]:
        """Return the most recent sessions."""

    def list_sessions_for_voter(self, uid: str, limit: int) -> list[SessionRecord]:
        """Return recent sessions in which the voter took part."""

    def subscribe(
        self, session_id: str, callback: SessionCallback, known_version: int = 0
    ) -> Callable[[], None]:
        """Notify ``callback`` on every mutation and return a disposer."""


@dataclass(frozen=True)
class Identity:
    """The acting voter as reported by the identity provider."""

    uid: str
    display_name: str | None = None
    photo_url: str | None = None


@dataclass(frozen=True)
class GuestSubmission:
    """Raw questionnaire answers from one guest."""

    meal: str
    votes: Mapping[str, object]
    name: str | None = None
    note: str | None = None
    photo_url: str | None = None


class Subscription:
    """Handle for a live session subscription."""

    def __init__(self, dispose: Callable[[], None] | None = None) -> None:
        self._dispose = dispose
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self, dispose: Callable[[], None]) -> None:
        """Bind the store disposer; closes it straight away if already closed."""
        if self._closed:
            dispose()
            return
        self._dispose = dispose

    def close(self) -> None:
        """Stop notifications; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._dispose is not None:
            self._dispose()
            self._dispose = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


@dataclass
class SessionService:
    """Mediates every write to a session's guest list."""

    store: SessionStore
    max_append_attempts: int = 5
    _locks: dict[str, asyncio.Lock] = field(
        default_factory=dict, init=False, repr=False
    )
    _lock_users: dict[str, int] = field(default_factory=dict, init=False, repr=False)

    async def create_session(
        self,
        name: str,
        number_of_guests: object,
        place_id: str | None = None,
    ) -> SessionRecord:
        """Create an open session with no guests."""
        cleaned_name = (name or "").strip()
        if not cleaned_name:
            raise ValidationError("Please enter the restaurant name.")
        guest_count = _parse_guest_count(number_of_guests)
        session = self.store.create_session(
            {
                "date": datetime.now(tz=UTC).isoformat(),
                "name": cleaned_name,
                "place_id": (place_id or "").strip() or None,
                "number_of_guests": guest_count,
            }
        )
        logger.info(
            "Session created",
            extra={"session_id": session.id, "number_of_guests": guest_count},
        )
        return session

    async def get_session(self, session_id: str) -> SessionRecord:
        """Return a session or raise NotFoundError."""
        session = self.store.get_session(session_id)
        if session is None:
            raise NotFoundError()
        return session

    async def add_guest(
        self,
        session_id: str,
        submission: GuestSubmission,
        identity: Identity | None = None,
    ) -> SessionRecord:
        """Validate and append one guest's vote, returning the new snapshot."""
        guest = build_guest(submission, identity)
        await self.get_session(session_id)
        async with self._session_lock(session_id):
            for attempt in range(1, self.max_append_attempts + 1):
                session = await self.get_session(session_id)
                if guest.uid and session.has_voter(guest.uid):
                    raise DuplicateVoteError()
                if session.is_complete:
                    raise SessionFullError()
                if self.store.append_guest(
                    session_id, guest, expected_version=session.version
                ):
                    logger.info(
                        "Guest vote recorded",
                        extra={
                            "session_id": session_id,
                            "guest_count": session.version + 1,
                            "attempt": attempt,
                        },
                    )
                    return await self.get_session(session_id)
                logger.warning(
                    "Concurrent append detected, retrying",
                    extra={"session_id": session_id, "attempt": attempt},
                )
        raise StoreConflictError()

    @contextlib.asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Serialize appends per session and drop the lock once it is idle."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self._locks[session_id]

    async def subscribe_session(
        self, session_id: str, on_change: SessionCallback
    ) -> Subscription:
        """Deliver the current snapshot now and every later mutation."""
        session = await self.get_session(session_id)
        subscription = Subscription()

        def deliver(snapshot: SessionRecord) -> None:
            if not subscription.closed:
                on_change(snapshot)

        deliver(session)
        subscription.attach(
            self.store.subscribe(session_id, deliver, known_version=session.version)
        )
        return subscription


def is_complete(session: SessionRecord) -> bool:
    """Return true when the session has all expected votes."""
    return session.is_complete


def build_guest(submission: GuestSubmission, identity: Identity | None) -> Guest:
    """Validate a submission and combine it with the voter identity."""
    votes = validate_votes(submission.votes)
    meal = (submission.meal or "").strip()
    if not meal:
        raise ValidationError("Please tell us what you ordered.")
    name = (
        (identity.display_name if identity else None)
        or (submission.name or "").strip()
        or DEFAULT_GUEST_NAME
    )
    note = (submission.note or "").strip() or None
    return Guest(
        name=name,
        meal=meal,
        votes=votes,
        note=note,
        uid=identity.uid if identity else None,
        photo_url=(identity.photo_url if identity else None) or submission.photo_url,
    )


def validate_votes(raw: Mapping[str, object]) -> GuestVote:
    """Return a complete GuestVote or raise ValidationError."""
    if not isinstance(raw, Mapping):
        raise ValidationError("Votes must be an object of ratings.")
    known = {question.key for question in QUESTIONS}
    unknown = sorted(str(key) for key in raw if key not in known)
    if unknown:
        raise ValidationError(f"Unknown rating categories: {', '.join(unknown)}.")
    problems: list[str] = []
    for question in QUESTIONS:
        value = raw.get(question.key)
        if not _is_valid_rating(value):
            problems.append(question.label)
    if problems:
        raise ValidationError(
            f"Please rate {', '.join(problems)} between "
            f"{MIN_RATING:g} and {MAX_RATING:g}."
        )
    return GuestVote.from_mapping(raw)


def _is_valid_rating(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    # NaN, infinities, the -1 sentinel and huge ints all fail the range check.
    return MIN_RATING <= value <= MAX_RATING


def _parse_guest_count(value: object) -> int:
    message = "Number of guests must be a positive whole number."
    if isinstance(value, bool):
        raise ValidationError(message)
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError as exc:
            raise ValidationError(message) from exc
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(message)
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise ValidationError(message)
    return value
