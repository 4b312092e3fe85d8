"""Results screens: waiting room, aggregate view and live reveal."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from dining_score.domain.errors import InvariantViolationError
from dining_score.domain.sessions import SessionRecord
from dining_score.services.aggregation import AggregateResult, aggregate
from dining_score.services.reveal import (
    DEFAULT_INTERVAL_SECONDS,
    RevealFrame,
    RevealScheduler,
)
from dining_score.services.sessions import SessionService, Subscription

logger = logging.getLogger(__name__)

WAITING = "waiting"
FINAL = "final"


@dataclass(frozen=True)
class ResultsView:
    """Snapshot of a session's results screen."""

    session: SessionRecord
    status: str
    received: int
    expected: int
    progress: float
    result: AggregateResult | None = None


class ResultsWatch:
    """Live results for one viewer; call ``close`` when the viewer leaves."""

    def __init__(
        self,
        on_frame: Callable[[RevealFrame], None],
        interval_seconds: float,
        skip: bool,
        on_waiting: Callable[[ResultsView], None] | None = None,
        on_error: Callable[[InvariantViolationError], None] | None = None,
    ) -> None:
        self._on_frame = on_frame
        self._on_waiting = on_waiting
        self._on_error = on_error
        self._interval_seconds = interval_seconds
        self._skip = skip
        self.subscription: Subscription | None = None
        self.scheduler: RevealScheduler | None = None
        self.latest: ResultsView | None = None
        self.error: InvariantViolationError | None = None

    def handle_snapshot(self, session: SessionRecord) -> None:
        """Recompute on every snapshot and start the reveal once complete."""
        if self.error is not None:
            return
        try:
            view = build_view(session)
        except InvariantViolationError as exc:
            logger.error(
                "Halting aggregation for session", extra={"session_id": session.id}
            )
            self.error = exc
            if self.subscription is not None:
                self.subscription.close()
            if self._on_error is not None:
                self._on_error(exc)
            return
        self.latest = view
        if view.result is None:
            if self._on_waiting is not None:
                self._on_waiting(view)
            return
        if self.scheduler is None:
            self.scheduler = RevealScheduler(
                view.result,
                interval_seconds=self._interval_seconds,
                on_change=self._on_frame,
            )
            self.scheduler.start(skip=self._skip)
        else:
            self.scheduler.update_result(view.result)

    async def close(self) -> None:
        """Release the subscription and the reveal timer."""
        if self.subscription is not None:
            self.subscription.close()
        if self.scheduler is not None:
            await self.scheduler.close()


@dataclass
class ResultsService:
    """Builds results views and live reveals for sessions."""

    session_service: SessionService
    reveal_interval_seconds: float = DEFAULT_INTERVAL_SECONDS

    async def get_view(self, session_id: str) -> ResultsView:
        """Return the current results view for a session."""
        session = await self.session_service.get_session(session_id)
        return build_view(session)

    async def watch(
        self,
        session_id: str,
        on_frame: Callable[[RevealFrame], None],
        skip: bool = False,
        on_waiting: Callable[[ResultsView], None] | None = None,
        on_error: Callable[[InvariantViolationError], None] | None = None,
    ) -> ResultsWatch:
        """Follow a session and reveal its results once every guest voted."""
        watch = ResultsWatch(
            on_frame=on_frame,
            interval_seconds=self.reveal_interval_seconds,
            skip=skip,
            on_waiting=on_waiting,
            on_error=on_error,
        )
        watch.subscription = await self.session_service.subscribe_session(
            session_id, watch.handle_snapshot
        )
        if watch.error is not None:
            watch.subscription.close()
        return watch


def build_view(session: SessionRecord) -> ResultsView:
    """Return the waiting view, or the aggregate once the session is complete."""
    result = aggregate(session.guests) if session.is_complete else None
    return ResultsView(
        session=session,
        status=FINAL if result is not None else WAITING,
        received=len(session.guests),
        expected=session.number_of_guests,
        progress=session.progress,
        result=result,
    )
