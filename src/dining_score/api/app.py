"""FastAPI application factory."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from dining_score.api.admin import router as admin_router
from dining_score.api.identity import get_identity
from dining_score.api.models import AddGuestRequest, CreateSessionRequest
from dining_score.app_logging import configure_logging
from dining_score.containers import AppContainer
from dining_score.domain.errors import (
    DiningScoreError,
    DuplicateVoteError,
    InsufficientDataError,
    InvariantViolationError,
    NotFoundError,
    SessionFullError,
    StoreConflictError,
    ValidationError,
)
from dining_score.domain.questions import QUESTIONS
from dining_score.domain.scores import score_rating
from dining_score.domain.sessions import SessionRecord
from dining_score.services.aggregation import AggregateResult
from dining_score.services.history import HistoryEntry, VenueScore
from dining_score.services.results import ResultsView
from dining_score.services.reveal import RevealFrame, RevealPhase
from dining_score.services.sessions import GuestSubmission, Identity

KEEPALIVE_SECONDS = 15.0
REVEAL_COMPLETE = RevealPhase.COMPLETE.value
HTTP_UNPROCESSABLE = 422

_ERROR_STATUS: list[tuple[type[DiningScoreError], int]] = [
    (SessionFullError, status.HTTP_409_CONFLICT),
    (ValidationError, HTTP_UNPROCESSABLE),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (DuplicateVoteError, status.HTTP_409_CONFLICT),
    (InsufficientDataError, status.HTTP_409_CONFLICT),
    (StoreConflictError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (InvariantViolationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    app = FastAPI(title="Dining Score")
    app.state.container = container

    app.include_router(admin_router)

    @app.exception_handler(DiningScoreError)
    async def handle_domain_error(
        request: Request, exc: DiningScoreError
    ) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error(
                "Request failed",
                extra={"path": request.url.path, "error": type(exc).__name__},
            )
        return JSONResponse(status_code=status_code, content={"detail": exc.message})

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/questions")
    async def questions() -> dict[str, object]:
        """Return the rating categories in display order."""
        return {
            "questions": [
                {"key": question.key, "label": question.label}
                for question in QUESTIONS
            ]
        }

    @app.post("/sessions", status_code=status.HTTP_201_CREATED)
    async def create_session(
        payload: CreateSessionRequest, request: Request
    ) -> dict[str, object]:
        """Start a voting session."""
        state_container: AppContainer = request.app.state.container
        session = await state_container.session_service.create_session(
            name=payload.name,
            number_of_guests=payload.number_of_guests,
            place_id=payload.place_id,
        )
        return session.to_document()

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: str, request: Request) -> dict[str, object]:
        """Return the current session document."""
        state_container: AppContainer = request.app.state.container
        session = await state_container.session_service.get_session(session_id)
        return session.to_document()

    @app.post("/sessions/{session_id}/guests", status_code=status.HTTP_201_CREATED)
    async def add_guest(
        session_id: str,
        payload: AddGuestRequest,
        request: Request,
        identity: Identity | None = Depends(get_identity),
    ) -> dict[str, object]:
        """Record one guest's vote."""
        state_container: AppContainer = request.app.state.container
        session = await state_container.session_service.add_guest(
            session_id,
            GuestSubmission(
                meal=payload.meal,
                votes=payload.votes,
                name=payload.name,
                note=payload.note,
                photo_url=payload.photo_url,
            ),
            identity=identity,
        )
        return session.to_document()

    @app.get("/sessions/{session_id}/results")
    async def session_results(session_id: str, request: Request) -> dict[str, object]:
        """Return the waiting view or the final scores."""
        state_container: AppContainer = request.app.state.container
        view = await state_container.results_service.get_view(session_id)
        return _serialize_view(view)

    @app.get("/sessions/{session_id}/events")
    async def session_events(session_id: str, request: Request) -> StreamingResponse:
        """Stream session snapshots until every guest has voted."""
        state_container: AppContainer = request.app.state.container
        queue: asyncio.Queue[SessionRecord] = asyncio.Queue()
        subscription = await state_container.session_service.subscribe_session(
            session_id, queue.put_nowait
        )

        async def stream() -> AsyncIterator[str]:
            with subscription:
                while not await request.is_disconnected():
                    try:
                        snapshot = await asyncio.wait_for(
                            queue.get(), timeout=KEEPALIVE_SECONDS
                        )
                    except TimeoutError:
                        yield ": keep-alive\n\n"
                        continue
                    yield f"data: {json.dumps(snapshot.to_document())}\n\n"
                    if snapshot.is_complete:
                        break

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            background=BackgroundTask(subscription.close),
        )

    @app.get("/sessions/{session_id}/results/stream")
    async def results_stream(
        session_id: str, request: Request, replay: bool = False
    ) -> StreamingResponse:
        """Stream the waiting room, then reveal one category per interval.

        With ``replay`` the final result is sent at once.
        """
        state_container: AppContainer = request.app.state.container
        queue: asyncio.Queue[tuple[str, dict[str, object]]] = asyncio.Queue()

        def on_waiting(view: ResultsView) -> None:
            queue.put_nowait(("waiting", _serialize_view(view)))

        def on_frame(frame: RevealFrame) -> None:
            queue.put_nowait(("reveal", _serialize_frame(frame)))

        def on_error(exc: InvariantViolationError) -> None:
            queue.put_nowait(("error", {"detail": exc.message}))

        watch = await state_container.results_service.watch(
            session_id,
            on_frame,
            skip=replay,
            on_waiting=on_waiting,
            on_error=on_error,
        )

        async def stream() -> AsyncIterator[str]:
            try:
                while not await request.is_disconnected():
                    try:
                        event, payload = await asyncio.wait_for(
                            queue.get(), timeout=KEEPALIVE_SECONDS
                        )
                    except TimeoutError:
                        yield ": keep-alive\n\n"
                        continue
                    yield f"event: {event}\ndata: {json.dumps(payload)}\n\n"
                    if event == "error" or payload.get("phase") == REVEAL_COMPLETE:
                        break
            finally:
                await watch.close()

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            background=BackgroundTask(watch.close),
        )

    @app.get("/history")
    async def history(
        request: Request,
        limit: int = 20,
        identity: Identity | None = Depends(get_identity),
    ) -> dict[str, object]:
        """Return sessions the signed-in voter took part in."""
        state_container: AppContainer = request.app.state.container
        if identity is None:
            raise ValidationError("Sign in to see your history.")
        entries = state_container.history_service.list_for_voter(identity.uid, limit)
        return {"sessions": [_serialize_history(entry) for entry in entries]}

    @app.get("/venues")
    async def venues(request: Request, limit: int = 100) -> dict[str, object]:
        """Return average scores per venue."""
        state_container: AppContainer = request.app.state.container
        scores = state_container.history_service.venue_scores(limit)
        return {"venues": [_serialize_venue(score) for score in scores]}

    return app


def _status_for(exc: DiningScoreError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _serialize_view(view: ResultsView) -> dict[str, object]:
    payload: dict[str, object] = {
        "status": view.status,
        "received": view.received,
        "expected": view.expected,
        "remaining": view.session.remaining_guests,
        "progress": view.progress,
        "session": view.session.to_document(),
    }
    if view.result is not None:
        payload.update(_serialize_result(view.result))
    return payload


def _serialize_result(result: AggregateResult) -> dict[str, object]:
    return {
        "categories": [
            {
                "key": question.key,
                "label": question.label,
                "average": result.averages[question.category],
            }
            for question in QUESTIONS
        ],
        "overall": result.overall,
        "rating": score_rating(result.overall),
        "leaderboard": [
            {
                "rank": entry.rank,
                "name": entry.name,
                "meal": entry.meal,
                "uid": entry.uid,
                "photoURL": entry.photo_url,
                "total": entry.total,
                "average": entry.average,
            }
            for entry in result.leaderboard
        ],
    }


def _serialize_frame(frame: RevealFrame) -> dict[str, object]:
    return {
        "phase": frame.state.phase.value,
        "index": frame.state.index,
        "categories": [
            {"key": item.category.key, "label": item.label, "average": item.average}
            for item in frame.categories
        ],
        "partialAverage": frame.partial_average,
        "overall": frame.overall,
        "rating": score_rating(frame.overall) if frame.overall is not None else None,
    }


def _serialize_history(entry: HistoryEntry) -> dict[str, object]:
    return {
        "id": entry.session_id,
        "date": entry.date,
        "name": entry.name,
        "placeId": entry.place_id,
        "overall": entry.overall,
        "rating": entry.rating,
        "yourVote": entry.own_vote.to_document() if entry.own_vote else None,
    }


def _serialize_venue(score: VenueScore) -> dict[str, object]:
    return {
        "placeId": score.place_id,
        "name": score.name,
        "sessions": score.session_count,
        "average": score.average,
        "rating": score.rating,
    }
