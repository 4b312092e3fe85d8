"""Cross-session reads: a voter's history and per-venue scores."""

import logging
import math
from dataclasses import dataclass

from dining_score.domain.errors import InvariantViolationError
from dining_score.domain.scores import score_rating
from dining_score.domain.sessions import Guest, SessionRecord
from dining_score.services.aggregation import category_averages, overall_average
from dining_score.services.sessions import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    """One past session seen from a single voter's side."""

    session_id: str
    date: str
    name: str
    place_id: str | None
    overall: float | None
    rating: str | None
    own_vote: Guest | None


@dataclass(frozen=True)
class VenueScore:
    """Overall scores of complete sessions grouped by place."""

    place_id: str
    name: str
    session_count: int
    average: float
    rating: str


@dataclass
class HistoryService:
    """Service for history and venue listings."""

    store: SessionStore

    def list_for_voter(self, uid: str, limit: int = 20) -> list[HistoryEntry]:
        """Return sessions the voter took part in, newest first."""
        entries = []
        for session in self.store.list_sessions_for_voter(uid, limit):
            overall = _session_overall(session)
            entries.append(
                HistoryEntry(
                    session_id=session.id,
                    date=session.date,
                    name=session.name,
                    place_id=session.place_id,
                    overall=overall,
                    rating=score_rating(overall) if overall is not None else None,
                    own_vote=session.find_guest(uid),
                )
            )
        return entries

    def venue_scores(self, limit: int = 100) -> list[VenueScore]:
        """Return the mean overall score per place across complete sessions."""
        grouped: dict[str, list[float]] = {}
        names: dict[str, str] = {}
        for session in self.store.list_sessions(limit):
            if not session.place_id:
                continue
            overall = _session_overall(session)
            if overall is None:
                continue
            grouped.setdefault(session.place_id, []).append(overall)
            names.setdefault(session.place_id, session.name)
        scores = []
        for place_id, values in grouped.items():
            average = math.fsum(values) / len(values)
            scores.append(
                VenueScore(
                    place_id=place_id,
                    name=names[place_id],
                    session_count=len(values),
                    average=average,
                    rating=score_rating(average),
                )
            )
        return sorted(scores, key=lambda score: score.average, reverse=True)


def _session_overall(session: SessionRecord) -> float | None:
    if not session.is_complete or not session.guests:
        return None
    try:
        return overall_average(category_averages(session.guests))
    except InvariantViolationError:
        logger.error(
            "Skipping score for session with malformed votes",
            extra={"session_id": session.id},
        )
        return None
