"""Score aggregation for voting sessions.

All functions here are pure and recompute from the full guest list on every
call. Sums use ``math.fsum`` in catalog order, which is exactly rounded, so the
result does not depend on the order in which guests arrived.
"""

import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from dining_score.domain.errors import InsufficientDataError, InvariantViolationError
from dining_score.domain.questions import (
    CATEGORY_COUNT,
    MAX_RATING,
    MIN_RATING,
    QUESTIONS,
    Category,
)
from dining_score.domain.sessions import Guest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaderboardEntry:
    """A guest's placement by their own mean rating."""

    rank: int
    name: str
    meal: str
    total: float
    average: float
    uid: str | None = None
    photo_url: str | None = None


@dataclass(frozen=True)
class AggregateResult:
    """Category and overall averages for a set of guests."""

    averages: dict[Category, float]
    overall: float
    guest_count: int
    leaderboard: list[LeaderboardEntry]

    def partial(self, count: int) -> float:
        return partial_average(self.averages, count)


def category_averages(guests: Sequence[Guest]) -> dict[Category, float]:
    """Return the mean rating of each category across all guests."""
    if not guests:
        raise InsufficientDataError()
    for index, guest in enumerate(guests):
        _check_guest(guest, index)
    count = len(guests)
    return {
        question.category: math.fsum(
            guest.votes.get(question.category) for guest in guests
        )
        / count
        for question in QUESTIONS
    }


def overall_average(averages: Mapping[Category, float]) -> float:
    """Return the mean of the category averages (not of raw votes)."""
    values = _ordered_values(averages)
    if not values:
        raise InsufficientDataError()
    return math.fsum(values) / len(values)


def partial_average(averages: Mapping[Category, float], count: int) -> float:
    """Return the mean of the first ``count`` category averages in catalog order."""
    values = _ordered_values(averages)
    if not 1 <= count <= len(values):
        raise ValueError(f"count must be between 1 and {len(values)}, got {count}")
    return math.fsum(values[:count]) / count


def guest_total(guest: Guest) -> float:
    """Return the raw sum of one guest's six ratings."""
    _check_guest(guest)
    return math.fsum(value for _, value in guest.votes.items())


def guest_average(guest: Guest) -> float:
    """Return a guest's mean rating, on the same 1-5 scale as categories."""
    return guest_total(guest) / CATEGORY_COUNT


def leaderboard(guests: Sequence[Guest]) -> list[LeaderboardEntry]:
    """Rank guests by their mean rating, highest first; ties keep arrival order."""
    scored = [(guest, guest_total(guest)) for guest in guests]
    ranked = sorted(scored, key=lambda pair: pair[1], reverse=True)
    return [
        LeaderboardEntry(
            rank=position,
            name=guest.name,
            meal=guest.meal,
            total=total,
            average=total / CATEGORY_COUNT,
            uid=guest.uid,
            photo_url=guest.photo_url,
        )
        for position, (guest, total) in enumerate(ranked, start=1)
    ]


def aggregate(guests: Sequence[Guest]) -> AggregateResult:
    """Compute every score shown on the results screen."""
    averages = category_averages(guests)
    return AggregateResult(
        averages=averages,
        overall=overall_average(averages),
        guest_count=len(guests),
        leaderboard=leaderboard(guests),
    )


def _ordered_values(averages: Mapping[Category, float]) -> list[float]:
    return [
        averages[question.category]
        for question in QUESTIONS
        if question.category in averages
    ]


def _check_guest(guest: Guest, index: int | None = None) -> None:
    missing = guest.votes.missing()
    if missing:
        logger.error(
            "Unanswered rating reached aggregation",
            extra={
                "guest_index": index,
                "categories": [category.key for category in missing],
            },
        )
        raise InvariantViolationError()
    for category, value in guest.votes.items():
        _check_range(value, category)


def _check_range(value: float, category: Category) -> None:
    if not MIN_RATING <= value <= MAX_RATING:
        logger.error(
            "Out-of-range rating reached aggregation",
            extra={"category": category.key, "value": value},
        )
        raise InvariantViolationError()
