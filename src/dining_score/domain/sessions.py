"""Domain models for dining voting sessions."""

import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field

from dining_score.domain.questions import QUESTIONS, UNANSWERED, Category

SESSION_OPEN = "open"
SESSION_CLOSED = "closed"
DEFAULT_GUEST_NAME = "Guest"

_FIELDS: dict[Category, str] = {
    Category.LOCATION: "location",
    Category.SERVICE: "service",
    Category.MENU: "menu",
    Category.BILL: "bill",
    Category.PIZZA_DOUGH: "pizza_dough",
    Category.INGREDIENTS: "ingredients",
}


@dataclass(frozen=True)
class GuestVote:
    """One guest's six category ratings; None marks an unanswered category."""

    location: float | None = None
    service: float | None = None
    menu: float | None = None
    bill: float | None = None
    pizza_dough: float | None = None
    ingredients: float | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object] | None) -> "GuestVote":
        """Build a vote from a stored document.

        Missing keys, non-numeric values and the -1 sentinel all become
        None so that aggregation can detect them.
        """
        raw = raw or {}
        values = {
            _FIELDS[question.category]: _coerce_rating(raw.get(question.key))
            for question in QUESTIONS
        }
        return cls(**values)

    def get(self, category: Category) -> float | None:
        """Return the rating for a category."""
        return getattr(self, _FIELDS[category])

    def items(self) -> Iterator[tuple[Category, float | None]]:
        """Iterate ratings in catalog order."""
        for question in QUESTIONS:
            yield question.category, self.get(question.category)

    def missing(self) -> list[Category]:
        """Return categories without an answer."""
        return [category for category, value in self.items() if value is None]

    @property
    def is_complete(self) -> bool:
        return not self.missing()

    def to_mapping(self) -> dict[str, float | None]:
        return {category.key: value for category, value in self.items()}


@dataclass(frozen=True)
class Guest:
    """A single, immutable vote submission."""

    name: str
    meal: str
    votes: GuestVote
    note: str | None = None
    uid: str | None = None
    photo_url: str | None = None

    @classmethod
    def from_document(cls, raw: Mapping[str, object]) -> "Guest":
        """Parse a guest entry from a stored session document."""
        votes = raw.get("votes")
        return cls(
            name=str(raw.get("name") or DEFAULT_GUEST_NAME),
            meal=str(raw.get("meal") or ""),
            votes=GuestVote.from_mapping(votes if isinstance(votes, Mapping) else None),
            note=_optional_str(raw.get("note")),
            uid=_optional_str(raw.get("uid")),
            photo_url=_optional_str(raw.get("photoURL")),
        )

    def to_document(self) -> dict[str, object]:
        document: dict[str, object] = {
            "name": self.name,
            "meal": self.meal,
            "votes": self.votes.to_mapping(),
        }
        if self.note is not None:
            document["note"] = self.note
        if self.uid is not None:
            document["uid"] = self.uid
        if self.photo_url is not None:
            document["photoURL"] = self.photo_url
        return document


@dataclass(frozen=True)
class SessionRecord:
    """Represents a persisted voting session."""

    id: str
    date: str
    name: str
    number_of_guests: int
    place_id: str | None = None
    guests: tuple[Guest, ...] = field(default_factory=tuple)

    @property
    def is_complete(self) -> bool:
        """Return true once the target guest count has been reached."""
        return len(self.guests) >= self.number_of_guests

    @property
    def status(self) -> str:
        return SESSION_CLOSED if self.is_complete else SESSION_OPEN

    @property
    def version(self) -> int:
        """Guests are append-only, so their count orders every write."""
        return len(self.guests)

    @property
    def remaining_guests(self) -> int:
        return max(self.number_of_guests - len(self.guests), 0)

    @property
    def progress(self) -> float:
        if self.number_of_guests <= 0:
            return 1.0
        return min(len(self.guests) / self.number_of_guests, 1.0)

    @property
    def voter_uids(self) -> list[str]:
        return [guest.uid for guest in self.guests if guest.uid]

    def has_voter(self, uid: str) -> bool:
        return uid in self.voter_uids

    def find_guest(self, uid: str) -> Guest | None:
        for guest in self.guests:
            if guest.uid == uid:
                return guest
        return None

    def to_document(self) -> dict[str, object]:
        return {
            "id": self.id,
            "date": self.date,
            "name": self.name,
            "placeId": self.place_id,
            "numberOfGuests": self.number_of_guests,
            "guests": [guest.to_document() for guest in self.guests],
            "status": self.status,
        }


def _coerce_rating(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    try:
        rating = float(value)
    except OverflowError:
        return None
    if not math.isfinite(rating) or rating == UNANSWERED:
        return None
    return rating


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
