"""Fixed rating catalog shared by voting, aggregation and reveal."""

from dataclasses import dataclass
from enum import Enum

MIN_RATING = 1.0
MAX_RATING = 5.0
UNANSWERED = -1


class Category(Enum):
    """Rating categories in display order."""

    LOCATION = "location"
    SERVICE = "service"
    MENU = "menu"
    BILL = "bill"
    PIZZA_DOUGH = "pizzaDough"
    INGREDIENTS = "ingredients"

    @property
    def key(self) -> str:
        """Return the document key for the category."""
        return self.value


@dataclass(frozen=True)
class Question:
    """A category paired with its display label."""

    category: Category
    label: str

    @property
    def key(self) -> str:
        return self.category.key


QUESTIONS: tuple[Question, ...] = (
    Question(Category.LOCATION, "Location"),
    Question(Category.SERVICE, "Service"),
    Question(Category.MENU, "Menu"),
    Question(Category.BILL, "Bill"),
    Question(Category.PIZZA_DOUGH, "Pizza Dough"),
    Question(Category.INGREDIENTS, "Ingredients"),
)

CATEGORY_COUNT = len(QUESTIONS)
