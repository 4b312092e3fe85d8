"""Timed, ordered reveal of category averages."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from types import TracebackType

from dining_score.domain.questions import CATEGORY_COUNT, QUESTIONS, Category
from dining_score.services.aggregation import AggregateResult

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5.0


class RevealPhase(Enum):
    """Phases of the reveal state machine."""

    IDLE = "idle"
    REVEALING = "revealing"
    COMPLETE = "complete"


@dataclass(frozen=True)
class RevealState:
    """Current phase plus the number of categories already shown."""

    phase: RevealPhase
    index: int = 0


@dataclass(frozen=True)
class RevealedCategory:
    category: Category
    label: str
    average: float


@dataclass(frozen=True)
class RevealFrame:
    """What a viewer should currently see."""

    state: RevealState
    categories: list[RevealedCategory]
    partial_average: float | None
    overall: float | None


class RevealScheduler:
    """Reveal one category per tick, in catalog order.

    ``start`` runs the ticks on a background task; ``run`` drives them in the
    caller's task. ``close`` (or leaving ``async with``) cancels the timer.
    """

    def __init__(
        self,
        result: AggregateResult,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        on_change: Callable[[RevealFrame], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._result = result
        self._on_change = on_change
        self._sleep = sleep
        self._state = RevealState(RevealPhase.IDLE)
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> RevealState:
        return self._state

    @property
    def result(self) -> AggregateResult:
        return self._result

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, skip: bool = False) -> None:
        """Begin revealing on a background task, or jump to the end."""
        if self._state.phase is not RevealPhase.IDLE:
            return
        if skip:
            self._complete()
            return
        self._transition(RevealState(RevealPhase.REVEALING, 0))
        self._task = asyncio.get_running_loop().create_task(self._drive())

    async def run(self, skip: bool = False) -> None:
        """Reveal every category in the current task."""
        if self.is_running:
            await self.wait()
            return
        if self._state.phase is RevealPhase.IDLE:
            if skip:
                self._complete()
                return
            self._transition(RevealState(RevealPhase.REVEALING, 0))
        await self._drive()

    async def wait(self) -> None:
        """Wait for a background reveal to finish or be cancelled."""
        task = self._task
        if task is None:
            return
        await asyncio.wait({task})
        if not task.cancelled():
            task.result()

    def tick(self) -> None:
        """Reveal the next category."""
        if self._state.phase is not RevealPhase.REVEALING:
            return
        next_index = self._state.index + 1
        self._transition(RevealState(RevealPhase.REVEALING, next_index))
        if next_index >= CATEGORY_COUNT:
            self._complete()

    def skip(self) -> None:
        """Show the final result immediately."""
        if self._state.phase is RevealPhase.COMPLETE:
            return
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        self._complete()

    def update_result(self, result: AggregateResult) -> None:
        """Swap in recomputed averages without resetting progress."""
        self._result = result
        if self._state.phase is not RevealPhase.IDLE:
            self._notify()

    def frame(self) -> RevealFrame:
        """Return the categories and averages visible in the current state."""
        if self._state.phase is RevealPhase.COMPLETE:
            shown = CATEGORY_COUNT
        elif self._state.phase is RevealPhase.REVEALING:
            shown = min(self._state.index, CATEGORY_COUNT)
        else:
            shown = 0
        categories = [
            RevealedCategory(
                category=question.category,
                label=question.label,
                average=self._result.averages[question.category],
            )
            for question in QUESTIONS[:shown]
        ]
        return RevealFrame(
            state=self._state,
            categories=categories,
            partial_average=self._result.partial(shown) if shown else None,
            overall=(
                self._result.overall
                if self._state.phase is RevealPhase.COMPLETE
                else None
            ),
        )

    async def close(self) -> None:
        """Cancel the timer and wait for it to stop."""
        task, self._task = self._task, None
        if task is None or task.done() or task is _current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def __aenter__(self) -> "RevealScheduler":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _drive(self) -> None:
        while self._state.phase is RevealPhase.REVEALING:
            await self._sleep(self.interval_seconds)
            self.tick()

    def _complete(self) -> None:
        self._transition(RevealState(RevealPhase.COMPLETE, CATEGORY_COUNT))

    def _transition(self, state: RevealState) -> None:
        self._state = state
        logger.debug(
            "Reveal state changed",
            extra={"phase": state.phase.value, "index": state.index},
        )
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.frame())


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
