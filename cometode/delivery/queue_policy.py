"""
Due-queue policy: what to review today, in which order, and how many.

Fragile memories first: due problems are ordered by ascending ease factor,
then by catalog id. A session surfaces at most `cap` items per local day;
"load more" re-opens the session, and the counter resets automatically
when the local calendar date changes.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from datetime import date
from typing import Protocol

from loguru import logger

from cometode.delivery.scheduler import LearningState
from cometode.delivery.state_store import ProblemRecord, ReviewOutcome, StateStore

DEFAULT_SESSION_CAP = 5


class _Rankable(Protocol):
    ease_factor: float
    catalog_id: int


def is_due(state: LearningState | None, today: date) -> bool:
    """A problem is due when scheduled on or before today and not new."""
    return state is not None and state.is_due(today)


def order_due(items: Iterable[_Rankable]) -> list:
    """Sort by ascending ease factor, ties broken by ascending catalog id."""
    return sorted(items, key=lambda item: (item.ease_factor, item.catalog_id))


# =============================================================================
# Session State
# =============================================================================


@dataclass
class SessionState:
    """Serializable per-day review session counter."""

    session_date: str | None = None  # Local date, ISO format
    completed: int = 0
    cap: int = DEFAULT_SESSION_CAP

    @property
    def remaining(self) -> int:
        return max(0, self.cap - self.completed)

    @property
    def exhausted(self) -> bool:
        return self.remaining == 0

    def roll_over(self, today: date) -> bool:
        """
        Start a fresh session if the local date changed.

        Returns:
            True if the counter was reset
        """
        key = today.isoformat()
        if self.session_date == key:
            return False
        self.session_date = key
        self.completed = 0
        return True

    def record_completion(self, today: date) -> None:
        self.roll_over(today)
        self.completed += 1

    def load_more(self) -> None:
        """Re-open an exhausted session for another batch."""
        self.completed = 0

    def reset(self) -> None:
        self.session_date = None
        self.completed = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> SessionState:
        """Create from dictionary, ignoring unknown keys."""
        known = {k: data[k] for k in ("session_date", "completed", "cap") if k in data}
        return cls(**known)


# =============================================================================
# Review Queue
# =============================================================================


class ReviewQueue:
    """
    Pull-based due queue over the state store.

    Consumers take one item at a time via `next_item()` and report the
    rating via `complete()`; `due_count()` is available for progress
    display regardless of the session bound.
    """

    def __init__(self, store: StateStore, session: SessionState | None = None):
        self.store = store
        self.session = session or SessionState()

    def due_items(self, problem_set: str | None = None, today: date | None = None) -> list[ProblemRecord]:
        """Full ordered due list, ignoring the session bound."""
        today = today or self.store.today()
        return order_due(self.store.fetch_due_records(problem_set, today))

    def due_count(self, problem_set: str | None = None) -> int:
        return len(self.store.fetch_due_records(problem_set, self.store.today()))

    def queue(self, problem_set: str | None = None, offset: int = 0) -> list[ProblemRecord]:
        """Due items from `offset`, bounded by what the session still allows."""
        today = self.store.today()
        self.session.roll_over(today)
        items = self.due_items(problem_set, today)[max(0, offset):]
        return items[: self.session.remaining]

    def next_item(self, problem_set: str | None = None) -> ProblemRecord | None:
        """
        The single item to review next.

        Returns:
            The most fragile due problem, or None when nothing is due or the
            session cap is reached
        """
        today = self.store.today()
        self.session.roll_over(today)
        if self.session.exhausted:
            logger.debug(f"Session cap of {self.session.cap} reached for {self.session.session_date}")
            return None

        items = self.due_items(problem_set, today)
        return items[0] if items else None

    def complete(self, problem_id: int, quality: float) -> ReviewOutcome:
        """Submit a review and count it against today's session."""
        outcome = self.store.submit_review(problem_id, quality)
        self.session.record_completion(self.store.today())
        return outcome

    def load_more(self) -> None:
        self.session.load_more()
        logger.info("Session re-opened for another batch")
