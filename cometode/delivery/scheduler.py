"""
SM-2 Derived Spaced Repetition Scheduler.

Quality scale (0-3):
0 - Again: complete blackout, did not remember at all
1 - Hard: incorrect, but remembered upon seeing the solution
2 - Good: correct with some hesitation
3 - Easy: solved fluently with no hesitation

Successful ratings are remapped onto the classic 0-5 SM-2 scale by adding
2 (Good -> 4, Easy -> 5) before the ease factor update.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from enum import IntEnum

# =============================================================================
# Values
# =============================================================================


class QualityRating(IntEnum):
    """Self-rated recall quality."""

    AGAIN = 0
    HARD = 1
    GOOD = 2
    EASY = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def clamp(cls, value: float) -> QualityRating:
        """Round half-up, then clamp into [0, 3]."""
        if math.isnan(value):
            return cls.AGAIN
        if math.isinf(value):
            return cls.EASY if value > 0 else cls.AGAIN
        return cls(max(cls.AGAIN, min(cls.EASY, round_half_up(value))))


@dataclass
class LearningState:
    """SM-2 learning state for a single problem."""

    problem_id: int
    status: str = "new"
    repetitions: int = 0  # Consecutive successful reviews since last failure
    interval: int = 0  # Days until next review
    ease_factor: float = 2.5
    next_review_date: date | None = None  # None = never scheduled
    first_learned_at: datetime | None = None
    last_reviewed_at: datetime | None = None
    total_reviews: int = 0

    def is_due(self, today: date) -> bool:
        """Check if this problem is due for review on `today`."""
        if self.next_review_date is None or self.status == "new":
            return False
        return self.next_review_date <= today


@dataclass
class ScheduleResult:
    """Output of one scheduling step."""

    state: LearningState
    next_due_date: date
    quality: QualityRating


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return math.floor(value + 0.5)


def derive_status(repetitions: int) -> str:
    """Status projection: three consecutive successes graduate to reviewing."""
    return "reviewing" if repetitions >= 3 else "learning"


def quality_label(quality: int) -> str:
    """Display label for a rating ('Unknown' outside 0-3)."""
    try:
        return QualityRating(quality).label
    except ValueError:
        return "Unknown"


# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass
class SM2Config:
    """Configuration for the SM-2 derived algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    failure_penalty: float = 0.2  # Ease lost on Again/Hard
    first_interval: int = 1  # Days after first success
    second_interval: int = 3  # Days after second success
    easy_bonus: float = 1.3  # Interval multiplier for Easy
    pass_threshold: QualityRating = QualityRating.GOOD


class SM2Scheduler:
    """
    Implements the SM-2 derived state transition.

    Each problem has:
    - Ease Factor (EF): how fast intervals grow (2.5 default, min 1.3)
    - Interval: days until next review
    - Repetitions: consecutive successful recalls

    The scheduler is a pure function of (state, quality, today); it never
    touches storage or the wall clock.
    """

    def __init__(self, config: SM2Config | None = None):
        """
        Initialize SM-2 scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SM2Config()

    def initial_state(self, problem_id: int) -> LearningState:
        """Zero state used when a problem has never been started."""
        return LearningState(problem_id=problem_id, ease_factor=self.config.initial_easiness)

    def compute_next_state(
        self,
        state: LearningState,
        quality: float,
        today: date,
    ) -> ScheduleResult:
        """
        Calculate the next learning state and due date.

        Args:
            state: Current learning state
            quality: Rating; rounded and clamped into 0-3
            today: Local calendar date the review happens on

        Returns:
            ScheduleResult with the new state (status/bookkeeping untouched)
        """
        q = QualityRating.clamp(quality)
        cfg = self.config

        if q < cfg.pass_threshold:
            # Failed - restart the learning phase, review again today
            new_state = replace(
                state,
                repetitions=0,
                interval=0,
                ease_factor=max(cfg.minimum_easiness, state.ease_factor - cfg.failure_penalty),
                next_review_date=today,
            )
            return ScheduleResult(state=new_state, next_due_date=today, quality=q)

        # EF' = EF + (0.1 - (5 - Q) * (0.08 + (5 - Q) * 0.02)), Q on the 0-5 scale
        adjusted_q = int(q) + 2
        ef_delta = 0.1 - (5 - adjusted_q) * (0.08 + (5 - adjusted_q) * 0.02)
        new_ef = max(cfg.minimum_easiness, state.ease_factor + ef_delta)

        new_repetitions = state.repetitions + 1
        if new_repetitions == 1:
            new_interval = cfg.first_interval
        elif new_repetitions == 2:
            new_interval = cfg.second_interval
        else:
            new_interval = round_half_up(state.interval * new_ef)

        if q == QualityRating.EASY:
            new_interval = round_half_up(new_interval * cfg.easy_bonus)

        next_due = today + timedelta(days=new_interval)
        new_state = replace(
            state,
            repetitions=new_repetitions,
            interval=new_interval,
            ease_factor=new_ef,
            next_review_date=next_due,
        )
        return ScheduleResult(state=new_state, next_due_date=next_due, quality=q)

    def interval_previews(self, state: LearningState, today: date) -> dict[QualityRating, int]:
        """Interval (days) each rating would produce from `state`."""
        return {
            q: self.compute_next_state(state, q, today).state.interval for q in QualityRating
        }
