"""
Review delivery: scheduling, persistence and the due queue.

Components:
- SM2Scheduler: Spaced repetition algorithm
- StateStore: SQLite persistence of learning state and history
- ReviewQueue: Due ordering and per-day session bound
"""

from .queue_policy import ReviewQueue, SessionState, is_due, order_due
from .scheduler import (
    LearningState,
    QualityRating,
    ScheduleResult,
    SM2Config,
    SM2Scheduler,
    derive_status,
    quality_label,
)
from .state_store import (
    ProblemFilters,
    ProblemRecord,
    ReviewOutcome,
    ReviewRecord,
    StateStore,
    StatsSummary,
)

__all__ = [
    # Scheduling
    "SM2Scheduler",
    "SM2Config",
    "LearningState",
    "QualityRating",
    "ScheduleResult",
    "derive_status",
    "quality_label",
    # Persistence
    "StateStore",
    "ProblemFilters",
    "ProblemRecord",
    "ReviewOutcome",
    "ReviewRecord",
    "StatsSummary",
    # Queue
    "ReviewQueue",
    "SessionState",
    "is_due",
    "order_due",
]
