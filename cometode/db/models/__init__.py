# SQLAlchemy models
from .base import Base
from .catalog import DIFFICULTIES, Problem, ProblemSetMember
from .progress import STATUSES, Note, Preference, ProblemProgress, ReviewHistory

__all__ = [
    # Base
    "Base",
    # Catalog
    "DIFFICULTIES",
    "Problem",
    "ProblemSetMember",
    # Progress
    "STATUSES",
    "ProblemProgress",
    "ReviewHistory",
    "Note",
    "Preference",
]
