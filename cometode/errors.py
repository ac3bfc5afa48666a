"""Exception hierarchy for the cometode core."""

from __future__ import annotations


class CometodeError(Exception):
    """Base class for errors surfaced by the core."""


class ProblemNotFoundError(CometodeError):
    """Raised when a write references a problem id with no catalog entry."""

    def __init__(self, problem_id: int):
        super().__init__(f"Problem {problem_id} is not in the catalog")
        self.problem_id = problem_id


class SnapshotValidationError(CometodeError):
    """Raised when a snapshot is malformed; nothing from it is applied."""


class StorageError(CometodeError):
    """Raised when a database unit of work fails and has been rolled back."""
