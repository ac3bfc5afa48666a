"""Study service: the host-facing boundary of the review engine."""

from .study_service import SESSION_PREF_KEY, StudyService

__all__ = ["StudyService", "SESSION_PREF_KEY"]
