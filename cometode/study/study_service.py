"""
Study Service for Cometode.

The request/response boundary consumed by hosts (the CLI today):
- Catalog browsing, stats and notes
- Today's due queue with the per-day session bound
- Review submission with after-review auto sync
- Snapshot export/import and folder sync
"""

from __future__ import annotations

import json
from typing import Any

from loguru import logger

from cometode import __version__
from cometode.db import get_session_factory, seed_catalog
from cometode.delivery.queue_policy import DEFAULT_SESSION_CAP, ReviewQueue, SessionState
from cometode.delivery.scheduler import SM2Config, SM2Scheduler
from cometode.delivery.state_store import ProblemFilters, ProblemRecord, StateStore, StatsSummary
from cometode.sync.background_sync import DEFAULT_SYNC_FILE_NAME, AutoSync
from cometode.sync.reconciler import SyncReconciler
from cometode.sync.snapshot import Snapshot, parse_snapshot

SESSION_PREF_KEY = "review_session"


class StudyService:
    """
    High-level service for study operations.

    Coordinates the state store, the due queue and sync. Owns the review
    session and persists it as a preference so short-lived hosts keep the
    per-day count between invocations.
    """

    def __init__(
        self,
        store: StateStore,
        session_cap: int = DEFAULT_SESSION_CAP,
        producer_version: str = __version__,
        sync_file_name: str = DEFAULT_SYNC_FILE_NAME,
    ):
        """
        Initialize study service.

        Args:
            store: State store bound to a seeded database
            session_cap: Due items surfaced per session
            producer_version: Written into exported snapshots
            sync_file_name: Snapshot file name inside the sync folder
        """
        self.store = store
        self.reconciler = SyncReconciler(store, producer_version)
        self.auto_sync = AutoSync(self.reconciler, store, sync_file_name)
        self.queue = ReviewQueue(store, self._load_session(session_cap))

    @classmethod
    def from_settings(cls, settings=None) -> StudyService:
        """Build a service over the configured database, seeding it on first run."""
        if settings is None:
            from config import get_settings

            settings = get_settings()

        factory = get_session_factory()
        seed_catalog(factory, settings.catalog_path)
        store = StateStore(
            factory,
            sm2=SM2Scheduler(SM2Config(initial_easiness=settings.initial_ease_factor)),
        )
        return cls(
            store,
            session_cap=settings.session_cap,
            producer_version=settings.producer_version,
            sync_file_name=settings.sync_file_name,
        )

    # =========================================================================
    # Session persistence
    # =========================================================================

    @property
    def session(self) -> SessionState:
        return self.queue.session

    def _load_session(self, cap: int) -> SessionState:
        raw = self.store.get_preference(SESSION_PREF_KEY)
        session = SessionState(cap=cap)
        if raw:
            try:
                session = SessionState.from_dict(json.loads(raw))
            except (ValueError, TypeError) as exc:
                logger.debug(f"Discarding unreadable session state: {exc}")
        session.cap = cap
        return session

    def _save_session(self) -> None:
        self.store.set_preference(SESSION_PREF_KEY, json.dumps(self.session.to_dict()))

    # =========================================================================
    # Catalog
    # =========================================================================

    def list_problems(self, filters: ProblemFilters | None = None) -> list[ProblemRecord]:
        return self.store.list_problems(filters)

    def get_problem(self, problem_id: int) -> ProblemRecord | None:
        return self.store.get_problem(problem_id)

    def list_categories(self) -> list[str]:
        return self.store.list_categories()

    def get_stats(self, problem_set: str | None = None) -> StatsSummary:
        return self.store.compute_stats(problem_set)

    def save_note(self, problem_id: int, content: str) -> dict[str, Any]:
        self.store.save_note(problem_id, content)
        return {"ok": True}

    def get_note(self, problem_id: int) -> str | None:
        return self.store.get_note(problem_id)

    # =========================================================================
    # Reviews
    # =========================================================================

    def get_due_queue(self, problem_set: str | None = None, offset: int = 0) -> list[ProblemRecord]:
        """Due problems for the current session, most fragile first."""
        items = self.queue.queue(problem_set, offset)
        self._save_session()
        return items

    def get_due_count(self, problem_set: str | None = None) -> int:
        return self.queue.due_count(problem_set)

    def next_due(self, problem_set: str | None = None) -> ProblemRecord | None:
        """The one problem to review next, or None if done for this session."""
        item = self.queue.next_item(problem_set)
        self._save_session()
        return item

    def load_more(self) -> dict[str, Any]:
        self.queue.load_more()
        self._save_session()
        return {"ok": True}

    def start_problem(self, problem_id: int) -> dict[str, Any]:
        created = self.store.start_problem(problem_id)
        return {"ok": True, "created": created}

    def submit_review(self, problem_id: int, quality: float) -> dict[str, Any]:
        """
        Record a review and run the after-review sync.

        Returns:
            {"ok", "next_due_date", "new_interval"}
        """
        outcome = self.queue.complete(problem_id, quality)
        self._save_session()

        if self.auto_sync.enabled:
            self.auto_sync.tick("review")

        return {
            "ok": True,
            "next_due_date": outcome.next_due_date.isoformat(),
            "new_interval": outcome.new_interval,
        }

    def interval_previews(self, problem_id: int) -> dict[str, int]:
        """Days until the next review for each rating, keyed by label."""
        sm2 = self.store.sm2
        state = self.store.get_learning_state(problem_id) or sm2.initial_state(problem_id)
        previews = sm2.interval_previews(state, self.store.today())
        return {quality.label: days for quality, days in previews.items()}

    def reset_all_progress(self) -> dict[str, Any]:
        self.store.reset_all()
        self.session.reset()
        self._save_session()
        return {"ok": True}

    # =========================================================================
    # Preferences
    # =========================================================================

    def get_preference(self, key: str, default: str | None = None) -> str | None:
        return self.store.get_preference(key, default)

    def set_preference(self, key: str, value: str) -> dict[str, Any]:
        self.store.set_preference(key, value)
        return {"ok": True}

    # =========================================================================
    # Sync
    # =========================================================================

    def export_snapshot(self) -> dict[str, Any]:
        """Snapshot as a JSON-ready dict with wire field names."""
        return self.reconciler.export_snapshot().model_dump(mode="json", by_alias=True)

    def import_snapshot(self, data: Snapshot | dict[str, Any] | str | bytes) -> dict[str, Any]:
        """
        Validate and merge a snapshot.

        Raises:
            SnapshotValidationError: The snapshot is malformed; nothing was applied
        """
        snapshot = data if isinstance(data, Snapshot) else parse_snapshot(data)
        result = self.reconciler.import_snapshot(snapshot)
        return {"ok": result["ok"], "imported_count": result["imported_count"]}

    def check_auto_import_needed(self, folder: str) -> dict[str, Any]:
        return self.auto_sync.check_auto_import_needed(folder)

    def perform_auto_export(self, folder: str) -> dict[str, Any]:
        return self.auto_sync.perform_auto_export(folder)

    def perform_auto_import(self, folder: str) -> dict[str, Any]:
        return self.auto_sync.perform_auto_import(folder)

    def sync_tick(self, reason: str = "periodic") -> dict[str, Any]:
        return self.auto_sync.tick(reason)
