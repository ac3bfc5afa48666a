"""
Snapshot export and whole-snapshot last-write-wins import.

A snapshot is imported only when its export timestamp is strictly newer
than every local review, or when nothing has been reviewed locally. An
accepted snapshot overwrites progress rows wholesale; history is appended
and de-duplicated on (problem, review date, quality).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger

from cometode import __version__
from cometode.clock import to_aware_utc, to_naive_utc
from cometode.delivery.scheduler import LearningState
from cometode.delivery.state_store import ReviewRecord, StateStore
from cometode.sync.snapshot import SNAPSHOT_VERSION, HistoryEntry, ProgressEntry, Snapshot


@dataclass
class ImportDecision:
    """Whether a snapshot should replace local progress, and why."""

    should_import: bool
    snapshot_date: datetime
    local_max_date: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "should_import": self.should_import,
            "snapshot_date": to_aware_utc(self.snapshot_date).isoformat(),
            "local_max_date": (
                to_aware_utc(self.local_max_date).isoformat() if self.local_max_date else None
            ),
        }


def _aware(value: datetime | None) -> datetime | None:
    return to_aware_utc(value) if value is not None else None


def _naive(value: datetime | None) -> datetime | None:
    return to_naive_utc(value) if value is not None else None


class SyncReconciler:
    """Builds snapshots from the store and merges snapshots into it."""

    def __init__(self, store: StateStore, producer_version: str = __version__):
        self.store = store
        self.producer_version = producer_version

    def export_snapshot(self) -> Snapshot:
        """
        Snapshot every reviewed problem and the full review history.

        Problems never reviewed are left out; there is nothing to merge.
        """
        progress = [
            ProgressEntry(
                catalog_id=catalog_id,
                status=state.status,
                repetitions=state.repetitions,
                interval=state.interval,
                ease_factor=state.ease_factor,
                next_review_date=state.next_review_date,
                first_learned_at=_aware(state.first_learned_at),
                last_reviewed_at=_aware(state.last_reviewed_at),
                total_reviews=state.total_reviews,
            )
            for catalog_id, state in self.store.reviewed_progress()
        ]
        history = [
            HistoryEntry(
                catalog_id=record.catalog_id,
                review_date=to_aware_utc(record.review_date),
                quality=record.quality,
                interval_before=record.interval_before,
                interval_after=record.interval_after,
                ease_factor_before=record.ease_factor_before,
                ease_factor_after=record.ease_factor_after,
            )
            for record in self.store.review_history()
        ]

        snapshot = Snapshot(
            version=SNAPSHOT_VERSION,
            export_date=to_aware_utc(self.store.clock()),
            app_version=self.producer_version,
            progress=progress,
            history=history,
        )
        logger.info(f"Exported snapshot: {len(progress)} problems, {len(history)} reviews")
        return snapshot

    def should_import(self, snapshot: Snapshot) -> ImportDecision:
        """Compare the snapshot timestamp against the newest local review."""
        local_max = self.store.max_last_reviewed_at()
        snapshot_date = to_naive_utc(snapshot.export_date)
        return ImportDecision(
            should_import=local_max is None or snapshot_date > local_max,
            snapshot_date=snapshot_date,
            local_max_date=local_max,
        )

    def import_snapshot(self, snapshot: Snapshot) -> dict[str, Any]:
        """
        Merge a snapshot if it is newer than local data.

        Returns:
            {"ok", "imported_count", "skipped"}; a skipped import writes nothing
        """
        decision = self.should_import(snapshot)
        if not decision.should_import:
            logger.info(
                f"Snapshot from {decision.snapshot_date} is not newer than local data "
                f"({decision.local_max_date}); import skipped"
            )
            return {"ok": True, "imported_count": 0, "skipped": True}

        progress = [
            (
                entry.catalog_id,
                LearningState(
                    problem_id=0,
                    status=entry.status,
                    repetitions=entry.repetitions,
                    interval=entry.interval,
                    ease_factor=entry.ease_factor,
                    next_review_date=entry.next_review_date,
                    first_learned_at=_naive(entry.first_learned_at),
                    last_reviewed_at=_naive(entry.last_reviewed_at),
                    total_reviews=entry.total_reviews,
                ),
            )
            for entry in snapshot.progress
        ]
        history = [
            ReviewRecord(
                catalog_id=entry.catalog_id,
                review_date=to_naive_utc(entry.review_date),
                quality=entry.quality,
                interval_before=entry.interval_before,
                interval_after=entry.interval_after,
                ease_factor_before=entry.ease_factor_before,
                ease_factor_after=entry.ease_factor_after,
            )
            for entry in snapshot.history
        ]

        imported_at = to_aware_utc(self.store.clock()).isoformat()
        count = self.store.apply_snapshot(progress, history, imported_at)
        return {"ok": True, "imported_count": count, "skipped": False}
