"""
Folder-based auto sync for Cometode.

Keeps a snapshot file in a user-chosen folder (e.g. a cloud-synced
directory) up to date:
- On startup, imports the snapshot if it is newer than local progress
- Exports at most once per local day on periodic ticks
- Exports after every review submission

Sync is controlled by two preferences: `sync_enabled` ("true"/"false")
and `sync_folder_path`. Failures degrade to a skipped cycle; nothing here
raises into the host.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from cometode.clock import local_date, to_naive_utc
from cometode.delivery.state_store import StateStore
from cometode.errors import CometodeError
from cometode.sync.reconciler import SyncReconciler
from cometode.sync.snapshot import load_snapshot_file, write_snapshot_file

DEFAULT_SYNC_FILE_NAME = "cometode-progress.json"

PREF_SYNC_ENABLED = "sync_enabled"
PREF_SYNC_FOLDER = "sync_folder_path"
PREF_LAST_EXPORT = "last_export_date"
PREF_LAST_IMPORT = "last_import_date"


class AutoSync:
    """
    Snapshot file export/import driven by preferences.

    Usage:
        auto_sync = AutoSync(SyncReconciler(store), store)
        auto_sync.tick("startup")
    """

    def __init__(
        self,
        reconciler: SyncReconciler,
        store: StateStore,
        sync_file_name: str = DEFAULT_SYNC_FILE_NAME,
    ):
        self.reconciler = reconciler
        self.store = store
        self.sync_file_name = sync_file_name

    # =========================================================================
    # Preferences
    # =========================================================================

    @property
    def enabled(self) -> bool:
        return self.store.get_preference(PREF_SYNC_ENABLED) == "true"

    @property
    def folder(self) -> str | None:
        return self.store.get_preference(PREF_SYNC_FOLDER) or None

    def configure(self, folder: str | None, enabled: bool = True) -> None:
        """Persist the sync folder and flag."""
        if folder is not None:
            self.store.set_preference(PREF_SYNC_FOLDER, str(folder))
        self.store.set_preference(PREF_SYNC_ENABLED, "true" if enabled else "false")

    def sync_path(self, folder: str | Path) -> Path:
        return Path(folder) / self.sync_file_name

    def exported_today(self) -> bool:
        """True if the last recorded export happened on today's local date."""
        value = self.store.get_preference(PREF_LAST_EXPORT)
        if not value:
            return False
        try:
            exported_on = local_date(to_naive_utc(datetime.fromisoformat(value)))
        except ValueError:
            logger.debug(f"Unreadable {PREF_LAST_EXPORT} preference: {value!r}")
            return False
        return exported_on == self.store.today()

    # =========================================================================
    # Operations
    # =========================================================================

    def check_auto_import_needed(self, folder: str | Path) -> dict[str, Any]:
        """
        Decide whether the snapshot in `folder` should be imported.

        Returns:
            {"should_import", "snapshot_date", "local_max_date"}, plus
            "reason" when no decision could be made
        """
        path = self.sync_path(folder)
        if not path.is_file():
            return {"should_import": False, "reason": f"No snapshot at {path}"}

        try:
            snapshot = load_snapshot_file(path)
            return self.reconciler.should_import(snapshot).to_dict()
        except (OSError, CometodeError) as exc:
            logger.warning("Auto-import check failed: {}", exc)
            return {"should_import": False, "reason": str(exc)}

    def perform_auto_export(self, folder: str | Path) -> dict[str, Any]:
        """
        Write the current snapshot into `folder`.

        Returns:
            {"ok", "exported_count"} (plus "path" or "error")
        """
        folder = Path(folder)
        if not folder.is_dir():
            logger.warning("Sync folder {} is not available - export skipped", folder)
            return {"ok": False, "exported_count": 0, "error": f"Folder not found: {folder}"}

        try:
            snapshot = self.reconciler.export_snapshot()
            path = write_snapshot_file(self.sync_path(folder), snapshot)
            self.store.set_preference(PREF_LAST_EXPORT, snapshot.export_date.isoformat())
        except (OSError, CometodeError) as exc:
            logger.warning("Auto-export failed: {}", exc)
            return {"ok": False, "exported_count": 0, "error": str(exc)}

        logger.info("Auto-export wrote {} problems to {}", snapshot.exported_count, path)
        return {"ok": True, "exported_count": snapshot.exported_count, "path": str(path)}

    def perform_auto_import(self, folder: str | Path) -> dict[str, Any]:
        """
        Import the snapshot in `folder` if it is newer than local progress.

        Returns:
            {"ok", "imported_count"} (plus "skipped" or "error")
        """
        path = self.sync_path(folder)
        try:
            snapshot = load_snapshot_file(path)
            result = self.reconciler.import_snapshot(snapshot)
        except (OSError, CometodeError) as exc:
            logger.warning("Auto-import failed: {}", exc)
            return {"ok": False, "imported_count": 0, "error": str(exc)}

        return result

    def tick(self, reason: str = "periodic") -> dict[str, Any]:
        """
        Run one sync cycle.

        Args:
            reason: "startup" (import if needed, then daily export),
                "periodic" (daily export) or "review" (always export)

        Returns:
            Results dict; {"skipped": True, "reason": ...} when nothing ran
        """
        try:
            if not self.enabled:
                return {"skipped": True, "reason": "Sync disabled"}

            folder = self.folder
            if not folder:
                return {"skipped": True, "reason": "No sync folder configured"}
            if not Path(folder).is_dir():
                logger.warning("Sync folder {} is not available - skipping {} sync", folder, reason)
                return {"skipped": True, "reason": f"Folder not found: {folder}"}

            results: dict[str, Any] = {"skipped": False, "reason": reason}

            if reason == "startup":
                check = self.check_auto_import_needed(folder)
                results["check"] = check
                if check.get("should_import"):
                    results["import"] = self.perform_auto_import(folder)

            if reason == "review" or not self.exported_today():
                results["export"] = self.perform_auto_export(folder)

            return results

        except CometodeError as exc:
            logger.warning("Sync tick ({}) skipped: {}", reason, exc)
            return {"skipped": True, "reason": str(exc)}


# =============================================================================
# Background Runner
# =============================================================================


@dataclass
class SyncStatus:
    """Current background sync status."""

    is_running: bool = False
    last_tick_at: datetime | None = None
    last_result: dict[str, Any] = field(default_factory=dict)
    last_reminder_date: date | None = None
    total_ticks: int = 0


@dataclass
class BackgroundSync:
    """
    Background sync and due-reminder ticker.

    Runs a startup tick, then periodic ticks in a daemon thread until
    stopped. The due reminder fires `on_due(count)` at most once per local
    day when something is due.

    Usage:
        runner = BackgroundSync(auto_sync, due_count=queue.due_count)
        runner.start()
        # ... host runs ...
        runner.stop()
    """

    auto_sync: AutoSync
    due_count: Callable[[], int] | None = None
    on_due: Callable[[int], None] | None = None
    interval_seconds: float = 3600.0
    due_check_seconds: float = 3600.0

    # Internal state
    _status: SyncStatus = field(default_factory=SyncStatus)
    _thread: threading.Thread | None = field(default=None, repr=False)
    _stop_event: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def status(self) -> SyncStatus:
        """Get current sync status."""
        return self._status

    def start(self) -> None:
        """Start the ticker thread."""
        if self._status.is_running:
            logger.warning("Background sync already running")
            return

        self._status.is_running = True
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop,
            name="cometode-background-sync",
            daemon=True,
        )
        self._thread.start()

        logger.info(
            "Background sync started (sync every {}s, due check every {}s)",
            self.interval_seconds,
            self.due_check_seconds,
        )

    def stop(self) -> None:
        """Stop the ticker gracefully."""
        if not self._status.is_running:
            return

        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

        self._status.is_running = False
        logger.info("Background sync stopped")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until stopped (or timeout). Returns True if stopped."""
        return self._stop_event.wait(timeout=timeout)

    def sync_now(self, reason: str = "periodic") -> dict[str, Any]:
        """
        Run a sync tick immediately (blocking).

        Returns:
            Tick results dict
        """
        result = self.auto_sync.tick(reason)
        self._status.last_tick_at = datetime.now()
        self._status.last_result = result
        self._status.total_ticks += 1
        return result

    def check_due_reminder(self) -> int | None:
        """
        Fire the due reminder if it has not fired today.

        Returns:
            Due count when the check ran, None if already reminded today
        """
        today = self.auto_sync.store.today()
        if self._status.last_reminder_date == today or self.due_count is None:
            return None

        try:
            count = self.due_count()
        except CometodeError as exc:
            logger.warning("Due check skipped: {}", exc)
            return None

        if count > 0:
            self._status.last_reminder_date = today
            if self.on_due:
                try:
                    self.on_due(count)
                except Exception as exc:
                    logger.warning("Due reminder callback failed: {}", exc)
        return count

    def _loop(self) -> None:
        """Startup tick, then interleaved sync and due-check timers."""
        self.sync_now("startup")
        self.check_due_reminder()

        next_sync = _deadline(self.interval_seconds)
        next_due = _deadline(self.due_check_seconds)

        while True:
            deadline = min(next_sync, next_due)
            timeout = None if math.isinf(deadline) else max(0.0, deadline - time.monotonic())
            if self._stop_event.wait(timeout=timeout):
                break  # Stop event was set

            now = time.monotonic()
            if now >= next_sync:
                self.sync_now("periodic")
                next_sync = _deadline(self.interval_seconds)
            if now >= next_due:
                self.check_due_reminder()
                next_due = _deadline(self.due_check_seconds)


def _deadline(interval: float) -> float:
    """Monotonic deadline for a timer; a non-positive interval never fires."""
    return time.monotonic() + interval if interval > 0 else math.inf
