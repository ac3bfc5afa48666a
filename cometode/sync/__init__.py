"""
File-based progress sync.

Components:
- Snapshot: Versioned JSON export format
- SyncReconciler: Export and whole-snapshot last-write-wins import
- AutoSync / BackgroundSync: Preference-driven folder sync and ticker
"""

from .background_sync import (
    DEFAULT_SYNC_FILE_NAME,
    PREF_LAST_EXPORT,
    PREF_LAST_IMPORT,
    PREF_SYNC_ENABLED,
    PREF_SYNC_FOLDER,
    AutoSync,
    BackgroundSync,
    SyncStatus,
)
from .reconciler import ImportDecision, SyncReconciler
from .snapshot import (
    SNAPSHOT_VERSION,
    HistoryEntry,
    ProgressEntry,
    Snapshot,
    load_snapshot_file,
    parse_snapshot,
    write_snapshot_file,
)

__all__ = [
    # Format
    "SNAPSHOT_VERSION",
    "Snapshot",
    "ProgressEntry",
    "HistoryEntry",
    "parse_snapshot",
    "load_snapshot_file",
    "write_snapshot_file",
    # Merge
    "SyncReconciler",
    "ImportDecision",
    # Auto sync
    "AutoSync",
    "BackgroundSync",
    "SyncStatus",
    "DEFAULT_SYNC_FILE_NAME",
    "PREF_SYNC_ENABLED",
    "PREF_SYNC_FOLDER",
    "PREF_LAST_EXPORT",
    "PREF_LAST_IMPORT",
]
