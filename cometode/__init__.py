"""
Cometode: spaced-repetition scheduling for coding-practice problems.

Components:
- SM2Scheduler: pure SM-2 derived state transition
- StateStore: SQLite persistence for catalog, progress and history
- ReviewQueue: due-item ordering with a bounded daily session
- SyncReconciler: snapshot export and last-write-wins import
- StudyService: request/response facade used by hosts (CLI, ticker)
"""

__version__ = "1.0.0"
