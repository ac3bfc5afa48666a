"""
SQLite State Store for Cometode.

Provides persistence for:
- The seeded problem catalog (read-only after seeding)
- SM-2 learning state per problem
- Append-only review history
- Notes and key/value preferences

Every compound write (state upsert + history append, bulk reset, snapshot
merge) runs in a single transaction: it either fully applies or leaves the
database untouched.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Generator, Iterable, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime

from loguru import logger
from sqlalchemy import String, and_, case, cast, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cometode.clock import Clock, local_date, utc_now
from cometode.db.database import session_scope
from cometode.db.models import (
    DIFFICULTIES,
    Note,
    Preference,
    Problem,
    ProblemProgress,
    ProblemSetMember,
    ReviewHistory,
)
from cometode.delivery.scheduler import (
    LearningState,
    QualityRating,
    SM2Scheduler,
    derive_status,
)
from cometode.errors import ProblemNotFoundError, StorageError

# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ProblemFilters:
    """Conjunctive filters for listing problems. Unset fields match everything."""

    difficulty: Sequence[str] | str | None = None
    category: str | None = None
    status: str | None = None  # "new" also matches never-started problems; "all" disables
    search_text: str | None = None  # Title or catalog id
    due_only: bool = False
    problem_set: str | None = None


@dataclass
class ProblemRecord:
    """Catalog entry joined with its learning state and note."""

    id: int
    catalog_id: int
    title: str
    difficulty: str
    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    reference_urls: dict[str, str] = field(default_factory=dict)
    problem_sets: list[str] = field(default_factory=list)
    status: str = "new"
    repetitions: int = 0
    interval: int = 0
    ease_factor: float = 2.5
    next_review_date: date | None = None
    total_reviews: int = 0
    last_reviewed_at: datetime | None = None
    note: str | None = None


@dataclass
class ReviewRecord:
    """A single review event, keyed by catalog id for portability."""

    catalog_id: int
    review_date: datetime
    quality: int
    interval_before: int | None
    interval_after: int | None
    ease_factor_before: float | None
    ease_factor_after: float | None


@dataclass
class ReviewOutcome:
    """Result of a submitted review."""

    problem_id: int
    next_due_date: date
    new_interval: int
    state: LearningState


@dataclass
class StatsSummary:
    """Aggregate progress counts for a (possibly set-filtered) scope."""

    total: int = 0
    practiced: int = 0
    today_due: int = 0
    total_reviews: int = 0
    by_difficulty: list[dict] = field(default_factory=list)
    by_category: list[dict] = field(default_factory=list)
    review_history: list[dict] = field(default_factory=list)  # Last 30 active days


# =============================================================================
# State Store
# =============================================================================


class StateStore:
    """
    SQLAlchemy-backed state persistence for Cometode.

    Handles:
    - SM-2 state per problem (status, ease, interval, repetitions)
    - Review log (append-only)
    - Catalog queries, stats, notes and preferences
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock = utc_now,
        sm2: SM2Scheduler | None = None,
    ):
        """
        Initialize the state store.

        Args:
            session_factory: Factory bound to an initialized database
            clock: Returns the current instant as naive UTC
            sm2: Scheduler used for review transitions
        """
        self.session_factory = session_factory
        self.clock = clock
        self.sm2 = sm2 or SM2Scheduler()

    @property
    def _initial_ease(self) -> float:
        return self.sm2.config.initial_easiness

    def today(self) -> date:
        """Local calendar date according to the store clock."""
        return local_date(self.clock())

    @contextmanager
    def _unit_of_work(self, action: str) -> Generator[Session, None, None]:
        """Transactional scope that surfaces database failures as StorageError."""
        try:
            with session_scope(self.session_factory) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"{action} failed and was rolled back: {e}")
            raise StorageError(f"{action} failed: {e}") from e

    # =========================================================================
    # Learning State Operations
    # =========================================================================

    def get_learning_state(self, problem_id: int) -> LearningState | None:
        """
        Get learning state for a problem.

        Returns:
            LearningState, or None if the problem was never started
        """
        with self._unit_of_work("get_learning_state") as session:
            row = self._progress_row(session, problem_id)
            return _to_state(row, self._initial_ease) if row is not None else None

    def start_problem(self, problem_id: int) -> bool:
        """
        Mark a problem as started. Idempotent: existing progress is untouched.

        Returns:
            True if a learning state was created, False if one already existed
        """
        now = self.clock()
        with self._unit_of_work("start_problem") as session:
            self._require_problem(session, problem_id)
            if self._progress_row(session, problem_id) is not None:
                return False

            session.add(
                ProblemProgress(
                    problem_id=problem_id,
                    status="learning",
                    repetitions=0,
                    interval=0,
                    ease_factor=self.sm2.config.initial_easiness,
                    next_review_date=None,
                    first_learned_at=now,
                    total_reviews=0,
                )
            )

        logger.debug(f"Started problem {problem_id}")
        return True

    def submit_review(self, problem_id: int, quality: float) -> ReviewOutcome:
        """
        Apply a review: schedule, upsert state and append history atomically.

        A missing learning state is treated as the zero state, so reviewing a
        problem that was never started works.

        Args:
            problem_id: Catalog row id
            quality: Rating, rounded and clamped into 0-3

        Returns:
            ReviewOutcome with the new due date and interval
        """
        now = self.clock()
        today = local_date(now)

        with self._unit_of_work("submit_review") as session:
            self._require_problem(session, problem_id)
            row = self._progress_row(session, problem_id)
            if row is not None:
                current = _to_state(row, self._initial_ease)
            else:
                current = self.sm2.initial_state(problem_id)

            result = self.sm2.compute_next_state(current, quality, today)
            new_state = result.state

            if row is None:
                row = ProblemProgress(problem_id=problem_id, total_reviews=0)
                session.add(row)

            row.status = derive_status(new_state.repetitions)
            row.repetitions = new_state.repetitions
            row.interval = new_state.interval
            row.ease_factor = new_state.ease_factor
            row.next_review_date = result.next_due_date
            row.last_reviewed_at = now
            row.total_reviews = (row.total_reviews or 0) + 1
            if row.first_learned_at is None:
                row.first_learned_at = now
            session.flush()

            self._append_history(session, problem_id, now, result.quality, current, new_state)
            saved = _to_state(row, self._initial_ease)

        logger.info(
            f"Recorded review for problem {problem_id}: quality={result.quality.label}, "
            f"next_review={result.next_due_date}, interval={saved.interval}d"
        )
        return ReviewOutcome(
            problem_id=problem_id,
            next_due_date=result.next_due_date,
            new_interval=saved.interval,
            state=saved,
        )

    def _append_history(
        self,
        session: Session,
        problem_id: int,
        reviewed_at: datetime,
        quality: QualityRating,
        before: LearningState,
        after: LearningState,
    ) -> None:
        """Append one review history row inside the caller's transaction."""
        session.add(
            ReviewHistory(
                problem_id=problem_id,
                review_date=reviewed_at,
                quality=int(quality),
                interval_before=before.interval,
                interval_after=after.interval,
                ease_factor_before=before.ease_factor,
                ease_factor_after=after.ease_factor,
            )
        )
        session.flush()

    def reset_all(self) -> dict[str, int]:
        """
        Delete every learning state and history row in one transaction.

        Catalog, notes and preferences are kept.

        Returns:
            Counts of deleted progress and history rows
        """
        with self._unit_of_work("reset_all") as session:
            history = session.execute(delete(ReviewHistory)).rowcount
            progress = session.execute(delete(ProblemProgress)).rowcount

        logger.info(f"Reset complete: {progress} progress rows, {history} history rows deleted")
        return {"progress": progress, "history": history}

    # =========================================================================
    # Catalog Queries
    # =========================================================================

    def get_problem(self, problem_id: int) -> ProblemRecord | None:
        """Get a single problem with its progress, or None if not in the catalog."""
        with self._unit_of_work("get_problem") as session:
            row = session.execute(
                self._problem_select().where(Problem.id == problem_id)
            ).first()
            return _to_record(*row, self._initial_ease) if row is not None else None

    def list_problems(self, filters: ProblemFilters | None = None) -> list[ProblemRecord]:
        """
        List problems matching all given filters.

        Ordering: due now, then never reviewed, then everything else; ties
        broken by catalog id ascending.
        """
        filters = filters or ProblemFilters()
        today = self.today()

        due_now = and_(
            ProblemProgress.next_review_date.is_not(None),
            ProblemProgress.next_review_date <= today,
        )
        never_reviewed = or_(
            ProblemProgress.id.is_(None),
            func.coalesce(ProblemProgress.total_reviews, 0) == 0,
        )
        bucket = case((due_now, 0), (never_reviewed, 1), else_=2)

        stmt = self._problem_select()

        if filters.difficulty:
            levels = [filters.difficulty] if isinstance(filters.difficulty, str) else filters.difficulty
            stmt = stmt.where(Problem.difficulty.in_(list(levels)))

        if filters.status and filters.status != "all":
            if filters.status == "new":
                stmt = stmt.where(or_(ProblemProgress.id.is_(None), ProblemProgress.status == "new"))
            else:
                stmt = stmt.where(ProblemProgress.status == filters.status)

        if filters.search_text:
            pattern = f"%{filters.search_text}%"
            stmt = stmt.where(
                or_(Problem.title.ilike(pattern), cast(Problem.catalog_id, String).like(pattern))
            )

        if filters.due_only:
            stmt = stmt.where(due_now)

        if filters.problem_set:
            stmt = stmt.where(Problem.id.in_(_set_members(filters.problem_set)))

        stmt = stmt.order_by(bucket, Problem.catalog_id)

        with self._unit_of_work("list_problems") as session:
            records = [_to_record(*row, self._initial_ease) for row in session.execute(stmt).all()]

        if filters.category:
            needle = filters.category.lower()
            records = [r for r in records if any(needle in c.lower() for c in r.categories)]

        return records

    def list_categories(self) -> list[str]:
        """Distinct categories across the catalog, sorted."""
        with self._unit_of_work("list_categories") as session:
            lists = session.scalars(select(Problem.categories)).all()
        return sorted({c for categories in lists for c in (categories or [])})

    def fetch_due_records(self, problem_set: str | None, today: date) -> list[ProblemRecord]:
        """
        Problems due on `today`: scheduled, not new, date on or before today.

        Unordered; ordering is the queue policy's job.
        """
        stmt = (
            self._problem_select()
            .where(ProblemProgress.next_review_date.is_not(None))
            .where(ProblemProgress.next_review_date <= today)
            .where(ProblemProgress.status != "new")
        )
        if problem_set:
            stmt = stmt.where(Problem.id.in_(_set_members(problem_set)))

        with self._unit_of_work("fetch_due_records") as session:
            return [_to_record(*row, self._initial_ease) for row in session.execute(stmt).all()]

    # =========================================================================
    # Stats & Analytics
    # =========================================================================

    def compute_stats(self, problem_set: str | None = None) -> StatsSummary:
        """
        Get aggregate learning statistics.

        Args:
            problem_set: Restrict the scope to one named problem set

        Returns:
            StatsSummary for the scope
        """
        today = self.today()
        scope = select(Problem, ProblemProgress).outerjoin(
            ProblemProgress, ProblemProgress.problem_id == Problem.id
        )
        history = select(ReviewHistory.review_date)
        if problem_set:
            members = _set_members(problem_set)
            scope = scope.where(Problem.id.in_(members))
            history = history.where(ReviewHistory.problem_id.in_(members))

        with self._unit_of_work("compute_stats") as session:
            rows = session.execute(scope).all()
            review_dates = session.scalars(history).all()

        summary = StatsSummary(total=len(rows), total_reviews=len(review_dates))

        difficulty_counts = {d: {"total": 0, "practiced": 0, "mastered": 0} for d in DIFFICULTIES}
        category_counts: dict[str, dict[str, int]] = {}

        for problem, progress in rows:
            practiced = progress is not None and (progress.total_reviews or 0) > 0
            mastered = progress is not None and (progress.repetitions or 0) >= 3

            if practiced:
                summary.practiced += 1
            if progress is not None and _to_state(progress, self._initial_ease).is_due(today):
                summary.today_due += 1

            bucket = difficulty_counts[problem.difficulty]
            bucket["total"] += 1
            bucket["practiced"] += int(practiced)
            bucket["mastered"] += int(mastered)

            for category in problem.categories or []:
                counts = category_counts.setdefault(category, {"total": 0, "practiced": 0})
                counts["total"] += 1
                counts["practiced"] += int(practiced)

        summary.by_difficulty = [
            {"difficulty": d, **counts} for d, counts in difficulty_counts.items() if counts["total"]
        ]
        summary.by_category = sorted(
            ({"category": c, **counts} for c, counts in category_counts.items()),
            key=lambda item: (-item["total"], item["category"]),
        )

        per_day = Counter(local_date(d) for d in review_dates)
        summary.review_history = [
            {"date": day, "count": per_day[day]} for day in sorted(per_day, reverse=True)[:30]
        ]
        return summary

    # =========================================================================
    # Notes & Preferences
    # =========================================================================

    def save_note(self, problem_id: int, content: str) -> None:
        """Create or replace the note for a problem."""
        with self._unit_of_work("save_note") as session:
            self._require_problem(session, problem_id)
            note = session.scalar(select(Note).where(Note.problem_id == problem_id))
            if note is None:
                session.add(Note(problem_id=problem_id, content=content, updated_at=self.clock()))
            else:
                note.content = content
                note.updated_at = self.clock()

    def get_note(self, problem_id: int) -> str | None:
        with self._unit_of_work("get_note") as session:
            return session.scalar(select(Note.content).where(Note.problem_id == problem_id))

    def get_preference(self, key: str, default: str | None = None) -> str | None:
        """Get a preference value; a missing key yields `default`."""
        with self._unit_of_work("get_preference") as session:
            pref = session.get(Preference, key)
            return pref.value if pref is not None else default

    def set_preference(self, key: str, value: str) -> None:
        """Save a preference (last writer wins)."""
        with self._unit_of_work("set_preference") as session:
            self._upsert_preference(session, key, value)

    def _upsert_preference(self, session: Session, key: str, value: str) -> None:
        pref = session.get(Preference, key)
        if pref is None:
            session.add(Preference(key=key, value=value, updated_at=self.clock()))
        else:
            pref.value = value
            pref.updated_at = self.clock()

    # =========================================================================
    # Snapshot Primitives
    # =========================================================================

    def max_last_reviewed_at(self) -> datetime | None:
        """Most recent review instant across all progress rows."""
        with self._unit_of_work("max_last_reviewed_at") as session:
            return session.scalar(select(func.max(ProblemProgress.last_reviewed_at)))

    def reviewed_progress(self) -> list[tuple[int, LearningState]]:
        """(catalog id, state) for every problem reviewed at least once."""
        stmt = (
            select(Problem.catalog_id, ProblemProgress)
            .join(ProblemProgress, ProblemProgress.problem_id == Problem.id)
            .where(ProblemProgress.total_reviews > 0)
            .order_by(Problem.catalog_id)
        )
        with self._unit_of_work("reviewed_progress") as session:
            return [
                (catalog_id, _to_state(row, self._initial_ease))
                for catalog_id, row in session.execute(stmt).all()
            ]

    def review_history(self) -> list[ReviewRecord]:
        """Full review log keyed by catalog id, oldest first."""
        stmt = (
            select(Problem.catalog_id, ReviewHistory)
            .join(ReviewHistory, ReviewHistory.problem_id == Problem.id)
            .order_by(ReviewHistory.review_date, ReviewHistory.id)
        )
        with self._unit_of_work("review_history") as session:
            return [
                ReviewRecord(
                    catalog_id=catalog_id,
                    review_date=row.review_date,
                    quality=row.quality,
                    interval_before=row.interval_before,
                    interval_after=row.interval_after,
                    ease_factor_before=row.ease_factor_before,
                    ease_factor_after=row.ease_factor_after,
                )
                for catalog_id, row in session.execute(stmt).all()
            ]

    def apply_snapshot(
        self,
        progress: Iterable[tuple[int, LearningState]],
        history: Iterable[ReviewRecord],
        imported_at: str,
    ) -> int:
        """
        Merge external progress into the store in one transaction.

        Progress rows are overwritten wholesale. History rows are appended
        unless one with the same (problem, review_date, quality) exists.
        Catalog ids missing locally are skipped.

        Returns:
            Number of progress entries applied
        """
        imported = 0
        with self._unit_of_work("apply_snapshot") as session:
            id_by_catalog = dict(session.execute(select(Problem.catalog_id, Problem.id)).all())
            rows = {row.problem_id: row for row in session.scalars(select(ProblemProgress))}

            for catalog_id, state in progress:
                problem_id = id_by_catalog.get(catalog_id)
                if problem_id is None:
                    logger.debug(f"Snapshot progress for unknown catalog id {catalog_id} skipped")
                    continue

                row = rows.get(problem_id)
                if row is None:
                    row = rows[problem_id] = ProblemProgress(problem_id=problem_id)
                    session.add(row)
                row.status = state.status
                row.repetitions = state.repetitions
                row.interval = state.interval
                row.ease_factor = state.ease_factor
                row.next_review_date = state.next_review_date
                row.first_learned_at = state.first_learned_at
                row.last_reviewed_at = state.last_reviewed_at
                row.total_reviews = state.total_reviews
                imported += 1

            seen = set(
                session.execute(
                    select(ReviewHistory.problem_id, ReviewHistory.review_date, ReviewHistory.quality)
                ).all()
            )
            appended = 0
            for entry in history:
                problem_id = id_by_catalog.get(entry.catalog_id)
                if problem_id is None:
                    continue
                key = (problem_id, entry.review_date, entry.quality)
                if key in seen:
                    continue
                seen.add(key)
                session.add(
                    ReviewHistory(
                        problem_id=problem_id,
                        review_date=entry.review_date,
                        quality=entry.quality,
                        interval_before=entry.interval_before,
                        interval_after=entry.interval_after,
                        ease_factor_before=entry.ease_factor_before,
                        ease_factor_after=entry.ease_factor_after,
                    )
                )
                appended += 1

            self._upsert_preference(session, "last_import_date", imported_at)

        logger.info(f"Snapshot merged: {imported} progress entries, {appended} history rows appended")
        return imported

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _problem_select():
        return (
            select(Problem, ProblemProgress, Note.content)
            .outerjoin(ProblemProgress, ProblemProgress.problem_id == Problem.id)
            .outerjoin(Note, Note.problem_id == Problem.id)
        )

    @staticmethod
    def _progress_row(session: Session, problem_id: int) -> ProblemProgress | None:
        return session.scalar(
            select(ProblemProgress).where(ProblemProgress.problem_id == problem_id)
        )

    @staticmethod
    def _require_problem(session: Session, problem_id: int) -> None:
        if session.get(Problem, problem_id) is None:
            raise ProblemNotFoundError(problem_id)


def _set_members(problem_set: str):
    return select(ProblemSetMember.problem_id).where(ProblemSetMember.set_name == problem_set)


def _to_state(row: ProblemProgress, default_ease: float) -> LearningState:
    return LearningState(
        problem_id=row.problem_id,
        status=row.status or "new",
        repetitions=row.repetitions or 0,
        interval=row.interval or 0,
        ease_factor=row.ease_factor if row.ease_factor is not None else default_ease,
        next_review_date=row.next_review_date,
        first_learned_at=row.first_learned_at,
        last_reviewed_at=row.last_reviewed_at,
        total_reviews=row.total_reviews or 0,
    )


def _to_record(
    problem: Problem, progress: ProblemProgress | None, note: str | None, default_ease: float
) -> ProblemRecord:
    record = ProblemRecord(
        id=problem.id,
        catalog_id=problem.catalog_id,
        title=problem.title,
        difficulty=problem.difficulty,
        categories=list(problem.categories or []),
        tags=list(problem.tags or []),
        reference_urls=dict(problem.reference_urls or {}),
        problem_sets=problem.problem_sets,
        note=note,
    )
    if progress is not None:
        state = _to_state(progress, default_ease)
        record.status = state.status
        record.repetitions = state.repetitions
        record.interval = state.interval
        record.ease_factor = state.ease_factor
        record.next_review_date = state.next_review_date
        record.total_reviews = state.total_reviews
        record.last_reviewed_at = state.last_reviewed_at
    return record
