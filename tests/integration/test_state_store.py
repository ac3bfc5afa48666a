"""
Integration tests for the SQLite state store.

Each test runs against a fresh, seeded database file with a fixed clock.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from cometode.db import seed_catalog, session_scope
from cometode.db.models import Problem, ProblemProgress, ReviewHistory
from cometode.delivery.scheduler import SM2Config, SM2Scheduler
from cometode.delivery.state_store import ProblemFilters, StateStore, _to_state
from cometode.errors import ProblemNotFoundError, StorageError


def _count(factory, model):
    with session_scope(factory) as session:
        return session.scalar(select(func.count()).select_from(model))


class TestSeeding:
    """Tests for catalog seeding."""

    def test_catalog_loaded_once(self, seeded_factory):
        total = _count(seeded_factory, Problem)

        assert total == 36
        assert seed_catalog(seeded_factory) == 0
        assert _count(seeded_factory, Problem) == total

    def test_ids_follow_catalog_order(self, store):
        problem = store.get_problem(3)

        assert problem.catalog_id == 3
        assert problem.title == "Two Sum"
        assert problem.problem_sets == ["blind75", "neetcode150"]
        assert "leetcode" in problem.reference_urls


class TestSubmitReview:
    """Tests for review submission."""

    def test_first_review_without_start(self, store):
        """Reviewing a never-started problem should use the zero state."""
        outcome = store.submit_review(1, 2)
        state = store.get_learning_state(1)

        assert outcome.new_interval == 1
        assert outcome.next_due_date == store.today() + timedelta(days=1)
        assert state.repetitions == 1
        assert state.total_reviews == 1
        assert state.status == "learning"
        assert state.first_learned_at == store.clock()
        assert state.last_reviewed_at == store.clock()

    def test_failure_is_due_today(self, store):
        outcome = store.submit_review(1, 0)
        state = store.get_learning_state(1)

        assert outcome.next_due_date == store.today()
        assert state.ease_factor == pytest.approx(2.3)
        assert state.interval == 0

    def test_bookkeeping_accumulates(self, store, clock):
        store.submit_review(5, 2)
        first_learned = store.get_learning_state(5).first_learned_at

        clock.advance(days=1)
        store.submit_review(5, 2)
        clock.advance(days=3)
        outcome = store.submit_review(5, 3)
        state = store.get_learning_state(5)

        assert state.total_reviews == 3
        assert state.first_learned_at == first_learned
        assert state.last_reviewed_at == clock()
        assert state.status == "reviewing"
        assert outcome.new_interval == 10

    def test_each_review_appends_history(self, store, seeded_factory):
        store.submit_review(2, 2)
        store.submit_review(2, 0)

        history = store.review_history()
        assert _count(seeded_factory, ReviewHistory) == 2
        assert [h.quality for h in history] == [2, 0]
        assert history[1].interval_before == 1
        assert history[1].interval_after == 0

    def test_quality_is_clamped(self, store):
        store.submit_review(2, 7.2)

        assert store.review_history()[0].quality == 3

    def test_unknown_problem_raises(self, store, seeded_factory):
        with pytest.raises(ProblemNotFoundError):
            store.submit_review(9999, 2)

        assert _count(seeded_factory, ProblemProgress) == 0

    def test_failed_history_append_rolls_back_state(self, store, seeded_factory, monkeypatch):
        """A failure between the upsert and the history append applies neither write."""
        store.submit_review(4, 2)
        before = store.get_learning_state(4)

        def fail(*args, **kwargs):
            raise OperationalError("INSERT INTO review_history", {}, Exception("disk full"))

        monkeypatch.setattr(store, "_append_history", fail)

        with pytest.raises(StorageError):
            store.submit_review(4, 3)

        assert store.get_learning_state(4) == before
        assert _count(seeded_factory, ReviewHistory) == 1


class TestStartProblem:
    """Tests for starting problems."""

    def test_start_creates_learning_state(self, store):
        assert store.start_problem(7) is True
        state = store.get_learning_state(7)

        assert state.status == "learning"
        assert state.repetitions == 0
        assert state.next_review_date is None
        assert state.first_learned_at == store.clock()

    def test_start_is_idempotent(self, store, clock):
        store.start_problem(7)
        once = store.get_learning_state(7)

        clock.advance(hours=2)
        assert store.start_problem(7) is False
        assert store.get_learning_state(7) == once

    def test_start_never_resets_progress(self, store):
        store.submit_review(7, 2)
        store.start_problem(7)

        assert store.get_learning_state(7).repetitions == 1

    def test_started_problem_not_due(self, store):
        store.start_problem(7)

        assert store.fetch_due_records(None, store.today()) == []

    def test_start_unknown_problem(self, store):
        with pytest.raises(ProblemNotFoundError):
            store.start_problem(4242)


class TestLookups:
    """Absent rows yield None, never errors."""

    def test_missing_values(self, store):
        assert store.get_problem(4242) is None
        assert store.get_learning_state(1) is None
        assert store.get_note(1) is None
        assert store.get_preference("nope") is None
        assert store.get_preference("nope", "fallback") == "fallback"


class TestInitialEase:
    """The configured initial ease is used everywhere a default is needed."""

    def test_start_uses_configured_ease(self, seeded_factory, clock):
        store = StateStore(seeded_factory, clock=clock, sm2=SM2Scheduler(SM2Config(initial_easiness=2.0)))

        store.start_problem(1)

        assert store.get_learning_state(1).ease_factor == 2.0

    def test_unset_ease_falls_back_to_configured_default(self):
        state = _to_state(ProblemProgress(problem_id=1), default_ease=2.0)

        assert state.ease_factor == 2.0
        assert state.status == "new"


class TestListProblems:
    """Tests for filtered listing and ordering."""

    def test_default_order_is_catalog_order(self, store):
        ids = [p.catalog_id for p in store.list_problems()]

        assert ids == list(range(1, 37))

    def test_bucket_ordering(self, store, clock):
        """Due first, then never reviewed, then everything else."""
        store.submit_review(30, 0)  # Due today
        store.submit_review(2, 2)  # Scheduled tomorrow

        ids = [p.catalog_id for p in store.list_problems()]

        assert ids[0] == 30
        assert ids[-1] == 2
        assert ids[1:-1] == [i for i in range(1, 37) if i not in (2, 30)]

    def test_started_but_unreviewed_is_never_reviewed_bucket(self, store):
        store.submit_review(36, 2)
        store.start_problem(35)

        ids = [p.catalog_id for p in store.list_problems()]
        assert ids.index(35) < ids.index(36)

    def test_difficulty_filter(self, store):
        easy = store.list_problems(ProblemFilters(difficulty="Easy"))
        not_medium = store.list_problems(ProblemFilters(difficulty=["Easy", "Hard"]))

        assert len(easy) == 11
        assert len(not_medium) == 17
        assert {p.difficulty for p in not_medium} == {"Easy", "Hard"}

    def test_category_substring_case_insensitive(self, store):
        design = store.list_problems(ProblemFilters(category="design"))

        assert [p.catalog_id for p in design] == [27, 30]

    def test_status_new_includes_unstarted(self, store):
        store.submit_review(1, 2)

        new = store.list_problems(ProblemFilters(status="new"))
        learning = store.list_problems(ProblemFilters(status="learning"))

        assert len(new) == 35
        assert [p.catalog_id for p in learning] == [1]
        assert len(store.list_problems(ProblemFilters(status="all"))) == 36

    def test_search_by_title_or_id(self, store):
        by_title = store.list_problems(ProblemFilters(search_text="anagram"))
        by_id = store.list_problems(ProblemFilters(search_text="36"))

        assert [p.catalog_id for p in by_title] == [2, 4]
        assert [p.catalog_id for p in by_id] == [36]

    def test_due_only(self, store):
        store.submit_review(12, 1)
        store.submit_review(13, 2)

        assert [p.catalog_id for p in store.list_problems(ProblemFilters(due_only=True))] == [12]

    def test_problem_set_filter(self, store):
        blind = store.list_problems(ProblemFilters(problem_set="blind75"))

        assert len(blind) == 27
        assert all("blind75" in p.problem_sets for p in blind)

    def test_filters_are_conjunctive(self, store):
        result = store.list_problems(
            ProblemFilters(difficulty="Hard", category="trees", problem_set="blind75")
        )

        assert [p.catalog_id for p in result] == [30]

    def test_categories(self, store):
        categories = store.list_categories()

        assert categories == sorted(categories)
        assert "Design" in categories
        assert "Heap / Priority Queue" in categories


class TestDueRecords:
    """Tests for due queue queries."""

    def test_due_after_failure_and_later_success(self, store, clock):
        store.submit_review(1, 0)
        store.submit_review(2, 2)

        assert [r.id for r in store.fetch_due_records(None, store.today())] == [1]

        tomorrow = store.today() + timedelta(days=1)
        assert {r.id for r in store.fetch_due_records(None, tomorrow)} == {1, 2}

    def test_set_filter(self, store):
        store.submit_review(8, 0)  # neetcode150 only
        store.submit_review(1, 0)

        assert [r.id for r in store.fetch_due_records("blind75", store.today())] == [1]


class TestStats:
    """Tests for aggregate statistics."""

    def test_empty_stats(self, store):
        stats = store.compute_stats()

        assert stats.total == 36
        assert stats.practiced == 0
        assert stats.today_due == 0
        assert stats.total_reviews == 0
        assert [d["difficulty"] for d in stats.by_difficulty] == ["Easy", "Medium", "Hard"]
        assert stats.review_history == []

    def test_counts_after_reviews(self, store, clock):
        store.submit_review(1, 0)  # Easy, due today
        store.submit_review(4, 2)  # Medium
        store.start_problem(14)  # Hard, started only
        for _ in range(3):
            store.submit_review(3, 2)  # Easy, mastered

        stats = store.compute_stats()
        easy = next(d for d in stats.by_difficulty if d["difficulty"] == "Easy")
        hard = next(d for d in stats.by_difficulty if d["difficulty"] == "Hard")
        arrays = next(c for c in stats.by_category if c["category"] == "Arrays & Hashing")

        assert stats.practiced == 3
        assert stats.today_due == 1
        assert stats.total_reviews == 5
        assert easy == {"difficulty": "Easy", "total": 11, "practiced": 2, "mastered": 1}
        assert hard["practiced"] == 0
        assert arrays == {"category": "Arrays & Hashing", "total": 9, "practiced": 3}
        assert stats.by_category[0]["category"] == "Arrays & Hashing"
        assert stats.review_history == [{"date": store.today(), "count": 5}]

    def test_stats_scoped_to_set(self, store):
        store.submit_review(8, 2)  # Not in blind75

        stats = store.compute_stats("blind75")

        assert stats.total == 27
        assert stats.practiced == 0
        assert stats.total_reviews == 0


class TestResetAndPreferences:
    """Tests for bulk reset, notes and preferences."""

    def test_reset_keeps_notes_and_preferences(self, store, seeded_factory):
        store.submit_review(1, 2)
        store.start_problem(2)
        store.save_note(1, "Use a set")
        store.set_preference("theme", "dark")

        counts = store.reset_all()

        assert counts == {"progress": 2, "history": 1}
        assert _count(seeded_factory, ProblemProgress) == 0
        assert _count(seeded_factory, ReviewHistory) == 0
        assert _count(seeded_factory, Problem) == 36
        assert store.get_note(1) == "Use a set"
        assert store.get_preference("theme") == "dark"

    def test_preference_last_writer_wins(self, store):
        store.set_preference("sync_enabled", "true")
        store.set_preference("sync_enabled", "false")

        assert store.get_preference("sync_enabled") == "false"

    def test_note_replaced(self, store):
        store.save_note(3, "hash map")
        store.save_note(3, "one pass hash map")

        assert store.get_note(3) == "one pass hash map"
        assert store.get_problem(3).note == "one pass hash map"

    def test_note_on_unknown_problem(self, store):
        with pytest.raises(ProblemNotFoundError):
            store.save_note(4242, "nope")
