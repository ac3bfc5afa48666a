"""
Unit tests for the due-queue policy.

Uses an in-memory stand-in for the state store.
"""

from datetime import date, timedelta
from unittest.mock import Mock

import pytest

from cometode.delivery.queue_policy import ReviewQueue, SessionState, is_due, order_due
from cometode.delivery.scheduler import LearningState
from cometode.delivery.state_store import ProblemRecord

TODAY = date(2024, 5, 1)


def _record(problem_id, ease_factor, catalog_id=None):
    return ProblemRecord(
        id=problem_id,
        catalog_id=catalog_id if catalog_id is not None else problem_id,
        title=f"Problem {problem_id}",
        difficulty="Easy",
        status="learning",
        ease_factor=ease_factor,
        next_review_date=TODAY,
    )


@pytest.fixture
def fake_store():
    store = Mock()
    store.today.return_value = TODAY
    store.fetch_due_records.return_value = [_record(i, 2.5) for i in range(1, 9)]
    return store


class TestOrdering:
    """Tests for due predicate and ordering."""

    def test_is_due_handles_absent_state(self):
        assert not is_due(None, TODAY)

    def test_is_due_excludes_new(self):
        state = LearningState(problem_id=1, status="new", next_review_date=TODAY)
        assert not is_due(state, TODAY)

    def test_is_due_includes_overdue(self):
        state = LearningState(problem_id=1, status="reviewing", next_review_date=TODAY - timedelta(days=9))
        assert is_due(state, TODAY)

    def test_ascending_ease(self):
        """Lowest ease (most fragile) first."""
        items = [_record(1, 2.8), _record(2, 1.3), _record(3, 2.0)]

        assert [r.ease_factor for r in order_due(items)] == [1.3, 2.0, 2.8]

    def test_ties_broken_by_catalog_id(self):
        items = [_record(1, 2.0, catalog_id=30), _record(2, 2.0, catalog_id=4), _record(3, 1.9, catalog_id=99)]

        assert [r.catalog_id for r in order_due(items)] == [99, 4, 30]


class TestSessionState:
    """Tests for the per-day session counter."""

    def test_remaining_and_exhausted(self):
        session = SessionState(cap=2)
        session.record_completion(TODAY)
        assert session.remaining == 1

        session.record_completion(TODAY)
        assert session.exhausted

    def test_rolls_over_at_new_local_date(self):
        session = SessionState(cap=2)
        session.record_completion(TODAY)
        session.record_completion(TODAY)

        assert session.roll_over(TODAY + timedelta(days=1))
        assert session.completed == 0
        assert session.session_date == "2024-05-02"

    def test_same_date_does_not_roll_over(self):
        session = SessionState(session_date=TODAY.isoformat(), completed=3)

        assert not session.roll_over(TODAY)
        assert session.completed == 3

    def test_load_more_reopens(self):
        session = SessionState(session_date=TODAY.isoformat(), completed=5, cap=5)
        session.load_more()

        assert session.remaining == 5
        assert session.session_date == TODAY.isoformat()

    def test_dict_round_trip_ignores_unknown_keys(self):
        session = SessionState(session_date="2024-05-01", completed=2, cap=7)
        data = session.to_dict() | {"legacy": True}

        assert SessionState.from_dict(data) == session


class TestReviewQueue:
    """Tests for the pull-based queue."""

    def test_next_item_is_most_fragile(self, fake_store):
        fake_store.fetch_due_records.return_value = [_record(1, 2.8), _record(2, 1.3), _record(3, 2.0)]
        queue = ReviewQueue(fake_store)

        assert queue.next_item().id == 2

    def test_next_item_none_when_nothing_due(self, fake_store):
        fake_store.fetch_due_records.return_value = []

        assert ReviewQueue(fake_store).next_item() is None

    def test_cap_blocks_until_load_more(self, fake_store):
        """After `cap` completions the pull returns nothing until load-more."""
        queue = ReviewQueue(fake_store, SessionState(cap=5))
        for problem_id in range(1, 6):
            queue.complete(problem_id, 2)

        assert queue.next_item() is None
        assert queue.queue() == []
        assert queue.due_count() == 8

        queue.load_more()
        assert queue.next_item() is not None

    def test_cap_resets_next_day(self, fake_store):
        queue = ReviewQueue(fake_store, SessionState(cap=1))
        queue.complete(1, 2)
        assert queue.next_item() is None

        fake_store.today.return_value = TODAY + timedelta(days=1)
        assert queue.next_item() is not None

    def test_queue_respects_offset_and_remaining(self, fake_store):
        queue = ReviewQueue(fake_store, SessionState(cap=3))

        assert [r.id for r in queue.queue()] == [1, 2, 3]
        assert [r.id for r in queue.queue(offset=6)] == [7, 8]

    def test_complete_submits_through_store(self, fake_store):
        queue = ReviewQueue(fake_store)
        queue.complete(4, 3)

        fake_store.submit_review.assert_called_once_with(4, 3)
        assert queue.session.completed == 1

    def test_problem_set_is_forwarded(self, fake_store):
        ReviewQueue(fake_store).due_count("blind75")

        fake_store.fetch_due_records.assert_called_with("blind75", TODAY)
