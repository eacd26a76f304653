"""
Unit tests for the Timeline.

Tests due-time ordering, grouping of simultaneous services, and the
per-registration back-reference used for removal.
"""

import pytest

from poll_reactor.engine.timeline import Timeline
from poll_reactor.interfaces.service import Registration


def make_registration(name, interval=100):
    return Registration(service=object(), name=name, interval=interval)


class TestTimelineOrdering:
    """Entries come out in ascending due-time order."""

    def test_pop_returns_smallest_due_first(self):
        timeline = Timeline()
        a, b, c = (make_registration(n) for n in "abc")

        timeline.insert(a, 300)
        timeline.insert(b, 100)
        timeline.insert(c, 200)

        popped = [timeline.pop_next().due for _ in range(3)]
        assert popped == [100, 200, 300]
        assert len(timeline) == 0

    def test_simultaneous_services_share_one_entry(self):
        timeline = Timeline()
        a, b = make_registration("a"), make_registration("b")

        timeline.insert(a, 100)
        timeline.insert(b, 100)

        assert timeline.entry_count == 1
        assert len(timeline) == 2

        entry = timeline.pop_next()
        assert entry.due == 100
        assert [r.name for r in entry] == ["a", "b"]

    def test_next_due_peeks_without_removing(self):
        timeline = Timeline()
        timeline.insert(make_registration("a"), 42)

        assert timeline.next_due() == 42
        assert timeline.next_due() == 42
        assert len(timeline) == 1

    def test_empty_timeline(self):
        timeline = Timeline()

        assert timeline.next_due() is None
        with pytest.raises(IndexError):
            timeline.pop_next()


class TestTimelineBackReference:
    """Each registration knows which entry holds it."""

    def test_insert_sets_due(self):
        timeline = Timeline()
        a = make_registration("a")

        timeline.insert(a, 500)

        assert a.due == 500
        assert a in timeline

    def test_pop_clears_due(self):
        timeline = Timeline()
        a = make_registration("a")
        timeline.insert(a, 500)

        timeline.pop_next()

        assert a.due is None
        assert a not in timeline

    def test_discard_leaves_other_services_in_entry(self):
        timeline = Timeline()
        a, b = make_registration("a"), make_registration("b")
        timeline.insert(a, 100)
        timeline.insert(b, 100)

        assert timeline.discard(a) is True

        assert a.due is None
        entry = timeline.pop_next()
        assert [r.name for r in entry] == ["b"]

    def test_discard_unscheduled_returns_false(self):
        timeline = Timeline()
        assert timeline.discard(make_registration("a")) is False

    def test_insert_moves_already_scheduled_registration(self):
        timeline = Timeline()
        a = make_registration("a")

        timeline.insert(a, 100)
        timeline.insert(a, 400)

        assert len(timeline) == 1
        assert timeline.next_due() == 400

    def test_discarded_entry_is_skipped(self):
        timeline = Timeline()
        a, b = make_registration("a"), make_registration("b")
        timeline.insert(a, 100)
        timeline.insert(b, 200)

        timeline.discard(a)

        assert timeline.next_due() == 200
        assert timeline.pop_next().due == 200

    def test_reinsert_at_emptied_due_time(self):
        """A due-time emptied by discard can be reused without duplicates."""
        timeline = Timeline()
        a, b = make_registration("a"), make_registration("b")
        timeline.insert(a, 100)
        timeline.discard(a)
        timeline.insert(b, 100)
        timeline.insert(a, 150)

        assert timeline.pop_next().due == 100
        assert timeline.pop_next().due == 150
        assert timeline.next_due() is None


class TestTimelineSnapshot:
    """Diagnostic views."""

    def test_snapshot_sorted_with_names(self):
        timeline = Timeline()
        timeline.insert(make_registration("slow"), 250)
        timeline.insert(make_registration("fast"), 100)
        timeline.insert(make_registration("also-fast"), 100)

        assert timeline.snapshot() == [
            (100, ["fast", "also-fast"]),
            (250, ["slow"]),
        ]
