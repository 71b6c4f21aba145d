"""Tests for the per-second time index."""
from __future__ import annotations

from conftest import make_event
from session_timeline.data.time_index import TimeIndex, bucket_for


class TestBuckets:

    def test_bucket_for(self):
        assert bucket_for(0) == 0
        assert bucket_for(999) == 0
        assert bucket_for(1000) == 1
        assert bucket_for(2500) == 2
        assert bucket_for(2999) == 2
        assert bucket_for(3000) == 3

    def test_rebuild_counts_and_first_event(self):
        index = TimeIndex()
        index.rebuild([
            make_event("a", 100),
            make_event("b", 900),
            make_event("c", 1000),
        ], duration_ms=3000)

        first = index.get(0)
        assert first.event_count == 2
        assert first.first_event_id == "a"
        assert first.has_error is False
        assert index.get(1).event_count == 1
        assert index.get(2) is None
        assert index.bucket_count == 3

    def test_error_flag(self):
        index = TimeIndex()
        index.rebuild([make_event("a", 10), make_event("b", 20, level="fatal")])
        assert index.get(0).has_error is True

    def test_crash_type_sets_error_flag(self):
        index = TimeIndex()
        index.add(make_event("a", 10, event_type="app_anr"))
        assert index.get(0).has_error is True


class TestIncrementalAdd:

    def test_live_event_extends_index(self):
        """An event past the last populated second creates its bucket."""
        index = TimeIndex()
        index.rebuild([make_event("a", 500), make_event("b", 1500)], duration_ms=2000)

        bucket = index.add(make_event("c", 2500, level="error"))

        assert bucket == 2
        entry = index.get(2)
        assert entry.event_count == 1
        assert entry.first_event_id == "c"
        assert entry.has_error is True
        assert index.bucket_count == 3

    def test_sum_matches_total_on_every_path(self):
        events = [make_event(f"e{i}", i * 370) for i in range(40)]
        index = TimeIndex()
        index.rebuild(events[:25])
        for event in events[25:]:
            index.add(event)

        assert sum(entry.event_count for entry in index.entries()) == 40
        assert index.total_count == 40

    def test_earlier_event_in_same_bucket_becomes_first(self):
        index = TimeIndex()
        index.add(make_event("late", 800))
        index.add(make_event("early", 200))
        assert index.get(0).first_event_id == "early"

    def test_version_increments(self):
        index = TimeIndex()
        before = index.version
        index.add(make_event("a", 1))
        assert index.version > before


class TestDensity:

    def test_normalized_density(self):
        index = TimeIndex()
        index.rebuild([make_event("a", 0), make_event("b", 10), make_event("c", 1200)])
        assert index.max_count == 2
        assert index.normalized_density(0) == 1.0
        assert index.normalized_density(1) == 0.5
        assert index.normalized_density(5) == 0.0

    def test_clear(self):
        index = TimeIndex()
        index.rebuild([make_event("a", 0)], duration_ms=5000)
        index.clear()
        assert len(index) == 0
        assert index.total_count == 0
        assert index.bucket_count == 0
