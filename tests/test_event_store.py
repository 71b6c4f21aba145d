"""Tests for the in-memory event store."""
from __future__ import annotations

import pytest

from conftest import make_event
from session_timeline.data.event_store import EventStore
from session_timeline.models import Filter, SessionStatus


def _ids(events):
    return [e.id for e in events]


class TestLoading:

    def test_load_replaces_working_set(self, backend, store, state):
        backend.add_session("s1", [make_event("a", 100), make_event("b", 1200)])
        loaded = []
        store.session_loaded.connect(loaded.append)

        store.load_session("s1")

        assert _ids(store.events) == ["a", "b"]
        assert _ids(store.visible_events) == ["a", "b"]
        assert store.time_index.total_count == 2
        assert state.active_session_id == "s1"
        assert state.is_loading is False
        assert loaded == ["s1"]

    def test_unordered_backend_response_is_sorted(self, backend, store):
        backend.add_session("s1", [make_event("b", 500), make_event("a", 100), make_event("c", 500)])
        store.load_session("s1")
        assert _ids(store.events) == ["a", "b", "c"]

    def test_on_complete_called(self, backend, store):
        backend.add_session("s1", [make_event("a", 1)])
        done = []
        store.load_session("s1", on_complete=lambda: done.append(True))
        assert done == [True]

    def test_stale_response_is_discarded(self, backend, state, manual_runner, error_handler):
        """A response for an older request never overwrites a newer one."""
        backend.add_session("s1", [make_event("a", 1, session_id="s1")])
        backend.add_session("s2", [make_event("b", 2, session_id="s2")])
        store = EventStore(backend, state, manual_runner, error_handler)

        store.load_session("s1")
        store.load_session("s2")
        manual_runner.complete(1)  # s2 resolves first
        manual_runner.complete(0)  # then the stale s1 response

        assert store.session_id == "s2"
        assert _ids(store.events) == ["b"]
        assert state.active_session_id == "s2"

    def test_switching_session_clears_immediately(self, backend, state, manual_runner):
        backend.add_session("s1", [make_event("a", 1)])
        backend.add_session("s2", [make_event("b", 2, session_id="s2")])
        store = EventStore(backend, state, manual_runner)
        store.load_session("s1")
        manual_runner.complete()
        state.update(selected_event_id="a")

        store.load_session("s2")

        assert store.events == []
        assert state.selected_event_id is None
        assert state.is_loading is True

    def test_reloading_same_session_keeps_data(self, backend, state, manual_runner):
        backend.add_session("s1", [make_event("a", 1)])
        store = EventStore(backend, state, manual_runner)
        store.load_session("s1")
        manual_runner.complete()

        store.load_session("s1")

        assert _ids(store.events) == ["a"]

    def test_load_failure_resets_working_set(self, backend, store, state, error_handler):
        backend.add_session("s1", [make_event("a", 1)])
        store.load_session("s1")
        store.apply_filter(Filter.create(levels=["info"]))
        notifications = []
        error_handler.error_occurred.connect(lambda sev, msg, details: notifications.append(msg))
        failures = []
        store.load_failed.connect(lambda sid, msg: failures.append(sid))

        backend.fail_loads.add("s1")
        store.load_session("s1")

        assert store.events == []
        assert store.visible_events == []
        assert store.time_index.total_count == 0
        assert state.is_loading is False
        assert failures == ["s1"]
        assert notifications and "s1" in notifications[0]


class TestLiveAppend:

    @pytest.fixture
    def live_store(self, backend, store):
        backend.add_session("s1", [make_event("a", 100), make_event("b", 300)])
        store.load_session("s1")
        return store

    def test_append_keeps_order(self, live_store):
        """Scenario: live event inserted between existing ones."""
        inserted = []
        live_store.visible_event_inserted.connect(inserted.append)

        assert live_store.append_live_event(make_event("c", 200)) is True

        assert _ids(live_store.events) == ["a", "c", "b"]
        assert _ids(live_store.visible_events) == ["a", "c", "b"]
        assert inserted == [1]
        assert live_store.time_index.total_count == 3

    def test_scenario_c_insert_between(self, backend, store):
        backend.add_session("c", [make_event(f"c{t}", t, session_id="c") for t in (0, 1000, 2000)])
        store.load_session("c")
        store.append_live_event(make_event("new", 1500, session_id="c"))
        assert [e.relative_time for e in store.events] == [0, 1000, 1500, 2000]

    def test_sorted_after_many_appends(self, live_store):
        for i, t in enumerate([50, 999, 300, 0, 300, 120, 5000]):
            live_store.append_live_event(make_event(f"x{i}", t))
        times = [e.relative_time for e in live_store.events]
        assert times == sorted(times)
        assert live_store.time_index.total_count == len(live_store.events)

    def test_equal_times_keep_arrival_order(self, live_store):
        live_store.append_live_event(make_event("late1", 300))
        live_store.append_live_event(make_event("late2", 300))
        assert _ids(live_store.events)[-3:] == ["b", "late1", "late2"]

    def test_non_matching_event_not_in_projection(self, live_store):
        live_store.apply_filter(Filter.create(levels=["error"]))
        live_store.append_live_event(make_event("c", 200, level="info"))
        live_store.append_live_event(make_event("d", 250, level="error"))
        assert _ids(live_store.visible_events) == ["d"]
        assert len(live_store.events) == 4

    def test_duplicate_ignored(self, live_store):
        assert live_store.append_live_event(make_event("a", 100)) is False
        assert len(live_store.events) == 2

    def test_other_session_ignored(self, live_store):
        assert live_store.append_live_event(make_event("z", 10, session_id="other")) is False
        assert len(live_store.events) == 2

    def test_ended_session_ignores_live_events(self, live_store):
        assert live_store.mark_session_ended(SessionStatus.COMPLETED, 1_700_000_010_000)
        assert live_store.append_live_event(make_event("c", 200)) is False

    def test_negative_relative_time_clamped(self, live_store):
        live_store.append_live_event(make_event("neg", -50))
        assert live_store.events[0].id == "neg"
        assert live_store.events[0].relative_time == 0

    def test_batch(self, live_store):
        applied = live_store.receive_live_events([make_event("c", 400), make_event("a", 100),
                                                  make_event("d", 500)])
        assert applied == 2

    def test_events_during_load_are_buffered_and_merged(self, backend, state, manual_runner):
        backend.add_session("s1", [make_event("a", 100), make_event("b", 300)])
        store = EventStore(backend, state, manual_runner)
        store.load_session("s1")

        assert store.append_live_event(make_event("c", 200)) is False
        assert store.append_live_event(make_event("b", 300)) is False
        manual_runner.complete()

        assert _ids(store.events) == ["a", "c", "b"]
        assert store.time_index.total_count == 3


class TestStatus:

    def test_session_ends_exactly_once(self, backend, store):
        backend.add_session("s1", [])
        store.load_session("s1")
        changes = []
        store.session_status_changed.connect(lambda sid, status: changes.append(status))

        assert store.mark_session_ended(SessionStatus.COMPLETED, 1_700_000_005_000) is True
        assert store.mark_session_ended(SessionStatus.ERROR) is False

        assert changes == [SessionStatus.COMPLETED]
        assert store.session.end_time == 1_700_000_005_000
        assert store.duration_ms == 5000

    def test_visible_index_of(self, backend, store):
        backend.add_session("s1", [make_event("a", 100), make_event("b", 100), make_event("c", 200)])
        store.load_session("s1")
        assert store.visible_index_of("b") == 1
        store.apply_filter(Filter.create(search_text="event c"))
        assert store.visible_index_of("c") == 0
        assert store.visible_index_of("a") is None
