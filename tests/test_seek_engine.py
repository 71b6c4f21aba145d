"""Tests for nearest-timestamp seeking."""
from __future__ import annotations

import pytest

from conftest import make_event
from session_timeline.data.seek_engine import SeekEngine, insertion_index, nearest_index, needs_reload
from session_timeline.models import SessionStatus


def _events(times):
    return [make_event(f"e{i}", t) for i, t in enumerate(times)]


class TestNearestIndex:

    def test_scenario_a(self):
        """seek(1000) over [0, 500, 1200, 2300, 5000] resolves to 1200."""
        events = _events([0, 500, 1200, 2300, 5000])
        assert events[nearest_index(events, 1000)].relative_time == 1200

    def test_scenario_seek_between_events(self):
        """Target 460 between 100, 250, 450, 470: 470 is 10ms away, 450 is 10ms away; later wins."""
        events = _events([100, 250, 450, 470])
        assert nearest_index(events, 460) == 3

    def test_closer_previous_event_wins(self):
        events = _events([100, 250, 450, 470])
        assert nearest_index(events, 455) == 2

    def test_target_before_first(self):
        assert nearest_index(_events([100, 200]), 0) == 0

    def test_target_after_last(self):
        assert nearest_index(_events([100, 200]), 10_000) == 1

    def test_empty(self):
        assert nearest_index([], 100) is None

    def test_exact_match(self):
        assert nearest_index(_events([100, 200, 300]), 200) == 1

    def test_nearest_property(self):
        """No other event is strictly closer than the one returned."""
        events = _events([0, 13, 13, 40, 97, 150, 151, 400])
        for target in range(-20, 450, 7):
            index = nearest_index(events, target)
            best = abs(events[index].relative_time - target)
            assert all(abs(e.relative_time - target) >= best for e in events)

    def test_insertion_index(self):
        events = _events([100, 200, 200, 300])
        assert insertion_index(events, 200) == 1
        assert insertion_index(events, 50) == 0
        assert insertion_index(events, 301) == 4


class TestNeedsReload:

    def test_empty_set(self):
        assert needs_reload([], 0, 100) is True

    def test_partial_coverage(self):
        assert needs_reload(_events(range(0, 80)), 100, 10) is True

    def test_full_coverage_in_bounds(self):
        assert needs_reload(_events(range(0, 1000, 10)), 100, 500) is False

    def test_target_outside_margin(self):
        events = _events([5000, 6000])
        assert needs_reload(events, 2, 3999) is True
        assert needs_reload(events, 2, 4000) is False
        assert needs_reload(events, 2, 7001) is True


class TestSeekEngine:

    @pytest.fixture
    def loaded_store(self, backend, store):
        backend.add_session("s1", _events([100, 250, 450, 470]), status=SessionStatus.COMPLETED)
        store.load_session("s1")
        return store

    def test_seek_moves_indicator_to_event(self, loaded_store, state):
        engine = SeekEngine(loaded_store, state)
        received = []
        engine.seeked.connect(lambda index, time: received.append((index, time)))

        result = engine.seek(460)

        assert result.index == 3
        assert result.relative_time == 470
        assert state.current_time == 470
        assert state.auto_scroll is False
        assert received == [(3, 470)]

    def test_seek_reloads_when_coverage_is_low(self, backend, loaded_store, state):
        backend.sessions["s1"].event_count = 100
        loaded_store.session.event_count = 100
        engine = SeekEngine(loaded_store, state)
        calls_before = backend.load_calls

        result = engine.seek(260)

        assert backend.load_calls == calls_before + 1
        assert result is None
        assert state.current_time == 250

    def test_seek_centers_renderer(self, loaded_store, state):
        class Renderer:
            def __init__(self):
                self.calls = []

            def scroll_to_index(self, index, align="start", behavior="auto"):
                self.calls.append((index, align, behavior))

        renderer = Renderer()
        SeekEngine(loaded_store, state, renderer).seek(240)
        assert renderer.calls == [(1, "center", "smooth")]

    def test_seek_on_empty_projection(self, backend, store, state):
        backend.add_session("empty", [], status=SessionStatus.COMPLETED)
        store.load_session("empty")
        assert SeekEngine(store, state).seek(100) is None
        assert state.current_time == 100
