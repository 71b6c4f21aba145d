"""Tests for bookmark and critical-event markers."""
from __future__ import annotations

import pytest

from conftest import make_event
from session_timeline.models import Bookmark, Filter, SessionStatus
from session_timeline.rendering.overlay import TimelineOverlay


@pytest.fixture
def loaded(backend, store):
    backend.add_session("s1", [
        make_event("a", 100),
        make_event("crash", 2000, event_type="app_crash", level="fatal", title="App crashed"),
        make_event("err", 3000, level="error", source="network"),
        make_event("b", 4000),
    ], status=SessionStatus.COMPLETED)
    backend.bookmarks["s1"] = [
        Bookmark(id="bm-late", session_id="s1", relative_time=3000, label="late"),
        Bookmark(id="bm-early", session_id="s1", relative_time=1000, label="early"),
    ]
    store.load_session("s1")
    return store


@pytest.fixture
def overlay(backend, loaded, runner):
    return TimelineOverlay(backend, loaded, runner)


class TestBookmarks:

    def test_load_sorted(self, overlay):
        overlay.load_bookmarks()
        assert [b.id for b in overlay.bookmarks] == ["bm-early", "bm-late"]

    def test_create_with_default_label(self, overlay, backend):
        overlay.load_bookmarks()
        changes = []
        overlay.bookmarks_changed.connect(lambda: changes.append(True))

        overlay.create_bookmark(61_250)

        created = overlay.bookmarks[-1]
        assert created.label == "Bookmark 1:01.250"
        assert created.relative_time == 61_250
        assert changes == [True]
        assert len(backend.bookmarks["s1"]) == 3

    def test_delete(self, overlay):
        overlay.load_bookmarks()
        overlay.delete_bookmark("bm-early")
        assert [b.id for b in overlay.bookmarks] == ["bm-late"]

    def test_markers_ignore_filter(self, overlay, loaded):
        overlay.load_bookmarks()
        loaded.apply_filter(Filter.create(levels=["error"]))
        markers = overlay.bookmark_markers(duration_ms=4000)
        assert [m.ratio for m in markers] == [0.25, 0.75]


class TestCriticalEvents:

    def test_critical_events_follow_projection(self, overlay, loaded):
        assert [e.id for e in overlay.critical_events()] == ["crash", "err"]
        loaded.apply_filter(Filter.create(sources=["network"]))
        assert [e.id for e in overlay.critical_events()] == ["err"]

    def test_memoized_until_projection_changes(self, overlay, loaded):
        overlay.critical_events()
        overlay.critical_events()
        assert overlay._critical.compute_count == 1

        loaded.apply_filter(Filter())
        overlay.critical_events()
        assert overlay._critical.compute_count == 2

    def test_capped(self, backend, store, runner):
        backend.add_session("many", [make_event(f"e{i}", i, level="error", session_id="many")
                                     for i in range(80)])
        store.load_session("many")
        overlay = TimelineOverlay(backend, store, runner, critical_limit=50)
        critical = overlay.critical_events()
        assert len(critical) == 50
        assert critical[0].id == "e0"

    def test_activate_critical_marker(self, backend, loaded, runner):
        seeks, selections = [], []
        overlay = TimelineOverlay(backend, loaded, runner, on_seek=seeks.append,
                                  on_select=selections.append)
        marker = overlay.critical_markers(duration_ms=4000)[0]

        overlay.activate_marker(marker)

        assert marker.ratio == 0.5
        assert selections == ["crash"]
        assert seeks == []

    def test_activate_bookmark_marker_seeks(self, backend, loaded, runner):
        seeks, selections = [], []
        overlay = TimelineOverlay(backend, loaded, runner, on_seek=seeks.append,
                                  on_select=selections.append)
        overlay.load_bookmarks()

        overlay.activate_marker(overlay.bookmark_markers()[0])

        assert seeks == [1000]
        assert selections == []

    def test_critical_marker_without_select_falls_back_to_seek(self, backend, loaded, runner):
        seeks = []
        overlay = TimelineOverlay(backend, loaded, runner, on_seek=seeks.append)
        overlay.activate_marker(overlay.critical_markers()[0])
        assert seeks == [2000]
