"""End-to-end tests through the timeline controller."""
from __future__ import annotations

import pytest

from conftest import make_event
from session_timeline.controller import TimelineController
from session_timeline.models import Bookmark, Filter, SessionStatus


def _ids(events):
    return [e.id for e in events]


@pytest.fixture
def events():
    return [
        make_event("boot", 100, source="device", category="state", title="Device ready"),
        make_event("req", 1200, source="network", category="network", title="GET /api/cart",
                   data={"status": 200}),
        make_event("warn", 2500, source="logcat", level="warn", title="Slow frame"),
        make_event("crash", 4000, source="logcat", level="fatal", event_type="app_crash",
                   title="App crashed", data={"exception": "NullPointerException"}),
        make_event("tail", 9000, source="logcat", title="Activity destroyed"),
    ]


@pytest.fixture
def controller(backend, events, runner, error_handler):
    backend.add_session("s1", events, status=SessionStatus.COMPLETED)
    backend.sessions["s1"].end_time = 1_700_000_010_000
    backend.bookmarks["s1"] = [Bookmark(id="bm1", session_id="s1", relative_time=2000, label="checkout")]
    controller = TimelineController(backend, runner=runner, error_handler=error_handler)
    controller.load_session("s1")
    return controller


class TestFiltering:

    def test_dimension_filters_apply_immediately(self, controller):
        controller.set_sources(["logcat"])
        assert _ids(controller.store.visible_events) == ["warn", "crash", "tail"]

        controller.set_levels(["fatal", "warn"])
        assert _ids(controller.store.visible_events) == ["warn", "crash"]
        assert controller.active_filter == Filter.create(sources=["logcat"], levels=["fatal", "warn"])

    def test_search_is_debounced(self, controller):
        controller.set_search_text("nullpointer")
        assert controller.get_state().pending_search_text == "nullpointer"
        assert len(controller.store.visible_events) == 5

        controller.search_debouncer.flush()

        assert _ids(controller.store.visible_events) == ["crash"]
        assert controller.active_filter.search_text == "nullpointer"

    def test_clear_filters(self, controller):
        controller.set_sources(["network"])
        controller.set_time_range(0, 1000)
        controller.clear_filters()
        assert controller.active_filter.is_empty
        assert controller.committed_range is None
        assert len(controller.store.visible_events) == 5


class TestRuler:

    def test_drag_commits_time_range(self, controller):
        ruler = controller.range_selection
        ruler.set_geometry(0, 1000)
        assert ruler.duration_ms == 10_000

        ruler.pointer_down(100)
        ruler.pointer_move(300)
        ruler.pointer_up()

        assert controller.committed_range == (1000, 3000)
        assert controller.active_filter.time_range == (1000, 3000)
        assert _ids(controller.store.visible_events) == ["req", "warn"]
        assert controller.current_time == 1000
        assert controller.get_state().auto_scroll is False

    def test_click_clears_range_and_seeks(self, controller):
        ruler = controller.range_selection
        ruler.set_geometry(0, 1000)
        ruler.pointer_down(100)
        ruler.pointer_up(300)

        ruler.pointer_down(395)
        ruler.pointer_up(396)

        assert controller.committed_range is None
        assert controller.active_filter.time_range is None
        assert controller.current_time == 4000

    def test_density_bars_cover_session(self, controller):
        bars = controller.density_bars()
        assert len(bars) == 10
        assert bars[4].has_error is True
        assert sum(bar.event_count for bar in bars) == 5


class TestSelectionAndSeek:

    def test_seek(self, controller):
        result = controller.seek(2400)
        assert result.event.id == "warn"
        assert controller.current_time == 2500

    def test_select_event_fetches_details(self, controller):
        controller.select_event("req")
        assert controller.selected_event.id == "req"
        assert controller.get_state().detail_open is True
        assert controller.details.payload_view().structured is True

    def test_detail_failure_falls_back_to_summary(self, controller, backend, error_handler):
        notifications = []
        error_handler.error_occurred.connect(lambda sev, msg, details: notifications.append(sev))
        backend.fail_events.add("crash")

        controller.select_event("crash")

        assert controller.selected_event.id == "crash"
        assert controller.get_state().selected_event_full.id == "crash"
        assert notifications == ["warning"]

    def test_stale_detail_response_ignored(self, backend, events, manual_runner):
        backend.add_session("s1", events, status=SessionStatus.COMPLETED)
        controller = TimelineController(backend, runner=manual_runner)
        controller.load_session("s1")
        manual_runner.complete_all()

        controller.select_event("boot")
        controller.select_event("tail")
        manual_runner.complete(1)
        manual_runner.complete(0)

        assert controller.get_state().selected_event_full.id == "tail"

    def test_critical_marker_activation(self, controller):
        marker = controller.overlay.critical_markers()[0]
        controller.overlay.activate_marker(marker)
        assert controller.get_state().selected_event_id == "crash"
        assert controller.current_time == 4000

    def test_critical_marker_reveals_its_own_row_among_tied_times(self, backend, runner):
        backend.add_session("tied", [
            make_event("a", 100, session_id="tied"),
            make_event("b", 100, level="error", session_id="tied"),
            make_event("c", 100, session_id="tied"),
        ], status=SessionStatus.COMPLETED)
        controller = TimelineController(backend, runner=runner)
        controller.renderer.set_viewport(36)
        controller.load_session("tied")

        controller.overlay.activate_marker(controller.overlay.critical_markers()[0])

        renderer = controller.renderer
        assert controller.get_state().selected_event_id == "b"
        assert renderer.selected_index == 1
        assert renderer.scroll_offset == 36
        assert controller.current_time == 100
        assert controller.get_state().auto_scroll is False

    def test_reveal_hidden_event(self, controller):
        controller.set_levels(["warn"])
        assert controller.reveal_event("crash") is False
        assert controller.get_state().selected_event_id is None


class TestSessions:

    def test_deleting_displayed_session_clears_everything(self, controller, backend):
        controller.select_event("req")
        controller.delete_session("s1")

        assert controller.active_session_id is None
        assert controller.store.events == []
        assert controller.overlay.bookmarks == []
        assert controller.selected_event is None
        assert "s1" not in backend.sessions

    def test_session_stats_through_facade(self, controller):
        results = []
        controller.sessions.stats_ready.connect(results.append)
        controller.fetch_session_stats()
        assert results[0].total_events == 5
        assert results[0].error_count == 1

    def test_bookmarks_loaded_with_session(self, controller):
        assert [b.label for b in controller.overlay.bookmarks] == ["checkout"]

    def test_switching_session_resets_ui_state(self, controller, backend):
        backend.add_session("s2", [make_event("x", 5, session_id="s2")], status=SessionStatus.COMPLETED)
        controller.set_sources(["logcat"])
        controller.select_event("warn")
        changes = []
        unsubscribe = controller.subscribe(changes.append)

        controller.load_session("s2")

        assert controller.active_session_id == "s2"
        assert controller.active_filter.is_empty
        assert controller.selected_event is None
        assert _ids(controller.store.visible_events) == ["x"]
        assert any("active_session_id" in keys for keys in changes)
        unsubscribe()

    def test_live_session_end_to_end(self, backend, runner):
        controller = TimelineController(backend, runner=runner, clock=lambda: 1_700_000_020_000)
        controller.start_session("dev1", "Live run")
        session_id = controller.active_session_id

        backend.push(make_event("l1", 300, session_id=session_id))
        backend.push(make_event("l2", 100, session_id=session_id, level="error"))

        assert _ids(controller.store.visible_events) == ["l2", "l1"]
        assert [e.id for e in controller.overlay.critical_events()] == ["l2"]

        controller.end_session()
        assert controller.store.session.status == SessionStatus.COMPLETED
        controller.shutdown()
