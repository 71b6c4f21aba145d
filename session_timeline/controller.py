"""
Timeline Controller
===================

This module provides TimelineController, the composition root of the
session timeline. It builds every component around a single state
container and task runner, wires their signals together and exposes the
facade used by a view: filter setters, seeking, selection and session
lifecycle calls.

Author: Session Timeline Team
Version: 1.0
"""

import logging
from typing import Callable, Iterable, List, Optional, Tuple

from PyQt5.QtCore import QObject

from session_timeline.config import TimelineConfig
from session_timeline.data.event_details import EventDetailLoader
from session_timeline.data.event_store import EventStore
from session_timeline.data.seek_engine import SeekEngine, SeekResult
from session_timeline.models import Filter, UnifiedEvent
from session_timeline.rendering.overlay import TimelineOverlay
from session_timeline.rendering.range_selection import RangeSelectionController
from session_timeline.rendering.ruler import DensityBar, density_bars
from session_timeline.rendering.virtual_list import VirtualizedRenderer
from session_timeline.session_manager import SessionLifecycleManager
from session_timeline.state import TimelineSnapshot, TimelineState
from session_timeline.utils.error_handler import ErrorHandler, setup_logging
from session_timeline.utils.scheduler import Debouncer
from session_timeline.utils.task_runner import ThreadedTaskRunner

# Configure logger
logger = logging.getLogger(__name__)


class TimelineController(QObject):
    """
    Facade over the timeline components.

    Attributes:
        state: TimelineState shared by every component
        store: EventStore with the working set and projection
        details: EventDetailLoader for the selected event
        renderer: VirtualizedRenderer for the event list
        seek_engine: SeekEngine
        range_selection: RangeSelectionController for the ruler
        overlay: TimelineOverlay with bookmark and critical markers
        sessions: SessionLifecycleManager
        error_handler: ErrorHandler emitting user-visible notifications
    """

    def __init__(self, backend, config: Optional[TimelineConfig] = None, runner=None,
                 error_handler: Optional[ErrorHandler] = None,
                 clock: Optional[Callable[[], int]] = None, parent=None):
        """
        Build and wire the timeline components.

        Args:
            backend: SessionBackend
            config: TimelineConfig (defaults are used if omitted)
            runner: TaskRunner (a ThreadedTaskRunner is created if omitted)
            error_handler: ErrorHandler (one is created if omitted)
            clock: Returns the current Unix time in ms
            parent: Parent QObject
        """
        super().__init__(parent)
        self.backend = backend
        self.config = config or TimelineConfig()
        self.runner = runner or ThreadedTaskRunner(self)
        self.error_handler = error_handler or ErrorHandler(parent=self)
        self.state = TimelineState(self)

        self.store = EventStore(backend, self.state, self.runner, self.error_handler, self)
        self.details = EventDetailLoader(backend, self.state, self.runner, self.store,
                                         self.error_handler, self)
        self.renderer = VirtualizedRenderer(
            self.store, self.state, self.details,
            row_height=self.config.row_height,
            overscan=self.config.overscan,
            frame_interval_ms=self.config.frame_interval_ms,
            parent=self,
        )
        self.seek_engine = SeekEngine(
            self.store, self.state, self.renderer,
            coverage_ratio=self.config.reload_coverage_ratio,
            margin_ms=self.config.reload_margin_ms,
            parent=self,
        )
        self.range_selection = RangeSelectionController(self.config.min_range_ms, self)
        self.overlay = TimelineOverlay(
            backend, self.store, self.runner, self.error_handler,
            critical_limit=self.config.critical_marker_limit,
            on_seek=self.seek,
            on_select=self.reveal_event,
            parent=self,
        )
        self.sessions = SessionLifecycleManager(
            backend, self.store, self.state, self.runner, self.error_handler,
            clock=clock, list_limit=self.config.session_list_limit, parent=self,
        )
        self.search_debouncer = Debouncer(self.config.search_debounce_ms,
                                          self._apply_search_text, self)

        self.range_selection.seek_requested.connect(self.seek)
        self.range_selection.range_committed.connect(self._on_range_committed)
        self.range_selection.range_cleared.connect(self._on_range_cleared)

        self.store.session_loaded.connect(self._on_session_loaded)
        self.store.event_appended.connect(self._update_duration)
        self.store.working_set_reset.connect(self._on_working_set_reset)
        self.sessions.session_deleted.connect(self._on_session_deleted)

    @classmethod
    def from_config_file(cls, backend, config_file: Optional[str] = None, **kwargs) -> 'TimelineController':
        """Load configuration, set up logging and build a controller."""
        config = TimelineConfig(config_file)
        setup_logging(config.log_level, config.log_file)
        return cls(backend, config=config, **kwargs)

    # Wiring

    def _update_duration(self, *_):
        self.range_selection.set_session_duration(self.store.duration_ms)

    def _on_session_loaded(self, session_id: str):
        self._update_duration()
        self.overlay.load_bookmarks(session_id)

    def _on_working_set_reset(self):
        self._update_duration()
        self.range_selection.sync_range(self.state.filter.time_range)
        if not self.state.pending_search_text:
            self.search_debouncer.cancel()

    def _on_session_deleted(self, session_id: str):
        if self.overlay.bookmarks_session_id == session_id:
            self.overlay.load_bookmarks(self.store.session_id)

    def _on_range_committed(self, start: int, end: int):
        self.set_time_range(start, end)

    def _on_range_cleared(self):
        self._apply(self.state.filter.replace(start_time=None, end_time=None))

    def _apply(self, event_filter: Filter):
        self.store.apply_filter(event_filter)

    # Filters

    def set_sources(self, sources: Optional[Iterable[str]]):
        self._apply(self.state.filter.replace(sources=sources))

    def set_categories(self, categories: Optional[Iterable[str]]):
        self._apply(self.state.filter.replace(categories=categories))

    def set_levels(self, levels: Optional[Iterable[str]]):
        self._apply(self.state.filter.replace(levels=levels))

    def set_search_text(self, text: str):
        """Record typed search text; the projection updates after the debounce interval."""
        self.state.update(pending_search_text=text or "")
        self.search_debouncer.trigger(text or "")

    def _apply_search_text(self, text: str):
        logger.debug(f"Applying search text '{text}'")
        self._apply(self.state.filter.replace(search_text=text))

    def set_time_range(self, start: int, end: int):
        """
        Commit [start, end) as the time-range filter.

        Auto-scroll is disabled and the current time indicator moves to start.
        """
        start, end = int(start), int(end)
        self.range_selection.sync_range((start, end))
        self.state.update(auto_scroll=False, current_time=start)
        self._apply(self.state.filter.replace(start_time=start, end_time=end))

    def clear_time_range(self):
        self.range_selection.sync_range(None)
        self._apply(self.state.filter.replace(start_time=None, end_time=None))

    def clear_filters(self):
        self.search_debouncer.cancel()
        self.state.update(pending_search_text="")
        self.range_selection.sync_range(None)
        self._apply(Filter())

    # Navigation and selection

    def seek(self, target_time: int) -> Optional[SeekResult]:
        return self.seek_engine.seek(target_time)

    def select_event(self, event_id: str):
        self.details.open_event(event_id)

    def reveal_event(self, event_id: str) -> bool:
        """
        Select an event and centre its own row in the list.

        Unlike seek, which lands on the first event nearest a time, this
        keeps the exact event in view when several share its timestamp.

        Returns:
            bool: False if the event is not part of the visible projection
        """
        index = self.store.visible_index_of(event_id)
        if index is None:
            logger.debug(f"Event {event_id} is not visible; nothing to reveal")
            return False
        event = self.store.visible_events[index]
        self.state.update(auto_scroll=False, current_time=event.relative_time)
        self.renderer.scroll_to_index(index, align='center', behavior='smooth')
        self.select_event(event_id)
        return True

    def close_details(self):
        self.details.close()

    def density_bars(self) -> List[DensityBar]:
        return density_bars(self.store.time_index, self.store.duration_ms,
                            self.range_selection.selection)

    # Sessions

    def start_session(self, device_id: str, name: str = "", config=None):
        self.sessions.start_session(device_id, name, config)

    def end_session(self, session_id: Optional[str] = None, reason: str = "completed"):
        self.sessions.end_session(session_id, reason)

    def load_session(self, session_id: str):
        self.sessions.load_session(session_id)

    def refresh_sessions(self, device_id: Optional[str] = None, limit: Optional[int] = None):
        self.sessions.refresh_sessions(device_id, limit)

    def delete_session(self, session_id: str):
        self.sessions.delete_session(session_id)

    def fetch_session_stats(self, session_id: Optional[str] = None):
        self.sessions.fetch_session_stats(session_id)

    # Exposed state

    @property
    def selected_event(self) -> Optional[UnifiedEvent]:
        """Full event when fetched, otherwise the summary of the selected event."""
        full = self.state.selected_event_full
        if full is not None:
            return full
        event_id = self.state.selected_event_id
        return self.store.find_event(event_id) if event_id else None

    @property
    def current_time(self) -> int:
        return self.state.current_time

    @property
    def active_filter(self) -> Filter:
        return self.state.filter

    @property
    def committed_range(self) -> Optional[Tuple[int, int]]:
        return self.range_selection.committed_range

    @property
    def active_session_id(self) -> Optional[str]:
        return self.state.active_session_id

    def get_state(self) -> TimelineSnapshot:
        return self.state.get_state()

    def subscribe(self, listener: Callable[[frozenset], None]) -> Callable[[], None]:
        return self.state.subscribe(listener)

    def shutdown(self):
        """Drop subscriptions and stop pending timers and background calls."""
        self.sessions.shutdown()
        self.search_debouncer.cancel()
        self.renderer.highlight_scheduler.cancel()
        if isinstance(self.runner, ThreadedTaskRunner):
            self.runner.shutdown()
