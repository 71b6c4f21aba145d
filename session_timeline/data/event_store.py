"""
Event Store
===========

This module provides EventStore, the in-memory working set of the session
being displayed. It owns the ordered event array, the TimeIndex built over
it and the visible projection produced by the Filter Engine.

The store is mutated only on the GUI thread. Bulk loads go through a task
runner and are guarded by a request token so that a response arriving after
a newer load was issued is dropped. Live events are spliced into both the
working set and the projection with a binary search, so neither is ever
rebuilt for an append.

Author: Session Timeline Team
Version: 1.0
"""

import logging
from bisect import bisect_left, bisect_right
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional

from PyQt5.QtCore import QObject, pyqtSignal

from session_timeline.data.filter_engine import apply_filter, event_matches
from session_timeline.data.time_index import TimeIndex
from session_timeline.models import DeviceSession, Filter, SessionStatus, UnifiedEvent
from session_timeline.utils.error_handler import SessionLoadError

# Configure logger
logger = logging.getLogger(__name__)


def _relative_time(event: UnifiedEvent) -> int:
    return event.relative_time


def _is_ordered(events: List[UnifiedEvent]) -> bool:
    return all(events[i].relative_time <= events[i + 1].relative_time
               for i in range(len(events) - 1))


class EventStore(QObject):
    """
    Working set, time index and visible projection of one session.

    Signals:
        session_loaded: A bulk load was applied (session_id)
        load_failed: A bulk load failed and the working set was reset (session_id, message)
        working_set_reset: The working set was cleared
        event_appended: A live event was added to the working set (UnifiedEvent)
        visible_event_inserted: A live event was spliced into the projection (index)
        projection_changed: The projection was recomputed
        session_status_changed: The session left the active state (session_id, status)
    """

    session_loaded = pyqtSignal(str)
    load_failed = pyqtSignal(str, str)
    working_set_reset = pyqtSignal()
    event_appended = pyqtSignal(object)
    visible_event_inserted = pyqtSignal(int)
    projection_changed = pyqtSignal()
    session_status_changed = pyqtSignal(str, str)

    def __init__(self, backend, state, runner, error_handler=None, parent=None):
        """
        Initialize the event store.

        Args:
            backend: SessionBackend used for bulk loads
            state: TimelineState holding the active filter and session id
            runner: TaskRunner executing backend calls
            error_handler: Optional ErrorHandler for load failures
            parent: Parent QObject
        """
        super().__init__(parent)
        self.backend = backend
        self.state = state
        self.runner = runner
        self.error_handler = error_handler

        self.time_index = TimeIndex()
        self._session_id: Optional[str] = None
        self._session: Optional[DeviceSession] = None
        self._events: List[UnifiedEvent] = []
        self._by_id: Dict[str, UnifiedEvent] = {}
        self._visible: List[UnifiedEvent] = []
        self._pending_live: List[UnifiedEvent] = []
        self._load_token = 0
        self._loading_session_id: Optional[str] = None
        self.projection_version = 0

    # Accessors

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def session(self) -> Optional[DeviceSession]:
        return self._session

    @property
    def events(self) -> List[UnifiedEvent]:
        """Working set ordered by relative time. Do not mutate."""
        return self._events

    @property
    def visible_events(self) -> List[UnifiedEvent]:
        """Visible projection ordered by relative time. Do not mutate."""
        return self._visible

    @property
    def is_loading(self) -> bool:
        return self._loading_session_id is not None

    @property
    def total_event_count(self) -> int:
        """Total events of the session as reported by the backend."""
        reported = self._session.event_count if self._session else 0
        return max(reported, len(self._events))

    @property
    def duration_ms(self) -> int:
        """Session span in ms: the ended span, the last event or the index coverage."""
        duration = self.time_index.duration_ms
        if self._events:
            duration = max(duration, self._events[-1].relative_time)
        if self._session and self._session.end_time:
            duration = max(duration, self._session.end_time - self._session.start_time)
        return duration

    def find_event(self, event_id: str) -> Optional[UnifiedEvent]:
        return self._by_id.get(event_id)

    def visible_index_of(self, event_id: str) -> Optional[int]:
        """
        Find an event's position in the projection.

        Args:
            event_id: Event identifier

        Returns:
            Optional[int]: Projection index, or None if the event is not visible
        """
        event = self._by_id.get(event_id)
        if event is None:
            return None

        index = bisect_left(self._visible, event.relative_time, key=_relative_time)
        while index < len(self._visible) and self._visible[index].relative_time == event.relative_time:
            if self._visible[index].id == event_id:
                return index
            index += 1
        return None

    # Bulk loading

    def load_session(self, session_id: str, on_complete: Optional[Callable[[], None]] = None) -> int:
        """
        Load a session's metadata and events asynchronously.

        Switching to a different session clears the working set and the
        per-session UI state immediately. Reloading the displayed session
        keeps the current data until the response arrives.

        Args:
            session_id: Session to load
            on_complete: Called after a successful, non-stale load

        Returns:
            int: Request token of this load
        """
        if session_id != self._session_id:
            self.state.reset_session(session_id)
            self._clear(session_id)

        self._load_token += 1
        token = self._load_token
        self._loading_session_id = session_id
        self.state.update(is_loading=True)
        logger.info(f"Loading session {session_id} (request {token})")

        self.runner.submit(
            self._fetch_session, session_id,
            on_success=lambda result: self._on_loaded(token, session_id, result, on_complete),
            on_error=lambda error: self._on_load_failed(token, session_id, error),
        )
        return token

    def _fetch_session(self, session_id: str):
        # Runs on a worker thread: backend calls only
        session = self.backend.get_stored_session(session_id)
        events = self.backend.load_session_events(session_id)
        return session, events

    def _on_loaded(self, token: int, session_id: str, result, on_complete):
        if token != self._load_token:
            logger.debug(f"Discarding stale load of session {session_id} (request {token})")
            return

        session, events = result
        events = list(events)
        if not _is_ordered(events):
            logger.warning(f"Backend returned unordered events for session {session_id}; sorting")
            events.sort(key=_relative_time)

        by_id: Dict[str, UnifiedEvent] = {}
        ordered: List[UnifiedEvent] = []
        for event in events:
            if event.id in by_id:
                continue
            by_id[event.id] = event
            ordered.append(event)

        merged = 0
        for event in self._pending_live:
            if event.id in by_id:
                continue
            ordered.insert(bisect_right(ordered, event.relative_time, key=_relative_time), event)
            by_id[event.id] = event
            merged += 1
        self._pending_live = []

        session.event_count = max(session.event_count, len(ordered))
        self._session_id = session_id
        self._session = session
        self._events = ordered
        self._by_id = by_id
        self._loading_session_id = None

        duration = session.end_time - session.start_time if session.end_time else 0
        self.time_index.rebuild(ordered, duration)
        self._recompute_projection()
        self.state.update(is_loading=False)

        logger.info(f"Loaded session {session_id}: {len(ordered)} events"
                    + (f", {merged} buffered live events merged" if merged else ""))
        self.session_loaded.emit(session_id)

        if on_complete is not None:
            on_complete()

    def _on_load_failed(self, token: int, session_id: str, error: Exception):
        if token != self._load_token:
            logger.debug(f"Ignoring failure of stale load of session {session_id} (request {token})")
            return

        self._clear(session_id)
        self.state.update(is_loading=False)

        load_error = SessionLoadError(session_id, error)
        if self.error_handler is not None:
            message = self.error_handler.handle_error(load_error, "loading session")
        else:
            logger.error(load_error.details)
            message = load_error.message
        self.load_failed.emit(session_id, message)

    def _clear(self, session_id: Optional[str]):
        """Reset the working set, index and projection to empty."""
        self._session_id = session_id
        self._session = None
        self._events = []
        self._by_id = {}
        self._visible = []
        self._pending_live = []
        self._loading_session_id = None
        self.time_index.clear()
        self.projection_version += 1
        self.working_set_reset.emit()
        self.projection_changed.emit()

    def reset(self):
        """Forget the displayed session entirely."""
        self._load_token += 1
        self.state.reset_session(None)
        self._clear(None)

    # Live updates

    def append_live_event(self, event: UnifiedEvent) -> bool:
        """
        Splice one live event into the working set and projection.

        Args:
            event: Event pushed by the live channel

        Returns:
            bool: True if the event was applied (False if buffered or ignored)
        """
        if event.session_id != self._session_id:
            logger.debug(f"Ignoring live event {event.id} for session {event.session_id}")
            return False

        if self._loading_session_id == event.session_id:
            self._pending_live.append(event)
            return False

        if self._session is None or not self._session.is_active:
            logger.debug(f"Ignoring live event {event.id}: session {self._session_id} is not active")
            return False

        if event.id in self._by_id:
            return False

        if event.relative_time < 0:
            event = replace(event, relative_time=0)

        index = bisect_right(self._events, event.relative_time, key=_relative_time)
        self._events.insert(index, event)
        self._by_id[event.id] = event
        self._session.event_count += 1
        self.time_index.add(event)

        if event_matches(event, self.state.filter):
            visible_index = bisect_right(self._visible, event.relative_time, key=_relative_time)
            self._visible.insert(visible_index, event)
            self.projection_version += 1
            self.visible_event_inserted.emit(visible_index)

        self.event_appended.emit(event)
        return True

    def receive_live_events(self, batch: Iterable[UnifiedEvent]) -> int:
        """
        Apply a batch of live events in arrival order.

        Returns:
            int: Number of events applied
        """
        return sum(1 for event in batch if self.append_live_event(event))

    # Filtering

    def apply_filter(self, event_filter: Filter):
        """
        Make event_filter the active filter and recompute the projection.

        Args:
            event_filter: New filter snapshot
        """
        self.state.update(filter=event_filter)
        self._recompute_projection()

    def _recompute_projection(self):
        self._visible = apply_filter(self._events, self.state.filter)
        self.projection_version += 1
        logger.debug(f"Projection: {len(self._visible)} of {len(self._events)} events visible")
        self.projection_changed.emit()

    # Status

    def mark_session_ended(self, status: str = SessionStatus.COMPLETED,
                           end_time: Optional[int] = None) -> bool:
        """
        Move the displayed session from active to a final status.

        The transition happens at most once; later calls are ignored.

        Args:
            status: SessionStatus.COMPLETED or SessionStatus.ERROR
            end_time: Unix ms when the session ended

        Returns:
            bool: True if the transition happened
        """
        if self._session is None or not self._session.is_active:
            return False
        if status not in SessionStatus.FINAL:
            status = SessionStatus.ERROR

        self._session.status = status
        if end_time:
            self._session.end_time = end_time
            self.time_index.set_duration(end_time - self._session.start_time)
        self._pending_live = []

        logger.info(f"Session {self._session.id} is now {status}")
        self.session_status_changed.emit(self._session.id, status)
        return True
