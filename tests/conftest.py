"""Shared pytest fixtures."""
from __future__ import annotations

import os
from typing import Dict, List, Optional

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PyQt5.QtCore import QCoreApplication  # noqa: E402

from session_timeline.data.backend import SessionBackend  # noqa: E402
from session_timeline.data.event_store import EventStore  # noqa: E402
from session_timeline.models import Bookmark, DeviceSession, SessionStatus, UnifiedEvent  # noqa: E402
from session_timeline.state import TimelineState  # noqa: E402
from session_timeline.utils.error_handler import ErrorHandler  # noqa: E402
from session_timeline.utils.task_runner import ImmediateTaskRunner, TaskRunner  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """One Qt application for the whole test run."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


def make_event(event_id: str, relative_time: int, level: str = "info", source: str = "logcat",
               category: str = "log", event_type: str = "log", title: Optional[str] = None,
               data=None, session_id: str = "s1", start: int = 1_700_000_000_000) -> UnifiedEvent:
    """Build an event with sensible defaults."""
    return UnifiedEvent(
        id=event_id,
        session_id=session_id,
        device_id="dev1",
        timestamp=start + relative_time,
        relative_time=relative_time,
        source=source,
        category=category,
        level=level,
        type=event_type,
        title=title if title is not None else f"event {event_id}",
        data=data,
    )


class ManualTaskRunner(TaskRunner):
    """Queues calls until the test completes them, in any order."""

    def __init__(self):
        super().__init__()
        self.calls: List[tuple] = []

    @property
    def pending(self) -> int:
        return len(self.calls)

    def submit(self, func, *args, on_success=None, on_error=None, **kwargs):
        self.calls.append((func, args, kwargs, on_success, on_error))

    def complete(self, index: int = 0):
        """Run the queued call at index and deliver its outcome."""
        func, args, kwargs, on_success, on_error = self.calls.pop(index)
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            if on_error is None:
                raise
            on_error(e)
            return
        if on_success is not None:
            on_success(result)

    def complete_all(self):
        while self.calls:
            self.complete(0)


class FakeBackend(SessionBackend):
    """In-memory backend with switchable failures."""

    def __init__(self):
        super().__init__()
        self.sessions: Dict[str, DeviceSession] = {}
        self.events: Dict[str, List[UnifiedEvent]] = {}
        self.bookmarks: Dict[str, List[Bookmark]] = {}
        self.fail_loads = set()
        self.fail_events = set()
        self.fail_stop = False
        self.fail_delete = False
        self.load_calls = 0
        self._next_id = 0
        self.now = 1_700_000_100_000

    def add_session(self, session_id: str, events: List[UnifiedEvent],
                    status: str = SessionStatus.ACTIVE, device_id: str = "dev1",
                    event_count: Optional[int] = None) -> DeviceSession:
        session = DeviceSession(
            id=session_id, device_id=device_id, name=f"Session {session_id}",
            start_time=1_700_000_000_000, status=status,
            event_count=len(events) if event_count is None else event_count,
        )
        self.sessions[session_id] = session
        self.events[session_id] = list(events)
        return session

    def list_stored_sessions(self, device_id, limit=50):
        sessions = [s for s in self.sessions.values() if device_id is None or s.device_id == device_id]
        return sorted(sessions, key=lambda s: s.start_time, reverse=True)[:limit]

    def get_stored_session(self, session_id):
        if session_id not in self.sessions:
            raise KeyError(session_id)
        session = self.sessions[session_id]
        return DeviceSession(**{**session.__dict__, 'metadata': dict(session.metadata)})

    def load_session_events(self, session_id):
        self.load_calls += 1
        if session_id in self.fail_loads:
            raise RuntimeError("backend unavailable")
        return list(self.events.get(session_id, []))

    def get_stored_event(self, event_id):
        if event_id in self.fail_events:
            raise RuntimeError("event payload unavailable")
        for events in self.events.values():
            for event in events:
                if event.id == event_id:
                    return event
        raise KeyError(event_id)

    def start_session_with_config(self, device_id, name, config=None):
        self._next_id += 1
        session_id = f"new{self._next_id}"
        session = self.add_session(session_id, [], device_id=device_id)
        session.name = name
        session.config = config
        self.hub.publish_session_started(session)
        return session_id

    def stop_session(self, session_id, reason="completed"):
        if self.fail_stop:
            raise RuntimeError("device disconnected")
        session = self.sessions[session_id]
        session.status = SessionStatus.ERROR if reason == "error" else SessionStatus.COMPLETED
        session.end_time = self.now
        self.hub.publish_session_ended(session)
        return session

    def get_bookmarks(self, session_id):
        return list(self.bookmarks.get(session_id, []))

    def create_bookmark(self, session_id, relative_time, label, color=None, bookmark_type="user"):
        self._next_id += 1
        bookmark = Bookmark(id=f"bm{self._next_id}", session_id=session_id,
                            relative_time=relative_time, label=label, color=color,
                            type=bookmark_type, created_at=self.now)
        self.bookmarks.setdefault(session_id, []).append(bookmark)
        return bookmark

    def delete_bookmark(self, bookmark_id):
        for bookmarks in self.bookmarks.values():
            bookmarks[:] = [b for b in bookmarks if b.id != bookmark_id]

    def delete_stored_session(self, session_id):
        if self.fail_delete:
            raise RuntimeError("database locked")
        self.sessions.pop(session_id, None)
        self.events.pop(session_id, None)
        self.bookmarks.pop(session_id, None)

    def push(self, event: UnifiedEvent):
        """Simulate the capture pipeline pushing a live event."""
        self.events.setdefault(event.session_id, []).append(event)
        self.hub.publish_event(event)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def state() -> TimelineState:
    return TimelineState()


@pytest.fixture
def error_handler() -> ErrorHandler:
    return ErrorHandler()


@pytest.fixture
def runner() -> ImmediateTaskRunner:
    return ImmediateTaskRunner()


@pytest.fixture
def manual_runner() -> ManualTaskRunner:
    return ManualTaskRunner()


@pytest.fixture
def store(backend, state, runner, error_handler) -> EventStore:
    return EventStore(backend, state, runner, error_handler)
