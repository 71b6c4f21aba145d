"""
Session Lifecycle Manager
=========================

This module starts and ends capture sessions, switches the displayed
session between live and historical mode and keeps the session list of the
displayed device current.

Live mode subscribes to the session's live channel before the bulk load is
issued, so events pushed while the load is in flight are buffered by the
event store and merged when it completes. Ending a session unsubscribes
first and then performs the single active -> completed|error transition,
even when the backend fails to stop the capture.

Author: Session Timeline Team
Version: 1.0
"""

import logging
import time
from dataclasses import replace
from typing import Callable, List, Optional

from PyQt5.QtCore import QObject, pyqtSignal

from session_timeline.data.backend import SESSION_ENDED, SESSION_STARTED, Subscription
from session_timeline.models import DeviceSession, SessionConfig, SessionStatus
from session_timeline.utils.error_handler import BackendError

# Configure logger
logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionLifecycleManager(QObject):
    """
    Coordinates session start/end, live subscriptions and the session list.

    Signals:
        session_started: A session started from this manager is displayed (session_id)
        session_ended: The displayed session reached a final status (session_id, status)
        sessions_refreshed: The session list of the displayed device was reloaded (list)
        session_deleted: A stored session was deleted (session_id)
        stats_ready: Statistics of a session arrived (SessionStats)
    """

    session_started = pyqtSignal(str)
    session_ended = pyqtSignal(str, str)
    sessions_refreshed = pyqtSignal(object)
    session_deleted = pyqtSignal(str)
    stats_ready = pyqtSignal(object)

    def __init__(self, backend, store, state, runner, error_handler=None,
                 clock: Optional[Callable[[], int]] = None, list_limit: int = 50, parent=None):
        """
        Initialize the session manager.

        Args:
            backend: SessionBackend
            store: EventStore displaying the active session
            state: TimelineState
            runner: TaskRunner executing backend calls
            error_handler: Optional ErrorHandler for failed backend calls
            clock: Returns the current Unix time in ms
            list_limit: Default number of sessions to list
            parent: Parent QObject
        """
        super().__init__(parent)
        self.backend = backend
        self.store = store
        self.state = state
        self.runner = runner
        self.error_handler = error_handler
        self.clock = clock or _now_ms
        self.list_limit = list_limit

        self._live_subscription: Optional[Subscription] = None
        self._notification_subscriptions: List[Subscription] = backend.subscribe_notifications(
            self._on_notification
        )
        self.store.session_status_changed.connect(self._on_status_changed)

    @property
    def is_live(self) -> bool:
        return self._live_subscription is not None and self._live_subscription.active

    def _report(self, error: Exception, context: str):
        if self.error_handler is not None:
            self.error_handler.handle_error(error, context)
        else:
            logger.error(f"Error {context}: {error}")

    # Live subscription

    def _subscribe_live(self, session_id: str):
        self._unsubscribe_live()
        self._live_subscription = self.backend.subscribe_events(session_id, self.store.append_live_event)

    def _unsubscribe_live(self):
        if self._live_subscription is not None:
            self._live_subscription.unsubscribe()
            self._live_subscription = None

    # Operations

    def start_session(self, device_id: str, name: str = "", config=None):
        """
        Start a new capture session on a device and display it live.

        The result arrives asynchronously; session_started is emitted once the
        session is subscribed and its load has been issued.

        Args:
            device_id: Device to capture from
            name: Display name
            config: SessionConfig or dictionary forwarded to the backend
        """
        if isinstance(config, SessionConfig):
            config = config.to_dict()
        elif config is None:
            config = SessionConfig().to_dict()

        self.state.update(active_device_id=device_id)
        logger.info(f"Starting session '{name}' on device {device_id}")

        self.runner.submit(
            self.backend.start_session_with_config, device_id, name, config,
            on_success=self._on_started,
            on_error=lambda error: self._report(
                BackendError(f"Failed to start session on {device_id}",
                             operation="StartSessionWithConfig", original_error=error),
                "starting session"),
        )

    def _on_started(self, session_id: str):
        self._subscribe_live(session_id)
        self.store.load_session(session_id)
        self.session_started.emit(session_id)

    def end_session(self, session_id: Optional[str] = None, reason: str = SessionStatus.COMPLETED):
        """
        End a capture session.

        Args:
            session_id: Session to end (defaults to the displayed session)
            reason: 'completed', 'error' or a free-form stop reason
        """
        session_id = session_id or self.store.session_id
        if not session_id:
            logger.warning("end_session called without an active session")
            return

        if session_id == self.store.session_id:
            self._unsubscribe_live()

        logger.info(f"Ending session {session_id} ({reason})")
        self.runner.submit(
            self.backend.stop_session, session_id, reason,
            on_success=lambda session: self._on_stopped(session_id, session),
            on_error=lambda error: self._on_stop_failed(session_id, error),
        )

    def _on_stopped(self, session_id: str, session: DeviceSession):
        if session_id == self.store.session_id:
            self.store.mark_session_ended(session.status, session.end_time or self.clock())
        self._update_session_list(session)

    def _on_stop_failed(self, session_id: str, error: Exception):
        self._report(BackendError(f"Failed to stop session {session_id}", operation="StopSession",
                                  original_error=error), "ending session")
        if session_id == self.store.session_id:
            self.store.mark_session_ended(SessionStatus.ERROR, self.clock())

    def load_session(self, session_id: str):
        """Display a stored session in historical mode (no live subscription)."""
        self._unsubscribe_live()
        self.store.load_session(session_id)

    def refresh_sessions(self, device_id: Optional[str] = None, limit: Optional[int] = None):
        """
        Reload the session list of a device.

        Args:
            device_id: Device to list (defaults to the displayed device)
            limit: Maximum number of sessions
        """
        if device_id is not None:
            self.state.update(active_device_id=device_id)
        device_id = self.state.active_device_id
        limit = limit or self.list_limit

        self.runner.submit(
            self.backend.list_stored_sessions, device_id, limit,
            on_success=lambda sessions: self._on_sessions(device_id, sessions),
            on_error=lambda error: self._report(
                BackendError("Failed to list sessions", operation="ListStoredSessions",
                             original_error=error),
                "listing sessions"),
        )

    def _on_sessions(self, device_id: Optional[str], sessions: List[DeviceSession]):
        if device_id != self.state.active_device_id:
            logger.debug(f"Dropping session list of device {device_id}: device changed")
            return
        self.state.update(session_list=tuple(sessions))
        self.sessions_refreshed.emit(list(sessions))

    def delete_session(self, session_id: str):
        """
        Delete a stored session.

        Once the backend confirms, the session leaves the session list. If it
        is the displayed session, the live subscription is dropped and the
        working set is reset.

        Args:
            session_id: Session to delete
        """
        logger.info(f"Deleting session {session_id}")
        self.runner.submit(
            self.backend.delete_stored_session, session_id,
            on_success=lambda _: self._on_deleted(session_id),
            on_error=lambda error: self._report(
                BackendError(f"Failed to delete session {session_id}",
                             operation="DeleteStoredSession", original_error=error),
                "deleting session"),
        )

    def _on_deleted(self, session_id: str):
        if session_id == self.store.session_id:
            self._unsubscribe_live()
            self.store.reset()

        remaining = tuple(s for s in self.state.session_list if s.id != session_id)
        if len(remaining) != len(self.state.session_list):
            self.state.update(session_list=remaining)
        self.session_deleted.emit(session_id)

    def fetch_session_stats(self, session_id: Optional[str] = None):
        """
        Request per-source and per-level event counts of a session.

        The result is delivered through stats_ready.

        Args:
            session_id: Session to count (defaults to the displayed session)
        """
        session_id = session_id or self.store.session_id
        if not session_id:
            logger.warning("fetch_session_stats called without a session")
            return

        self.runner.submit(
            self.backend.get_session_stats, session_id,
            on_success=self.stats_ready.emit,
            on_error=lambda error: self._report(
                BackendError(f"Failed to read statistics of session {session_id}",
                             operation="GetSessionStats", original_error=error),
                "reading session statistics"),
        )

    # Notifications

    def _on_notification(self, name: str, session: DeviceSession):
        device_id = self.state.active_device_id
        if device_id and session.device_id != device_id:
            logger.debug(f"Ignoring {name} for session {session.id} on device {session.device_id}")
            return

        self._update_session_list(session, prepend=(name == SESSION_STARTED))

        if name == SESSION_ENDED and session.id == self.store.session_id:
            self._unsubscribe_live()
            self.store.mark_session_ended(session.status, session.end_time)

    def _on_status_changed(self, session_id: str, status: str):
        session = self.store.session
        if session is not None and session.id == session_id:
            self._update_session_list(replace(session))
        self.session_ended.emit(session_id, status)

    def _update_session_list(self, session: DeviceSession, prepend: bool = False):
        sessions = list(self.state.session_list)
        for i, existing in enumerate(sessions):
            if existing.id == session.id:
                sessions[i] = session
                break
        else:
            if prepend:
                sessions.insert(0, session)
            else:
                return
        self.state.update(session_list=tuple(sessions))

    def shutdown(self):
        """Drop every subscription."""
        self._unsubscribe_live()
        for subscription in self._notification_subscriptions:
            subscription.unsubscribe()
        self._notification_subscriptions = []
