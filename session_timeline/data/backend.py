"""
Session Backend Interface
=========================

This module defines the interface through which the timeline talks to
durable storage and to the live capture pipeline, plus the in-process push
channel that carries live events and session notifications.

All backend calls are synchronous and may be slow; the timeline core only
ever invokes them through a task runner so they never block the GUI thread.
Live events and notifications are pushed through LiveEventHub signals,
which Qt delivers on the receiver's thread.

Author: Session Timeline Team
Version: 1.0
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from PyQt5.QtCore import QObject, pyqtSignal

from session_timeline.models import Bookmark, DeviceSession, SessionStats, UnifiedEvent

# Configure logger
logger = logging.getLogger(__name__)

# Notification names passed to subscribe_notifications callbacks
SESSION_STARTED = "session-started"
SESSION_ENDED = "session-ended"


class LiveEventHub(QObject):
    """
    Push channel for live events and session lifecycle notifications.

    Emitting is safe from any thread; connected receivers run on the thread
    they were connected from.

    Signals:
        event_received: A new event for a session (session_id, UnifiedEvent)
        session_started: A session began capturing (DeviceSession)
        session_ended: A session stopped capturing (DeviceSession)
    """

    event_received = pyqtSignal(str, object)
    session_started = pyqtSignal(object)
    session_ended = pyqtSignal(object)

    def publish_event(self, event: UnifiedEvent):
        self.event_received.emit(event.session_id, event)

    def publish_session_started(self, session: DeviceSession):
        logger.info(f"Session started: {session.id} on device {session.device_id}")
        self.session_started.emit(session)

    def publish_session_ended(self, session: DeviceSession):
        logger.info(f"Session ended: {session.id} ({session.status})")
        self.session_ended.emit(session)


class Subscription:
    """
    Handle for a live subscription.

    After unsubscribe() the callback is never invoked again, including for
    deliveries already queued on the event loop.
    """

    def __init__(self, signal, handler: Callable, description: str = ""):
        self._signal = signal
        self._handler = handler
        self.description = description
        self.active = True
        signal.connect(handler)

    def unsubscribe(self):
        if not self.active:
            return
        self.active = False
        try:
            self._signal.disconnect(self._handler)
        except TypeError:
            logger.debug(f"Subscription {self.description} was already disconnected")
        logger.debug(f"Unsubscribed {self.description}")


class SessionBackend(ABC):
    """
    Abstract session/event backend.

    Concrete backends implement the storage calls. The live channel is
    provided here on top of a LiveEventHub owned by the backend.
    """

    def __init__(self, hub: Optional[LiveEventHub] = None):
        self.hub = hub or LiveEventHub()

    @abstractmethod
    def list_stored_sessions(self, device_id: Optional[str], limit: int = 50) -> List[DeviceSession]:
        """List stored sessions, newest first (all devices when device_id is None)."""

    @abstractmethod
    def get_stored_session(self, session_id: str) -> DeviceSession:
        """Get session metadata. Raises if the session does not exist."""

    @abstractmethod
    def load_session_events(self, session_id: str) -> List[UnifiedEvent]:
        """Load every event of a session ordered by relative time."""

    @abstractmethod
    def get_stored_event(self, event_id: str) -> UnifiedEvent:
        """Get one event with its full payload. Raises if it does not exist."""

    @abstractmethod
    def start_session_with_config(self, device_id: str, name: str,
                                  config: Optional[Dict[str, Any]] = None) -> str:
        """Start capturing a new session and return its id."""

    @abstractmethod
    def stop_session(self, session_id: str, reason: str = "completed") -> DeviceSession:
        """Stop capturing a session and return its final metadata."""

    @abstractmethod
    def get_bookmarks(self, session_id: str) -> List[Bookmark]:
        """Get a session's bookmarks ordered by relative time."""

    @abstractmethod
    def create_bookmark(self, session_id: str, relative_time: int, label: str,
                        color: Optional[str] = None, bookmark_type: str = "user") -> Bookmark:
        """Persist a bookmark and return it."""

    @abstractmethod
    def delete_bookmark(self, bookmark_id: str):
        """Delete a bookmark."""

    @abstractmethod
    def delete_stored_session(self, session_id: str):
        """Delete a stored session together with its events and bookmarks."""

    def get_session_stats(self, session_id: str) -> SessionStats:
        """
        Count a session's events by source and level.

        The default counts the events returned by load_session_events.
        Backends with a query engine should override it.
        """
        return SessionStats.from_events(session_id, self.load_session_events(session_id))

    def subscribe_events(self, session_id: str,
                         callback: Callable[[UnifiedEvent], None]) -> Subscription:
        """
        Subscribe to live events of one session.

        Args:
            session_id: Session whose events are delivered
            callback: Called with each UnifiedEvent, in arrival order

        Returns:
            Subscription: Handle used to unsubscribe
        """
        subscription = None

        def handler(event_session_id, event):
            if subscription is not None and subscription.active and event_session_id == session_id:
                callback(event)

        subscription = Subscription(self.hub.event_received, handler,
                                    description=f"events of session {session_id}")
        logger.debug(f"Subscribed to live events of session {session_id}")
        return subscription

    def subscribe_notifications(self, callback: Callable[[str, DeviceSession], None]) -> List[Subscription]:
        """
        Subscribe to session-started and session-ended notifications.

        Args:
            callback: Called with (notification name, DeviceSession)

        Returns:
            List[Subscription]: One handle per notification
        """
        return [
            Subscription(self.hub.session_started,
                         lambda session: callback(SESSION_STARTED, session),
                         description=SESSION_STARTED),
            Subscription(self.hub.session_ended,
                         lambda session: callback(SESSION_ENDED, session),
                         description=SESSION_ENDED),
        ]
