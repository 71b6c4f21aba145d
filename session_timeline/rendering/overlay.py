"""
Bookmark & Critical-Event Overlay - Markers drawn over the time ruler.

This module provides the TimelineOverlay class which manages:
- Bookmarks of the displayed session (load, create, delete)
- Critical events (crashes, ANRs, errors) found in the visible projection
- Marker positions along the ruler and marker activation

Bookmarks are positioned independently of the active filter. Critical
markers follow the projection and are capped so a crash storm cannot flood
the ruler.
"""

import logging
from dataclasses import dataclass
from itertools import islice
from typing import Callable, List, Optional

from PyQt5.QtCore import QObject, pyqtSignal

from session_timeline.models import Bookmark, UnifiedEvent, is_critical_event
from session_timeline.rendering.ruler import time_to_ratio
from session_timeline.state import Derived
from session_timeline.utils.error_handler import BackendError
from session_timeline.utils.formatting import format_relative_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Marker:
    """A clickable marker on the ruler."""
    kind: str
    ref_id: str
    relative_time: int
    ratio: float
    label: str
    color: Optional[str] = None


class TimelineOverlay(QObject):
    """
    Bookmark and critical-event markers for the displayed session.

    Signals:
        bookmarks_changed: The bookmark list of the session changed
    """

    BOOKMARK = "bookmark"
    CRITICAL = "critical"

    bookmarks_changed = pyqtSignal()

    def __init__(self, backend, store, runner, error_handler=None,
                 critical_limit: int = 50,
                 on_seek: Optional[Callable[[int], None]] = None,
                 on_select: Optional[Callable[[str], None]] = None,
                 parent=None):
        """
        Initialize the overlay.

        Args:
            backend: SessionBackend storing bookmarks
            store: EventStore providing the projection
            runner: TaskRunner executing backend calls
            error_handler: Optional ErrorHandler for failed bookmark calls
            critical_limit: Maximum number of critical markers
            on_seek: Called with a relative time when a marker asks to seek
            on_select: Called with an event id to reveal and select when a critical marker is activated
            parent: Parent QObject
        """
        super().__init__(parent)
        self.backend = backend
        self.store = store
        self.runner = runner
        self.error_handler = error_handler
        self.critical_limit = critical_limit
        self.on_seek = on_seek
        self.on_select = on_select

        self._bookmarks: List[Bookmark] = []
        self._bookmarks_session_id: Optional[str] = None

        self._critical = Derived(
            self._compute_critical_events,
            lambda: (self.store.session_id, self.store.projection_version, self.critical_limit),
        )

    def _report(self, error: Exception, operation: str, context: str):
        wrapped = BackendError(f"Bookmark operation failed: {operation}", operation=operation,
                               original_error=error)
        if self.error_handler is not None:
            self.error_handler.handle_error(wrapped, context)
        else:
            logger.warning(wrapped.details)

    # Bookmarks

    @property
    def bookmarks(self) -> List[Bookmark]:
        return list(self._bookmarks)

    @property
    def bookmarks_session_id(self) -> Optional[str]:
        """Session whose bookmarks are held."""
        return self._bookmarks_session_id

    def load_bookmarks(self, session_id: Optional[str] = None):
        """Fetch the bookmarks of a session (defaults to the displayed one)."""
        session_id = session_id or self.store.session_id
        if self._bookmarks_session_id != session_id:
            self._bookmarks = []
            self._bookmarks_session_id = session_id
            self.bookmarks_changed.emit()
        if not session_id:
            return

        self.runner.submit(
            self.backend.get_bookmarks, session_id,
            on_success=lambda bookmarks: self._on_bookmarks(session_id, bookmarks),
            on_error=lambda error: self._report(error, "GetBookmarks", "loading bookmarks"),
        )

    def _on_bookmarks(self, session_id: str, bookmarks: List[Bookmark]):
        if session_id != self._bookmarks_session_id:
            return
        self._bookmarks = sorted(bookmarks, key=lambda b: b.relative_time)
        self.bookmarks_changed.emit()

    def create_bookmark(self, relative_time: int, label: Optional[str] = None,
                        color: Optional[str] = None):
        """
        Bookmark a point of the displayed session.

        Args:
            relative_time: Bookmarked time in milliseconds
            label: Label (defaults to "Bookmark m:ss.mmm")
            color: Optional marker color
        """
        session_id = self.store.session_id
        if not session_id:
            logger.warning("Cannot create a bookmark without a session")
            return

        relative_time = max(0, int(relative_time))
        label = label or f"Bookmark {format_relative_time(relative_time)}"
        self.runner.submit(
            self.backend.create_bookmark, session_id, relative_time, label, color,
            on_success=lambda bookmark: self._on_bookmark_created(session_id, bookmark),
            on_error=lambda error: self._report(error, "CreateBookmark", "creating bookmark"),
        )

    def _on_bookmark_created(self, session_id: str, bookmark: Bookmark):
        if session_id != self._bookmarks_session_id:
            return
        self._bookmarks.append(bookmark)
        self._bookmarks.sort(key=lambda b: b.relative_time)
        self.bookmarks_changed.emit()

    def delete_bookmark(self, bookmark_id: str):
        self.runner.submit(
            self.backend.delete_bookmark, bookmark_id,
            on_success=lambda _: self._on_bookmark_deleted(bookmark_id),
            on_error=lambda error: self._report(error, "DeleteBookmark", "deleting bookmark"),
        )

    def _on_bookmark_deleted(self, bookmark_id: str):
        remaining = [b for b in self._bookmarks if b.id != bookmark_id]
        if len(remaining) != len(self._bookmarks):
            self._bookmarks = remaining
            self.bookmarks_changed.emit()

    def bookmark_markers(self, duration_ms: Optional[int] = None) -> List[Marker]:
        duration = self.store.duration_ms if duration_ms is None else duration_ms
        return [
            Marker(kind=self.BOOKMARK, ref_id=b.id, relative_time=b.relative_time,
                   ratio=time_to_ratio(b.relative_time, duration), label=b.label, color=b.color)
            for b in self._bookmarks
        ]

    # Critical events

    def _compute_critical_events(self) -> List[UnifiedEvent]:
        critical = (e for e in self.store.visible_events if is_critical_event(e))
        return list(islice(critical, self.critical_limit))

    def critical_events(self) -> List[UnifiedEvent]:
        """Critical events of the projection, in order, capped at critical_limit."""
        return self._critical.get()

    def critical_markers(self, duration_ms: Optional[int] = None) -> List[Marker]:
        duration = self.store.duration_ms if duration_ms is None else duration_ms
        return [
            Marker(kind=self.CRITICAL, ref_id=e.id, relative_time=e.relative_time,
                   ratio=time_to_ratio(e.relative_time, duration), label=e.title)
            for e in self.critical_events()
        ]

    def activate_marker(self, marker: Marker):
        """
        Jump to a marker.

        A critical marker reveals and selects its own event through on_select.
        A bookmark (or a critical marker with no on_select) seeks to its time.
        """
        if marker.kind == self.CRITICAL and self.on_select is not None:
            self.on_select(marker.ref_id)
        elif self.on_seek is not None:
            self.on_seek(marker.relative_time)
