"""
Virtualized Renderer
====================

This module provides VirtualizedRenderer, the windowing logic of the event
list. Only the rows inside the viewport plus an overscan margin on each
side are materialized; everything else is represented by the fixed row
height alone.

The renderer also owns the list's scrolling policy:
- Live mode (auto-scroll) keeps the newest row in view as rows are appended
- Any user scroll gesture leaves live mode
- Programmatic scrolls (seek, live mode) never leave live mode themselves

High-frequency highlight updates from outside (e.g. the event a running
workflow is executing) go through a single-slot CoalescingScheduler, so at
most one highlight change is applied per frame.

Author: Session Timeline Team
Version: 1.0
"""

import logging
import math
from collections import deque
from typing import List, Optional, Tuple

from PyQt5.QtCore import QObject, pyqtSignal

from session_timeline.models import UnifiedEvent
from session_timeline.utils.scheduler import CoalescingScheduler

# Configure logger
logger = logging.getLogger(__name__)

ALIGN_START = "start"
ALIGN_CENTER = "center"
ALIGN_END = "end"

# Programmatic scrolls whose echo from the view may still be in flight
MAX_PENDING_SCROLLS = 32


class VirtualizedRenderer(QObject):
    """
    Row windowing and scroll policy for the visible projection.

    Signals:
        render_requested: The materialized window changed (first, last exclusive)
        scroll_requested: The view should scroll (offset, behavior)
        highlight_changed: The externally highlighted event changed (event id or None)
    """

    render_requested = pyqtSignal(int, int)
    scroll_requested = pyqtSignal(float, str)
    highlight_changed = pyqtSignal(object)

    def __init__(self, store, state, detail_loader=None, row_height: int = 36,
                 overscan: int = 10, frame_interval_ms: int = 16, parent=None):
        """
        Initialize the renderer.

        Args:
            store: EventStore providing the visible projection
            state: TimelineState (auto_scroll, selection)
            detail_loader: Optional EventDetailLoader opened on row selection
            row_height: Fixed row height in pixels
            overscan: Rows materialized beyond each edge of the viewport
            frame_interval_ms: Coalescing interval for highlight updates
            parent: Parent QObject
        """
        super().__init__(parent)
        self.store = store
        self.state = state
        self.detail_loader = detail_loader
        self.row_height = row_height
        self.overscan = overscan

        self.viewport_height = 0.0
        self.scroll_offset = 0.0
        self.highlighted_event_id: Optional[str] = None
        self._pending_offsets = deque(maxlen=MAX_PENDING_SCROLLS)

        self.highlight_scheduler = CoalescingScheduler(frame_interval_ms, self)

        self.store.visible_event_inserted.connect(self.on_rows_inserted)
        self.store.projection_changed.connect(self.on_projection_changed)

    # Geometry

    @property
    def row_count(self) -> int:
        return len(self.store.visible_events)

    @property
    def content_height(self) -> float:
        return self.row_count * self.row_height

    @property
    def max_offset(self) -> float:
        return max(0.0, self.content_height - self.viewport_height)

    def set_viewport(self, height: float):
        self.viewport_height = max(0.0, float(height))
        self._set_offset(self.scroll_offset)

    def visible_range(self) -> Tuple[int, int]:
        """
        Rows to materialize, including overscan.

        Returns:
            Tuple[int, int]: (first, last) with last exclusive
        """
        rows = self.row_count
        if rows == 0 or self.row_height <= 0:
            return (0, 0)

        first = int(self.scroll_offset // self.row_height)
        last = math.ceil((self.scroll_offset + self.viewport_height) / self.row_height)
        start = max(0, first - self.overscan)
        end = min(rows, max(last, first + 1) + self.overscan)
        return (start, end)

    def visible_rows(self) -> List[Tuple[int, UnifiedEvent]]:
        start, end = self.visible_range()
        events = self.store.visible_events
        return [(i, events[i]) for i in range(start, end)]

    def _set_offset(self, offset: float) -> bool:
        offset = max(0.0, min(float(offset), self.max_offset))
        changed = offset != self.scroll_offset
        self.scroll_offset = offset
        self.render_requested.emit(*self.visible_range())
        return changed

    # Scrolling

    def scroll_to_index(self, index: int, align: str = ALIGN_START, behavior: str = "auto"):
        """
        Scroll so that a row is aligned in the viewport.

        Args:
            index: Projection index (clamped to the valid range)
            align: 'start', 'center' or 'end'
            behavior: 'auto' or 'smooth', passed through to the view
        """
        rows = self.row_count
        if rows == 0:
            return
        index = max(0, min(int(index), rows - 1))

        top = index * self.row_height
        if align == ALIGN_CENTER:
            offset = top - (self.viewport_height - self.row_height) / 2
        elif align == ALIGN_END:
            offset = top + self.row_height - self.viewport_height
        else:
            offset = top

        self._set_offset(offset)
        self._pending_offsets.append(self.scroll_offset)
        self.scroll_requested.emit(self.scroll_offset, behavior)

    def scroll_to_bottom(self):
        self.scroll_to_index(self.row_count - 1, align=ALIGN_END)

    def on_user_scroll(self, offset: float):
        """
        Handle a scroll reported by the view.

        A report matching a pending programmatic scroll is its echo and does
        not count as a user gesture. Scrolls issued before the matched one
        are dropped, since the view has moved past them. In live mode a
        report within one row of the bottom is treated as stick-to-bottom.
        """
        if self._consume_echo(offset):
            self._set_offset(offset)
            return

        if self.state.auto_scroll and self.max_offset - offset <= self.row_height:
            self._pending_offsets.clear()
            self._set_offset(offset)
            return

        self._pending_offsets.clear()
        self._set_offset(offset)
        if self.state.auto_scroll:
            logger.debug("User scroll: leaving live mode")
            self.state.update(auto_scroll=False)

    def _consume_echo(self, offset: float) -> bool:
        for i, expected in enumerate(self._pending_offsets):
            if abs(offset - expected) < 0.5:
                for _ in range(i + 1):
                    self._pending_offsets.popleft()
                return True
        return False

    def set_auto_scroll(self, enabled: bool):
        self.state.update(auto_scroll=enabled)
        if enabled:
            self.scroll_to_bottom()

    def on_rows_inserted(self, index: int):
        """Keep the view stable (or pinned to the bottom in live mode) after an insert."""
        if self.state.auto_scroll:
            self.scroll_to_bottom()
            return

        if index * self.row_height < self.scroll_offset:
            # Row landed above the viewport: shift so the visible rows stay put
            self._set_offset(self.scroll_offset + self.row_height)
        else:
            self.render_requested.emit(*self.visible_range())

    def on_projection_changed(self):
        if self.state.auto_scroll and self.row_count:
            self.scroll_to_bottom()
        else:
            self._set_offset(self.scroll_offset)

    # Selection and highlight

    @property
    def selected_index(self) -> Optional[int]:
        event_id = self.state.selected_event_id
        return self.store.visible_index_of(event_id) if event_id else None

    def select_row(self, index: int):
        """Select a row and open its details."""
        events = self.store.visible_events
        if not 0 <= index < len(events):
            return
        event_id = events[index].id
        if self.detail_loader is not None:
            self.detail_loader.open_event(event_id)
        else:
            self.state.update(selected_event_id=event_id)

    def set_executing_event(self, event_id: Optional[str]):
        """Request an external highlight; only the latest request per frame is applied."""
        self.highlight_scheduler.schedule(lambda: self._apply_highlight(event_id))

    def _apply_highlight(self, event_id: Optional[str]):
        if event_id == self.highlighted_event_id:
            return
        self.highlighted_event_id = event_id
        self.highlight_changed.emit(event_id)
