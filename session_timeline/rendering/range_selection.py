"""
Range-Selection Controller
==========================

This module turns pointer gestures on the time ruler into either a seek or
a committed time range.

The controller is a small state machine: Idle -> Dragging on pointer down,
then on pointer up either back to Idle (a drag shorter than the minimum
range is a click, which clears any committed range and requests a seek to
its start) or to Committed with the half-open range [start, end).

Author: Session Timeline Team
Version: 1.0
"""

import logging
from typing import Optional, Tuple

from PyQt5.QtCore import QObject, pyqtSignal

from session_timeline.rendering.ruler import RulerGeometry, pixel_to_time

# Configure logger
logger = logging.getLogger(__name__)

LEFT_BUTTON = 0


class RangeSelectionController(QObject):
    """
    Drag-to-select state machine for the time ruler.

    Signals:
        drag_changed: The in-progress selection changed ((start, end) or None)
        range_committed: A range was committed (start, end)
        range_cleared: The committed range was removed
        seek_requested: A click asked to seek (relative time)
    """

    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTED = "committed"

    drag_changed = pyqtSignal(object)
    range_committed = pyqtSignal(int, int)
    range_cleared = pyqtSignal()
    seek_requested = pyqtSignal(int)

    def __init__(self, min_range_ms: int = 100, parent=None):
        """
        Initialize the controller.

        Args:
            min_range_ms: Drags shorter than this are treated as clicks
            parent: Parent QObject
        """
        super().__init__(parent)
        self.min_range_ms = min_range_ms
        self.geometry = RulerGeometry()
        self.duration_ms = 0

        self._dragging = False
        self._drag_start: Optional[int] = None
        self._drag_end: Optional[int] = None
        self._committed: Optional[Tuple[int, int]] = None

    @property
    def phase(self) -> str:
        if self._dragging:
            return self.DRAGGING
        if self._committed is not None:
            return self.COMMITTED
        return self.IDLE

    @property
    def committed_range(self) -> Optional[Tuple[int, int]]:
        return self._committed

    @property
    def drag_range(self) -> Optional[Tuple[int, int]]:
        if not self._dragging:
            return None
        return (min(self._drag_start, self._drag_end), max(self._drag_start, self._drag_end))

    @property
    def selection(self) -> Optional[Tuple[int, int]]:
        """Range to highlight: the drag in progress, else the committed range."""
        return self.drag_range or self._committed

    def set_geometry(self, left: float, width: float):
        self.geometry = RulerGeometry(left=left, width=width)

    def set_session_duration(self, duration_ms: int):
        self.duration_ms = max(0, int(duration_ms))

    def pointer_down(self, x: float, button: int = LEFT_BUTTON):
        """Start a drag at x. Only the primary button starts a selection."""
        if button != LEFT_BUTTON:
            return
        time = pixel_to_time(x, self.geometry, self.duration_ms)
        self._dragging = True
        self._drag_start = time
        self._drag_end = time
        self.drag_changed.emit(self.drag_range)

    def pointer_move(self, x: float):
        if not self._dragging:
            return
        self._drag_end = pixel_to_time(x, self.geometry, self.duration_ms)
        self.drag_changed.emit(self.drag_range)

    def pointer_up(self, x: Optional[float] = None) -> Optional[Tuple[int, int]]:
        """
        Finish the drag.

        Args:
            x: Pointer x coordinate at release (None keeps the last move)

        Returns:
            Optional[Tuple[int, int]]: The committed range, or None for a click
        """
        if not self._dragging:
            return None
        if x is not None:
            self._drag_end = pixel_to_time(x, self.geometry, self.duration_ms)

        start, end = self.drag_range
        self._dragging = False
        self._drag_start = None
        self._drag_end = None
        self.drag_changed.emit(None)

        if end - start < self.min_range_ms:
            logger.debug(f"Ruler click at {start}ms")
            self.clear_range()
            self.seek_requested.emit(start)
            return None

        self._committed = (start, end)
        logger.debug(f"Committed time range [{start}, {end})")
        self.range_committed.emit(start, end)
        return self._committed

    def clear_range(self):
        """Drop the committed range, if any, and return to Idle."""
        if self._committed is None:
            return
        self._committed = None
        self.range_cleared.emit()

    def sync_range(self, time_range: Optional[Tuple[int, int]]):
        """Adopt a range set elsewhere (e.g. filters cleared) without emitting."""
        if time_range is not None and (time_range[0] is None or time_range[1] is None):
            time_range = None
        self._committed = time_range
