"""
Timer-driven coalescing primitives.

Debouncer collapses bursts of input (keystrokes in the search box) into one
call after a quiet period. CoalescingScheduler keeps at most one pending
output update: a task scheduled while another is pending replaces it, and
the survivor runs on the next frame tick.

Both are driven by single-shot QTimers on the GUI thread and expose flush()
so the pending work can be run immediately.
"""

import logging
from typing import Any, Callable, Optional

from PyQt5.QtCore import QObject, QTimer, pyqtSignal

logger = logging.getLogger(__name__)

_NOTHING = object()


class Debouncer(QObject):
    """
    Delays a callback until input has been quiet for interval_ms.

    Signals:
        fired: Emitted with the last triggered value when the callback runs
    """

    fired = pyqtSignal(object)

    def __init__(self, interval_ms: int = 300, callback: Optional[Callable[[Any], None]] = None,
                 parent=None):
        super().__init__(parent)
        self._value = _NOTHING
        self._callback = callback

        self.debounce_timer = QTimer(self)
        self.debounce_timer.setSingleShot(True)
        self.debounce_timer.setInterval(interval_ms)
        self.debounce_timer.timeout.connect(self.flush)

    @property
    def interval_ms(self) -> int:
        return self.debounce_timer.interval()

    @property
    def pending(self) -> bool:
        return self._value is not _NOTHING

    def trigger(self, value: Any = None):
        """Record a new value and restart the quiet period."""
        self._value = value
        self.debounce_timer.start()

    def cancel(self):
        """Drop the pending value without running the callback."""
        self.debounce_timer.stop()
        self._value = _NOTHING

    def flush(self):
        """Run the callback now with the pending value, if any."""
        self.debounce_timer.stop()
        if self._value is _NOTHING:
            return
        value, self._value = self._value, _NOTHING
        if self._callback is not None:
            self._callback(value)
        self.fired.emit(value)


class CoalescingScheduler(QObject):
    """
    Single-slot pending task queue drained on a frame timer.

    At most one task is pending at any time. Scheduling while a task is
    pending overwrites it; only the latest task runs when the slot drains.
    """

    def __init__(self, frame_interval_ms: int = 16, parent=None):
        super().__init__(parent)
        self._pending: Optional[Callable[[], None]] = None
        self.scheduled_count = 0
        self.run_count = 0

        self.frame_timer = QTimer(self)
        self.frame_timer.setSingleShot(True)
        self.frame_timer.setInterval(frame_interval_ms)
        self.frame_timer.timeout.connect(self.drain)

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def schedule(self, task: Callable[[], None]):
        """Put task in the slot, replacing any pending one."""
        self.scheduled_count += 1
        self._pending = task
        if not self.frame_timer.isActive():
            self.frame_timer.start()

    def cancel(self):
        self.frame_timer.stop()
        self._pending = None

    def drain(self) -> bool:
        """
        Run the pending task, if any.

        Returns:
            bool: True if a task ran
        """
        self.frame_timer.stop()
        task, self._pending = self._pending, None
        if task is None:
            return False
        self.run_count += 1
        task()
        return True
