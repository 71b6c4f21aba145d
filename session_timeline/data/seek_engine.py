"""
Seek Engine
===========

Nearest-timestamp seeking over the visible projection.

The pure helpers locate the event closest to a target relative time with a
binary search. SeekEngine wraps them with the reload heuristic: when the
in-memory working set does not cover the target well enough, the session is
reloaded first and the seek is retried against the fresh events.

Author: Session Timeline Team
Version: 1.0
"""

import logging
from bisect import bisect_left
from dataclasses import dataclass
from typing import Optional, Sequence

from PyQt5.QtCore import QObject, pyqtSignal

from session_timeline.models import UnifiedEvent

# Configure logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeekResult:
    """Outcome of a seek: projection index and the resolved event."""
    index: int
    event: UnifiedEvent

    @property
    def relative_time(self) -> int:
        return self.event.relative_time


def _relative_time(event: UnifiedEvent) -> int:
    return event.relative_time


def insertion_index(events: Sequence[UnifiedEvent], target_time: int) -> int:
    """
    Find the first index whose relative time is >= target_time.

    Args:
        events: Events ordered by relative time
        target_time: Target relative time in milliseconds

    Returns:
        int: Insertion point in [0, len(events)]
    """
    return bisect_left(events, target_time, key=_relative_time)


def nearest_index(events: Sequence[UnifiedEvent], target_time: int) -> Optional[int]:
    """
    Find the index of the event closest to target_time.

    Ties between the two neighbours resolve toward the later index.

    Args:
        events: Events ordered by relative time
        target_time: Target relative time in milliseconds

    Returns:
        Optional[int]: Index of the nearest event, or None if events is empty
    """
    if not events:
        return None

    left = min(insertion_index(events, target_time), len(events) - 1)
    if left > 0:
        diff_prev = abs(events[left - 1].relative_time - target_time)
        diff_left = abs(events[left].relative_time - target_time)
        if diff_prev < diff_left:
            return left - 1
    return left


def needs_reload(events: Sequence[UnifiedEvent], total_count: int, target_time: int,
                 coverage_ratio: float = 0.9, margin_ms: int = 1000) -> bool:
    """
    Decide whether the loaded events cover target_time adequately.

    Args:
        events: Loaded events ordered by relative time
        total_count: Total events the session holds
        target_time: Target relative time in milliseconds
        coverage_ratio: Minimum loaded fraction of total_count
        margin_ms: Allowed distance outside the loaded bounds

    Returns:
        bool: True if the session should be reloaded before seeking
    """
    if not events:
        return True
    if len(events) < total_count * coverage_ratio:
        return True
    if target_time < events[0].relative_time - margin_ms:
        return True
    if target_time > events[-1].relative_time + margin_ms:
        return True
    return False


class SeekEngine(QObject):
    """
    Moves the current time indicator to the event nearest a target time.

    Signals:
        seeked: Emitted after a seek resolves (projection index, relative time)
    """

    seeked = pyqtSignal(int, int)

    def __init__(self, store, state, renderer=None, coverage_ratio: float = 0.9,
                 margin_ms: int = 1000, parent=None):
        """
        Initialize the seek engine.

        Args:
            store: EventStore holding the working set and projection
            state: TimelineState for the current time indicator
            renderer: Optional VirtualizedRenderer asked to center the result
            coverage_ratio: Reload when fewer than this fraction is loaded
            margin_ms: Reload when the target is this far outside loaded bounds
            parent: Parent QObject
        """
        super().__init__(parent)
        self.store = store
        self.state = state
        self.renderer = renderer
        self.coverage_ratio = coverage_ratio
        self.margin_ms = margin_ms

    def seek(self, target_time) -> Optional[SeekResult]:
        """
        Seek to the event nearest target_time in the visible projection.

        Auto-scroll is disabled and the raw target is shown immediately. If
        the working set needs a reload the result arrives asynchronously
        through the seeked signal and None is returned.

        Args:
            target_time: Target relative time in milliseconds

        Returns:
            Optional[SeekResult]: The resolved event, or None if deferred or empty
        """
        target = int(round(target_time))
        self.state.update(auto_scroll=False, current_time=target)

        session_id = self.store.session_id
        if session_id and needs_reload(self.store.events, self.store.total_event_count, target,
                                       self.coverage_ratio, self.margin_ms):
            logger.debug(f"Seek to {target}ms needs a reload of session {session_id}")
            self.store.load_session(session_id, on_complete=lambda: self._seek_loaded(target))
            return None

        return self._seek_loaded(target)

    def _seek_loaded(self, target: int) -> Optional[SeekResult]:
        events = self.store.visible_events
        index = nearest_index(events, target)
        if index is None:
            logger.debug(f"Seek to {target}ms: projection is empty")
            return None

        event = events[index]
        self.state.update(current_time=event.relative_time)
        if self.renderer is not None:
            self.renderer.scroll_to_index(index, align='center', behavior='smooth')

        self.seeked.emit(index, event.relative_time)
        return SeekResult(index=index, event=event)
