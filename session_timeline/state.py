"""
Timeline State
==============

This module provides the application-state container for the session
timeline: a single mutable source of truth for the UI-level state (active
session, selection, current time indicator, filter, auto-scroll) with a
subscribe/notify mechanism, plus a small memoization helper for derived
values.

The container is constructed once by the controller, passed by reference to
the components that need it and reset whenever the displayed session
changes.

Author: Session Timeline Team
Version: 1.0
"""

import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Optional, Tuple

from PyQt5.QtCore import QObject, pyqtSignal

from session_timeline.models import DeviceSession, Filter, UnifiedEvent

# Configure logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimelineSnapshot:
    """
    Immutable view of the timeline state.

    Attributes:
        active_session_id: Session currently displayed
        active_device_id: Device whose sessions are listed
        session_list: Sessions known for the active device
        selected_event_id: Event highlighted in the list
        selected_event_full: Full payload of the selected event for the detail view
        detail_open: Whether the detail view is open
        current_time: Current time indicator (relative ms)
        filter: Active filter snapshot, including a committed time range
        pending_search_text: Search text typed but not yet applied
        auto_scroll: Live mode, keeps the newest row in view
        is_loading: A bulk session load is in flight
    """
    active_session_id: Optional[str] = None
    active_device_id: Optional[str] = None
    session_list: Tuple[DeviceSession, ...] = ()
    selected_event_id: Optional[str] = None
    selected_event_full: Optional[UnifiedEvent] = None
    detail_open: bool = False
    current_time: int = 0
    filter: Filter = Filter()
    pending_search_text: str = ""
    auto_scroll: bool = True
    is_loading: bool = False


# Keys that survive a session switch
_SESSION_INDEPENDENT = ('active_device_id', 'session_list')


class TimelineState(QObject):
    """
    Observable container for the timeline UI state.

    Signals:
        changed: Emitted once per update with the frozenset of changed keys
    """

    changed = pyqtSignal(object)

    def __init__(self, parent=None):
        super().__init__(parent)
        self._snapshot = TimelineSnapshot()

    def get_state(self) -> TimelineSnapshot:
        """Return the current immutable snapshot."""
        return self._snapshot

    def __getattr__(self, name):
        # Read-through to the snapshot for convenience (state.current_time)
        if name.startswith('_'):
            raise AttributeError(name)
        try:
            return getattr(self._snapshot, name)
        except AttributeError:
            raise AttributeError(f"TimelineState has no attribute '{name}'") from None

    def update(self, **changes) -> frozenset:
        """
        Apply changes and notify subscribers once.

        Args:
            **changes: Snapshot fields to change

        Returns:
            frozenset: Keys whose values actually changed
        """
        current = self._snapshot
        changed_keys = frozenset(
            key for key, value in changes.items() if getattr(current, key) != value
        )
        if not changed_keys:
            return changed_keys

        self._snapshot = replace(current, **{key: changes[key] for key in changed_keys})
        self.changed.emit(changed_keys)
        return changed_keys

    def subscribe(self, listener: Callable[[frozenset], None]) -> Callable[[], None]:
        """
        Register a listener for state changes.

        Args:
            listener: Callable receiving the frozenset of changed keys

        Returns:
            Callable: Function that removes the listener
        """
        self.changed.connect(listener)

        def unsubscribe():
            try:
                self.changed.disconnect(listener)
            except TypeError:
                logger.debug("Listener was already disconnected")

        return unsubscribe

    def reset_session(self, session_id: Optional[str] = None):
        """
        Reset per-session state when the displayed session changes.

        Args:
            session_id: The new active session, if any
        """
        defaults = TimelineSnapshot()
        changes = {
            f.name: getattr(defaults, f.name)
            for f in fields(TimelineSnapshot)
            if f.name not in _SESSION_INDEPENDENT
        }
        changes['active_session_id'] = session_id
        self.update(**changes)


class Derived:
    """
    A value computed from declared dependencies and cached until they change.

    The dependency function returns a tuple of cheap keys (versions, ids,
    filter snapshots). The value is recomputed only when that tuple differs
    from the one seen at the last computation.
    """

    _UNSET = object()

    def __init__(self, compute: Callable[[], Any], dependencies: Callable[[], tuple]):
        self._compute = compute
        self._dependencies = dependencies
        self._key = self._UNSET
        self._value = None
        self.compute_count = 0

    def get(self) -> Any:
        key = self._dependencies()
        if self._key is self._UNSET or key != self._key:
            self._value = self._compute()
            self._key = key
            self.compute_count += 1
        return self._value
