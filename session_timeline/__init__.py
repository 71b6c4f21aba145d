"""
Session Timeline
================

Time-indexed event store and timeline core for mobile-device debugging
sessions: live and historical event ingestion, multi-criteria filtering,
nearest-timestamp seeking, drag-to-select time ranges, bookmark and
critical-event markers and a virtualized event list.
"""

from .models import (
    UnifiedEvent,
    DeviceSession,
    SessionConfig,
    SessionStatus,
    EventLevel,
    TimeIndexEntry,
    Bookmark,
    SessionStats,
    Filter,
    is_critical_event
)
from .config import TimelineConfig
from .state import TimelineState, TimelineSnapshot, Derived
from .session_manager import SessionLifecycleManager
from .controller import TimelineController

__version__ = '1.0.0'

__all__ = [
    'UnifiedEvent',
    'DeviceSession',
    'SessionConfig',
    'SessionStatus',
    'EventLevel',
    'TimeIndexEntry',
    'Bookmark',
    'SessionStats',
    'Filter',
    'is_critical_event',
    'TimelineConfig',
    'TimelineState',
    'TimelineSnapshot',
    'Derived',
    'SessionLifecycleManager',
    'TimelineController'
]
