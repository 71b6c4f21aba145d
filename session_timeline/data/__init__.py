"""
Data layer of the session timeline: backend interface, storage, the
in-memory event store and the pure time index, filter and seek engines.
"""

from .time_index import TimeIndex, BUCKET_MS, bucket_for
from .filter_engine import apply_filter, event_matches, serialize_payload
from .seek_engine import SeekEngine, SeekResult, insertion_index, nearest_index, needs_reload
from .backend import SessionBackend, LiveEventHub, Subscription, SESSION_STARTED, SESSION_ENDED
from .sqlite_backend import SqliteSessionBackend
from .event_store import EventStore
from .event_details import EventDetailLoader

__all__ = [
    'TimeIndex',
    'BUCKET_MS',
    'bucket_for',
    'apply_filter',
    'event_matches',
    'serialize_payload',
    'SeekEngine',
    'SeekResult',
    'insertion_index',
    'nearest_index',
    'needs_reload',
    'SessionBackend',
    'LiveEventHub',
    'Subscription',
    'SESSION_STARTED',
    'SESSION_ENDED',
    'SqliteSessionBackend',
    'EventStore',
    'EventDetailLoader'
]
