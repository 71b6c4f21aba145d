"""
Timeline Data Model
===================

This module defines the data types shared by every part of the session
timeline: events, device sessions, bookmarks, time index entries and the
immutable filter snapshot.

Events arrive from the backend as camelCase dictionaries. ``from_dict`` and
``to_dict`` convert between that wire shape and the dataclasses used in
memory.

Author: Session Timeline Team
Version: 1.0
"""

import logging
from dataclasses import dataclass, field, asdict, replace
from typing import Any, Dict, FrozenSet, Iterable, Optional

# Configure logger
logger = logging.getLogger(__name__)


class EventLevel:
    """Event severity levels, lowest first."""
    VERBOSE = "verbose"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"

    ALL = (VERBOSE, DEBUG, INFO, WARN, ERROR, FATAL)


class SessionStatus:
    """Device session states."""
    ACTIVE = "active"
    COMPLETED = "completed"
    ERROR = "error"

    FINAL = (COMPLETED, ERROR)


# Types and levels that mark an event as critical (crash, ANR or error severity)
CRITICAL_TYPES = frozenset({'crash', 'anr', 'app_crash', 'app_anr'})
CRITICAL_LEVELS = frozenset({EventLevel.ERROR, EventLevel.FATAL})


@dataclass(frozen=True)
class UnifiedEvent:
    """
    A single timeline event.

    Attributes:
        id: Unique event identifier
        session_id: Owning session
        device_id: Device the event was captured on
        timestamp: Absolute Unix time in milliseconds
        relative_time: Milliseconds since the session started (>= 0)
        source: Capture source (logcat, network, device, app, ...)
        category: Broad category (log, network, state, ...)
        level: One of EventLevel.ALL
        type: Concrete event type (e.g. 'http_request', 'app_crash')
        title: One-line description
        summary: Optional secondary line
        duration: Optional duration in milliseconds
        data: Opaque structured payload
    """
    id: str
    timestamp: int
    relative_time: int
    source: str
    category: str
    level: str
    type: str
    title: str
    session_id: str = ""
    device_id: str = ""
    summary: Optional[str] = None
    duration: Optional[int] = None
    data: Any = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], session_start: Optional[int] = None) -> 'UnifiedEvent':
        """
        Build an event from a backend dictionary.

        Args:
            raw: camelCase event dictionary
            session_start: Session start time, used when relativeTime is missing

        Returns:
            UnifiedEvent: The parsed event
        """
        timestamp = int(raw.get('timestamp') or 0)
        relative_time = raw.get('relativeTime')
        if relative_time is None:
            relative_time = timestamp - session_start if session_start is not None else 0

        return cls(
            id=str(raw['id']),
            session_id=raw.get('sessionId', ''),
            device_id=raw.get('deviceId', ''),
            timestamp=timestamp,
            relative_time=max(0, int(relative_time)),
            source=raw.get('source', ''),
            category=raw.get('category', ''),
            level=raw.get('level', EventLevel.INFO),
            type=raw.get('type', ''),
            title=raw.get('title', ''),
            summary=raw.get('summary'),
            duration=raw.get('duration'),
            data=raw.get('data'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the backend's camelCase dictionary shape."""
        return {
            'id': self.id,
            'sessionId': self.session_id,
            'deviceId': self.device_id,
            'timestamp': self.timestamp,
            'relativeTime': self.relative_time,
            'source': self.source,
            'category': self.category,
            'level': self.level,
            'type': self.type,
            'title': self.title,
            'summary': self.summary,
            'duration': self.duration,
            'data': self.data,
        }


def is_critical_event(event: UnifiedEvent) -> bool:
    """Return True for crashes, ANRs and error/fatal events."""
    return event.level in CRITICAL_LEVELS or event.type in CRITICAL_TYPES


@dataclass
class SessionConfig:
    """
    Capture configuration forwarded to the backend when a session starts.

    The timeline core does not interpret these values.
    """
    logcat: Dict[str, Any] = field(default_factory=lambda: {'enabled': True, 'packageName': ''})
    recording: Dict[str, Any] = field(default_factory=lambda: {'enabled': True, 'quality': 'medium'})
    proxy: Dict[str, Any] = field(default_factory=lambda: {'enabled': True, 'port': 8080, 'mitmEnabled': True})
    monitor: Dict[str, Any] = field(default_factory=lambda: {'enabled': True})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DeviceSession:
    """
    A capture session on one device.

    Attributes:
        id: Session identifier
        device_id: Device the session belongs to
        name: Display name
        start_time: Unix ms when capture started
        end_time: Unix ms when capture ended, None while active
        status: One of SessionStatus values
        type: Session kind (manual, workflow, recording, ...)
        event_count: Total events the backend holds for this session
        config: Capture configuration, if known
        metadata: Free-form backend metadata
    """
    id: str
    device_id: str
    name: str
    start_time: int
    end_time: Optional[int] = None
    status: str = SessionStatus.ACTIVE
    type: str = "manual"
    event_count: int = 0
    config: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'DeviceSession':
        """Build a session from a backend dictionary."""
        status = raw.get('status', SessionStatus.ACTIVE)
        if status not in (SessionStatus.ACTIVE, SessionStatus.COMPLETED, SessionStatus.ERROR):
            # Older backends report 'failed' / 'cancelled'
            logger.debug(f"Mapping legacy session status '{status}' to 'error'")
            status = SessionStatus.ERROR

        return cls(
            id=str(raw['id']),
            device_id=raw.get('deviceId', ''),
            name=raw.get('name', ''),
            start_time=int(raw.get('startTime') or 0),
            end_time=raw.get('endTime') or None,
            status=status,
            type=raw.get('type', 'manual'),
            event_count=int(raw.get('eventCount') or 0),
            config=raw.get('config'),
            metadata=raw.get('metadata') or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'deviceId': self.device_id,
            'name': self.name,
            'startTime': self.start_time,
            'endTime': self.end_time or 0,
            'status': self.status,
            'type': self.type,
            'eventCount': self.event_count,
            'config': self.config,
            'metadata': self.metadata,
        }


@dataclass(frozen=True)
class TimeIndexEntry:
    """Aggregate for one 1-second bucket of a session."""
    second: int
    event_count: int
    first_event_id: str
    has_error: bool


@dataclass
class Bookmark:
    """A user-placed marker on the session ruler."""
    id: str
    session_id: str
    relative_time: int
    label: str
    color: Optional[str] = None
    type: str = "user"
    created_at: int = 0

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Bookmark':
        return cls(
            id=str(raw['id']),
            session_id=raw.get('sessionId', ''),
            relative_time=int(raw.get('relativeTime') or 0),
            label=raw.get('label', ''),
            color=raw.get('color') or None,
            type=raw.get('type', 'user'),
            created_at=int(raw.get('createdAt') or 0),
        )


@dataclass
class SessionStats:
    """Event counts of one stored session, for the session statistics panel."""
    session_id: str
    total_events: int = 0
    by_source: Dict[str, int] = field(default_factory=dict)
    by_level: Dict[str, int] = field(default_factory=dict)
    error_count: int = 0

    @classmethod
    def from_events(cls, session_id: str, events: Iterable[UnifiedEvent]) -> 'SessionStats':
        stats = cls(session_id=session_id)
        for event in events:
            stats.total_events += 1
            stats.by_source[event.source] = stats.by_source.get(event.source, 0) + 1
            stats.by_level[event.level] = stats.by_level.get(event.level, 0) + 1
            if event.level in CRITICAL_LEVELS:
                stats.error_count += 1
        return stats

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sessionId': self.session_id,
            'totalEvents': self.total_events,
            'bySource': dict(self.by_source),
            'byLevel': dict(self.by_level),
            'errorCount': self.error_count,
        }


def _as_frozenset(values: Optional[Iterable[str]]) -> Optional[FrozenSet[str]]:
    if not values:
        return None
    return frozenset(values)


@dataclass(frozen=True)
class Filter:
    """
    Immutable filter snapshot.

    A dimension set to None (or an empty search string) places no
    constraint on events. Time bounds are relative milliseconds forming the
    half-open range [start_time, end_time).
    """
    sources: Optional[FrozenSet[str]] = None
    categories: Optional[FrozenSet[str]] = None
    levels: Optional[FrozenSet[str]] = None
    search_text: str = ""
    start_time: Optional[int] = None
    end_time: Optional[int] = None

    @classmethod
    def create(cls, sources=None, categories=None, levels=None,
               search_text: str = "", start_time: Optional[int] = None,
               end_time: Optional[int] = None) -> 'Filter':
        """Build a filter, treating empty collections as 'no constraint'."""
        return cls(
            sources=_as_frozenset(sources),
            categories=_as_frozenset(categories),
            levels=_as_frozenset(levels),
            search_text=search_text or "",
            start_time=start_time,
            end_time=end_time,
        )

    def replace(self, **changes) -> 'Filter':
        """Return a copy with the given dimensions changed."""
        for key in ('sources', 'categories', 'levels'):
            if key in changes:
                changes[key] = _as_frozenset(changes[key])
        if 'search_text' in changes:
            changes['search_text'] = changes['search_text'] or ""
        return replace(self, **changes)

    @property
    def is_empty(self) -> bool:
        return self == Filter()

    @property
    def time_range(self) -> Optional[tuple]:
        if self.start_time is None and self.end_time is None:
            return None
        return (self.start_time, self.end_time)
