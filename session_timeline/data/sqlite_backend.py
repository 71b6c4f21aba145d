"""
SQLite Session Backend
======================

This module provides SqliteSessionBackend, a SessionBackend that stores
sessions, events and bookmarks in a single SQLite file and publishes newly
recorded events and session lifecycle changes through its LiveEventHub.

A new connection is opened for every call so the backend can be used from
the task runner's worker threads. Writes are serialized with a lock.

Author: Session Timeline Team
Version: 1.0
"""

import json
import logging
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from session_timeline.data.backend import LiveEventHub, SessionBackend
from session_timeline.models import (CRITICAL_LEVELS, Bookmark, DeviceSession, SessionStats,
                                     SessionStatus, UnifiedEvent)
from session_timeline.utils.error_handler import BackendError, SessionStateError

# Configure logger
logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    device_id TEXT NOT NULL,
    type TEXT NOT NULL,
    name TEXT NOT NULL,
    start_time INTEGER NOT NULL,
    end_time INTEGER DEFAULT 0,
    status TEXT DEFAULT 'active',
    event_count INTEGER DEFAULT 0,
    config TEXT,
    metadata TEXT DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_sessions_device ON sessions(device_id);
CREATE INDEX IF NOT EXISTS idx_sessions_time ON sessions(start_time DESC);

CREATE TABLE IF NOT EXISTS events (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    session_id TEXT NOT NULL,
    device_id TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    relative_time INTEGER NOT NULL,
    duration INTEGER,
    source TEXT NOT NULL,
    category TEXT NOT NULL,
    type TEXT NOT NULL,
    level TEXT NOT NULL,
    title TEXT NOT NULL,
    summary TEXT,
    data TEXT,
    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_events_session_time ON events(session_id, relative_time);

CREATE TABLE IF NOT EXISTS bookmarks (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    relative_time INTEGER NOT NULL,
    label TEXT NOT NULL,
    color TEXT,
    type TEXT DEFAULT 'user',
    created_at INTEGER NOT NULL,
    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_bookmarks_session ON bookmarks(session_id, relative_time);
"""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


def _load_json(text: Optional[str]) -> Any:
    if text is None:
        return None
    try:
        return json.loads(text)
    except ValueError:
        # Payloads written by other tools may be plain text
        return text


class SqliteSessionBackend(SessionBackend):
    """
    SessionBackend persisting to a SQLite database file.
    """

    def __init__(self, db_path: str, hub: Optional[LiveEventHub] = None,
                 clock: Optional[Callable[[], int]] = None):
        """
        Initialize the backend and create the schema if needed.

        Args:
            db_path: Path to the SQLite database file
            hub: Live push channel (a new one is created if omitted)
            clock: Returns the current Unix time in ms
        """
        super().__init__(hub)
        self.db_path = db_path
        self.clock = clock or _now_ms
        self._write_lock = threading.Lock()

        with self._connect() as conn:
            conn.executescript(SCHEMA)
        logger.info(f"Session database ready at {db_path}")

    @contextmanager
    def _connect(self):
        """Open a connection, commit on success and always close it."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # Row conversion

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> DeviceSession:
        return DeviceSession(
            id=row['id'],
            device_id=row['device_id'],
            name=row['name'],
            start_time=row['start_time'],
            end_time=row['end_time'] or None,
            status=row['status'],
            type=row['type'],
            event_count=row['event_count'],
            config=_load_json(row['config']),
            metadata=_load_json(row['metadata']) or {},
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row, include_data: bool = True) -> UnifiedEvent:
        return UnifiedEvent(
            id=row['id'],
            session_id=row['session_id'],
            device_id=row['device_id'],
            timestamp=row['timestamp'],
            relative_time=row['relative_time'],
            source=row['source'],
            category=row['category'],
            level=row['level'],
            type=row['type'],
            title=row['title'],
            summary=row['summary'],
            duration=row['duration'],
            data=_load_json(row['data']) if include_data else None,
        )

    @staticmethod
    def _row_to_bookmark(row: sqlite3.Row) -> Bookmark:
        return Bookmark(
            id=row['id'],
            session_id=row['session_id'],
            relative_time=row['relative_time'],
            label=row['label'],
            color=row['color'],
            type=row['type'],
            created_at=row['created_at'],
        )

    def _fetch_session(self, conn, session_id: str) -> DeviceSession:
        row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        if row is None:
            raise BackendError(f"Session not found: {session_id}", operation="GetStoredSession")
        return self._row_to_session(row)

    # Sessions

    def list_stored_sessions(self, device_id: Optional[str], limit: int = 50) -> List[DeviceSession]:
        query = "SELECT * FROM sessions"
        params: list = []
        if device_id:
            query += " WHERE device_id = ?"
            params.append(device_id)
        query += " ORDER BY start_time DESC LIMIT ?"
        params.append(limit)

        try:
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise BackendError("Failed to list sessions", operation="ListStoredSessions",
                               original_error=e) from e
        return [self._row_to_session(row) for row in rows]

    def delete_stored_session(self, session_id: str):
        """Delete a session; its events and bookmarks go with it (ON DELETE CASCADE)."""
        try:
            with self._write_lock, self._connect() as conn:
                deleted = conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,)).rowcount
        except sqlite3.Error as e:
            raise BackendError(f"Failed to delete session {session_id}", operation="DeleteStoredSession",
                               original_error=e) from e
        if deleted == 0:
            logger.warning(f"Session {session_id} was not stored; nothing deleted")
        else:
            logger.info(f"Deleted session {session_id}")

    def get_session_stats(self, session_id: str) -> SessionStats:
        stats = SessionStats(session_id=session_id)
        error_levels = sorted(CRITICAL_LEVELS)
        try:
            with self._connect() as conn:
                for row in conn.execute(
                    "SELECT source, COUNT(*) AS count FROM events WHERE session_id = ? GROUP BY source",
                    (session_id,)
                ):
                    stats.by_source[row['source']] = row['count']
                for row in conn.execute(
                    "SELECT level, COUNT(*) AS count FROM events WHERE session_id = ? GROUP BY level",
                    (session_id,)
                ):
                    stats.by_level[row['level']] = row['count']
                stats.error_count = conn.execute(
                    f"SELECT COUNT(*) FROM events WHERE session_id = ? "
                    f"AND level IN ({', '.join('?' for _ in error_levels)})",
                    (session_id, *error_levels)
                ).fetchone()[0]
        except sqlite3.Error as e:
            raise BackendError(f"Failed to read statistics of session {session_id}",
                               operation="GetSessionStats", original_error=e) from e

        stats.total_events = sum(stats.by_source.values())
        return stats

    def get_stored_session(self, session_id: str) -> DeviceSession:
        try:
            with self._connect() as conn:
                return self._fetch_session(conn, session_id)
        except sqlite3.Error as e:
            raise BackendError(f"Failed to read session {session_id}", operation="GetStoredSession",
                               original_error=e) from e

    def load_session_events(self, session_id: str) -> List[UnifiedEvent]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM events WHERE session_id = ? ORDER BY relative_time, seq",
                    (session_id,)
                ).fetchall()
        except sqlite3.Error as e:
            raise BackendError(f"Failed to load events of session {session_id}",
                               operation="LoadSessionEvents", original_error=e) from e

        logger.debug(f"Loaded {len(rows)} events for session {session_id}")
        return [self._row_to_event(row) for row in rows]

    def get_stored_event(self, event_id: str) -> UnifiedEvent:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
        except sqlite3.Error as e:
            raise BackendError(f"Failed to read event {event_id}", operation="GetStoredEvent",
                               original_error=e) from e
        if row is None:
            raise BackendError(f"Event not found: {event_id}", operation="GetStoredEvent")
        return self._row_to_event(row)

    def start_session_with_config(self, device_id: str, name: str,
                                  config: Optional[Dict[str, Any]] = None,
                                  session_type: str = "manual") -> str:
        session = DeviceSession(
            id=str(uuid.uuid4()),
            device_id=device_id,
            name=name or f"Session {time.strftime('%H:%M:%S')}",
            start_time=self.clock(),
            status=SessionStatus.ACTIVE,
            type=session_type,
            config=config,
        )

        try:
            with self._write_lock, self._connect() as conn:
                conn.execute(
                    """INSERT INTO sessions (id, device_id, type, name, start_time, status, config, metadata)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (session.id, session.device_id, session.type, session.name,
                     session.start_time, session.status, _dump_json(config), '{}')
                )
        except sqlite3.Error as e:
            raise BackendError("Failed to start session", operation="StartSessionWithConfig",
                               original_error=e) from e

        self.hub.publish_session_started(session)
        self.record_event(session.id, {
            'timestamp': session.start_time,
            'source': 'system',
            'category': 'state',
            'level': 'info',
            'type': 'session_start',
            'title': f"Session started: {session.name}",
        })
        return session.id

    def stop_session(self, session_id: str, reason: str = "completed") -> DeviceSession:
        status = SessionStatus.ERROR if reason == SessionStatus.ERROR else SessionStatus.COMPLETED
        end_time = self.clock()

        try:
            with self._write_lock, self._connect() as conn:
                session = self._fetch_session(conn, session_id)
                if not session.is_active:
                    raise SessionStateError(f"Session {session_id} is already {session.status}")

                session.metadata['endReason'] = reason
                conn.execute(
                    "UPDATE sessions SET status = ?, end_time = ?, metadata = ? WHERE id = ?",
                    (status, end_time, _dump_json(session.metadata), session_id)
                )
        except sqlite3.Error as e:
            raise BackendError(f"Failed to stop session {session_id}", operation="StopSession",
                               original_error=e) from e

        self._insert_events(session, [{
            'timestamp': end_time,
            'source': 'system',
            'category': 'state',
            'level': 'info',
            'type': 'session_end',
            'title': f"Session ended: {session.name}",
            'duration': end_time - session.start_time,
        }])
        final = self.get_stored_session(session_id)
        self.hub.publish_session_ended(final)
        return final

    # Events

    def record_event(self, session_id: str, event: Union[UnifiedEvent, Dict[str, Any]]) -> UnifiedEvent:
        """
        Persist one event for an active session and publish it live.

        Args:
            session_id: Owning session
            event: UnifiedEvent or camelCase dictionary (id and relativeTime optional)

        Returns:
            UnifiedEvent: The stored event
        """
        return self.record_events(session_id, [event])[0]

    def record_events(self, session_id: str,
                      events: Iterable[Union[UnifiedEvent, Dict[str, Any]]]) -> List[UnifiedEvent]:
        """Persist a batch of events for an active session and publish them in order."""
        session = self.get_stored_session(session_id)
        if not session.is_active:
            raise SessionStateError(f"Cannot record events for {session.status} session {session_id}")

        stored = self._insert_events(session, events)
        for event in stored:
            self.hub.publish_event(event)
        return stored

    def _insert_events(self, session: DeviceSession,
                       events: Iterable[Union[UnifiedEvent, Dict[str, Any]]]) -> List[UnifiedEvent]:
        stored = []
        for item in events:
            raw = item.to_dict() if isinstance(item, UnifiedEvent) else dict(item)
            raw.setdefault('id', str(uuid.uuid4()))
            raw['sessionId'] = session.id
            raw['deviceId'] = raw.get('deviceId') or session.device_id
            if not raw.get('timestamp'):
                raw['timestamp'] = self.clock()
            stored.append(UnifiedEvent.from_dict(raw, session_start=session.start_time))

        if not stored:
            return stored

        try:
            with self._write_lock, self._connect() as conn:
                conn.executemany(
                    """INSERT INTO events (id, session_id, device_id, timestamp, relative_time, duration,
                                           source, category, type, level, title, summary, data)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    [(e.id, e.session_id, e.device_id, e.timestamp, e.relative_time, e.duration,
                      e.source, e.category, e.type, e.level, e.title, e.summary, _dump_json(e.data))
                     for e in stored]
                )
                conn.execute(
                    "UPDATE sessions SET event_count = event_count + ? WHERE id = ?",
                    (len(stored), session.id)
                )
        except sqlite3.Error as e:
            raise BackendError(f"Failed to record events for session {session.id}",
                               operation="RecordEvents", original_error=e) from e
        return stored

    # Bookmarks

    def get_bookmarks(self, session_id: str) -> List[Bookmark]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM bookmarks WHERE session_id = ? ORDER BY relative_time",
                    (session_id,)
                ).fetchall()
        except sqlite3.Error as e:
            raise BackendError(f"Failed to read bookmarks of session {session_id}",
                               operation="GetBookmarks", original_error=e) from e
        return [self._row_to_bookmark(row) for row in rows]

    def create_bookmark(self, session_id: str, relative_time: int, label: str,
                        color: Optional[str] = None, bookmark_type: str = "user") -> Bookmark:
        bookmark = Bookmark(
            id=f"bm_{uuid.uuid4().hex}",
            session_id=session_id,
            relative_time=max(0, int(relative_time)),
            label=label,
            color=color,
            type=bookmark_type,
            created_at=self.clock(),
        )
        try:
            with self._write_lock, self._connect() as conn:
                conn.execute(
                    """INSERT INTO bookmarks (id, session_id, relative_time, label, color, type, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (bookmark.id, bookmark.session_id, bookmark.relative_time, bookmark.label,
                     bookmark.color, bookmark.type, bookmark.created_at)
                )
        except sqlite3.Error as e:
            raise BackendError("Failed to create bookmark", operation="CreateBookmark",
                               original_error=e) from e
        return bookmark

    def delete_bookmark(self, bookmark_id: str):
        try:
            with self._write_lock, self._connect() as conn:
                conn.execute("DELETE FROM bookmarks WHERE id = ?", (bookmark_id,))
        except sqlite3.Error as e:
            raise BackendError(f"Failed to delete bookmark {bookmark_id}", operation="DeleteBookmark",
                               original_error=e) from e
