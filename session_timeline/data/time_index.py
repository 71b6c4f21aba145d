"""
Time Index - Per-second density buckets for a session.

This module provides the TimeIndex class which groups a session's events into
fixed 1-second buckets of relative time. Each bucket tracks its event count,
the earliest event it contains and whether any contained event is critical.
The ruler uses these buckets to draw density bars and error flags for the
whole, unfiltered session.

The index supports a full O(n) rebuild after a bulk load and an O(1) update
for every live event appended afterwards.

Author: Session Timeline Team
Version: 1.0
"""

import logging
import math
from typing import Dict, Iterable, List, Optional

from session_timeline.models import TimeIndexEntry, UnifiedEvent, is_critical_event

# Configure logger
logger = logging.getLogger(__name__)

# Bucket width in milliseconds
BUCKET_MS = 1000


def bucket_for(relative_time: int) -> int:
    """Return the bucket index for a relative time in milliseconds."""
    return int(relative_time // BUCKET_MS)


class _Bucket:
    """Mutable counters for one bucket."""

    __slots__ = ('event_count', 'first_event_id', 'first_time', 'has_error')

    def __init__(self):
        self.event_count = 0
        self.first_event_id = ""
        self.first_time = None
        self.has_error = False

    def add(self, event: UnifiedEvent):
        self.event_count += 1
        if self.first_time is None or event.relative_time < self.first_time:
            self.first_time = event.relative_time
            self.first_event_id = event.id
        if not self.has_error and is_critical_event(event):
            self.has_error = True


class TimeIndex:
    """
    Per-second aggregate index over a session's events.

    Buckets are created on demand. The covered range is the larger of the
    session duration and the highest populated bucket, so live events beyond
    the previously known duration extend it.
    """

    def __init__(self):
        """Initialize an empty index."""
        self._buckets: Dict[int, _Bucket] = {}
        self._duration_ms = 0
        self._total_count = 0
        self._max_count = 0
        self._last_bucket = -1
        self.version = 0

    def rebuild(self, events: Iterable[UnifiedEvent], duration_ms: int = 0):
        """
        Rebuild the index from scratch in a single pass.

        Args:
            events: All events of the session
            duration_ms: Known session duration in milliseconds
        """
        self._buckets = {}
        self._total_count = 0
        self._max_count = 0
        self._last_bucket = -1
        self._duration_ms = max(0, int(duration_ms))

        for event in events:
            self._add(event)

        self.version += 1
        logger.debug(f"Rebuilt time index: {self._total_count} events in {len(self._buckets)} buckets")

    def add(self, event: UnifiedEvent) -> int:
        """
        Add a single event incrementally.

        Args:
            event: The appended event

        Returns:
            int: Bucket index the event was counted in
        """
        bucket = self._add(event)
        self.version += 1
        return bucket

    def _add(self, event: UnifiedEvent) -> int:
        index = bucket_for(event.relative_time)
        bucket = self._buckets.get(index)
        if bucket is None:
            bucket = _Bucket()
            self._buckets[index] = bucket
            if index > self._last_bucket:
                self._last_bucket = index

        bucket.add(event)
        self._total_count += 1
        if bucket.event_count > self._max_count:
            self._max_count = bucket.event_count
        return index

    def clear(self):
        """Drop every bucket."""
        self.rebuild([], 0)

    def set_duration(self, duration_ms: int):
        """Extend the covered range to at least the given duration."""
        if duration_ms > self._duration_ms:
            self._duration_ms = int(duration_ms)
            self.version += 1

    @property
    def duration_ms(self) -> int:
        return self._duration_ms

    @property
    def bucket_count(self) -> int:
        """Number of buckets covering [0, duration) and every populated bucket."""
        return max(math.ceil(self._duration_ms / BUCKET_MS), self._last_bucket + 1)

    @property
    def total_count(self) -> int:
        return self._total_count

    @property
    def max_count(self) -> int:
        return self._max_count

    def __len__(self):
        return len(self._buckets)

    def get(self, second: int) -> Optional[TimeIndexEntry]:
        """
        Get a snapshot of one bucket.

        Args:
            second: Bucket index

        Returns:
            Optional[TimeIndexEntry]: Snapshot, or None if the bucket is empty
        """
        bucket = self._buckets.get(second)
        if bucket is None:
            return None
        return TimeIndexEntry(
            second=second,
            event_count=bucket.event_count,
            first_event_id=bucket.first_event_id,
            has_error=bucket.has_error,
        )

    def entries(self) -> List[TimeIndexEntry]:
        """Return snapshots of all populated buckets in bucket order."""
        return [self.get(second) for second in sorted(self._buckets)]

    def normalized_density(self, second: int) -> float:
        """
        Bucket count relative to the busiest bucket.

        Returns:
            float: Value in [0.0, 1.0]
        """
        bucket = self._buckets.get(second)
        if bucket is None or self._max_count == 0:
            return 0.0
        return bucket.event_count / self._max_count
