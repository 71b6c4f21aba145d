"""
Filter Engine
=============

Pure projection of a session's ordered events onto the subset matching a
filter snapshot. Dimensions combine with AND; an absent dimension places no
constraint. The projection keeps the relative order of the input, so
applying the same filter to its own output returns the same list.

Author: Session Timeline Team
Version: 1.0
"""

import json
from typing import Any, List, Sequence

from session_timeline.models import Filter, UnifiedEvent


def serialize_payload(data: Any) -> str:
    """
    Serialize an event payload for text search.

    Args:
        data: Opaque event payload

    Returns:
        str: JSON text, or the raw string for string payloads
    """
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    try:
        return json.dumps(data, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(data)


def _matches_text(event: UnifiedEvent, needle: str) -> bool:
    if needle in event.title.lower():
        return True
    return needle in serialize_payload(event.data).lower()


def event_matches(event: UnifiedEvent, event_filter: Filter) -> bool:
    """
    Check whether one event passes every dimension of a filter.

    Args:
        event: Event to test
        event_filter: Filter snapshot

    Returns:
        bool: True if the event is visible under the filter
    """
    if event_filter.sources and event.source not in event_filter.sources:
        return False
    if event_filter.categories and event.category not in event_filter.categories:
        return False
    if event_filter.levels and event.level not in event_filter.levels:
        return False
    if event_filter.start_time is not None and event.relative_time < event_filter.start_time:
        return False
    if event_filter.end_time is not None and event.relative_time >= event_filter.end_time:
        return False
    if event_filter.search_text:
        return _matches_text(event, event_filter.search_text.lower())
    return True


def apply_filter(events: Sequence[UnifiedEvent], event_filter: Filter) -> List[UnifiedEvent]:
    """
    Project events onto the subset matching a filter.

    Args:
        events: Events ordered by relative time
        event_filter: Filter snapshot

    Returns:
        List[UnifiedEvent]: Matching events in their original order
    """
    if event_filter.is_empty:
        return list(events)

    needle = event_filter.search_text.lower()
    text_free = event_filter.replace(search_text="")
    result = []
    for event in events:
        if not event_matches(event, text_free):
            continue
        if needle and not _matches_text(event, needle):
            continue
        result.append(event)
    return result
