"""
Ruler Geometry - Maps between ruler pixels and session time.

This module provides the coordinate mapping used by the time ruler:
- Pixel to relative time (clamped to the ruler)
- Relative time to a 0..1 ratio for positioning markers
- Per-second density bars built from the TimeIndex
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from session_timeline.data.time_index import BUCKET_MS

# Shortest visible bar, as a fraction of the full bar height
MIN_BAR_RATIO = 4 / 30


@dataclass(frozen=True)
class RulerGeometry:
    """Horizontal placement of the ruler in pointer coordinates."""
    left: float = 0.0
    width: float = 0.0


@dataclass(frozen=True)
class DensityBar:
    """One per-second density bar of the ruler."""
    second: int
    left_ratio: float
    width_ratio: float
    height_ratio: float
    event_count: int
    has_error: bool
    in_selection: bool


def pixel_to_time(x: float, geometry: RulerGeometry, duration_ms: int) -> int:
    """
    Convert a pointer x coordinate to relative time.

    Args:
        x: Pointer x coordinate
        geometry: Ruler placement
        duration_ms: Session duration in milliseconds

    Returns:
        int: Relative time in [0, duration_ms]
    """
    if geometry.width <= 0 or duration_ms <= 0:
        return 0
    offset = max(0.0, min(x - geometry.left, geometry.width))
    # Halves round up
    return int(math.floor(offset / geometry.width * duration_ms + 0.5))


def time_to_ratio(relative_time: int, duration_ms: int) -> float:
    """Position of a relative time along the ruler, clamped to [0, 1]."""
    if duration_ms <= 0:
        return 0.0
    return max(0.0, min(relative_time / duration_ms, 1.0))


def density_bars(time_index, duration_ms: int,
                 selection: Optional[Tuple[int, int]] = None) -> List[DensityBar]:
    """
    Build the density bars of the whole session.

    Bars reflect the unfiltered session. A bar is marked in_selection when
    its second overlaps the selected [start, end) range.

    Args:
        time_index: TimeIndex of the session
        duration_ms: Session duration in milliseconds
        selection: Optional (start, end) range being dragged or committed

    Returns:
        List[DensityBar]: One bar per second of the session
    """
    total_seconds = max(math.ceil(duration_ms / BUCKET_MS), time_index.bucket_count, 1)
    max_count = max(time_index.max_count, 1)
    has_selection = selection is not None and selection[1] > selection[0]

    bars = []
    for second in range(total_seconds):
        entry = time_index.get(second)
        count = entry.event_count if entry else 0
        height = max(MIN_BAR_RATIO, count / max_count) if count else 0.0

        start = second * BUCKET_MS
        end = start + BUCKET_MS
        in_selection = has_selection and start < selection[1] and end > selection[0]

        bars.append(DensityBar(
            second=second,
            left_ratio=second / total_seconds,
            width_ratio=1 / total_seconds,
            height_ratio=height,
            event_count=count,
            has_error=entry.has_error if entry else False,
            in_selection=in_selection,
        ))
    return bars
