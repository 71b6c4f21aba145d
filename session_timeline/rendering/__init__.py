"""
Rendering support for the session timeline: ruler geometry, drag-to-select,
bookmark and critical-event markers and the virtualized event list.
"""

from .ruler import RulerGeometry, DensityBar, pixel_to_time, time_to_ratio, density_bars
from .range_selection import RangeSelectionController
from .overlay import TimelineOverlay, Marker
from .virtual_list import VirtualizedRenderer

__all__ = [
    'RulerGeometry',
    'DensityBar',
    'pixel_to_time',
    'time_to_ratio',
    'density_bars',
    'RangeSelectionController',
    'TimelineOverlay',
    'Marker',
    'VirtualizedRenderer'
]
