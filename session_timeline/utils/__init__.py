"""
Utility helpers for the session timeline: error handling, timers,
background task runners and display formatting.
"""

from .error_handler import (
    ErrorHandler,
    ErrorSeverity,
    TimelineError,
    BackendError,
    SessionLoadError,
    DetailFetchError,
    SessionStateError,
    setup_logging
)
from .scheduler import Debouncer, CoalescingScheduler
from .task_runner import TaskRunner, ImmediateTaskRunner, ThreadedTaskRunner
from .payload import PayloadView, format_payload
from .formatting import format_relative_time, format_duration

__all__ = [
    'ErrorHandler',
    'ErrorSeverity',
    'TimelineError',
    'BackendError',
    'SessionLoadError',
    'DetailFetchError',
    'SessionStateError',
    'setup_logging',
    'Debouncer',
    'CoalescingScheduler',
    'TaskRunner',
    'ImmediateTaskRunner',
    'ThreadedTaskRunner',
    'PayloadView',
    'format_payload',
    'format_relative_time',
    'format_duration'
]
