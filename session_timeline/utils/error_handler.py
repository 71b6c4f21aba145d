"""
Error Handler Utility
=====================

This module provides centralized error handling for the session timeline:
the exception hierarchy raised at async boundaries, a handler that logs,
keeps a short history and emits user-visible but non-blocking
notifications, and the logging setup used at startup.

Errors are handled where an asynchronous operation resolves or rejects.
The pure computation layers (filtering, seeking, time index) never see them.

Author: Session Timeline Team
Version: 1.0
"""

import logging
import sys
import traceback
from datetime import datetime
from typing import Optional

from PyQt5.QtCore import QObject, pyqtSignal

# Configure logger
logger = logging.getLogger(__name__)


class ErrorSeverity:
    """Error severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class TimelineError(Exception):
    """Base exception for timeline-related errors."""

    def __init__(self, message: str, details: Optional[str] = None,
                 severity: str = ErrorSeverity.ERROR):
        """
        Initialize timeline error.

        Args:
            message: User-friendly error message
            details: Technical details for logging
            severity: Error severity level
        """
        super().__init__(message)
        self.message = message
        self.details = details or message
        self.severity = severity


class BackendError(TimelineError):
    """Exception for failed calls to the session/event backend."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 original_error: Optional[Exception] = None,
                 severity: str = ErrorSeverity.WARNING):
        """
        Initialize backend error.

        Args:
            message: User-friendly error message
            operation: Backend operation that failed (e.g. "LoadSessionEvents")
            original_error: Original exception that was caught
            severity: Error severity level
        """
        details = f"{message}\n"
        if operation:
            details += f"Operation: {operation}\n"
        if original_error:
            details += f"Original error: {type(original_error).__name__}: {original_error}\n"

        super().__init__(message, details, severity)
        self.operation = operation
        self.original_error = original_error


class SessionLoadError(BackendError):
    """Exception for a failed bulk session load."""

    def __init__(self, session_id: str, original_error: Optional[Exception] = None):
        super().__init__(
            f"Failed to load session {session_id}",
            operation="LoadSessionEvents",
            original_error=original_error,
            severity=ErrorSeverity.ERROR,
        )
        self.session_id = session_id


class DetailFetchError(BackendError):
    """Exception for a failed full-payload fetch of a selected event."""

    def __init__(self, event_id: str, original_error: Optional[Exception] = None):
        super().__init__(
            f"Could not load details for event {event_id}; showing summary",
            operation="GetStoredEvent",
            original_error=original_error,
            severity=ErrorSeverity.WARNING,
        )
        self.event_id = event_id


class SessionStateError(TimelineError):
    """Exception for operations that do not fit the session's status."""
    pass


class ErrorHandler(QObject):
    """
    Centralized error handler for the timeline core.

    Logs errors, keeps the most recent ones and emits a notification signal
    that the UI shows as a non-blocking message.

    Signals:
        error_occurred: Emitted when an error is handled (severity, message, details)
    """

    error_occurred = pyqtSignal(str, str, str)  # severity, message, details

    def __init__(self, max_stored_errors: int = 10, parent=None):
        """
        Initialize error handler.

        Args:
            max_stored_errors: Number of recent errors to keep
            parent: Parent QObject
        """
        super().__init__(parent)
        self._last_errors = []
        self._max_stored_errors = max_stored_errors

    def handle_error(self, error: Exception, context: str = "") -> str:
        """
        Log an error, store it and notify listeners.

        Args:
            error: The exception that occurred
            context: Context description (e.g., "loading session events")

        Returns:
            str: The user-facing message
        """
        if isinstance(error, TimelineError):
            message = error.message
            details = error.details
            severity = error.severity
        else:
            message = f"An unexpected error occurred while {context}" if context else "An unexpected error occurred"
            error_traceback = "".join(traceback.format_exception(type(error), error, error.__traceback__))
            details = f"Context: {context}\n{type(error).__name__}: {error}\n{error_traceback}"
            severity = ErrorSeverity.ERROR

        log_message = f"Error in {context}: {details}" if context else f"Error: {details}"

        if severity == ErrorSeverity.CRITICAL:
            logger.critical(log_message)
        elif severity == ErrorSeverity.ERROR:
            logger.error(log_message)
        elif severity == ErrorSeverity.WARNING:
            logger.warning(log_message)
        else:
            logger.info(log_message)

        self._store_error(severity, message, details)
        self.error_occurred.emit(severity, message, details)
        return message

    def _store_error(self, severity: str, message: str, details: str):
        """
        Store error in history for later retrieval.

        Args:
            severity: Error severity
            message: Error message
            details: Error details
        """
        self._last_errors.append({
            'timestamp': datetime.now(),
            'severity': severity,
            'message': message,
            'details': details
        })

        # Keep only last N errors
        if len(self._last_errors) > self._max_stored_errors:
            self._last_errors = self._last_errors[-self._max_stored_errors:]

    def get_error_history(self) -> list:
        """
        Get recent error history.

        Returns:
            list: List of error records
        """
        return self._last_errors.copy()


def setup_logging(log_level=logging.INFO, log_file: Optional[str] = None,
                  logger_name: str = 'session_timeline') -> logging.Logger:
    """
    Configure logging for the timeline package.

    Args:
        log_level: Logging level (e.g., logging.INFO or "DEBUG")
        log_file: Optional file to write logs to
        logger_name: Logger whose handlers are replaced

    Returns:
        logging.Logger: The configured logger
    """
    if isinstance(log_level, str):
        log_level = logging.getLevelName(log_level.upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO

    package_logger = logging.getLogger(logger_name)

    # Clear any existing handlers
    package_logger.handlers = []
    package_logger.setLevel(log_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            package_logger.addHandler(file_handler)
        except OSError as e:
            package_logger.error(f"Failed to set up file logging: {e}")

    return package_logger
