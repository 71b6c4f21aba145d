"""
Event detail loading for the selected event.

List rows hold summary events. Opening one fetches the full payload from the
backend; the result is applied only if that event is still selected, and a
failed fetch falls back to the summary with a non-blocking warning.
"""

import logging
from typing import Optional

from PyQt5.QtCore import QObject, pyqtSignal

from session_timeline.models import UnifiedEvent
from session_timeline.utils.error_handler import DetailFetchError
from session_timeline.utils.payload import PayloadView, format_payload

logger = logging.getLogger(__name__)


class EventDetailLoader(QObject):
    """
    Fetches full event payloads for the detail view.

    Signals:
        detail_ready: The detail view has an event to show (UnifiedEvent, is_full)
    """

    detail_ready = pyqtSignal(object, bool)

    def __init__(self, backend, state, runner, store, error_handler=None, parent=None):
        super().__init__(parent)
        self.backend = backend
        self.state = state
        self.runner = runner
        self.store = store
        self.error_handler = error_handler

    def open_event(self, event_id: str):
        """
        Select an event and fetch its full payload.

        Args:
            event_id: Event to open
        """
        self.state.update(selected_event_id=event_id, selected_event_full=None, detail_open=True)
        summary = self.store.find_event(event_id)

        self.runner.submit(
            self.backend.get_stored_event, event_id,
            on_success=lambda full: self._on_loaded(event_id, full),
            on_error=lambda error: self._on_failed(event_id, summary, error),
        )

    def _on_loaded(self, event_id: str, full: UnifiedEvent):
        if self.state.selected_event_id != event_id:
            logger.debug(f"Dropping details of {event_id}: selection moved on")
            return
        self.state.update(selected_event_full=full)
        self.detail_ready.emit(full, True)

    def _on_failed(self, event_id: str, summary: Optional[UnifiedEvent], error: Exception):
        if self.state.selected_event_id != event_id:
            return

        detail_error = DetailFetchError(event_id, error)
        if self.error_handler is not None:
            self.error_handler.handle_error(detail_error, "fetching event details")
        else:
            logger.warning(detail_error.details)

        if summary is not None:
            self.state.update(selected_event_full=summary)
            self.detail_ready.emit(summary, False)

    def close(self):
        self.state.update(detail_open=False, selected_event_full=None)

    def payload_view(self) -> PayloadView:
        """Display form of the open event's payload."""
        event = self.state.selected_event_full
        return format_payload(event.data if event is not None else None)
