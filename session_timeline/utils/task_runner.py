"""
Task Runners
============

This module runs backend calls off the GUI thread and delivers their results
back to it.

ThreadedTaskRunner starts a QThread worker per call. The worker emits its
result or exception through signals whose connections are queued to the
thread that submitted the call, so callbacks always run on the GUI thread.
ImmediateTaskRunner runs calls inline and is used for headless tooling and
tests.

Author: Session Timeline Team
Version: 1.0
"""

import logging
from typing import Callable, Optional

from PyQt5.QtCore import QObject, QThread, pyqtSignal

# Configure logger
logger = logging.getLogger(__name__)


class CallWorker(QThread):
    """
    Worker thread executing a single backend call.

    Signals:
        succeeded: Emitted with the call's return value
        failed: Emitted with the exception the call raised
    """

    succeeded = pyqtSignal(object)
    failed = pyqtSignal(object)

    def __init__(self, func: Callable, args: tuple, kwargs: dict):
        super().__init__()
        self.func = func
        self.args = args
        self.kwargs = kwargs
        self._cancelled = False

    def run(self):
        """Execute the call in the background thread."""
        name = getattr(self.func, '__name__', repr(self.func))
        try:
            result = self.func(*self.args, **self.kwargs)
        except Exception as e:
            if not self._cancelled:
                logger.debug(f"Background call {name} failed: {e}")
                self.failed.emit(e)
            return

        if not self._cancelled:
            self.succeeded.emit(result)

    def cancel(self):
        """Suppress result delivery for this call."""
        self._cancelled = True


class TaskRunner(QObject):
    """Base class for runners; subclasses implement submit()."""

    def submit(self, func: Callable, *args,
               on_success: Optional[Callable] = None,
               on_error: Optional[Callable[[Exception], None]] = None,
               **kwargs):
        raise NotImplementedError


class ImmediateTaskRunner(TaskRunner):
    """Runs each call inline on the caller's thread."""

    def submit(self, func, *args, on_success=None, on_error=None, **kwargs):
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            if on_error is None:
                raise
            on_error(e)
            return
        if on_success is not None:
            on_success(result)


class ThreadedTaskRunner(TaskRunner):
    """Runs each call on its own worker thread."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self._workers = set()

    @property
    def active_count(self) -> int:
        return len(self._workers)

    def submit(self, func, *args, on_success=None, on_error=None, **kwargs) -> CallWorker:
        worker = CallWorker(func, args, kwargs)
        if on_success is not None:
            worker.succeeded.connect(on_success)
        if on_error is not None:
            worker.failed.connect(on_error)
        else:
            worker.failed.connect(
                lambda e: logger.error(f"Unhandled background error: {type(e).__name__}: {e}")
            )

        worker.finished.connect(lambda: self._release(worker))
        self._workers.add(worker)
        worker.start()
        return worker

    def _release(self, worker: CallWorker):
        self._workers.discard(worker)
        worker.deleteLater()

    def shutdown(self, timeout_ms: int = 2000):
        """Cancel outstanding calls and wait for their threads to exit."""
        for worker in list(self._workers):
            worker.cancel()
            worker.wait(timeout_ms)
        self._workers.clear()
