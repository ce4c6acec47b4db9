"""
Shared runtime state of an editing session.

The last polled status and metrics, the error slot and the save-in-progress
flag live here instead of in process-wide globals. The polling scheduler is
the single writer of status and metrics; readers subscribe to changes.
"""

import logging
from typing import Callable

from .errors import ErrorSink
from .models import PipelineMetrics, PipelineStatus

logger = logging.getLogger(__name__)


class SessionContext:
    """
    Runtime state shared between the session components.

    Status and metrics start as None until the first fetch completes.
    """

    def __init__(self, errors: ErrorSink | None = None) -> None:
        self.errors = errors or ErrorSink()
        self.save_operation_in_progress = False
        self._status: PipelineStatus | None = None
        self._metrics: PipelineMetrics | None = None
        self._status_listeners: list[Callable[[PipelineStatus], None]] = []
        self._metrics_listeners: list[Callable[[PipelineMetrics], None]] = []

    @property
    def status(self) -> PipelineStatus | None:
        return self._status

    @property
    def metrics(self) -> PipelineMetrics | None:
        return self._metrics

    def set_status(self, status: PipelineStatus) -> None:
        """Replace the status snapshot and notify listeners."""
        self._status = status
        self._notify(self._status_listeners, status)

    def set_metrics(self, metrics: PipelineMetrics) -> None:
        """Replace the metrics snapshot and notify listeners."""
        self._metrics = metrics
        self._notify(self._metrics_listeners, metrics)

    def on_status_changed(self, callback: Callable[[PipelineStatus], None]) -> None:
        self._status_listeners.append(callback)

    def on_metrics_changed(self, callback: Callable[[PipelineMetrics], None]) -> None:
        self._metrics_listeners.append(callback)

    def _notify(self, listeners: list[Callable], value: object) -> None:
        for callback in list(listeners):
            try:
                callback(value)
            except Exception as e:
                logger.warning(f"Context listener failed: {e}")
