"""
Single-slot holder for the most recent asynchronous failure.

Background work (auto-save, polling, loading) never raises into the event
loop; it records the failure here so the UI can display it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from .exceptions import DuplicateStageError, SaveConflictError, StageDefinitionNotFoundError

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Category of a recorded failure."""

    NETWORK = "network"
    CATALOG = "catalog"
    CONFLICT = "conflict"
    DOCUMENT = "document"


@dataclass(frozen=True)
class RecordedError:
    """A failure captured by the ErrorSink."""

    kind: ErrorKind
    error: BaseException
    operation: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def message(self) -> str:
        return str(self.error)


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception to the kind of failure it represents."""
    if isinstance(error, SaveConflictError):
        return ErrorKind.CONFLICT
    if isinstance(error, StageDefinitionNotFoundError):
        return ErrorKind.CATALOG
    if isinstance(error, DuplicateStageError):
        return ErrorKind.DOCUMENT
    return ErrorKind.NETWORK


class ErrorSink:
    """
    Keeps only the latest recorded failure.

    Subscribers are called with each newly recorded error.
    """

    def __init__(self) -> None:
        self._latest: RecordedError | None = None
        self._subscribers: list[Callable[[RecordedError], None]] = []

    @property
    def latest(self) -> RecordedError | None:
        return self._latest

    @property
    def has_error(self) -> bool:
        return self._latest is not None

    def record(self, error: BaseException, operation: str) -> RecordedError:
        """
        Record a failure, replacing any previous one.

        Args:
            error: The exception that occurred
            operation: Short name of the operation that failed

        Returns:
            The recorded error entry
        """
        recorded = RecordedError(kind=classify_error(error), error=error, operation=operation)
        self._latest = recorded
        logger.error(f"{operation} failed ({recorded.kind.value}): {error}")

        for callback in list(self._subscribers):
            try:
                callback(recorded)
            except Exception as e:
                logger.warning(f"Error subscriber failed: {e}")
        return recorded

    def clear(self) -> None:
        self._latest = None

    def subscribe(self, callback: Callable[[RecordedError], None]) -> None:
        self._subscribers.append(callback)
