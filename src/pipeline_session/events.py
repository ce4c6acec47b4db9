"""
Typed notifications sent to the rendering collaborator.

Each event kind is its own payload class. Listeners subscribe to a payload
class and receive only instances of it, so a listener never has to inspect
an untyped event name.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from .models import Edge, PipelineIssues, StageInstance

if TYPE_CHECKING:
    from .errors import RecordedError
    from .selection import Selection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraphLoaded:
    """Full graph payload sent after every load or reload."""

    nodes: list[StageInstance]
    edges: list[Edge]
    issues: PipelineIssues
    selected_node: StageInstance | None = None
    stage_error_counts: dict[str, int] | None = None
    is_read_only: bool = False
    show_edge_preview_icon: bool = False


@dataclass(frozen=True)
class SelectionChanged:
    selection: "Selection"


@dataclass(frozen=True)
class NodeAdded:
    node: StageInstance
    edge: Edge | None = None


@dataclass(frozen=True)
class ReadOnlyChanged:
    read_only: bool


@dataclass(frozen=True)
class PreviewModeChanged:
    preview_mode: bool


@dataclass(frozen=True)
class ErrorCountsUpdated:
    stage_error_counts: dict[str, int]


@dataclass(frozen=True)
class ValidityCheckRequested:
    """Ask open configuration forms to re-run their validity checks."""

    pass


@dataclass(frozen=True)
class PreviewRequested:
    next_batch: bool = False


@dataclass(frozen=True)
class SnapshotRequested:
    pass


@dataclass(frozen=True)
class MoveToCenterRequested:
    pass


@dataclass(frozen=True)
class ErrorRecorded:
    error: "RecordedError"


E = TypeVar("E")


class EventRegistry:
    """
    Observer registry keyed by event payload class.

    Callbacks are invoked synchronously in subscription order. A callback
    that raises is logged and skipped; it never breaks the emitter.
    """

    def __init__(self) -> None:
        self._listeners: dict[type, list[Callable[[Any], None]]] = defaultdict(list)

    def subscribe(self, event_type: type[E], callback: Callable[[E], None]) -> Callable[[], None]:
        """
        Register a callback for one event kind.

        Args:
            event_type: Payload class to listen for
            callback: Called with each emitted payload of that class

        Returns:
            Function that removes the subscription when called
        """
        self._listeners[event_type].append(callback)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event_type, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def emit(self, event: Any) -> None:
        """Dispatch an event to the listeners of its class."""
        for callback in list(self._listeners.get(type(event), [])):
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Listener for {type(event).__name__} failed: {e}")

    def listener_count(self, event_type: type) -> int:
        return len(self._listeners.get(event_type, []))

    def clear(self) -> None:
        self._listeners.clear()
