"""
Detail-pane selection and its reconciliation across reloads.

Exactly one object is selected at any time: the pipeline itself, one stage
instance, or one link. Stage instances are never tracked by object identity
across documents; after a reload the selection is re-resolved by instance
name and falls back to the pipeline when the stage is gone.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .catalog import StageCatalog
from .errors import ErrorSink
from .events import EventRegistry, SelectionChanged, ValidityCheckRequested
from .exceptions import StageDefinitionNotFoundError
from .models import Definitions, Edge, PipelineDocument, StageInstance

logger = logging.getLogger(__name__)


class SelectionType(str, Enum):
    """Kind of object shown in the detail pane."""

    PIPELINE = "PIPELINE"
    STAGE_INSTANCE = "STAGE_INSTANCE"
    LINK = "LINK"


@dataclass(frozen=True)
class Selection:
    """
    The object currently shown in the detail pane.

    ``definition`` is the catalog entry used to render the configuration
    form; links carry none.
    """

    selection_type: SelectionType
    selected: Any
    definition: Any = None

    @property
    def stage(self) -> StageInstance | None:
        if self.selection_type == SelectionType.STAGE_INSTANCE:
            return self.selected
        return None

    @property
    def edge(self) -> Edge | None:
        if self.selection_type == SelectionType.LINK:
            return self.selected
        return None


class SelectionReconciler:
    """
    Holds the current selection and repairs it whenever the document changes.

    Every transition emits SelectionChanged and schedules a single
    ValidityCheckRequested after ``validity_check_delay`` seconds so dependent
    forms settle before re-validating.
    """

    def __init__(
        self,
        events: EventRegistry,
        errors: ErrorSink,
        catalog: StageCatalog | None = None,
        validity_check_delay: float = 1.0,
    ) -> None:
        """
        Initialize the reconciler.

        Args:
            events: Registry receiving selection notifications
            errors: Sink for catalog faults found while reconciling
            catalog: Definitions used to render forms (empty until loaded)
            validity_check_delay: Seconds before the validity re-check fires
        """
        self.catalog = catalog or StageCatalog(Definitions())
        self._events = events
        self._errors = errors
        self._validity_check_delay = validity_check_delay
        self._validity_handle: asyncio.TimerHandle | None = None
        self._document: PipelineDocument | None = None
        self._selection: Selection | None = None

    @property
    def selection(self) -> Selection | None:
        return self._selection

    @property
    def selection_type(self) -> SelectionType | None:
        return self._selection.selection_type if self._selection else None

    def select_pipeline(self) -> Selection:
        """Show the pipeline configuration in the detail pane."""
        return self._transition(
            Selection(
                selection_type=SelectionType.PIPELINE,
                selected=self._document,
                definition=self.catalog.pipeline_definition,
            )
        )

    def select_stage(self, stage: StageInstance) -> Selection:
        """
        Show a stage instance in the detail pane.

        Args:
            stage: Stage instance of the current document

        Returns:
            The new selection

        Raises:
            StageDefinitionNotFoundError: If the stage's definition is not in
                the catalog; the current selection is left unchanged
        """
        definition = self.catalog.definition_for(stage)
        return self._transition(
            Selection(
                selection_type=SelectionType.STAGE_INSTANCE,
                selected=stage,
                definition=definition,
            )
        )

    def select_link(self, edge: Edge) -> Selection:
        """Show a link in the detail pane."""
        return self._transition(Selection(selection_type=SelectionType.LINK, selected=edge))

    def reconcile_after_reload(self, document: PipelineDocument | None) -> Selection:
        """
        Re-point the selection at objects of a replacement document.

        A pipeline selection follows the new document. A stage selection is
        re-resolved by instance name, falling back to the pipeline when the
        stage no longer exists. Links never survive a reload.

        Args:
            document: The document that replaced the previous one

        Returns:
            The reconciled selection
        """
        self._document = document
        current = self._selection

        if current is None or current.selection_type != SelectionType.STAGE_INSTANCE:
            return self.select_pipeline()

        stage = document.get_stage(current.selected.instance_name) if document else None
        if stage is None:
            logger.debug(
                f"Selected stage '{current.selected.instance_name}' is gone, selecting pipeline"
            )
            return self.select_pipeline()

        try:
            return self.select_stage(stage)
        except StageDefinitionNotFoundError as e:
            self._errors.record(e, "reconcile selection")
            return self.select_pipeline()

    def close(self) -> None:
        """Cancel a pending validity re-check."""
        if self._validity_handle is not None:
            self._validity_handle.cancel()
            self._validity_handle = None

    def _transition(self, selection: Selection) -> Selection:
        self._selection = selection
        logger.debug(f"Selection changed to {selection.selection_type.value}")
        self._events.emit(SelectionChanged(selection=selection))
        self._schedule_validity_check()
        return selection

    def _schedule_validity_check(self) -> None:
        self.close()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Nothing to wait for outside an event loop
            self._events.emit(ValidityCheckRequested())
            return
        self._validity_handle = loop.call_later(
            self._validity_check_delay, self._emit_validity_check
        )

    def _emit_validity_check(self) -> None:
        self._validity_handle = None
        self._events.emit(ValidityCheckRequested())
