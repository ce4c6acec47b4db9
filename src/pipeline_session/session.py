"""
Pipeline editing session.

The SessionController owns the pipeline document being edited and keeps the
derived graph, the detail-pane selection, auto-save and runtime polling
consistent with it. Every document replacement (load, reload, applied save
response) re-derives the topology from scratch, repairs the selection and
sends the full graph to the rendering collaborator.
"""

import asyncio
import logging
import math
from typing import Any

import networkx as nx

from .autosave import AutoSaveCoordinator, SavePhase
from .backends.base import PipelineBackend
from .catalog import StageCatalog
from .config import SessionConfig
from .context import SessionContext
from .events import (
    ErrorCountsUpdated,
    ErrorRecorded,
    EventRegistry,
    GraphLoaded,
    MoveToCenterRequested,
    NodeAdded,
    PreviewModeChanged,
    PreviewRequested,
    ReadOnlyChanged,
    SnapshotRequested,
)
from .exceptions import (
    DuplicateStageError,
    NoPipelineLoadedError,
    SessionClosedError,
    StageNotFoundError,
)
from .models import (
    ConfigValue,
    Definitions,
    Edge,
    OpenLane,
    PipelineDocument,
    PipelineInfo,
    PipelineMetrics,
    PipelineState,
    PipelineStatus,
    StageDefinition,
    StageInstance,
)
from .polling import PollingScheduler
from .selection import Selection, SelectionReconciler
from .stages import create_stage_instance
from .topology import Topology, build_graph, derive_topology

logger = logging.getLogger(__name__)

ERROR_RECORDS_HISTOGRAM = "stage.{}.errorRecords.histogramM5"
STAGE_ERRORS_HISTOGRAM = "stage.{}.stageErrors.histogramM5"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SessionController:
    """
    Orchestrates one pipeline editing session.

    This class handles:
    - Loading documents and deriving their topology
    - Keeping the detail-pane selection valid across reloads
    - Auto-saving local edits
    - Polling runtime status and metrics
    - Preview, snapshot and monitoring modes
    """

    def __init__(
        self,
        backend: PipelineBackend,
        config: SessionConfig | None = None,
        context: SessionContext | None = None,
        events: EventRegistry | None = None,
    ) -> None:
        """
        Initialize a session.

        Args:
            backend: Backend serving definitions, documents and runtime state
            config: Session settings (defaults if None)
            context: Shared runtime context (created if None)
            events: Registry the rendering collaborator subscribes to
        """
        self.backend = backend
        self.config = config or SessionConfig()
        self.context = context or SessionContext()
        self.events = events or EventRegistry()

        self.pipelines: list[PipelineInfo] = []
        self.active_config_info: PipelineInfo | None = None
        self.loaded = False
        self.preview_mode = False
        self.snapshot_mode = False

        self._document: PipelineDocument | None = None
        self._topology = Topology()
        self._was_running = False
        self._closed = False

        self._selection = SelectionReconciler(
            self.events,
            self.context.errors,
            StageCatalog(Definitions(), self.config.selector_stage_name),
            validity_check_delay=self.config.validity_check_delay,
        )
        self.autosave = AutoSaveCoordinator(
            backend,
            self.context,
            get_document=lambda: self._document,
            apply_document=self._apply_saved_document,
            save_delay=self.config.save_delay,
            watch_interval=self.config.watch_interval,
        )
        self.polling = PollingScheduler(backend, self.context, interval=self.config.poll_interval)

        self.context.on_status_changed(self._on_status_changed)
        self.context.on_metrics_changed(self._on_metrics_changed)
        self.context.errors.subscribe(lambda error: self.events.emit(ErrorRecorded(error=error)))

    def __repr__(self) -> str:
        name = self._document.name if self._document else None
        return f"SessionController(pipeline={name!r}, stages={len(self.stages)})"

    # ==================== State ====================

    @property
    def catalog(self) -> StageCatalog:
        return self._selection.catalog

    @catalog.setter
    def catalog(self, catalog: StageCatalog) -> None:
        self._selection.catalog = catalog

    @property
    def document(self) -> PipelineDocument | None:
        return self._document

    @property
    def stages(self) -> list[StageInstance]:
        return self._document.stages if self._document else []

    @property
    def topology(self) -> Topology:
        return self._topology

    @property
    def edges(self) -> list[Edge]:
        return self._topology.edges

    @property
    def source_exists(self) -> bool:
        return self._topology.source_exists

    @property
    def first_open_lane(self) -> OpenLane | None:
        """Open-lane hint, hidden when the user opted out of help."""
        if self.config.dont_show_help:
            return None
        return self._topology.first_open_lane

    @property
    def graph(self) -> nx.MultiDiGraph:
        """
        NetworkX view of the current pipeline.

        Nodes are instance names, edges are keyed by output lane. Empty when
        no pipeline is loaded.
        """
        return build_graph(self.stages, self.edges)

    @property
    def selection(self) -> Selection | None:
        return self._selection.selection

    @property
    def monitoring_paused(self) -> bool:
        return self.polling.paused

    @property
    def save_in_progress(self) -> bool:
        return self.context.save_operation_in_progress

    @property
    def is_read_only(self) -> bool:
        return self.is_running() or self.preview_mode

    @property
    def closed(self) -> bool:
        return self._closed

    # ==================== Lifecycle ====================

    async def initialize(self) -> bool:
        """
        Fetch definitions, pipelines, status and metrics, then load the
        active pipeline.

        The active pipeline is the one named by the backend status, or the
        first stored pipeline. Failures are recorded in the error sink.

        Returns:
            True if everything was fetched and the active pipeline loaded
        """
        self._ensure_open()
        results = await asyncio.gather(
            self.backend.get_definitions(),
            self.backend.get_pipelines(),
            self.backend.get_pipeline_status(),
            self.backend.get_pipeline_metrics(),
            return_exceptions=True,
        )
        failure = next((result for result in results if isinstance(result, BaseException)), None)
        if failure is not None:
            self.context.errors.record(failure, "initialize session")
            self.loaded = True
            return False

        definitions, pipelines, status, metrics = results
        self.catalog = StageCatalog(definitions, self.config.selector_stage_name)
        self.pipelines = list(pipelines)
        self.context.set_status(status)
        self.context.set_metrics(metrics)

        if status.name:
            self.active_config_info = next(
                (info for info in self.pipelines if info.name == status.name), None
            )
        if self.active_config_info is None and self.pipelines:
            self.active_config_info = self.pipelines[0]

        self.polling.start()
        self.autosave.start()
        logger.info(
            f"Session initialized with {len(self.catalog)} stage definitions "
            f"and {len(self.pipelines)} pipelines"
        )

        ok = True
        if self.active_config_info is not None:
            ok = await self._fetch_and_load(self.active_config_info.name)
        self.loaded = True
        return ok

    async def close(self) -> None:
        """
        Tear down the session.

        Cancels the save debounce, the document watch, both polling loops
        and the pending validity check. Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        await self.autosave.close()
        await self.polling.stop()
        self._selection.close()
        logger.info("Session closed")

    async def __aenter__(self) -> "SessionController":
        """Enter async context manager."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager and close the session."""
        await self.close()

    # ==================== Loading ====================

    def load(self, document: PipelineDocument) -> None:
        """
        Replace the edited document.

        Re-derives the topology, reconciles the selection and sends the full
        graph to the rendering collaborator. The replacement is not treated
        as an edit.

        Raises:
            SessionClosedError: If the session was closed
            DuplicateStageError: If two stages share an instance name
        """
        self._ensure_open()
        seen = set()
        for stage in document.stages:
            if stage.instance_name in seen:
                raise DuplicateStageError(
                    f"Pipeline '{document.name}' has duplicate stage '{stage.instance_name}'"
                )
            seen.add(stage.instance_name)
        self._install(document, external=True)
        logger.info(f"Loaded pipeline '{document.name}' ({len(document.stages)} stages)")

    async def reload(self) -> bool:
        """Fetch the current pipeline again and load it."""
        document = self._require_document()
        return await self._fetch_and_load(document.name)

    async def select_pipeline_config(self, info: PipelineInfo | None) -> bool:
        """
        Switch the session to another stored pipeline.

        Args:
            info: Pipeline to open, or None when no pipeline exists

        Returns:
            True if a pipeline was loaded
        """
        self._ensure_open()
        if info is None:
            self.active_config_info = None
            self._install(None, external=True)
            return False

        self.active_config_info = info
        self.close_preview()
        return await self._fetch_and_load(info.name)

    def refresh_graph(self) -> None:
        """Re-derive the topology and resend the graph."""
        self._refresh_topology()
        self._emit_graph()

    async def _fetch_and_load(self, name: str) -> bool:
        try:
            document = await self.backend.get_pipeline_config(name)
        except Exception as e:
            self.context.errors.record(e, f"load pipeline '{name}'")
            return False

        if self._closed:
            return False
        self.context.errors.clear()
        try:
            self.load(document)
        except DuplicateStageError as e:
            self.context.errors.record(e, f"load pipeline '{name}'")
            return False
        return True

    def _apply_saved_document(self, document: PipelineDocument) -> None:
        self._install(document, external=False)

    def _install(self, document: PipelineDocument | None, external: bool) -> None:
        self._document = document
        self.autosave.document_replaced(document, external=external)

        if document is not None:
            self.active_config_info = document.info
            for index, info in enumerate(self.pipelines):
                if info.name == document.name:
                    self.pipelines[index] = document.info

        self._refresh_topology()
        self._selection.reconcile_after_reload(document)
        self._was_running = self.is_running()
        self._emit_graph()

    def _refresh_topology(self) -> None:
        self._topology = derive_topology(self._document) if self._document else Topology()

    def _emit_graph(self) -> None:
        document = self._document
        if document is None:
            return

        selection = self._selection.selection
        stage_error_counts = None
        metrics = self.context.metrics
        if self._status_matches() and metrics is not None and metrics.meters:
            stage_error_counts = self.stage_error_counts()

        running = self.is_running()
        self.events.emit(
            GraphLoaded(
                nodes=document.stages,
                edges=self._topology.edges,
                issues=document.issues,
                selected_node=selection.stage if selection else None,
                stage_error_counts=stage_error_counts,
                is_read_only=running,
                show_edge_preview_icon=running,
            )
        )

    # ==================== Selection ====================

    def select_pipeline(self) -> Selection:
        return self._selection.select_pipeline()

    def select_stage(self, stage: StageInstance) -> Selection:
        """
        Show a stage in the detail pane.

        Raises:
            StageDefinitionNotFoundError: If the stage's definition is missing
        """
        return self._selection.select_stage(stage)

    def select_stage_by_name(self, instance_name: str) -> Selection:
        return self.select_stage(self._require_stage(instance_name))

    def select_link(self, edge: Edge) -> Selection:
        return self._selection.select_link(edge)

    def clear_selection(self) -> Selection:
        """Called when the graph reports that nothing is selected."""
        return self._selection.select_pipeline()

    # ==================== Editing ====================

    def add_stage(self, definition: StageDefinition, open_lane: OpenLane | None = None) -> StageInstance:
        """
        Add a new stage instance to the pipeline and select it.

        When ``open_lane`` is given the new stage consumes that lane, and the
        connecting edge is sent with the node so the graph can draw it before
        the next full re-derivation.

        Args:
            definition: Catalog definition of the stage to add
            open_lane: Unconsumed lane to attach the new stage to

        Returns:
            The new stage instance

        Raises:
            NoPipelineLoadedError: If no pipeline is loaded
            StageDefinitionNotFoundError: If the definition is not in the catalog
        """
        document = self._require_document()
        stage = create_stage_instance(definition, document, open_lane)
        self.catalog.definition_for(stage)

        document.stages.append(stage)
        self._selection.select_stage(stage)

        edge = None
        if (
            open_lane is not None
            and open_lane.stage_instance is not None
            and open_lane.lane_name in stage.input_lanes
        ):
            edge = Edge(source=open_lane.stage_instance, target=stage, output_lane=open_lane.lane_name)

        self.events.emit(NodeAdded(node=stage, edge=edge))
        logger.info(f"Added stage '{stage.instance_name}' to pipeline '{document.name}'")
        self._edited()
        return stage

    def remove_stage(self, instance_name: str) -> StageInstance:
        """
        Remove a stage instance and every lane consumed from it.

        Raises:
            StageNotFoundError: If no stage has that instance name
        """
        document = self._require_document()
        stage = self._require_stage(instance_name)
        document.stages.remove(stage)

        removed_lanes = set(stage.output_lanes)
        for other in document.stages:
            other.input_lanes = [lane for lane in other.input_lanes if lane not in removed_lanes]

        selection = self._selection.selection
        if selection is not None and (
            (selection.stage is not None and selection.stage.instance_name == instance_name)
            or (
                selection.edge is not None
                and instance_name in (selection.edge.source.instance_name, selection.edge.target.instance_name)
            )
        ):
            self._selection.select_pipeline()

        logger.info(f"Removed stage '{instance_name}' from pipeline '{document.name}'")
        self._edited()
        return stage

    def connect(self, source_name: str, lane: str, target_name: str) -> Edge:
        """
        Connect an output lane of one stage to another stage.

        Raises:
            StageNotFoundError: If either stage does not exist
            ValueError: If the lane is not an output lane of the source
        """
        source = self._require_stage(source_name)
        target = self._require_stage(target_name)
        if lane not in source.output_lanes:
            raise ValueError(f"Stage '{source_name}' has no output lane '{lane}'")

        if lane not in target.input_lanes:
            target.input_lanes.append(lane)
        self._edited()
        return Edge(source=source, target=target, output_lane=lane)

    def disconnect(self, edge: Edge) -> None:
        """
        Remove a connection.

        Raises:
            StageNotFoundError: If the target stage does not exist
        """
        target = self._require_stage(edge.target.instance_name)
        target.input_lanes = [lane for lane in target.input_lanes if lane != edge.output_lane]

        selected_edge = self.selection.edge if self.selection else None
        if selected_edge is not None and selected_edge.edge_id == edge.edge_id:
            self._selection.select_pipeline()
        self._edited()

    def update_stage_configuration(self, instance_name: str, name: str, value: Any) -> None:
        """
        Set a configuration value of a stage.

        Raises:
            StageNotFoundError: If the stage does not exist
        """
        stage = self._require_stage(instance_name)
        self._set_config(stage.configuration, name, value)
        self._edited()

    def update_pipeline_configuration(self, name: str, value: Any) -> None:
        document = self._require_document()
        self._set_config(document.configuration, name, value)
        self._edited()

    def notify_changed(self) -> bool:
        """
        Report an in-place edit made outside the editing API.

        Returns:
            True if the edit changed the document and a save was scheduled
        """
        self._ensure_open()
        self._refresh_topology()
        return self.autosave.notify_change()

    async def save_now(self) -> bool:
        """
        Save immediately unless a save is already in progress.

        Returns:
            True if the save ran and succeeded
        """
        self._ensure_open()
        return await self.autosave.save_now()

    @property
    def save_phase(self) -> SavePhase:
        return self.autosave.phase

    def _edited(self) -> None:
        self._refresh_topology()
        self.autosave.notify_change()

    @staticmethod
    def _set_config(configuration: list[ConfigValue], name: str, value: Any) -> None:
        for config in configuration:
            if config.name == name:
                config.value = value
                return
        configuration.append(ConfigValue(name=name, value=value))

    # ==================== Modes ====================

    def preview_pipeline(self, next_batch: bool = False) -> None:
        """Enter preview mode; the graph becomes read-only."""
        self.preview_mode = True
        self.events.emit(ReadOnlyChanged(read_only=True))
        self.events.emit(PreviewModeChanged(preview_mode=True))
        self.events.emit(PreviewRequested(next_batch=next_batch))

    def close_preview(self) -> None:
        self.preview_mode = False
        self.events.emit(ReadOnlyChanged(read_only=self.is_running()))
        self.events.emit(PreviewModeChanged(preview_mode=False))
        self.move_graph_to_center()

    def capture_snapshot(self) -> None:
        """Enter snapshot mode for the running pipeline."""
        self.snapshot_mode = True
        self.events.emit(PreviewModeChanged(preview_mode=True))
        self.events.emit(SnapshotRequested())

    def close_snapshot(self) -> None:
        self.snapshot_mode = False
        self.events.emit(PreviewModeChanged(preview_mode=False))
        self.move_graph_to_center()

    def move_graph_to_center(self) -> None:
        """Re-centre the graph and show the pipeline in the detail pane."""
        self.events.emit(MoveToCenterRequested())
        self._selection.select_pipeline()

    def pause_monitoring(self) -> None:
        self.polling.pause()

    def continue_monitoring(self) -> None:
        self.polling.resume()

    # ==================== Runtime state ====================

    def is_running(self) -> bool:
        """True if the polled status is this pipeline and it is running."""
        status = self.context.status
        return self._status_matches() and status.state == PipelineState.RUNNING

    def active_status(self) -> PipelineStatus:
        """The polled status if it belongs to this pipeline, else STOPPED."""
        if self._status_matches():
            return self.context.status
        return PipelineStatus(state=PipelineState.STOPPED)

    def compute_per_stage_error_count(self, instance_name: str) -> int | None:
        """
        Error count of one stage from the polled histograms.

        Sum of the means of the stage's error-record and stage-error
        histograms, rounded. Only defined while this pipeline is running.

        Returns:
            Rounded count, or None when unavailable
        """
        if not self.is_running():
            return None
        return self._stage_error_count(instance_name, self.context.metrics)

    def stage_error_counts(self) -> dict[str, int] | None:
        """
        Error counts of every stage that has both histograms.

        Returns:
            Mapping of instance name to count, or None when the polled
            status is not this pipeline or no metrics were fetched
        """
        metrics = self.context.metrics
        if not self._status_matches() or metrics is None:
            return None

        counts = {}
        for stage in self.stages:
            count = self._stage_error_count(stage.instance_name, metrics)
            if count is not None:
                counts[stage.instance_name] = count
        return counts

    def _stage_error_count(self, instance_name: str, metrics: PipelineMetrics | None) -> int | None:
        if metrics is None:
            return None
        error_records = metrics.histograms.get(ERROR_RECORDS_HISTOGRAM.format(instance_name))
        stage_errors = metrics.histograms.get(STAGE_ERRORS_HISTOGRAM.format(instance_name))
        if error_records is None or stage_errors is None:
            return None
        return _round_half_up(error_records.mean + stage_errors.mean)

    def _status_matches(self) -> bool:
        status = self.context.status
        return (
            status is not None
            and self._document is not None
            and status.name == self._document.name
        )

    def _on_status_changed(self, status: PipelineStatus) -> None:
        running = self.is_running()
        if running != self._was_running:
            self._was_running = running
            logger.info(f"Pipeline running state changed: {running}")
            self.events.emit(ReadOnlyChanged(read_only=running or self.preview_mode))

    def _on_metrics_changed(self, metrics: PipelineMetrics) -> None:
        if self.is_running():
            counts = self.stage_error_counts()
            if counts is not None:
                self.events.emit(ErrorCountsUpdated(stage_error_counts=counts))

    # ==================== Helpers ====================

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError("Session is closed")

    def _require_document(self) -> PipelineDocument:
        self._ensure_open()
        if self._document is None:
            raise NoPipelineLoadedError("No pipeline is loaded")
        return self._document

    def _require_stage(self, instance_name: str) -> StageInstance:
        document = self._require_document()
        stage = document.get_stage(instance_name)
        if stage is None:
            raise StageNotFoundError(f"Stage '{instance_name}' not found in pipeline '{document.name}'")
        return stage
