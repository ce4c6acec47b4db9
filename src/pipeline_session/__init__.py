"""
pipeline-session: Session synchronization engine for a visual pipeline editor.

This package keeps a locally edited pipeline document, the graph derived from
it, the detail-pane selection and the pipeline's runtime status and metrics
consistent with a remote pipeline agent.
"""

from pipeline_session.autosave import (
    AutoSaveCoordinator,
    PendingSaveState,
    SavePhase,
    document_fingerprint,
    merge_save_response,
)
from pipeline_session.backends import (
    FilesystemBackend,
    HttpBackend,
    InMemoryBackend,
    PipelineBackend,
)
from pipeline_session.catalog import StageCatalog
from pipeline_session.config import SessionConfig
from pipeline_session.context import SessionContext
from pipeline_session.errors import ErrorKind, ErrorSink, RecordedError
from pipeline_session.events import (
    ErrorCountsUpdated,
    ErrorRecorded,
    EventRegistry,
    GraphLoaded,
    MoveToCenterRequested,
    NodeAdded,
    PreviewModeChanged,
    PreviewRequested,
    ReadOnlyChanged,
    SelectionChanged,
    SnapshotRequested,
    ValidityCheckRequested,
)
from pipeline_session.exceptions import (
    BackendError,
    DuplicateStageError,
    NoPipelineLoadedError,
    PipelineSessionError,
    SaveConflictError,
    SessionClosedError,
    StageDefinitionNotFoundError,
    StageNotFoundError,
)
from pipeline_session.models import (
    ConfigValue,
    Definitions,
    Edge,
    Issue,
    OpenLane,
    PipelineDocument,
    PipelineInfo,
    PipelineIssues,
    PipelineMetrics,
    PipelineState,
    PipelineStatus,
    StageDefinition,
    StageInstance,
    StageType,
    StageUIInfo,
)
from pipeline_session.polling import PollingLoop, PollingScheduler
from pipeline_session.selection import Selection, SelectionReconciler, SelectionType
from pipeline_session.session import SessionController
from pipeline_session.topology import (
    Topology,
    build_graph,
    derive_edges,
    derive_topology,
    find_first_open_lane,
    get_leaf_stages,
    get_root_stages,
    has_cycles,
    open_lanes,
    source_exists,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Core classes
    "SessionController",
    "SessionConfig",
    "SessionContext",
    # Components
    "AutoSaveCoordinator",
    "PendingSaveState",
    "SavePhase",
    "document_fingerprint",
    "merge_save_response",
    "PollingLoop",
    "PollingScheduler",
    "Selection",
    "SelectionReconciler",
    "SelectionType",
    "StageCatalog",
    "ErrorKind",
    "ErrorSink",
    "RecordedError",
    # Topology
    "Topology",
    "derive_edges",
    "derive_topology",
    "find_first_open_lane",
    "source_exists",
    "open_lanes",
    "build_graph",
    "has_cycles",
    "get_root_stages",
    "get_leaf_stages",
    # Backends
    "PipelineBackend",
    "FilesystemBackend",
    "HttpBackend",
    "InMemoryBackend",
    # Events
    "EventRegistry",
    "GraphLoaded",
    "SelectionChanged",
    "NodeAdded",
    "ReadOnlyChanged",
    "PreviewModeChanged",
    "ErrorCountsUpdated",
    "ValidityCheckRequested",
    "PreviewRequested",
    "SnapshotRequested",
    "MoveToCenterRequested",
    "ErrorRecorded",
    # Data models
    "ConfigValue",
    "Definitions",
    "Edge",
    "Issue",
    "OpenLane",
    "PipelineDocument",
    "PipelineInfo",
    "PipelineIssues",
    "PipelineMetrics",
    "PipelineState",
    "PipelineStatus",
    "StageDefinition",
    "StageInstance",
    "StageType",
    "StageUIInfo",
    # Exceptions
    "PipelineSessionError",
    "BackendError",
    "SaveConflictError",
    "StageDefinitionNotFoundError",
    "StageNotFoundError",
    "DuplicateStageError",
    "NoPipelineLoadedError",
    "SessionClosedError",
]
