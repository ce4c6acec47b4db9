"""
Data models for pipeline-session package.

This module defines the core data structures:
- StageInstance: One configured node of the pipeline graph
- PipelineDocument: The editable pipeline configuration
- StageDefinition / PipelineDefinition: Catalog entries used to render forms
- PipelineStatus / PipelineMetrics: Last polled runtime snapshot
- Edge / OpenLane: Derived topology values (never persisted)

Wire payloads use camelCase keys; models accept either spelling and dump
camelCase with ``to_wire()``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Diagnostic code reported when an output lane has no consumer
OPEN_LANE_ISSUE_CODE = "VALIDATION_0011"


class WireModel(BaseModel):
    """Base model for payloads exchanged with the backend."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_wire(self) -> dict[str, Any]:
        """
        Convert the model to its JSON wire representation.

        Returns:
            Dictionary with camelCase keys and JSON-compatible values.
        """
        return self.model_dump(mode="json", by_alias=True)


class StageType(str, Enum):
    """Kind of stage, as marked on the stage instance."""

    SOURCE = "SOURCE"
    PROCESSOR = "PROCESSOR"
    TARGET = "TARGET"


class PipelineState(str, Enum):
    """Runtime state reported by the pipeline status endpoint."""

    STOPPED = "STOPPED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"


class ConfigValue(WireModel):
    """A single name/value configuration entry."""

    name: str = Field(..., min_length=1)
    value: Any = None


class StageUIInfo(WireModel):
    """UI metadata stored on a stage instance."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    stage_type: StageType = Field(
        ...,
        description="Kind of stage (source, processor, target)",
    )
    label: str = ""
    description: str = ""
    x_pos: float | None = None
    y_pos: float | None = None


class StageInstance(WireModel):
    """
    Represents a stage instance in the pipeline graph.

    Connections are never stored explicitly: a stage consumes every lane
    named in its input_lanes, and produces the lanes named in output_lanes.
    """

    instance_name: str = Field(
        ...,
        description="Unique, stable key of the stage inside its pipeline",
        min_length=1,
    )
    library: str = ""
    stage_name: str = Field(..., min_length=1)
    stage_version: str = Field(..., min_length=1)
    configuration: list[ConfigValue] = Field(default_factory=list)
    ui_info: StageUIInfo
    input_lanes: list[str] = Field(default_factory=list)
    output_lanes: list[str] = Field(default_factory=list)

    @field_validator("input_lanes")
    @classmethod
    def dedupe_input_lanes(cls, v: list[str]) -> list[str]:
        """Input lanes have set semantics; keep first occurrence order."""
        return list(dict.fromkeys(v))

    @property
    def stage_type(self) -> StageType:
        """Kind of stage, read from the UI metadata."""
        return self.ui_info.stage_type

    def get_config_value(self, name: str, default: Any = None) -> Any:
        """Return the configured value for ``name`` or ``default``."""
        for config in self.configuration:
            if config.name == name:
                return config.value
        return default


class Issue(WireModel):
    """A validation diagnostic attached to the pipeline or to a stage."""

    message: str
    code: str | None = None
    level: str | None = None
    config_group: str | None = None
    config_name: str | None = None
    lane: str | None = Field(
        default=None,
        description="Output lane the diagnostic refers to, when it names one",
    )

    def has_code(self, code: str) -> bool:
        """Check the structured code first, then the message text."""
        if self.code is not None:
            return self.code == code
        return code in self.message


class PipelineIssues(WireModel):
    """Validation diagnostics for a pipeline document."""

    pipeline_issues: list[Issue] = Field(default_factory=list)
    stage_issues: dict[str, list[Issue]] = Field(default_factory=dict)

    @property
    def issue_count(self) -> int:
        return len(self.pipeline_issues) + sum(
            len(issues) for issues in self.stage_issues.values()
        )


class PipelineInfo(WireModel):
    """Summary entry for a stored pipeline."""

    name: str = Field(..., min_length=1)
    description: str = ""
    created: str | None = None
    last_modified: str | None = None
    uuid: str | None = None
    valid: bool = True


class PipelineDocument(WireModel):
    """
    The editable pipeline configuration.

    ``uuid`` is an opaque version token assigned by the backend; the
    structural fields (stages, configuration, ui_info) are what the user
    edits.
    """

    info: PipelineInfo
    uuid: str | None = None
    configuration: list[ConfigValue] = Field(default_factory=list)
    ui_info: dict[str, Any] = Field(default_factory=dict)
    stages: list[StageInstance] = Field(default_factory=list)
    issues: PipelineIssues = Field(default_factory=PipelineIssues)

    @property
    def name(self) -> str:
        return self.info.name

    def get_stage(self, instance_name: str) -> StageInstance | None:
        """Find a stage instance by its instance name."""
        for stage in self.stages:
            if stage.instance_name == instance_name:
                return stage
        return None


class ConfigDefinition(WireModel):
    """Definition of one configuration property of a stage or pipeline."""

    name: str
    type: str = "STRING"
    label: str = ""
    default_value: Any = None
    required: bool = False
    group: str = ""


class StageDefinition(WireModel):
    """Catalog entry describing a stage library component."""

    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    type: StageType
    library: str = ""
    label: str = ""
    description: str = ""
    config_definitions: list[ConfigDefinition] = Field(default_factory=list)


class PipelineDefinition(WireModel):
    """Catalog entry describing pipeline-level configuration."""

    config_definitions: list[ConfigDefinition] = Field(default_factory=list)


class Definitions(WireModel):
    """Response of the definitions endpoint."""

    pipeline: list[PipelineDefinition] = Field(default_factory=list)
    stages: list[StageDefinition] = Field(default_factory=list)


class PipelineStatus(WireModel):
    """Runtime status of the pipeline currently managed by the backend."""

    name: str | None = None
    state: PipelineState = PipelineState.STOPPED
    message: str | None = None

    @property
    def is_running(self) -> bool:
        return self.state == PipelineState.RUNNING


class Histogram(WireModel):
    """Histogram snapshot; only ``mean`` is relied upon."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    count: int = 0
    mean: float = 0.0


class PipelineMetrics(WireModel):
    """Metric registry snapshot returned by the metrics endpoint."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    meters: dict[str, Any] = Field(default_factory=dict)
    histograms: dict[str, Histogram] = Field(default_factory=dict)
    counters: dict[str, Any] = Field(default_factory=dict)
    gauges: dict[str, Any] = Field(default_factory=dict)
    timers: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class Edge:
    """
    A derived connection between two stage instances.

    Edges are recomputed from lane names on every document change and are
    never patched incrementally.
    """

    source: StageInstance
    target: StageInstance
    output_lane: str

    @property
    def edge_id(self) -> str:
        return f"{self.source.instance_name}:{self.output_lane}->{self.target.instance_name}"


@dataclass(frozen=True)
class OpenLane:
    """An output lane reported as having no connected consumer."""

    stage_instance: StageInstance
    lane_name: str | None
    lane_index: int
