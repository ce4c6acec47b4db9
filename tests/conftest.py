"""
Pytest configuration and fixtures for pipeline-session tests.

This module provides:
- Builders for stage instances and pipeline documents
- A stage catalog with one definition per stage type
- A backend whose saves can be held open or made to fail
- Session settings with short timings
"""

import asyncio
from typing import Any

import pytest
from pipeline_session.backends import InMemoryBackend
from pipeline_session.config import SELECTOR_PROCESSOR_STAGE_NAME, SessionConfig
from pipeline_session.models import (
    ConfigDefinition,
    Definitions,
    Issue,
    PipelineDefinition,
    PipelineDocument,
    PipelineInfo,
    PipelineIssues,
    StageDefinition,
    StageInstance,
    StageType,
    StageUIInfo,
)

STAGE_NAMES = {
    StageType.SOURCE: "dev_source",
    StageType.PROCESSOR: "dev_processor",
    StageType.TARGET: "trash",
}


def build_stage(
    instance_name: str,
    stage_type: StageType = StageType.PROCESSOR,
    input_lanes: list[str] | None = None,
    output_lanes: list[str] | None = None,
    stage_name: str | None = None,
) -> StageInstance:
    """Build a stage instance; non-targets get one default output lane."""
    if output_lanes is None:
        output_lanes = [] if stage_type == StageType.TARGET else [f"{instance_name}OutputLane"]
    return StageInstance(
        instance_name=instance_name,
        stage_name=stage_name or STAGE_NAMES[stage_type],
        stage_version="1",
        ui_info=StageUIInfo(stage_type=stage_type, label=instance_name),
        input_lanes=input_lanes or [],
        output_lanes=output_lanes,
    )


def build_document(
    name: str = "pipeline",
    stages: list[StageInstance] | None = None,
    stage_issues: dict[str, list[Issue]] | None = None,
    uuid: str | None = "v0",
) -> PipelineDocument:
    """Build a pipeline document."""
    return PipelineDocument(
        info=PipelineInfo(name=name, uuid=uuid),
        uuid=uuid,
        stages=stages or [],
        issues=PipelineIssues(stage_issues=stage_issues or {}),
    )


def open_lane_issue(lane: str) -> Issue:
    return Issue(message=f"VALIDATION_0011 - Instance has open lane '{lane}'")


class GatedBackend(InMemoryBackend):
    """
    In-memory backend recording every save request.

    Clearing ``gate`` holds save requests open until it is set again;
    ``fail_next_save`` makes the next save raise. ``max_active`` is the
    largest number of save requests seen open at the same time.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.gate = asyncio.Event()
        self.gate.set()
        self.saves: list[PipelineDocument] = []
        self.fail_next_save: Exception | None = None
        self.active = 0
        self.max_active = 0

    async def save_pipeline_config(self, name: str, document: PipelineDocument) -> PipelineDocument:
        self.saves.append(document.model_copy(deep=True))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await self.gate.wait()
            if self.fail_next_save is not None:
                error, self.fail_next_save = self.fail_next_save, None
                raise error
            return await super().save_pipeline_config(name, document)
        finally:
            self.active -= 1


# ============================================================================
# Catalog Fixtures
# ============================================================================


@pytest.fixture
def definitions() -> Definitions:
    """
    Provide stage definitions covering every stage type.

    Returns:
        Definitions: One source, processor, selector and target
    """
    return Definitions(
        pipeline=[
            PipelineDefinition(
                config_definitions=[ConfigDefinition(name="deliveryGuarantee", default_value="AT_LEAST_ONCE")]
            )
        ],
        stages=[
            StageDefinition(
                name="dev_source",
                version="1",
                type=StageType.SOURCE,
                label="Dev Source",
                config_definitions=[ConfigDefinition(name="batchSize", type="NUMBER", default_value=1000)],
            ),
            StageDefinition(
                name="dev_processor",
                version="1",
                type=StageType.PROCESSOR,
                label="Dev Processor",
            ),
            StageDefinition(
                name=SELECTOR_PROCESSOR_STAGE_NAME,
                version="1",
                type=StageType.PROCESSOR,
                label="Stream Selector",
            ),
            StageDefinition(
                name="trash",
                version="1",
                type=StageType.TARGET,
                label="Trash",
            ),
        ],
    )


@pytest.fixture
def source_definition(definitions: Definitions) -> StageDefinition:
    return definitions.stages[0]


@pytest.fixture
def target_definition(definitions: Definitions) -> StageDefinition:
    return definitions.stages[3]


# ============================================================================
# Document Fixtures
# ============================================================================


@pytest.fixture
def simple_document() -> PipelineDocument:
    """
    Provide a two-stage pipeline: src1 feeding trg1.

    Returns:
        PipelineDocument: Document named "pipeline"
    """
    return build_document(
        stages=[
            build_stage("src1", StageType.SOURCE, output_lanes=["src1OutputLane"]),
            build_stage("trg1", StageType.TARGET, input_lanes=["src1OutputLane"]),
        ]
    )


# ============================================================================
# Backend and Config Fixtures
# ============================================================================


@pytest.fixture
def backend(definitions: Definitions, simple_document: PipelineDocument) -> GatedBackend:
    """Provide a backend storing simple_document."""
    return GatedBackend(definitions=definitions, pipelines=[simple_document])


@pytest.fixture
def fast_config() -> SessionConfig:
    """
    Provide session settings with short timings.

    Returns:
        SessionConfig: Millisecond-scale intervals for tests
    """
    return SessionConfig(
        poll_interval=0.02,
        save_delay=0.05,
        watch_interval=0.01,
        validity_check_delay=0.01,
    )
