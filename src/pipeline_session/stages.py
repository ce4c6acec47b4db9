"""
Factory for new stage instances.
"""

import logging
import re

from .models import (
    ConfigValue,
    OpenLane,
    PipelineDocument,
    StageDefinition,
    StageInstance,
    StageType,
    StageUIInfo,
)

logger = logging.getLogger(__name__)

OUTPUT_LANE_SUFFIX = "OutputLane"


def _instance_name_base(definition: StageDefinition) -> str:
    base = re.sub(r"[^0-9A-Za-z]", "", definition.label)
    return base or definition.name


def new_instance_name(definition: StageDefinition, document: PipelineDocument) -> str:
    """
    Generate an instance name not used by any stage of the document.

    Args:
        definition: Definition the new stage is created from
        document: Pipeline the stage will be added to

    Returns:
        Name of the form ``<Label><n>`` with the smallest free ``n``
    """
    base = _instance_name_base(definition)
    existing = {stage.instance_name for stage in document.stages}
    counter = 1
    while f"{base}{counter}" in existing:
        counter += 1
    return f"{base}{counter}"


def create_stage_instance(
    definition: StageDefinition,
    document: PipelineDocument,
    open_lane: OpenLane | None = None,
) -> StageInstance:
    """
    Create a stage instance from a catalog definition.

    Sources and processors get one default output lane named after the
    instance; targets get none. When ``open_lane`` is given and the new stage
    can consume input, the lane is wired into its input lanes.

    Args:
        definition: Catalog definition of the stage
        document: Pipeline the stage will be added to (used for naming)
        open_lane: Optional unconsumed lane to attach the stage to

    Returns:
        New StageInstance, not yet added to the document
    """
    instance_name = new_instance_name(definition, document)

    output_lanes = []
    if definition.type != StageType.TARGET:
        output_lanes.append(f"{instance_name}{OUTPUT_LANE_SUFFIX}")

    input_lanes = []
    if open_lane is not None and open_lane.lane_name and definition.type != StageType.SOURCE:
        input_lanes.append(open_lane.lane_name)

    stage = StageInstance(
        instance_name=instance_name,
        library=definition.library,
        stage_name=definition.name,
        stage_version=definition.version,
        configuration=[
            ConfigValue(name=config.name, value=config.default_value)
            for config in definition.config_definitions
        ],
        ui_info=StageUIInfo(
            stage_type=definition.type,
            label=definition.label,
            description=definition.description,
        ),
        input_lanes=input_lanes,
        output_lanes=output_lanes,
    )
    logger.debug(f"Created stage instance '{instance_name}' from '{definition.name}'")
    return stage
