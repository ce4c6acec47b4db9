"""
Stage catalog built from the backend's definitions.

The catalog resolves a stage instance's (stage_name, stage_version) to the
definition used to render its configuration form, and groups definitions
into the palettes offered by the stage library panel.
"""

from .config import SELECTOR_PROCESSOR_STAGE_NAME
from .exceptions import StageDefinitionNotFoundError
from .models import Definitions, PipelineDefinition, StageDefinition, StageInstance, StageType


class StageCatalog:
    """Lookup of stage and pipeline definitions."""

    def __init__(
        self,
        definitions: Definitions,
        selector_stage_name: str = SELECTOR_PROCESSOR_STAGE_NAME,
    ) -> None:
        self.pipeline_definition = (
            definitions.pipeline[0] if definitions.pipeline else PipelineDefinition()
        )
        self.stages = list(definitions.stages)
        self._selector_stage_name = selector_stage_name
        self._by_key = {(stage.name, stage.version): stage for stage in self.stages}

    def __len__(self) -> int:
        return len(self.stages)

    def find_stage_definition(self, stage_name: str, stage_version: str) -> StageDefinition | None:
        return self._by_key.get((stage_name, stage_version))

    def get_stage_definition(self, stage_name: str, stage_version: str) -> StageDefinition:
        """
        Resolve a definition by name and version.

        Raises:
            StageDefinitionNotFoundError: If the catalog has no such definition
        """
        definition = self.find_stage_definition(stage_name, stage_version)
        if definition is None:
            raise StageDefinitionNotFoundError(stage_name, stage_version)
        return definition

    def definition_for(self, stage: StageInstance) -> StageDefinition:
        return self.get_stage_definition(stage.stage_name, stage.stage_version)

    @property
    def sources(self) -> list[StageDefinition]:
        return [stage for stage in self.stages if stage.type == StageType.SOURCE]

    @property
    def processors(self) -> list[StageDefinition]:
        return [
            stage
            for stage in self.stages
            if stage.type == StageType.PROCESSOR and stage.name != self._selector_stage_name
        ]

    @property
    def selector_processors(self) -> list[StageDefinition]:
        return [
            stage
            for stage in self.stages
            if stage.type == StageType.PROCESSOR and stage.name == self._selector_stage_name
        ]

    @property
    def targets(self) -> list[StageDefinition]:
        return [stage for stage in self.stages if stage.type == StageType.TARGET]
