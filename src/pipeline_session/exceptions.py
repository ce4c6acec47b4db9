"""
Exceptions for pipeline-session package.

Defines all custom exceptions used throughout the package.
"""


class PipelineSessionError(Exception):
    """Base exception for pipeline session errors."""

    pass


class BackendError(PipelineSessionError):
    """Raised when a call to the pipeline backend fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SaveConflictError(BackendError):
    """Raised when a save is rejected because the stored version moved on."""

    pass


class StageDefinitionNotFoundError(PipelineSessionError):
    """Raised when a stage references a definition missing from the catalog."""

    def __init__(self, stage_name: str, stage_version: str) -> None:
        super().__init__(
            f"No stage definition for '{stage_name}' version '{stage_version}'"
        )
        self.stage_name = stage_name
        self.stage_version = stage_version


class StageNotFoundError(PipelineSessionError):
    """Raised when a stage instance is not found in the pipeline."""

    pass


class DuplicateStageError(PipelineSessionError):
    """Raised when attempting to add a stage with an existing instance name."""

    pass


class NoPipelineLoadedError(PipelineSessionError):
    """Raised when an editing operation runs before a pipeline is loaded."""

    pass


class SessionClosedError(PipelineSessionError):
    """Raised when a closed session is used."""

    pass
