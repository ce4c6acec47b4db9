"""
Abstract base class for pipeline backends.

Defines the interface that all backends must implement.
"""

from abc import ABC, abstractmethod

from ..models import Definitions, PipelineDocument, PipelineInfo, PipelineMetrics, PipelineStatus


class PipelineBackend(ABC):
    """
    Abstract base class for pipeline backends.

    All backends must implement these methods to serve definitions,
    pipeline documents and runtime state to an editing session.
    """

    @abstractmethod
    async def get_definitions(self) -> Definitions:
        """
        Fetch pipeline and stage definitions.

        Raises:
            BackendError: If the request fails
        """
        pass

    @abstractmethod
    async def get_pipelines(self) -> list[PipelineInfo]:
        """
        List stored pipelines.

        Raises:
            BackendError: If the request fails
        """
        pass

    @abstractmethod
    async def get_pipeline_status(self) -> PipelineStatus:
        """
        Fetch the status of the pipeline managed by the backend.

        Raises:
            BackendError: If the request fails
        """
        pass

    @abstractmethod
    async def get_pipeline_metrics(self) -> PipelineMetrics:
        """
        Fetch the metric registry of the running pipeline.

        Raises:
            BackendError: If the request fails
        """
        pass

    @abstractmethod
    async def get_pipeline_config(self, name: str) -> PipelineDocument:
        """
        Fetch a pipeline document.

        Args:
            name: Pipeline name

        Raises:
            BackendError: If the request fails or the pipeline is unknown
        """
        pass

    @abstractmethod
    async def save_pipeline_config(self, name: str, document: PipelineDocument) -> PipelineDocument:
        """
        Store a pipeline document.

        The returned document carries the version token (uuid) assigned by
        the backend.

        Args:
            name: Pipeline name
            document: Document to store

        Returns:
            The stored document

        Raises:
            SaveConflictError: If ``document.uuid`` is not the stored version
            BackendError: If the request fails
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass
