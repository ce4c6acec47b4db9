"""
In-memory backend implementation.

Keeps everything in dictionaries; useful for tests, demos and embedding the
editor without a server. Saves are version-checked the same way a server
does it.
"""

from datetime import datetime, timezone
from uuid import uuid4

from ..exceptions import BackendError, SaveConflictError
from ..models import Definitions, PipelineDocument, PipelineInfo, PipelineMetrics, PipelineStatus
from .base import PipelineBackend


class InMemoryBackend(PipelineBackend):
    """Backend storing pipelines in memory."""

    def __init__(
        self,
        definitions: Definitions | None = None,
        pipelines: list[PipelineDocument] | None = None,
        status: PipelineStatus | None = None,
        metrics: PipelineMetrics | None = None,
    ) -> None:
        self.definitions = definitions or Definitions()
        self.status = status or PipelineStatus()
        self.metrics = metrics or PipelineMetrics()
        self._pipelines: dict[str, PipelineDocument] = {}
        for document in pipelines or []:
            self.put_pipeline(document)

    def put_pipeline(self, document: PipelineDocument) -> PipelineDocument:
        """Store a document directly, assigning a uuid if it has none."""
        stored = document.model_copy(deep=True)
        if stored.uuid is None:
            stored.uuid = uuid4().hex
        stored.info.uuid = stored.uuid
        self._pipelines[stored.name] = stored
        return stored.model_copy(deep=True)

    async def get_definitions(self) -> Definitions:
        return self.definitions.model_copy(deep=True)

    async def get_pipelines(self) -> list[PipelineInfo]:
        return [document.info.model_copy() for document in self._pipelines.values()]

    async def get_pipeline_status(self) -> PipelineStatus:
        return self.status.model_copy()

    async def get_pipeline_metrics(self) -> PipelineMetrics:
        return self.metrics.model_copy(deep=True)

    async def get_pipeline_config(self, name: str) -> PipelineDocument:
        if name not in self._pipelines:
            raise BackendError(f"Pipeline '{name}' not found", status_code=404)
        return self._pipelines[name].model_copy(deep=True)

    async def save_pipeline_config(self, name: str, document: PipelineDocument) -> PipelineDocument:
        stored = self._pipelines.get(name)
        if stored is not None and stored.uuid != document.uuid:
            raise SaveConflictError(
                f"Pipeline '{name}' was modified (stored {stored.uuid}, got {document.uuid})",
                status_code=409,
            )

        saved = document.model_copy(deep=True)
        saved.uuid = uuid4().hex
        saved.info.uuid = saved.uuid
        saved.info.last_modified = datetime.now(timezone.utc).isoformat()
        self._pipelines[name] = saved
        return saved.model_copy(deep=True)
