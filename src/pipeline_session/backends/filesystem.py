"""
Filesystem-based backend implementation.

Stores each pipeline as a JSON file in a directory. Definitions, status and
metrics are read from ``definitions.json``, ``status.json`` and
``metrics.json`` in the same directory when present.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

import aiofiles

from ..exceptions import BackendError, SaveConflictError
from ..models import Definitions, PipelineDocument, PipelineInfo, PipelineMetrics, PipelineStatus
from .base import PipelineBackend

logger = logging.getLogger(__name__)

DEFINITIONS_FILE = "definitions.json"
STATUS_FILE = "status.json"
METRICS_FILE = "metrics.json"
PIPELINES_DIR = "pipelines"


class FilesystemBackend(PipelineBackend):
    """
    Filesystem backend using JSON files.

    Writes are serialized with an asyncio.Lock so the version check and the
    write happen atomically with respect to other saves.
    """

    def __init__(self, base_dir: str = "./pipeline-store") -> None:
        """
        Initialize filesystem backend.

        Args:
            base_dir: Directory holding the JSON files
        """
        self.base_dir = Path(base_dir)
        self._lock = asyncio.Lock()

    def _pipeline_path(self, name: str) -> Path:
        return self.base_dir / PIPELINES_DIR / f"{name}.json"

    async def _read_json(self, path: Path) -> Any:
        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
                return json.loads(await f.read())
        except OSError as e:
            raise BackendError(f"Failed to read {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise BackendError(f"Malformed JSON in {path}: {e}") from e

    async def _write_json(self, path: Path, data: Any) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, mode="w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2, ensure_ascii=False))
        except OSError as e:
            raise BackendError(f"Failed to write {path}: {e}") from e

    async def get_definitions(self) -> Definitions:
        path = self.base_dir / DEFINITIONS_FILE
        if not path.exists():
            return Definitions()
        return Definitions.model_validate(await self._read_json(path))

    async def get_pipelines(self) -> list[PipelineInfo]:
        pipelines_dir = self.base_dir / PIPELINES_DIR
        if not pipelines_dir.exists():
            return []

        infos = []
        for path in sorted(pipelines_dir.glob("*.json")):
            data = await self._read_json(path)
            infos.append(PipelineInfo.model_validate(data["info"]))
        return infos

    async def get_pipeline_status(self) -> PipelineStatus:
        path = self.base_dir / STATUS_FILE
        if not path.exists():
            return PipelineStatus()
        return PipelineStatus.model_validate(await self._read_json(path))

    async def get_pipeline_metrics(self) -> PipelineMetrics:
        path = self.base_dir / METRICS_FILE
        if not path.exists():
            return PipelineMetrics()
        return PipelineMetrics.model_validate(await self._read_json(path))

    async def get_pipeline_config(self, name: str) -> PipelineDocument:
        path = self._pipeline_path(name)
        if not path.exists():
            raise BackendError(f"Pipeline '{name}' not found", status_code=404)
        return PipelineDocument.model_validate(await self._read_json(path))

    async def save_pipeline_config(self, name: str, document: PipelineDocument) -> PipelineDocument:
        async with self._lock:
            path = self._pipeline_path(name)
            if path.exists():
                stored = PipelineDocument.model_validate(await self._read_json(path))
                if stored.uuid != document.uuid:
                    raise SaveConflictError(
                        f"Pipeline '{name}' was modified (stored {stored.uuid}, got {document.uuid})",
                        status_code=409,
                    )

            saved = document.model_copy(deep=True)
            saved.uuid = uuid4().hex
            saved.info.uuid = saved.uuid
            saved.info.last_modified = datetime.now(timezone.utc).isoformat()
            await self._write_json(path, saved.to_wire())
            logger.debug(f"Saved pipeline '{name}' to {path}")
            return saved
