"""
HTTP backend talking to the pipeline agent's REST API.
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ..exceptions import BackendError, SaveConflictError
from ..models import Definitions, PipelineDocument, PipelineInfo, PipelineMetrics, PipelineStatus
from .base import PipelineBackend

logger = logging.getLogger(__name__)

API_PREFIX = "/rest/v1"
DEFAULT_TIMEOUT = 10.0


class HttpBackend(PipelineBackend):
    """
    REST client for the pipeline agent.

    Transport failures and non-2xx responses raise BackendError; HTTP 409 on
    save raises SaveConflictError.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """
        Initialize the HTTP backend.

        Args:
            base_url: Server root, e.g. ``http://localhost:8080``
            client: Pre-configured client (auth, transport); created if None
            timeout: Request timeout in seconds for a created client
        """
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        url = f"{API_PREFIX}{path}"
        try:
            response = await self._client.request(method, url, json=json)
        except httpx.HTTPError as e:
            raise BackendError(f"{method} {url} failed: {e}") from e

        if response.status_code == 409:
            raise SaveConflictError(
                f"{method} {url} rejected: {response.text}", status_code=response.status_code
            )
        if response.is_error:
            raise BackendError(
                f"{method} {url} returned {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"{method} {url} returned invalid JSON: {e}") from e

    async def _fetch(self, model: Any, method: str, path: str, json: Any = None) -> Any:
        data = await self._request(method, path, json=json)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise BackendError(f"Unexpected response from {path}: {e}") from e

    async def get_definitions(self) -> Definitions:
        return await self._fetch(Definitions, "GET", "/definitions")

    async def get_pipelines(self) -> list[PipelineInfo]:
        data = await self._request("GET", "/pipeline-library")
        try:
            return [PipelineInfo.model_validate(item) for item in data]
        except (TypeError, ValidationError) as e:
            raise BackendError(f"Unexpected response from /pipeline-library: {e}") from e

    async def get_pipeline_status(self) -> PipelineStatus:
        return await self._fetch(PipelineStatus, "GET", "/pipeline/status")

    async def get_pipeline_metrics(self) -> PipelineMetrics:
        return await self._fetch(PipelineMetrics, "GET", "/pipeline/metrics")

    async def get_pipeline_config(self, name: str) -> PipelineDocument:
        return await self._fetch(PipelineDocument, "GET", f"/pipeline-library/{quote(name)}")

    async def save_pipeline_config(self, name: str, document: PipelineDocument) -> PipelineDocument:
        logger.debug(f"Saving pipeline '{name}' (uuid {document.uuid})")
        return await self._fetch(
            PipelineDocument,
            "POST",
            f"/pipeline-library/{quote(name)}",
            json=document.to_wire(),
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
