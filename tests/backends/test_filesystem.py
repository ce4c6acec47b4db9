"""
Tests for FilesystemBackend storage implementation.
"""

import json
from pathlib import Path

import pytest

from conftest import build_stage
from pipeline_session.backends import FilesystemBackend
from pipeline_session.exceptions import BackendError, SaveConflictError
from pipeline_session.models import Definitions, PipelineDocument, PipelineState


class TestFilesystemBackend:
    """Tests for FilesystemBackend."""

    @pytest.fixture
    def backend(self, tmp_path: Path) -> FilesystemBackend:
        """Create a FilesystemBackend for testing."""
        return FilesystemBackend(base_dir=str(tmp_path))

    @pytest.mark.asyncio
    async def test_empty_directory(self, backend: FilesystemBackend) -> None:
        """Test defaults when nothing has been written."""
        assert await backend.get_pipelines() == []
        assert (await backend.get_definitions()).stages == []
        assert (await backend.get_pipeline_status()).state == PipelineState.STOPPED
        assert (await backend.get_pipeline_metrics()).histograms == {}

    @pytest.mark.asyncio
    async def test_save_and_read(self, backend: FilesystemBackend, simple_document: PipelineDocument) -> None:
        """Test that a saved document can be read back."""
        simple_document.uuid = None
        saved = await backend.save_pipeline_config("pipeline", simple_document)

        loaded = await backend.get_pipeline_config("pipeline")
        assert loaded.uuid == saved.uuid
        assert [stage.instance_name for stage in loaded.stages] == ["src1", "trg1"]
        assert [info.name for info in await backend.get_pipelines()] == ["pipeline"]

    @pytest.mark.asyncio
    async def test_file_uses_camel_case(
        self, backend: FilesystemBackend, tmp_path: Path, simple_document: PipelineDocument
    ) -> None:
        """Test the on-disk format."""
        simple_document.uuid = None
        await backend.save_pipeline_config("pipeline", simple_document)

        data = json.loads((tmp_path / "pipelines" / "pipeline.json").read_text())
        assert data["stages"][0]["instanceName"] == "src1"

    @pytest.mark.asyncio
    async def test_stale_save_conflicts(
        self, backend: FilesystemBackend, simple_document: PipelineDocument
    ) -> None:
        """Test optimistic locking on the stored version token."""
        simple_document.uuid = None
        saved = await backend.save_pipeline_config("pipeline", simple_document)
        saved.stages.append(build_stage("p1"))
        await backend.save_pipeline_config("pipeline", saved)

        with pytest.raises(SaveConflictError):
            await backend.save_pipeline_config("pipeline", saved)

    @pytest.mark.asyncio
    async def test_missing_pipeline(self, backend: FilesystemBackend) -> None:
        with pytest.raises(BackendError) as exc_info:
            await backend.get_pipeline_config("missing")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_reads_runtime_files(
        self, backend: FilesystemBackend, tmp_path: Path, definitions: Definitions
    ) -> None:
        """Test definitions, status and metrics files."""
        (tmp_path / "definitions.json").write_text(json.dumps(definitions.to_wire()))
        (tmp_path / "status.json").write_text(json.dumps({"name": "pipeline", "state": "RUNNING"}))
        (tmp_path / "metrics.json").write_text(
            json.dumps({"histograms": {"stage.src1.errorRecords.histogramM5": {"mean": 2.5}}})
        )

        assert len((await backend.get_definitions()).stages) == 4
        assert (await backend.get_pipeline_status()).is_running
        metrics = await backend.get_pipeline_metrics()
        assert metrics.histograms["stage.src1.errorRecords.histogramM5"].mean == 2.5

    @pytest.mark.asyncio
    async def test_malformed_file(self, backend: FilesystemBackend, tmp_path: Path) -> None:
        """Test that corrupt JSON surfaces as a backend error."""
        (tmp_path / "status.json").write_text("{not json")
        with pytest.raises(BackendError, match="Malformed JSON"):
            await backend.get_pipeline_status()
