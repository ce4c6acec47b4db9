"""
Tests for pipeline-session data models.
"""

import pytest
from pydantic import ValidationError

from conftest import build_document, build_stage
from pipeline_session.models import (
    Edge,
    Issue,
    PipelineDocument,
    PipelineIssues,
    PipelineMetrics,
    PipelineState,
    PipelineStatus,
    StageInstance,
    StageType,
)


class TestStageInstance:
    """Tests for StageInstance model."""

    def test_parse_camel_case_payload(self) -> None:
        """Test that wire payloads with camelCase keys are accepted."""
        stage = StageInstance.model_validate(
            {
                "instanceName": "src1",
                "library": "dev-lib",
                "stageName": "dev_source",
                "stageVersion": "1",
                "configuration": [{"name": "batchSize", "value": 10}],
                "uiInfo": {"stageType": "SOURCE", "label": "Dev", "xPos": 60, "yPos": 50},
                "inputLanes": [],
                "outputLanes": ["src1OutputLane"],
            }
        )
        assert stage.instance_name == "src1"
        assert stage.stage_type == StageType.SOURCE
        assert stage.ui_info.x_pos == 60
        assert stage.get_config_value("batchSize") == 10

    def test_to_wire_uses_camel_case(self) -> None:
        """Test that to_wire emits camelCase keys."""
        wire = build_stage("p1").to_wire()
        assert wire["instanceName"] == "p1"
        assert wire["outputLanes"] == ["p1OutputLane"]
        assert wire["uiInfo"]["stageType"] == "PROCESSOR"

    def test_ui_info_keeps_unknown_keys(self) -> None:
        """Test that extra UI metadata survives a round trip."""
        stage = StageInstance.model_validate(
            {
                "instanceName": "p1",
                "stageName": "dev_processor",
                "stageVersion": "1",
                "uiInfo": {"stageType": "PROCESSOR", "icon": "dev.png"},
            }
        )
        assert stage.to_wire()["uiInfo"]["icon"] == "dev.png"

    def test_input_lanes_deduplicated(self) -> None:
        """Test that repeated input lanes collapse to one."""
        stage = build_stage("p1", input_lanes=["a", "b", "a"])
        assert stage.input_lanes == ["a", "b"]

    def test_empty_instance_name_rejected(self) -> None:
        """Test that instance names must be non-empty."""
        with pytest.raises(ValidationError):
            build_stage("")

    def test_get_config_value_default(self) -> None:
        """Test default for a missing configuration value."""
        assert build_stage("p1").get_config_value("missing", 5) == 5


class TestIssues:
    """Tests for Issue and PipelineIssues."""

    def test_has_code_uses_structured_code(self) -> None:
        """Test that a structured code takes precedence over the message."""
        issue = Issue(message="mentions VALIDATION_0011", code="VALIDATION_0002")
        assert issue.has_code("VALIDATION_0002")
        assert not issue.has_code("VALIDATION_0011")

    def test_has_code_falls_back_to_message(self) -> None:
        """Test code detection from message text."""
        issue = Issue(message="VALIDATION_0011 - open lane")
        assert issue.has_code("VALIDATION_0011")

    def test_issue_count(self) -> None:
        """Test counting pipeline and stage issues."""
        issues = PipelineIssues(
            pipeline_issues=[Issue(message="a")],
            stage_issues={"s1": [Issue(message="b"), Issue(message="c")]},
        )
        assert issues.issue_count == 3


class TestPipelineDocument:
    """Tests for PipelineDocument."""

    def test_name_comes_from_info(self) -> None:
        """Test that the document name is its info name."""
        assert build_document(name="orders").name == "orders"

    def test_get_stage(self, simple_document: PipelineDocument) -> None:
        """Test lookup by instance name."""
        assert simple_document.get_stage("trg1").instance_name == "trg1"
        assert simple_document.get_stage("missing") is None

    def test_parse_full_payload(self) -> None:
        """Test parsing a document with issues keyed by instance name."""
        document = PipelineDocument.model_validate(
            {
                "info": {"name": "p", "lastModified": "2024-01-01"},
                "uuid": "abc",
                "stages": [],
                "issues": {
                    "pipelineIssues": [],
                    "stageIssues": {"src1": [{"message": "VALIDATION_0011", "lane": "x"}]},
                },
            }
        )
        assert document.info.last_modified == "2024-01-01"
        assert document.issues.stage_issues["src1"][0].lane == "x"


class TestRuntimeModels:
    """Tests for status and metrics snapshots."""

    def test_status_defaults_to_stopped(self) -> None:
        """Test default status."""
        status = PipelineStatus()
        assert status.state == PipelineState.STOPPED
        assert not status.is_running

    def test_status_running(self) -> None:
        """Test running status from wire form."""
        status = PipelineStatus.model_validate({"name": "p", "state": "RUNNING"})
        assert status.is_running

    def test_metrics_histograms(self) -> None:
        """Test that histogram means are parsed and extra keys kept."""
        metrics = PipelineMetrics.model_validate(
            {
                "version": "3.0.0",
                "histograms": {"stage.a.errorRecords.histogramM5": {"count": 4, "mean": 1.5, "p99": 2}},
            }
        )
        assert metrics.histograms["stage.a.errorRecords.histogramM5"].mean == 1.5


class TestEdge:
    """Tests for Edge."""

    def test_edge_id(self) -> None:
        """Test edge identifier format."""
        edge = Edge(source=build_stage("a"), target=build_stage("b"), output_lane="aOutputLane")
        assert edge.edge_id == "a:aOutputLane->b"
