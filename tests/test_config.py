"""
Tests for session configuration.
"""

import json
from pathlib import Path

import pytest

from pipeline_session.config import SELECTOR_PROCESSOR_STAGE_NAME, SessionConfig


class TestSessionConfig:
    """Tests for SessionConfig."""

    def test_defaults(self) -> None:
        config = SessionConfig()
        assert config.poll_interval == 2.0
        assert config.save_delay == 1.0
        assert config.validity_check_delay == 1.0
        assert config.dont_show_help is False
        assert config.selector_stage_name == SELECTOR_PROCESSOR_STAGE_NAME

    def test_from_dict_ignores_unknown_keys(self) -> None:
        """Test that unrelated preference keys are ignored."""
        config = SessionConfig.from_dict({"poll_interval": 5, "theme": "dark"})
        assert config.poll_interval == 5.0

    def test_invalid_interval_rejected(self) -> None:
        """Test that a non-positive poll interval fails validation."""
        with pytest.raises(ValueError):
            SessionConfig.from_dict({"poll_interval": 0})

    def test_from_file(self, tmp_path: Path) -> None:
        """Test loading settings from a JSON file."""
        path = tmp_path / "session.json"
        path.write_text(json.dumps({"save_delay": 0.5, "dont_show_help": True}))

        config = SessionConfig.from_file(path)

        assert config.save_delay == 0.5
        assert config.dont_show_help is True

    def test_from_file_missing(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            SessionConfig.from_file(tmp_path / "missing.json")
