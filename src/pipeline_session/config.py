"""
Session configuration.

Timing values are in seconds. Values normally come from the application's
preferences; ``from_file`` reads the same keys from a JSON file.
"""

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

SELECTOR_PROCESSOR_STAGE_NAME = "com_streamsets_pipeline_lib_stage_processor_selector_SelectorProcessor"


class SessionConfig(BaseModel):
    """Settings consumed by a pipeline editing session."""

    poll_interval: float = Field(
        default=2.0,
        description="Seconds between status/metrics fetches",
        gt=0,
    )
    save_delay: float = Field(
        default=1.0,
        description="Debounce delay between the last edit and the save request",
        ge=0,
    )
    watch_interval: float = Field(
        default=0.25,
        description="Seconds between document change checks",
        gt=0,
    )
    validity_check_delay: float = Field(
        default=1.0,
        description="Delay before open forms re-check validity after a selection change",
        ge=0,
    )
    dont_show_help: bool = Field(
        default=False,
        description="Hide the open-lane hint",
    )
    selector_stage_name: str = Field(
        default=SELECTOR_PROCESSOR_STAGE_NAME,
        description="Definition name of the selector processor stage",
    )

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionConfig":
        """
        Create a SessionConfig from a dictionary.

        Raises:
            ValueError: If a value is invalid
        """
        return cls.model_validate(data)

    @classmethod
    def from_file(cls, path: Path | str) -> "SessionConfig":
        """
        Load settings from a JSON file.

        Args:
            path: Path to a JSON object with SessionConfig keys

        Returns:
            SessionConfig instance

        Raises:
            OSError: If the file cannot be read
            ValueError: If the content is not valid JSON or a value is invalid
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data)
