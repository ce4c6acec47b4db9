"""
Backend interfaces and implementations for pipeline-session.

This module provides an abstraction layer over the pipeline agent, allowing
sessions to run against the REST API, a local directory, or memory.
"""

from .base import PipelineBackend
from .filesystem import FilesystemBackend
from .http import HttpBackend
from .memory import InMemoryBackend

__all__ = ["PipelineBackend", "FilesystemBackend", "HttpBackend", "InMemoryBackend"]
