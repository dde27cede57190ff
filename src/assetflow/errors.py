"""Exception types shared across assetflow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class AssetflowError(Exception):
    """Base class for all assetflow errors."""


class ConfigError(AssetflowError):
    """Raised when the path configuration is missing or invalid."""


class GraphReason(str, Enum):
    """Why a task graph was rejected."""

    CYCLE = "cycle"
    MISSING_DEPENDENCY = "missing_dependency"
    DUPLICATE = "duplicate"


class GraphError(AssetflowError):
    """Raised when the task graph is malformed."""

    def __init__(self, reason: GraphReason, message: str) -> None:
        self.reason = reason
        super().__init__(message)


class BuildError(AssetflowError):
    """Raised when a task fails."""


class ToolError(BuildError):
    """Raised when a single transform stage fails on a single file."""

    def __init__(self, stage: str, message: str, source_path: Path | None = None) -> None:
        self.stage = stage
        self.message = message
        self.source_path = source_path
        location = f" ({source_path})" if source_path is not None else ""
        super().__init__(f"[{stage}] {message}{location}")
