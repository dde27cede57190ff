"""Per-class build pipelines."""

from assetflow.pipelines.base import (
    PER_FILE_CLASSES,
    Pipeline,
    PipelineResult,
    write_atomic,
)
from assetflow.pipelines.factory import build_pipeline, build_stages, stylesheet_urls

__all__ = [
    "PER_FILE_CLASSES",
    "Pipeline",
    "PipelineResult",
    "build_pipeline",
    "build_stages",
    "stylesheet_urls",
    "write_atomic",
]
