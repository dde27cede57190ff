"""Transform stages: one tool invocation each."""

from assetflow.stages.base import Asset, Copy, Stage
from assetflow.stages.css import CompileSass, MergeMediaQueries, MinifyCss
from assetflow.stages.external import ExternalCommand
from assetflow.stages.files import CacheBust, EmitSourceMap, Rename, content_hash
from assetflow.stages.html import InlineCriticalCss, MinifyHtml, RewriteAssetReferences
from assetflow.stages.images import OptimizeImage
from assetflow.stages.includes import (
    FILE_INCLUDE_DIRECTIVE,
    RIGGER_DIRECTIVE,
    AssembleIncludes,
)
from assetflow.stages.js import MinifyJs

__all__ = [
    "FILE_INCLUDE_DIRECTIVE",
    "RIGGER_DIRECTIVE",
    "AssembleIncludes",
    "Asset",
    "CacheBust",
    "CompileSass",
    "Copy",
    "EmitSourceMap",
    "ExternalCommand",
    "InlineCriticalCss",
    "MergeMediaQueries",
    "MinifyCss",
    "MinifyHtml",
    "MinifyJs",
    "OptimizeImage",
    "Rename",
    "RewriteAssetReferences",
    "Stage",
    "content_hash",
]
