"""Base transform stage."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from pathlib import Path, PurePosixPath

from assetflow.errors import ToolError


@dataclass(frozen=True)
class Asset:
    """A file travelling through a pipeline.

    ``relative_path`` is the output path relative to the asset class's
    destination directory; stages that rename files change it.
    ``extra_files`` holds companion outputs (source maps) keyed the same way.
    """

    source: Path
    relative_path: PurePosixPath
    content: bytes
    source_map: str | None = None
    original_path: PurePosixPath | None = None
    extra_files: tuple[tuple[PurePosixPath, bytes], ...] = field(default=())

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def with_content(self, content: bytes | str) -> Asset:
        """Return a copy with new content."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        return replace(self, content=content)

    def with_path(self, relative_path: PurePosixPath) -> Asset:
        """Return a copy written under a different name."""
        return replace(self, relative_path=relative_path)

    def with_source_map(self, source_map: str | None) -> Asset:
        return replace(self, source_map=source_map)

    def with_original(self, original_path: PurePosixPath) -> Asset:
        """Return a copy remembering the un-revved name it replaces."""
        return replace(self, original_path=original_path)

    def with_extra_file(self, relative_path: PurePosixPath, content: bytes) -> Asset:
        return replace(self, extra_files=(*self.extra_files, (relative_path, content)))


class Stage(ABC):
    """One tool invocation: ``apply(asset) -> asset``, or raise ToolError.

    Options are bound at construction time so that a stage instance is a
    pure function of its input asset.
    """

    name: str

    @abstractmethod
    def apply(self, asset: Asset) -> Asset:
        """Transform one asset."""
        ...

    def fail(self, message: str, asset: Asset) -> ToolError:
        """Build a ToolError attributed to this stage and the asset's source."""
        return ToolError(self.name, message, asset.source)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class Copy(Stage):
    """Pass the file through unchanged."""

    name = "copy"

    def apply(self, asset: Asset) -> Asset:
        return asset
