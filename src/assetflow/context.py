"""Process-wide build state shared by tasks and pipelines."""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

from assetflow.cache import CACHE_FILENAME, ImageCache
from assetflow.config.registry import PathRegistry
from assetflow.config.schema import DEFAULT_CONFIG, AssetClass, AssetflowConfig
from assetflow.notifier import Notifier
from assetflow.revisions import MANIFEST_FILENAME, RevisionManifest


@dataclass
class BuildContext:
    """Everything a pipeline needs, constructed once at startup."""

    config: AssetflowConfig
    root: Path
    registry: PathRegistry
    notifier: Notifier
    image_cache: ImageCache
    revisions: RevisionManifest
    clock: Callable[[], float] = field(default=time.time)

    @classmethod
    def create(
        cls,
        config: AssetflowConfig,
        root: Path,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> BuildContext:
        """Build the context. Raises ConfigError if the path layout is incomplete."""
        root = root.resolve()
        registry = PathRegistry(config.paths, root)
        cache_dir = root / (config.cache_dir or DEFAULT_CONFIG.cache_dir or ".assetflow")
        dest_root = root / (config.dest_root or DEFAULT_CONFIG.dest_root or "dist")
        return cls(
            config=config,
            root=root,
            registry=registry,
            notifier=notifier or Notifier(desktop=bool(config.notifications)),
            image_cache=ImageCache(cache_dir / CACHE_FILENAME),
            revisions=RevisionManifest(dest_root / MANIFEST_FILENAME),
            clock=clock,
        )

    @property
    def dest_root(self) -> Path:
        return self.revisions.path.parent

    def url_for(self, asset_class: AssetClass, relative_path: PurePosixPath) -> str:
        """URL of an output file relative to the destination root."""
        dest_dir = self.registry.dest_dir(asset_class)
        prefix = os.path.relpath(dest_dir, self.dest_root)
        return (PurePosixPath(Path(prefix).as_posix()) / relative_path).as_posix()

    def option(self, name: str) -> Any:
        """Config value with the built-in default as fallback."""
        value = getattr(self.config, name)
        return value if value is not None else getattr(DEFAULT_CONFIG, name)
