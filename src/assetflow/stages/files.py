"""Stages that change how a file is named or accompanied."""

from __future__ import annotations

import hashlib
import json
import time
from collections.abc import Callable
from typing import Literal

from assetflow.sourcemap import inline_comment, url_comment
from assetflow.stages.base import Asset, Stage

HASH_LENGTH = 10


def content_hash(content: bytes, length: int = HASH_LENGTH) -> str:
    """Short SHA-256 hex digest used for cache-busting tokens."""
    return hashlib.sha256(content).hexdigest()[:length]


class Rename(Stage):
    """Insert a suffix before the extension: styles.css -> styles.min.css."""

    name = "rename"

    def __init__(self, suffix: str = ".min") -> None:
        self.suffix = suffix

    def apply(self, asset: Asset) -> Asset:
        path = asset.relative_path
        return asset.with_path(path.with_name(f"{path.stem}{self.suffix}{path.suffix}"))


class EmitSourceMap(Stage):
    """Write the source map captured by an earlier stage.

    ``inline=True`` appends a data-URL comment; otherwise the map becomes a
    companion ``<name>.map`` file next to the output. Assets without a
    captured map pass through.
    """

    name = "sourcemap"

    def __init__(self, inline: bool = False) -> None:
        self.inline = inline

    def apply(self, asset: Asset) -> Asset:
        if asset.source_map is None:
            return asset

        path = asset.relative_path
        is_css = path.suffix == ".css"
        data = json.loads(asset.source_map)
        data["file"] = path.name
        source_map = json.dumps(data, separators=(",", ":"))
        body = asset.text.rstrip("\n") + "\n"

        if self.inline:
            return asset.with_content(body + inline_comment(source_map, css=is_css) + "\n")

        map_path = path.with_name(path.name + ".map")
        return asset.with_content(
            body + url_comment(map_path.name, css=is_css) + "\n"
        ).with_extra_file(map_path, source_map.encode("utf-8"))


class CacheBust(Stage):
    """Append a content hash or timestamp to the file name.

    ``styles.min.css`` becomes ``styles.min-<token>.css``. The original
    name is kept on the asset so the pipeline can record the revision once
    the file is written.
    """

    name = "cache-bust"

    def __init__(
        self,
        kind: Literal["hash", "timestamp"] = "hash",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.kind = kind
        self.clock = clock

    def token(self, asset: Asset) -> str:
        if self.kind == "timestamp":
            return str(int(self.clock()))
        return content_hash(asset.content)

    def apply(self, asset: Asset) -> Asset:
        path = asset.relative_path
        revved = path.with_name(f"{path.stem}-{self.token(asset)}{path.suffix}")
        return asset.with_path(revved).with_original(path)
