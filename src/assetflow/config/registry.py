"""Path registry: asset class -> source glob and destination directory."""

from __future__ import annotations

import re
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path, PurePosixPath

from assetflow.config.schema import AssetClass, PathSpec
from assetflow.errors import ConfigError

_WILDCARD_CHARS = frozenset("*?[")


def glob_base(pattern: str) -> PurePosixPath:
    """Return the leading part of a glob that contains no wildcards.

    ``src/img/**/*`` -> ``src/img``; ``src/js/common.js`` -> ``src/js``.
    """
    parts = PurePosixPath(pattern).parts
    base: list[str] = []
    for part in parts[:-1]:
        if _WILDCARD_CHARS & set(part):
            break
        base.append(part)
    return PurePosixPath(*base) if base else PurePosixPath(".")


@lru_cache(maxsize=128)
def _compile_glob(pattern: str) -> re.Pattern[str]:
    regex = ""
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            regex += "(?:.*/)?"
            i += 3
        elif pattern.startswith("**", i):
            regex += ".*"
            i += 2
        elif pattern[i] == "*":
            regex += "[^/]*"
            i += 1
        elif pattern[i] == "?":
            regex += "[^/]"
            i += 1
        elif pattern[i] == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                regex += re.escape(pattern[i])
                i += 1
            else:
                chars = pattern[i + 1 : end]
                if chars.startswith("!"):
                    chars = "^" + chars[1:]
                regex += f"[{chars}]"
                i = end + 1
        else:
            regex += re.escape(pattern[i])
            i += 1
    return re.compile(regex + r"\Z")


def match_glob(path: str, pattern: str) -> bool:
    """Match a relative POSIX path against a glob.

    ``*`` stays within one directory; ``**/`` matches zero or more directories.
    """
    path = path.removeprefix("./")
    pattern = pattern.removeprefix("./")
    return _compile_glob(pattern).match(path) is not None


class PathRegistry:
    """Maps every asset class to exactly one PathSpec.

    Construction fails with ConfigError if any asset class is missing, so
    an incomplete layout is caught before any task runs.
    """

    def __init__(self, paths: Mapping[AssetClass, PathSpec], root: Path) -> None:
        missing = [c.value for c in AssetClass if c not in paths]
        if missing:
            raise ConfigError(
                f"No path spec configured for asset class(es): {', '.join(missing)}"
            )
        self._paths = dict(paths)
        self.root = root

    def resolve(self, asset_class: AssetClass) -> PathSpec:
        """Return the PathSpec for an asset class."""
        try:
            return self._paths[asset_class]
        except KeyError:
            raise ConfigError(f"Unregistered asset class: {asset_class!r}") from None

    def sources(self, asset_class: AssetClass) -> list[Path]:
        """Return source files matching the class's source glob, sorted."""
        spec = self.resolve(asset_class)
        pattern = spec.source_glob.removeprefix("./")
        return sorted(p for p in self.root.glob(pattern) if p.is_file())

    def dest_dir(self, asset_class: AssetClass) -> Path:
        return self.root / self.resolve(asset_class).dest_dir

    def relative_source(self, asset_class: AssetClass, source: Path) -> PurePosixPath:
        """Path of a source file relative to its glob base."""
        pattern = self.resolve(asset_class).source_glob.removeprefix("./")
        base = self.root / glob_base(pattern)
        return PurePosixPath(source.relative_to(base).as_posix())

    def destination_for(self, asset_class: AssetClass, source: Path) -> Path:
        """Output path of a source file before any stage renames it."""
        return self.dest_dir(asset_class) / self.relative_source(asset_class, source)

    def classify(self, path: Path) -> AssetClass | None:
        """Return the asset class whose watch glob matches `path`, if any."""
        try:
            relative = path.resolve().relative_to(self.root.resolve())
        except ValueError:
            return None
        posix = relative.as_posix()
        for asset_class in AssetClass:
            if match_glob(posix, self._paths[asset_class].effective_watch_glob):
                return asset_class
        return None

    def watch_roots(self) -> list[Path]:
        """Directories the watcher must observe, deduplicated."""
        roots: set[Path] = set()
        for spec in self._paths.values():
            base = self.root / glob_base(spec.effective_watch_glob.removeprefix("./"))
            roots.add(base)
        # Drop roots nested inside another root
        ordered = sorted(roots, key=lambda p: len(p.parts))
        result: list[Path] = []
        for candidate in ordered:
            if not any(candidate.is_relative_to(r) for r in result):
                result.append(candidate)
        return result
