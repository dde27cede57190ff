"""Pipeline: ordered stages for one asset class in one build mode."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from threading import Lock

from assetflow.config.schema import AssetClass, BuildMode
from assetflow.context import BuildContext
from assetflow.errors import ToolError
from assetflow.stages.base import Asset, Stage

logger = logging.getLogger(__name__)

# Classes whose outputs map one-to-one to sources; the rest rebuild their
# entry files on any change because partials are inlined into them.
PER_FILE_CLASSES = frozenset({AssetClass.IMG, AssetClass.FONTS, AssetClass.MANIFEST})


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pipeline run."""

    asset_class: AssetClass
    mode: BuildMode
    written: frozenset[Path] = frozenset()
    errors: tuple[ToolError, ...] = ()
    skipped: int = 0
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class _Outcome:
    written: set[Path] = field(default_factory=set)
    errors: list[ToolError] = field(default_factory=list)
    skipped: int = 0


def write_atomic(target: Path, content: bytes) -> bool:
    """Write `content` to `target` via a temp file and rename.

    Returns False (and leaves the file alone) if it already holds exactly
    these bytes, so rebuilding unchanged sources does not touch the disk.
    """
    if target.is_file() and target.read_bytes() == content:
        return False
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return True


class Pipeline:
    """Runs every source file of an asset class through the stages in order.

    The first failing stage short-circuits that file only: the error is
    recorded and reported, and the remaining files still build. Runs of the
    same pipeline are serialized so the latest source state lands last.
    """

    def __init__(
        self,
        asset_class: AssetClass,
        mode: BuildMode,
        stages: Sequence[Stage],
        context: BuildContext,
    ) -> None:
        self.asset_class = asset_class
        self.mode = mode
        self.stages = tuple(stages)
        self.context = context
        self._lock = Lock()
        # Output files of each built source, for removal when the source goes away.
        self._outputs: dict[Path, set[Path]] = {}

    @property
    def name(self) -> str:
        return f"{self.mode.prefix}:{self.asset_class.value}"

    @property
    def dest_dir(self) -> Path:
        return self.context.registry.dest_dir(self.asset_class)

    def run(self, changed: Iterable[Path] | None = None) -> PipelineResult:
        """Build the asset class.

        Args:
            changed: Paths reported by the watcher. Outputs of deleted sources
                are removed. For per-file classes only the changed paths are
                rebuilt; otherwise every entry file is rebuilt.
        """
        with self._lock:
            start = time.monotonic()
            outcome = _Outcome()
            sources = self.context.registry.sources(self.asset_class)

            if changed is not None:
                changed_set = {p.resolve() for p in changed}
                self._remove_deleted(changed_set, outcome)
                if self.asset_class in PER_FILE_CLASSES:
                    sources = [s for s in sources if s.resolve() in changed_set]

            for source in sources:
                self._build_one(source, outcome)

            result = PipelineResult(
                asset_class=self.asset_class,
                mode=self.mode,
                written=frozenset(outcome.written),
                errors=tuple(outcome.errors),
                skipped=outcome.skipped,
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        logger.info(
            "%s: %d written, %d unchanged, %d failed in %dms",
            self.name,
            len(result.written),
            result.skipped,
            len(result.errors),
            result.duration_ms,
        )
        if self.mode is BuildMode.DEVELOPMENT and result.written:
            self.context.notifier.notify_reload()
        return result

    def process(self, asset: Asset) -> Asset:
        """Apply every stage in order; raises the first ToolError."""
        for stage in self.stages:
            try:
                asset = stage.apply(asset)
            except UnicodeDecodeError as e:
                raise stage.fail(f"not valid UTF-8: {e.reason} at byte {e.start}", asset) from e
        return asset

    def _build_one(self, source: Path, outcome: _Outcome) -> None:
        try:
            asset = Asset(
                source=source,
                relative_path=self.context.registry.relative_source(
                    self.asset_class, source
                ),
                content=self._read(source),
            )
            asset = self.process(asset)
            self._write(asset, outcome)
        except ToolError as e:
            outcome.errors.append(e)
            location = e.source_path.name if e.source_path else source.name
            self.context.notifier.notify_error(
                f"{self.asset_class.value}/{e.stage}", f"{e.message} ({location})"
            )

    def _read(self, source: Path) -> bytes:
        try:
            return source.read_bytes()
        except OSError as e:
            raise ToolError("read", e.strerror or str(e), source) from e

    def _write(self, asset: Asset, outcome: _Outcome) -> None:
        files: list[tuple[PurePosixPath, bytes]] = [
            (asset.relative_path, asset.content),
            *asset.extra_files,
        ]
        outputs = self._outputs.setdefault(asset.source.resolve(), set())
        for relative_path, content in files:
            target = self.dest_dir / relative_path
            outputs.add(target)
            try:
                if write_atomic(target, content):
                    outcome.written.add(target)
                else:
                    outcome.skipped += 1
            except OSError as e:
                raise ToolError("write", f"{target}: {e.strerror or e}", asset.source) from e

        if asset.original_path is not None:
            self._record_revision(asset.original_path, asset.relative_path)

    def _record_revision(self, original: PurePosixPath, revved: PurePosixPath) -> None:
        context = self.context
        replaced = context.revisions.record(
            context.url_for(self.asset_class, original),
            context.url_for(self.asset_class, revved),
        )
        if replaced is not None:
            stale = context.dest_root / replaced
            stale.unlink(missing_ok=True)
            logger.debug("Removed stale revision %s", stale)

    def _remove_deleted(self, changed: set[Path], outcome: _Outcome) -> None:
        registry = self.context.registry
        for path in changed:
            if path.exists() or registry.classify(path) is not self.asset_class:
                continue
            targets = self._outputs.pop(path, set())
            if self.asset_class in PER_FILE_CLASSES:
                try:
                    targets.add(registry.destination_for(self.asset_class, path))
                except ValueError:
                    pass
            for target in sorted(targets):
                if not target.is_file():
                    continue
                try:
                    target.unlink()
                except OSError as e:
                    outcome.errors.append(
                        ToolError("write", f"{target}: {e.strerror or e}", path)
                    )
                    continue
                outcome.written.add(target)
                logger.debug("Removed %s of deleted source %s", target, path)
