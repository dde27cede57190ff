"""Stages that pipe content through an external command-line tool."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from assetflow.stages.base import Asset, Stage
from assetflow.tools.base import Tool

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0
_STDERR_TAIL = 20


class ExternalCommand(Stage):
    """Run a tool with the asset on stdin and take stdout as the result.

    ``args`` may contain ``{source}`` which is replaced by the asset's
    source path. A missing binary, a non-zero exit status or a timeout
    all raise ToolError.
    """

    def __init__(
        self,
        tool: Tool,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        name: str | None = None,
        cwd: Path | None = None,
    ) -> None:
        self.tool = tool
        self.args = tuple(args)
        self.env = dict(env or {})
        self.timeout = timeout
        self.name = name or tool.name
        self.cwd = cwd

    def arguments(self, asset: Asset) -> list[str]:
        """Extra command-line arguments for one asset."""
        return [arg.format(source=asset.source) for arg in self.args]

    def apply(self, asset: Asset) -> Asset:
        argv = self.tool.command(*self.arguments(asset))
        if shutil.which(argv[0]) is None:
            raise self.fail(
                f"'{argv[0]}' not found in PATH. Install: {self.tool.install_info}",
                asset,
            )

        logger.debug("Running %s", " ".join(argv))
        try:
            result = subprocess.run(
                argv,
                input=asset.content,
                capture_output=True,
                timeout=self.timeout,
                env={**os.environ, **self.env},
                cwd=self.cwd,
            )
        except subprocess.TimeoutExpired as e:
            raise self.fail(f"timed out after {self.timeout:g}s", asset) from e
        except OSError as e:
            raise self.fail(f"cannot run {argv[0]}: {e}", asset) from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            tail = "\n".join(stderr.splitlines()[-_STDERR_TAIL:])
            raise self.fail(
                f"exited with status {result.returncode}: {tail or '(no output)'}",
                asset,
            )
        return asset.with_content(result.stdout)
