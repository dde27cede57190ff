"""HTML stages: critical CSS inlining, minification, reference rewriting."""

from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Sequence
from pathlib import Path

import minify_html

from assetflow.revisions import RevisionManifest
from assetflow.stages.base import Asset, Stage
from assetflow.stages.external import DEFAULT_TIMEOUT, ExternalCommand
from assetflow.stages.files import content_hash
from assetflow.tools.base import Tool

logger = logging.getLogger(__name__)

_REFERENCE = re.compile(
    r"""(?P<attr>\b(?:href|src))=(?:(?P<quote>["'])(?P<url>[^"']+)(?P=quote)"""
    r"""|(?P<bare>[^\s"'>]+))"""
)
_BUSTABLE_SUFFIXES = (".css", ".js")


class MinifyHtml(Stage):
    """Collapse whitespace with minify-html; inline CSS and JS are left alone."""

    name = "htmlmin"

    def apply(self, asset: Asset) -> Asset:
        try:
            minified = minify_html.minify(
                asset.text,
                keep_closing_tags=True,
                keep_html_and_head_opening_tags=True,
            )
        except SyntaxError as e:
            raise self.fail(f"minification failed: {e}", asset) from e
        return asset.with_content(minified)


class InlineCriticalCss(ExternalCommand):
    """Inline above-the-fold CSS using the ``critical`` CLI.

    Stylesheets are given as URLs relative to the destination root and
    resolved through the revision manifest, since the production CSS has
    already been renamed by the time HTML is built.
    """

    def __init__(
        self,
        tool: Tool,
        revisions: RevisionManifest,
        dest_root: Path,
        stylesheets: Sequence[str],
        width: int = 1920,
        height: int = 1280,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(tool, timeout=timeout, name="critical", cwd=dest_root)
        self.revisions = revisions
        self.dest_root = dest_root
        self.stylesheets = tuple(stylesheets)
        self.width = width
        self.height = height

    def arguments(self, asset: Asset) -> list[str]:
        args = [
            "--base",
            str(self.dest_root),
            "--width",
            str(self.width),
            "--height",
            str(self.height),
        ]
        for url in self.stylesheets:
            resolved = self.revisions.get(url) or url
            args += ["--css", str(self.dest_root / resolved)]
        return args

    def apply(self, asset: Asset) -> Asset:
        missing = [
            url
            for url in self.stylesheets
            if not (self.dest_root / (self.revisions.get(url) or url)).exists()
        ]
        if missing:
            raise self.fail(
                f"stylesheet(s) not built yet: {', '.join(missing)}", asset
            )
        return super().apply(asset)


class RewriteAssetReferences(Stage):
    """Cache-bust ``href``/``src`` references in production HTML.

    References found in the revision manifest are pointed at the revved
    file. Other local ``.css``/``.js`` references that exist in the
    destination get a ``?v=<hash>`` query derived from the file content.
    """

    name = "cache-bust"

    def __init__(
        self, revisions: RevisionManifest, dest_root: Path, html_dir: Path
    ) -> None:
        self.revisions = revisions
        self.dest_root = dest_root
        self.html_dir = html_dir

    def _resolve(self, asset: Asset, path: str) -> str | None:
        """URL path -> key relative to the destination root, or None if outside."""
        if path.startswith("/"):
            key = posixpath.normpath(path.lstrip("/"))
        else:
            page_dir = (self.html_dir / asset.relative_path).parent
            try:
                page_rel = page_dir.relative_to(self.dest_root).as_posix()
            except ValueError:
                return None
            key = posixpath.normpath(posixpath.join(page_rel, path))
        return None if key.startswith("..") else key

    def _rewrite(self, asset: Asset, url: str) -> str:
        if re.match(r"^(?:[a-z][a-z0-9+.-]*:|//|#)", url, re.IGNORECASE):
            return url
        path, sep, query = url.partition("?")
        key = self._resolve(asset, path)
        if key is None:
            return url

        revved = self.revisions.get(key)
        if revved is not None:
            head, _, _ = path.rpartition("/")
            new_name = posixpath.basename(revved)
            return (f"{head}/{new_name}" if head else new_name) + sep + query

        if path.endswith(_BUSTABLE_SUFFIXES):
            target = self.dest_root / key
            if target.is_file():
                token = content_hash(target.read_bytes())
                joiner = "&" if sep else "?"
                return f"{url}{joiner}v={token}"
        return url

    def apply(self, asset: Asset) -> Asset:
        def replace(match: re.Match[str]) -> str:
            quote = match["quote"] or ""
            url = self._rewrite(asset, match["url"] or match["bare"])
            return f"{match['attr']}={quote}{url}{quote}"

        return asset.with_content(_REFERENCE.sub(replace, asset.text))
