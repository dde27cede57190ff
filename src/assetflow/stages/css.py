"""Stylesheet stages: Sass compilation, media-query merging, minification."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import rcssmin
import sass
import tinycss2

from assetflow.stages.base import Asset, Stage

logger = logging.getLogger(__name__)


class CompileSass(Stage):
    """Compile an SCSS entry file with libsass.

    Compiles in filename mode so that ``@import`` of partials resolves
    relative to the entry file. With ``source_map=True`` the generated map
    (sources embedded) is attached to the asset for a later stage to emit.
    """

    name = "sass"

    def __init__(
        self,
        output_style: str = "nested",
        source_map: bool = False,
        include_paths: Sequence[Path] = (),
    ) -> None:
        self.output_style = output_style
        self.source_map = source_map
        self.include_paths = tuple(include_paths)

    def apply(self, asset: Asset) -> Asset:
        css_path = asset.relative_path.with_suffix(".css")
        options = {
            "filename": str(asset.source),
            "output_style": self.output_style,
            "include_paths": [str(p) for p in self.include_paths],
        }
        try:
            if self.source_map:
                css, source_map = sass.compile(
                    **options,
                    source_map_filename=str(asset.source.with_suffix(".css.map")),
                    output_filename_hint=str(asset.source.with_suffix(".css")),
                    source_map_contents=True,
                    omit_source_map_url=True,
                )
            else:
                css, source_map = sass.compile(**options), None
        except sass.CompileError as e:
            raise self.fail(str(e).strip(), asset) from e

        logger.debug("Compiled %s (%d bytes)", asset.source, len(css))
        return asset.with_content(css).with_path(css_path).with_source_map(source_map)


class MergeMediaQueries(Stage):
    """Merge ``@media`` blocks with identical queries and move them last.

    Plain rules keep their order; merged media blocks follow in order of
    first occurrence.
    """

    name = "merge-media-queries"

    def apply(self, asset: Asset) -> Asset:
        rules = tinycss2.parse_stylesheet(
            asset.text, skip_comments=True, skip_whitespace=True
        )
        plain: list[str] = []
        media: dict[str, list[str]] = {}

        for rule in rules:
            if rule.type == "error":
                raise self.fail(f"CSS parse error: {rule.message}", asset)
            if (
                rule.type == "at-rule"
                and rule.lower_at_keyword == "media"
                and rule.content is not None
            ):
                query = " ".join(tinycss2.serialize(rule.prelude).split())
                media.setdefault(query, []).append(
                    tinycss2.serialize(rule.content).strip()
                )
            else:
                plain.append(rule.serialize())

        blocks = [f"@media {query}{{{''.join(bodies)}}}" for query, bodies in media.items()]
        return asset.with_content("\n".join(plain + blocks) + "\n")


class MinifyCss(Stage):
    """Minify CSS with rcssmin."""

    name = "cssmin"

    def apply(self, asset: Asset) -> Asset:
        return asset.with_content(rcssmin.cssmin(asset.text))
