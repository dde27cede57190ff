"""Stage lists per asset class and build mode."""

from __future__ import annotations

from assetflow.config.schema import AssetClass, BuildMode
from assetflow.context import BuildContext
from assetflow.pipelines.base import Pipeline
from assetflow.stages import (
    FILE_INCLUDE_DIRECTIVE,
    RIGGER_DIRECTIVE,
    AssembleIncludes,
    CacheBust,
    CompileSass,
    Copy,
    EmitSourceMap,
    ExternalCommand,
    InlineCriticalCss,
    MergeMediaQueries,
    MinifyCss,
    MinifyHtml,
    MinifyJs,
    OptimizeImage,
    Rename,
    RewriteAssetReferences,
    Stage,
)
from assetflow.tools import AUTOPREFIXER, BABEL, CRITICAL, resolve_tool


def _scss_stages(mode: BuildMode, context: BuildContext) -> list[Stage]:
    dev = mode is BuildMode.DEVELOPMENT
    entry_dirs = {s.parent for s in context.registry.sources(AssetClass.SCSS)}
    stages: list[Stage] = [
        CompileSass(
            output_style=context.option("sass_output_style"),
            source_map=dev,
            include_paths=sorted(entry_dirs),
        )
    ]
    if context.option("autoprefix"):
        stages.append(
            ExternalCommand(
                resolve_tool(AUTOPREFIXER, context.option("tools")),
                env={"BROWSERSLIST": context.option("browsers")},
                timeout=context.option("tool_timeout"),
                name="autoprefixer",
                cwd=context.root,
            )
        )
    stages += [MergeMediaQueries(), MinifyCss(), Rename(".min")]
    if dev:
        stages.append(EmitSourceMap(inline=False))
    else:
        stages.append(CacheBust(context.option("cache_bust"), clock=context.clock))
    return stages


def stylesheet_urls(context: BuildContext) -> list[str]:
    """URLs (relative to the destination root) of the built production CSS."""
    urls = []
    for source in context.registry.sources(AssetClass.SCSS):
        relative = context.registry.relative_source(AssetClass.SCSS, source)
        built = relative.with_name(f"{relative.stem}.min.css")
        urls.append(context.url_for(AssetClass.SCSS, built))
    return urls


def _html_stages(mode: BuildMode, context: BuildContext) -> list[Stage]:
    stages: list[Stage] = [AssembleIncludes(RIGGER_DIRECTIVE, name="rigger")]
    if mode is BuildMode.DEVELOPMENT:
        return stages

    if context.option("critical"):
        stages.append(
            InlineCriticalCss(
                resolve_tool(CRITICAL, context.option("tools")),
                context.revisions,
                context.dest_root,
                stylesheet_urls(context),
                width=context.option("critical_width"),
                height=context.option("critical_height"),
                timeout=context.option("tool_timeout"),
            )
        )
    # References are rewritten before minification drops attribute quotes
    stages += [
        RewriteAssetReferences(
            context.revisions,
            context.dest_root,
            context.registry.dest_dir(AssetClass.HTML),
        ),
        MinifyHtml(),
    ]
    return stages


def _js_stages(mode: BuildMode, context: BuildContext) -> list[Stage]:
    dev = mode is BuildMode.DEVELOPMENT
    stages: list[Stage] = [
        AssembleIncludes(FILE_INCLUDE_DIRECTIVE, name="file-include", source_map=dev)
    ]
    if context.option("transpile"):
        stages.append(
            ExternalCommand(
                resolve_tool(BABEL, context.option("tools")),
                args=("--filename", "{source}"),
                timeout=context.option("tool_timeout"),
                name="babel",
                cwd=context.root,
            )
        )
    stages += [MinifyJs(), Rename(".min")]
    if dev:
        stages.append(EmitSourceMap(inline=True))
    return stages


def build_stages(
    asset_class: AssetClass, mode: BuildMode, context: BuildContext
) -> list[Stage]:
    """Return the ordered stages for one asset class in one mode.

    Stages backed by optional external tools are left out when disabled in
    the configuration.
    """
    if asset_class is AssetClass.SCSS:
        return _scss_stages(mode, context)
    if asset_class is AssetClass.HTML:
        return _html_stages(mode, context)
    if asset_class is AssetClass.JS:
        return _js_stages(mode, context)
    if asset_class is AssetClass.IMG:
        return [OptimizeImage(context.image_cache)]
    return [Copy()]


def build_pipeline(
    asset_class: AssetClass, mode: BuildMode, context: BuildContext
) -> Pipeline:
    return Pipeline(asset_class, mode, build_stages(asset_class, mode, context), context)
