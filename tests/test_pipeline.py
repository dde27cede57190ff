"""Tests for pipelines, the stage factory and end-to-end builds."""

import json
from pathlib import Path, PurePosixPath
from unittest.mock import patch

from assetflow.config.schema import AssetClass, AssetflowConfig, BuildMode
from assetflow.context import BuildContext
from assetflow.notifier import Notifier
from assetflow.pipelines import Pipeline, build_pipeline, build_stages, write_atomic
from assetflow.stages import Asset, Copy, Stage, content_hash
from assetflow.tasks import BuildSession, build_scheduler
from helpers import FIXED_TIME, write


class FailOn(Stage):
    """Fails for one file name, passes everything else through."""

    name = "boom"

    def __init__(self, filename: str) -> None:
        self.filename = filename

    def apply(self, asset: Asset) -> Asset:
        if asset.source.name == self.filename:
            raise self.fail("exploded", asset)
        return asset


class Recorder(Stage):
    """Remembers which files reached it."""

    name = "recorder"

    def __init__(self) -> None:
        self.seen: list[str] = []

    def apply(self, asset: Asset) -> Asset:
        self.seen.append(asset.source.name)
        return asset


def snapshot(root: Path) -> dict[str, bytes]:
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


class TestWriteAtomic:
    """Tests for atomic output writes."""

    def test_writes_and_skips_identical_content(self, tmp_path: Path) -> None:
        target = tmp_path / "out" / "a.css"

        assert write_atomic(target, b"a{}") is True
        assert write_atomic(target, b"a{}") is False
        assert write_atomic(target, b"b{}") is True
        assert target.read_bytes() == b"b{}"

    def test_leaves_no_temporary_files(self, tmp_path: Path) -> None:
        write_atomic(tmp_path / "a.js", b"run();")
        assert [p.name for p in tmp_path.iterdir()] == ["a.js"]


class TestPipeline:
    """Tests for stage ordering, short-circuit and failure isolation."""

    def test_failing_stage_short_circuits_only_that_file(
        self, project: Path, context: BuildContext
    ) -> None:
        """Test that later stages never see a failed file and other files still build."""
        write(project / "src/fonts/bad.woff2", b"broken")
        recorder = Recorder()
        pipeline = Pipeline(
            AssetClass.FONTS,
            BuildMode.PRODUCTION,
            [FailOn("bad.woff2"), recorder],
            context,
        )

        with patch.object(context.notifier, "notify_error") as mock_notify:
            result = pipeline.run()

        assert recorder.seen == ["site.woff2"]
        assert not result.success
        assert [e.stage for e in result.errors] == ["boom"]
        assert (project / "dist/fonts/site.woff2").exists()
        assert not (project / "dist/fonts/bad.woff2").exists()
        mock_notify.assert_called_once_with("fonts/boom", "exploded (bad.woff2)")

    def test_stages_run_in_order(self, context: BuildContext) -> None:
        calls: list[str] = []

        class Mark(Stage):
            def __init__(self, label: str) -> None:
                self.name = label

            def apply(self, asset: Asset) -> Asset:
                calls.append(self.name)
                return asset

        pipeline = Pipeline(
            AssetClass.MANIFEST, BuildMode.PRODUCTION, [Mark("first"), Mark("second")], context
        )
        pipeline.run()

        assert calls == ["first", "second"]

    def test_dev_run_notifies_reload_only_when_files_change(
        self, context: BuildContext
    ) -> None:
        pipeline = Pipeline(AssetClass.FONTS, BuildMode.DEVELOPMENT, [Copy()], context)

        with patch.object(context.notifier, "notify_reload") as mock_reload:
            first = pipeline.run()
            second = pipeline.run()

        assert len(first.written) == 1
        assert second.written == frozenset()
        assert second.skipped == 1
        mock_reload.assert_called_once()

    def test_changed_paths_limit_per_file_classes(
        self, project: Path, context: BuildContext
    ) -> None:
        """Test that a watch rebuild touches only the changed file."""
        extra = write(project / "src/fonts/other.woff2", b"other")
        pipeline = Pipeline(AssetClass.FONTS, BuildMode.DEVELOPMENT, [Copy()], context)

        result = pipeline.run(changed=[extra])

        assert result.written == frozenset({project.resolve() / "dist/fonts/other.woff2"})
        assert not (project / "dist/fonts/site.woff2").exists()

    def test_deleted_entry_removes_renamed_outputs(
        self, project: Path, context: BuildContext
    ) -> None:
        """Test that deleting an entry file removes its output and source map."""
        session = BuildSession(context)
        session.build(AssetClass.SCSS, BuildMode.DEVELOPMENT)
        assert (project / "dist/styles/styles.min.css.map").exists()
        source = project / "src/scss/styles.scss"
        source.unlink()

        result = session.build(AssetClass.SCSS, BuildMode.DEVELOPMENT, changed=[source])

        assert result.success
        assert not (project / "dist/styles/styles.min.css").exists()
        assert not (project / "dist/styles/styles.min.css.map").exists()

    def test_deleted_partial_keeps_entry_outputs(
        self, project: Path, context: BuildContext
    ) -> None:
        session = BuildSession(context)
        session.build(AssetClass.HTML, BuildMode.DEVELOPMENT)
        about = write(project / "src/about.html", "<p>About</p>\n")
        unused = write(project / "src/partials/footer.html", "<footer></footer>\n")
        session.build(AssetClass.HTML, BuildMode.DEVELOPMENT, changed=[about, unused])
        about.unlink()
        unused.unlink()

        session.build(AssetClass.HTML, BuildMode.DEVELOPMENT, changed=[about, unused])

        assert not (project / "dist/about.html").exists()
        assert (project / "dist/index.html").exists()

    def test_deleted_source_removes_output(self, project: Path, context: BuildContext) -> None:
        pipeline = Pipeline(AssetClass.FONTS, BuildMode.DEVELOPMENT, [Copy()], context)
        pipeline.run()
        source = project / "src/fonts/site.woff2"
        source.unlink()

        pipeline.run(changed=[source])

        assert not (project / "dist/fonts/site.woff2").exists()

    def test_invalid_utf8_source_fails_only_that_file(
        self, project: Path, context: BuildContext
    ) -> None:
        """Test that a Latin-1 page is reported as a failed file, not a crash."""
        write(project / "src/about.html", b"<p>caf\xe9</p>\n")

        report = build_scheduler(BuildSession(context)).run("dev:assets")

        assert sorted(report.failed) == ["dev:assets", "dev:html"]
        html = report.get("dev:html")
        assert html is not None and html.error == "dev:html: 1 file(s) failed"
        assert (project / "dist/index.html").exists()
        assert not (project / "dist/about.html").exists()
        assert (project / "dist/scripts/common.min.js").exists()

    def test_invalid_utf8_include_is_a_tool_error(
        self, project: Path, context: BuildContext
    ) -> None:
        write(project / "src/js/modules/greet.js", b"var s = 'caf\xe9';\n")

        result = build_pipeline(AssetClass.JS, BuildMode.PRODUCTION, context).run()

        assert not result.success
        (error,) = result.errors
        assert error.stage == "file-include"
        assert "not valid UTF-8" in error.message
        assert error.source_path == (project / "src/js/common.js").resolve()

    def test_pipeline_name(self, context: BuildContext) -> None:
        assert build_pipeline(AssetClass.SCSS, BuildMode.PRODUCTION, context).name == "prod:scss"


class TestStageFactory:
    """Tests for the per-class stage lists."""

    def test_scss_stages(self, context: BuildContext) -> None:
        dev = [s.name for s in build_stages(AssetClass.SCSS, BuildMode.DEVELOPMENT, context)]
        prod = [s.name for s in build_stages(AssetClass.SCSS, BuildMode.PRODUCTION, context)]

        assert dev == ["sass", "merge-media-queries", "cssmin", "rename", "sourcemap"]
        assert prod == ["sass", "merge-media-queries", "cssmin", "rename", "cache-bust"]

    def test_enabled_tools_add_stages(self, project: Path, config: AssetflowConfig) -> None:
        """Test that autoprefix, transpile and critical add their external stages."""
        enabled = config.merge(AssetflowConfig(autoprefix=True, transpile=True, critical=True))
        context = BuildContext.create(enabled, project, notifier=Notifier(desktop=False))

        scss = [s.name for s in build_stages(AssetClass.SCSS, BuildMode.PRODUCTION, context)]
        js = [s.name for s in build_stages(AssetClass.JS, BuildMode.PRODUCTION, context)]
        html = [s.name for s in build_stages(AssetClass.HTML, BuildMode.PRODUCTION, context)]

        assert scss[:2] == ["sass", "autoprefixer"]
        assert js == ["file-include", "babel", "jsmin", "rename"]
        assert html == ["rigger", "critical", "cache-bust", "htmlmin"]

    def test_html_dev_only_assembles(self, context: BuildContext) -> None:
        stages = build_stages(AssetClass.HTML, BuildMode.DEVELOPMENT, context)
        assert [s.name for s in stages] == ["rigger"]

    def test_copy_classes(self, context: BuildContext) -> None:
        for asset_class in (AssetClass.FONTS, AssetClass.MANIFEST):
            stages = build_stages(asset_class, BuildMode.PRODUCTION, context)
            assert [s.name for s in stages] == ["copy"]


class TestDevelopmentBuild:
    """End-to-end development builds."""

    def test_scss_compiles_with_companion_source_map(
        self, project: Path, context: BuildContext
    ) -> None:
        """Test the red body example: partial variable, minified CSS and a map file."""
        BuildSession(context).build(AssetClass.SCSS, BuildMode.DEVELOPMENT)

        css = (project / "dist/styles/styles.min.css").read_text()
        assert "body{color:red}" in css
        assert css.rstrip().endswith("/*# sourceMappingURL=styles.min.css.map */")
        source_map = json.loads((project / "dist/styles/styles.min.css.map").read_text())
        assert source_map["file"] == "styles.min.css"
        assert any(s.endswith("_vars.scss") for s in source_map["sources"])

    def test_all_classes(self, project: Path, context: BuildContext) -> None:
        report = build_scheduler(BuildSession(context)).run("dev:assets")

        assert report.success, report.failed
        dist = project / "dist"
        html = (dist / "index.html").read_text()
        assert "<header>Site</header>" in html
        assert "//=" not in html
        js = (dist / "scripts/common.min.js").read_text()
        assert "hello " in js
        assert "sourceMappingURL=data:application/json" in js
        assert (dist / "images/logo.png").exists()
        assert (dist / "fonts/site.woff2").read_bytes() == b"wOF2fakefont"
        assert (dist / "manifest.json").exists()

    def test_scss_error_leaves_other_outputs_untouched(
        self, project: Path, context: BuildContext
    ) -> None:
        """Test that a broken stylesheet fails only the SCSS pipeline."""
        scheduler = build_scheduler(BuildSession(context))
        assert scheduler.run("dev:assets").success
        before = snapshot(project / "dist")
        write(project / "src/scss/styles.scss", "body { color: $missing; }\n")

        report = scheduler.run("dev:assets")

        assert sorted(report.failed) == ["dev:assets", "dev:scss"]
        for name in ("dev:js", "dev:html", "dev:img", "dev:fonts", "dev:manifest"):
            result = report.get(name)
            assert result is not None and result.success
        after = snapshot(project / "dist")
        for path in ("scripts/common.min.js", "index.html", "images/logo.png"):
            assert after[path] == before[path]
        assert after["styles/styles.min.css"] == before["styles/styles.min.css"]


class TestProductionBuild:
    """End-to-end production builds."""

    def test_timestamp_cache_bust(self, project: Path, config: AssetflowConfig) -> None:
        """Test that production CSS gets the timestamp suffix and a manifest entry."""
        context = BuildContext.create(
            config.merge(AssetflowConfig(cache_bust="timestamp")),
            project,
            notifier=Notifier(desktop=False),
            clock=lambda: FIXED_TIME,
        )

        BuildSession(context).build(AssetClass.SCSS, BuildMode.PRODUCTION)

        revved = project / "dist/styles/styles.min-1700000000.css"
        assert "body{color:red}" in revved.read_text()
        assert not (project / "dist/styles/styles.min.css").exists()
        manifest = json.loads((project / "dist/rev-manifest.json").read_text())
        assert manifest == {"styles/styles.min.css": "styles/styles.min-1700000000.css"}

    def test_build_prod_references_revved_assets(
        self, project: Path, context: BuildContext
    ) -> None:
        report = build_scheduler(BuildSession(context)).run("build:prod")

        assert report.success, report.failed
        dist = project / "dist"
        (css_file,) = (dist / "styles").glob("styles.min-*.css")
        css_name = css_file.name
        assert css_name == f"styles.min-{content_hash(css_file.read_bytes())}.css"
        html = (dist / "index.html").read_text()
        assert f"styles/{css_name}" in html
        js_token = content_hash((dist / "scripts/common.min.js").read_bytes())
        assert f"scripts/common.min.js?v={js_token}" in html
        worker = (dist / "service-worker.js").read_text()
        assert f"styles/{css_name}" in worker
        assert "rev-manifest.json" not in worker

    def test_build_prod_is_idempotent(self, project: Path, context: BuildContext) -> None:
        """Test that a second run on identical sources changes nothing."""
        session = BuildSession(context)
        scheduler = build_scheduler(session)

        assert scheduler.run("build:prod").success
        first = snapshot(project / "dist")
        assert scheduler.run("build:prod").success
        second = snapshot(project / "dist")

        assert first == second
        rerun = session.build(AssetClass.SCSS, BuildMode.PRODUCTION)
        assert rerun.written == frozenset()

    def test_changed_content_replaces_revision(
        self, project: Path, context: BuildContext
    ) -> None:
        session = BuildSession(context)
        session.build(AssetClass.SCSS, BuildMode.PRODUCTION)
        old = context.revisions.get("styles/styles.min.css")

        write(project / "src/scss/_vars.scss", "$color: blue;\n")
        session.build(AssetClass.SCSS, BuildMode.PRODUCTION)
        new = context.revisions.get("styles/styles.min.css")

        assert old is not None and new is not None and old != new
        assert not (project / "dist" / old).exists()
        revved = project / "dist" / new
        assert "body{color:blue}" in revved.read_text()
        assert PurePosixPath(new).name == f"styles.min-{content_hash(revved.read_bytes())}.css"
