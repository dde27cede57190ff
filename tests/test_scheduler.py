"""Tests for the task scheduler and the default task set."""

import threading
import time
from pathlib import Path

import pytest

from assetflow.context import BuildContext
from assetflow.errors import BuildError, GraphError, GraphReason
from assetflow.tasks import (
    BuildSession,
    Scheduler,
    Task,
    TaskAction,
    build_scheduler,
    precache_globs,
)


def recording(calls: list[str], name: str, error: Exception | None = None) -> TaskAction:
    def action() -> None:
        calls.append(name)
        if error is not None:
            raise error

    return action


class TestRegistration:
    """Tests for graph validation at registration time."""

    def test_duplicate_name(self) -> None:
        scheduler = Scheduler()
        scheduler.register(Task("a"))

        with pytest.raises(GraphError) as exc_info:
            scheduler.register(Task("a"))

        assert exc_info.value.reason is GraphReason.DUPLICATE

    def test_self_dependency(self) -> None:
        with pytest.raises(GraphError, match="a -> a") as exc_info:
            Scheduler().register(Task("a", dependencies=("a",)))

        assert exc_info.value.reason is GraphReason.CYCLE

    def test_cycle_is_rejected_and_not_registered(self) -> None:
        """Test that closing a cycle fails and leaves the graph unchanged."""
        scheduler = Scheduler()
        scheduler.register(Task("a", dependencies=("b",)))

        with pytest.raises(GraphError, match="b -> a -> b") as exc_info:
            scheduler.register(Task("b", dependencies=("a",)))

        assert exc_info.value.reason is GraphReason.CYCLE
        assert "b" not in scheduler
        assert len(scheduler) == 1

    def test_forward_references_are_allowed(self) -> None:
        scheduler = Scheduler()
        scheduler.register(Task("build", dependencies=("clean",)))
        scheduler.register(Task("clean"))

        scheduler.validate()
        assert scheduler.order("build") == ["clean", "build"]

    def test_validate_reports_missing_dependency(self) -> None:
        scheduler = Scheduler()
        scheduler.register(Task("build", dependencies=("clean",)))

        with pytest.raises(GraphError, match="unknown task 'clean'") as exc_info:
            scheduler.validate()

        assert exc_info.value.reason is GraphReason.MISSING_DEPENDENCY


class TestRun:
    """Tests for Scheduler.run."""

    def test_dependencies_run_first(self) -> None:
        calls: list[str] = []
        scheduler = Scheduler()
        scheduler.register(Task("clean", action=recording(calls, "clean")))
        scheduler.register(
            Task("build", dependencies=("clean",), action=recording(calls, "build"))
        )

        report = scheduler.run("build")

        assert calls == ["clean", "build"]
        assert report.success
        assert [r.name for r in report.results] == ["clean", "build"]

    def test_diamond_runs_shared_dependency_once(self) -> None:
        """Test that a task reachable by two paths runs once per run."""
        calls: list[str] = []
        scheduler = Scheduler()
        scheduler.register(Task("base", action=recording(calls, "base")))
        scheduler.register(Task("left", ("base",), recording(calls, "left")))
        scheduler.register(Task("right", ("base",), recording(calls, "right")))
        scheduler.register(Task("top", ("left", "right"), parallel=True))

        report = scheduler.run("top")

        assert calls.count("base") == 1
        assert sorted(calls) == ["base", "left", "right"]
        assert report.success

    def test_each_run_executes_again(self) -> None:
        calls: list[str] = []
        scheduler = Scheduler()
        scheduler.register(Task("a", action=recording(calls, "a")))

        scheduler.run("a")
        scheduler.run("a")

        assert calls == ["a", "a"]

    def test_unknown_task_has_no_side_effects(self) -> None:
        """Test that a missing dependency is found before anything runs."""
        calls: list[str] = []
        scheduler = Scheduler()
        scheduler.register(Task("clean", action=recording(calls, "clean")))
        scheduler.register(Task("build", dependencies=("clean", "lint")))

        with pytest.raises(GraphError, match="'build' depends on unknown task 'lint'"):
            scheduler.run("build")
        with pytest.raises(GraphError, match="Unknown task 'deploy'"):
            scheduler.run("deploy")

        assert calls == []

    def test_failure_skips_dependents_but_not_siblings(self) -> None:
        """Test that a failed task skips its dependents while independent work runs."""
        calls: list[str] = []
        scheduler = Scheduler()
        scheduler.register(
            Task("scss", action=recording(calls, "scss", BuildError("scss: 1 file(s) failed")))
        )
        scheduler.register(Task("fonts", action=recording(calls, "fonts")))
        scheduler.register(Task("html", ("scss",), recording(calls, "html")))
        scheduler.register(Task("all", ("scss", "fonts", "html"), parallel=True))

        report = scheduler.run("all")

        assert "fonts" in calls
        assert "html" not in calls
        assert not report.success
        assert sorted(report.failed) == ["all", "html", "scss"]
        html = report.get("html")
        assert html is not None and html.skipped
        assert html.error == "dependency failed: scss"
        scss = report.get("scss")
        assert scss is not None and scss.error == "scss: 1 file(s) failed"

    def test_os_error_becomes_build_error(self) -> None:
        scheduler = Scheduler()
        scheduler.register(Task("clean", action=recording([], "clean", OSError("busy"))))

        result = scheduler.run("clean").get("clean")

        assert result is not None
        assert not result.success
        assert result.error == "clean: busy"

    def test_unexpected_exceptions_propagate(self) -> None:
        scheduler = Scheduler()
        scheduler.register(Task("bug", action=recording([], "bug", ValueError("oops"))))

        with pytest.raises(ValueError, match="oops"):
            scheduler.run("bug")

    def test_parallel_group_runs_concurrently(self) -> None:
        """Test that members of a parallel group overlap in time."""
        barrier = threading.Barrier(2, timeout=5)

        def wait() -> None:
            barrier.wait()

        scheduler = Scheduler(max_workers=2)
        scheduler.register(Task("a", action=wait))
        scheduler.register(Task("b", action=wait))
        scheduler.register(Task("group", ("a", "b"), parallel=True))

        assert scheduler.run("group").success

    def test_nested_parallel_groups_do_not_deadlock(self) -> None:
        scheduler = Scheduler(max_workers=1)
        scheduler.register(Task("a", action=lambda: time.sleep(0.01)))
        scheduler.register(Task("b", action=lambda: time.sleep(0.01)))
        scheduler.register(Task("inner", ("a", "b"), parallel=True))
        scheduler.register(Task("c"))
        scheduler.register(Task("outer", ("inner", "c"), parallel=True))

        report = scheduler.run("outer")

        assert report.success
        assert report.results[-1].name == "outer"


class TestDefaultTasks:
    """Tests for the built-in task set."""

    def test_registered_tasks(self, context: BuildContext) -> None:
        scheduler = build_scheduler(BuildSession(context))
        scheduler.validate()
        names = {task.name for task in scheduler}

        for prefix in ("dev", "prod"):
            for cls in ("scss", "fonts", "img", "html", "js", "manifest", "assets"):
                assert f"{prefix}:{cls}" in names
        assert {"clean", "clean:dist", "clean:cache", "dev:serve", "dev:watch", "prod:sw"} <= names
        assert {"build:dev", "build:prod"} <= names

    def test_dependencies(self, context: BuildContext) -> None:
        scheduler = build_scheduler(BuildSession(context))

        build_dev = scheduler.get("build:dev")
        assert build_dev is not None
        assert build_dev.dependencies == (
            "clean:dist",
            "clean:cache",
            "dev:assets",
            "dev:serve",
            "dev:watch",
        )
        prod_html = scheduler.get("prod:html")
        assert prod_html is not None
        assert prod_html.dependencies == ("prod:scss", "prod:js")
        assets = scheduler.get("prod:assets")
        assert assets is not None and assets.parallel
        assert scheduler.order("build:prod")[-2:] == ["prod:sw", "build:prod"]

    def test_clean_removes_destination(self, project: Path, context: BuildContext) -> None:
        dist = project / "dist"
        (dist / "styles").mkdir(parents=True)
        (dist / "styles/old.css").write_text("a{}")
        context.revisions.record("styles/a.css", "styles/a-1.css")

        report = build_scheduler(BuildSession(context)).run("clean")

        assert report.success
        assert not dist.exists()
        assert len(context.revisions) == 0

    def test_precache_globs(self, context: BuildContext) -> None:
        assert precache_globs(context) == [
            "styles/*.min*.css",
            "fonts/**/*",
            "images/**/*",
            "**/*.html",
            "scripts/*.min*.js",
            "manifest.json",
        ]
