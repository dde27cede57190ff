"""Tests for the CLI."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner, Result

from assetflow import __version__
from assetflow.cli import main
from assetflow.tasks import BuildSession
from helpers import write


@pytest.fixture(autouse=True)
def no_home_config(tmp_path: Path) -> Iterator[None]:
    with patch(
        "assetflow.config.loader.get_home_config_path",
        return_value=tmp_path / "home" / "config.yaml",
    ):
        yield


@pytest.fixture
def configured(project: Path) -> Path:
    """The sample project with external tools and desktop notifications off."""
    write(
        project / ".assetflow/config.yaml",
        yaml.dump(
            {
                "autoprefix": False,
                "transpile": False,
                "critical": False,
                "notifications": False,
                "server": {"host": "127.0.0.1", "port": 0},
            }
        ),
    )
    return project


def invoke(*args: str) -> Result:
    return CliRunner().invoke(main, list(args))


def test_cli_help() -> None:
    """Test that --help exits cleanly and lists the commands."""
    result = invoke("--help")
    assert result.exit_code == 0
    assert "assetflow" in result.output.lower()
    assert "build:prod" in result.output


def test_cli_version() -> None:
    """Test that --version shows the version."""
    result = invoke("--version")
    assert result.exit_code == 0
    assert __version__ in result.output


def test_cli_no_command_prints_hint() -> None:
    result = invoke()
    assert result.exit_code == 0
    assert "--help" in result.output


def test_tasks_lists_default_tasks(configured: Path) -> None:
    result = invoke("-C", str(configured), "tasks")
    assert result.exit_code == 0
    for name in ("build:dev", "build:prod", "prod:sw", "clean"):
        assert name in result.output


def test_build_prod(configured: Path) -> None:
    """Test that a production build succeeds and writes the destination."""
    result = invoke("-C", str(configured), "build:prod")

    assert result.exit_code == 0, result.output
    assert "build:prod" in result.output
    assert (configured / "dist/index.html").exists()
    assert (configured / "dist/service-worker.js").exists()


def test_build_prod_failure_exits_1(configured: Path) -> None:
    """Test that a Sass error fails the build with exit code 1."""
    write(configured / "src/scss/styles.scss", "body { color: $missing; }\n")

    result = invoke("-C", str(configured), "build:prod")

    assert result.exit_code == 1
    assert "prod:scss" in result.output
    assert not (configured / "dist/service-worker.js").exists()
    assert (configured / "dist/fonts/site.woff2").exists()


def test_run_unknown_task_exits_2(configured: Path) -> None:
    result = invoke("-C", str(configured), "run", "deploy")
    assert result.exit_code == 2
    assert "Unknown task 'deploy'" in result.output


def test_run_single_task(configured: Path) -> None:
    result = invoke("-C", str(configured), "run", "dev:fonts")
    assert result.exit_code == 0
    assert (configured / "dist/fonts/site.woff2").exists()
    assert not (configured / "dist/index.html").exists()


def test_invalid_config_exits_2(configured: Path) -> None:
    """Test that an unparseable config file is a startup error."""
    write(configured / ".assetflow/config.yaml", "paths: [unclosed\n")

    result = invoke("-C", str(configured), "build:prod")

    assert result.exit_code == 2
    assert "Configuration error" in result.output
    assert not (configured / "dist").exists()


def test_unknown_asset_class_exits_2(configured: Path) -> None:
    write(configured / ".assetflow/config.yaml", "paths:\n  video: {src: a, dest: b}\n")
    result = invoke("-C", str(configured), "tasks")
    assert result.exit_code == 2


def test_clean(configured: Path) -> None:
    write(configured / "dist/old.css", "a{}")
    result = invoke("-C", str(configured), "clean")
    assert result.exit_code == 0
    assert not (configured / "dist").exists()


def test_cache_clear(configured: Path) -> None:
    result = invoke("-C", str(configured), "cache", "clear")
    assert result.exit_code == 0
    assert "Cleared 0 cached image(s)" in result.output


def test_build_dev_serves_until_interrupted(configured: Path) -> None:
    """Test that build:dev starts the server and watcher, then stops them."""
    sessions: list[BuildSession] = []

    def interrupt(session: BuildSession) -> None:
        sessions.append(session)
        assert session.server is not None
        assert session.watcher is not None and session.watcher.running
        session.stop()

    with patch("assetflow.cli._wait_for_interrupt", side_effect=interrupt):
        result = invoke("-C", str(configured), "build:dev")

    assert result.exit_code == 0, result.output
    assert len(sessions) == 1
    assert sessions[0].server is None
    assert (configured / "dist/styles/styles.min.css.map").exists()
