"""Command-line interface for assetflow."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import click
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from assetflow import __version__
from assetflow.cache import CACHE_FILENAME, ImageCache
from assetflow.config.loader import load_config
from assetflow.config.preflight import run_all_checks
from assetflow.config.schema import DEFAULT_CONFIG, AssetflowConfig
from assetflow.console import console
from assetflow.context import BuildContext
from assetflow.errors import ConfigError, GraphError
from assetflow.tasks import BuildSession, RunReport, build_scheduler

logger = logging.getLogger(__name__)

# Tasks that start background services; their failure is a startup failure
SERVICE_TASKS = frozenset({"dev:serve", "dev:watch"})

EXIT_FAILED = 1
EXIT_INVALID = 2


def setup_logging(verbose: bool) -> None:
    """Route log records through rich: WARNING by default, DEBUG with --verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose, rich_tracebacks=True)],
        force=True,
    )


def version_callback(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
    """Print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    console.print(f"assetflow [bold cyan]{__version__}[/bold cyan]")
    ctx.exit()


def _load_config(project: Path) -> AssetflowConfig:
    try:
        return load_config(project)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise SystemExit(EXIT_INVALID) from None


def _create_session(project: Path) -> BuildSession:
    config = _load_config(project)
    try:
        context = BuildContext.create(config, project)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise SystemExit(EXIT_INVALID) from None
    return BuildSession(context)


def _print_report(report: RunReport) -> None:
    for result in report.results:
        if result.success:
            continue
        label = "skipped" if result.skipped else "failed"
        console.print(
            f"  [red]✗[/red] [cyan]{result.name}[/cyan] {label}: "
            f"{escape(result.error or '')}"
        )
    if report.success:
        console.print(f"[green]✓[/green] [bold]{report.target}[/bold] finished")
    else:
        console.print(
            f"[red]✗[/red] [bold]{report.target}[/bold] failed "
            f"({len(report.failed)} task(s))"
        )


def _wait_for_interrupt(session: BuildSession) -> None:
    console.print("[dim]Press Ctrl+C to stop.[/dim]")
    try:
        while True:
            time.sleep(0.5)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopping...[/dim]")
    finally:
        session.stop()


def _run_task(project: Path, name: str) -> None:
    """Run a task; block while a started server or watcher is running."""
    session = _create_session(project)
    scheduler = build_scheduler(session)
    try:
        report = scheduler.run(name)
    except GraphError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise SystemExit(EXIT_INVALID) from None

    _print_report(report)

    if session.server is not None or session.watcher is not None:
        startup_failed = any(
            r.name in SERVICE_TASKS and not r.success for r in report.results
        )
        if startup_failed:
            session.stop()
            raise SystemExit(EXIT_FAILED)
        _wait_for_interrupt(session)
        return

    if not report.success:
        raise SystemExit(EXIT_FAILED)


@click.group(invoke_without_command=True)
@click.option(
    "--version",
    is_flag=True,
    callback=version_callback,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option(
    "--project",
    "-C",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project root containing src/ and .assetflow/.",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, project: Path) -> None:
    """assetflow - front-end asset build pipeline with live reload."""
    setup_logging(verbose)
    ctx.obj = project.resolve()

    if ctx.invoked_subcommand is None:
        console.print("[bold]assetflow[/bold] - build, serve and watch web assets")
        console.print("\nRun [cyan]assetflow --help[/cyan] for available commands.")


@main.command()
@click.pass_obj
def clean(project: Path) -> None:
    """Remove the destination directory and clear the image cache."""
    _run_task(project, "clean")


@main.command("build:dev")
@click.pass_obj
def build_dev(project: Path) -> None:
    """Development build, then serve and rebuild on change until Ctrl+C."""
    _run_task(project, "build:dev")


@main.command("build:prod")
@click.pass_obj
def build_prod(project: Path) -> None:
    """Production build: minified, cache-busted, with a service worker."""
    _run_task(project, "build:prod")


@main.command()
@click.argument("task_name")
@click.pass_obj
def run(project: Path, task_name: str) -> None:
    """Run a single task (and its dependencies) by name."""
    _run_task(project, task_name)


@main.command()
@click.pass_obj
def tasks(project: Path) -> None:
    """List available tasks and their dependencies."""
    session = _create_session(project)
    scheduler = build_scheduler(session)

    table = Table(title="Tasks", show_lines=False)
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("Depends on")
    table.add_column("Description", style="dim")
    for task in sorted(scheduler, key=lambda t: t.name):
        deps = ", ".join(task.dependencies)
        if task.parallel and deps:
            deps += " [dim](parallel)[/dim]"
        table.add_row(task.name, deps, task.description)
    console.print(table)


@main.command()
@click.pass_obj
def preflight(project: Path) -> None:
    """Validate the project layout and external build tools."""
    config = _load_config(project)
    if not run_all_checks(config, project):
        raise SystemExit(EXIT_FAILED)


@main.group(invoke_without_command=True)
@click.pass_context
def cache(ctx: click.Context) -> None:
    """Manage the image optimization cache.

    Use subcommands: assetflow cache clear
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cache.command("clear")
@click.pass_obj
def cache_clear(project: Path) -> None:
    """Delete every cached optimized image."""
    config = _load_config(project)
    cache_dir = config.cache_dir or DEFAULT_CONFIG.cache_dir or ".assetflow"
    removed = ImageCache(project / cache_dir / CACHE_FILENAME).clear()
    console.print(f"[green]Cleared {removed} cached image(s).[/green]")
