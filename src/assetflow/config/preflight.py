"""Preflight checks to validate the project and environment."""

from pathlib import Path

from assetflow.config.registry import PathRegistry
from assetflow.config.schema import AssetClass, AssetflowConfig
from assetflow.console import console
from assetflow.errors import ConfigError
from assetflow.tools import AUTOPREFIXER, BABEL, CRITICAL, NOTIFY_SEND, OSASCRIPT, resolve_tool

# Config flag that enables the stage backed by each build tool
_TOOL_FLAGS = {
    AUTOPREFIXER.name: "autoprefix",
    BABEL.name: "transpile",
    CRITICAL.name: "critical",
}


def check_sources(config: AssetflowConfig, root: Path) -> bool:
    """Validate the path layout and report how many sources each class has."""
    console.print("[bold]Sources:[/bold]")
    try:
        registry = PathRegistry(config.paths, root)
    except ConfigError as e:
        console.print(f"  [red]✗[/red] {e}")
        return False

    for asset_class in AssetClass:
        spec = registry.resolve(asset_class)
        count = len(registry.sources(asset_class))
        if count:
            console.print(
                f"  [green]✓[/green] {asset_class.value}: {count} file(s) "
                f"[dim]{spec.source_glob} → {spec.dest_dir}[/dim]"
            )
        else:
            console.print(
                f"  [dim]-[/dim] {asset_class.value}: no files match "
                f"[dim]{spec.source_glob}[/dim]"
            )
    return True


def check_build_tools(config: AssetflowConfig) -> bool:
    """Check the external tools behind enabled stages."""
    console.print("\n[bold]Build tools:[/bold]")

    all_found = True
    for tool in (AUTOPREFIXER, BABEL, CRITICAL):
        flag = _TOOL_FLAGS[tool.name]
        if getattr(config, flag) is False:
            console.print(f"  [dim]-[/dim] {tool.name} [dim](disabled: {flag})[/dim]")
            continue
        resolved = resolve_tool(tool, config.tools)
        if resolved.is_installed():
            console.print(
                f"  [green]✓[/green] {tool.name} "
                f"([cyan]{' '.join(resolved.command())}[/cyan])"
            )
        else:
            all_found = False
            console.print(
                f"  [red]✗[/red] {tool.name} - [dim]{resolved.install_info}[/dim]"
            )

    if not all_found:
        console.print(
            "\n[yellow]⚠[/yellow] Install the missing tools or disable their stage "
            "in .assetflow/config.yaml."
        )
    return all_found


def check_notifications(config: AssetflowConfig) -> bool:
    """Report desktop notification support. Never fails."""
    console.print("\n[bold]Notifications:[/bold]")
    if config.notifications is False:
        console.print("  [dim]-[/dim] desktop notifications disabled")
        return True
    found = [tool for tool in (NOTIFY_SEND, OSASCRIPT) if tool.is_installed()]
    if found:
        console.print(f"  [green]✓[/green] {found[0].name}")
    else:
        console.print("  [dim]-[/dim] no desktop notifier found; console only")
    return True


def run_all_checks(config: AssetflowConfig, root: Path) -> bool:
    """Run all preflight checks."""
    console.print("[bold]Running preflight checks...[/bold]\n")

    results = [
        check_sources(config, root),
        check_build_tools(config),
        check_notifications(config),
    ]
    all_passed = all(results)

    if all_passed:
        console.print("\n[bold green]All preflight checks passed![/bold green]")
    else:
        console.print("\n[bold red]Some preflight checks failed.[/bold red]")

    return all_passed
