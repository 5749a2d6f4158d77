"""Setup commands: config, doctor."""

from __future__ import annotations

import typer
from rich.console import Console

from . import app
from ._common import CONFIG_OPTION_HELP, load_or_exit

console = Console()


@app.command()
def config(
    key: str | None = typer.Argument(None, help="Config key (dotted notation, e.g. sync.branch)"),
    value: str | None = typer.Argument(None, help="Value to set"),
    config_path: str | None = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
):
    """Get or set configuration."""
    from ..core.config import get_config_value, save_config
    from ..core.errors import ConfigError

    if value is not None:
        try:
            path = save_config(config_path, key, value)
        except ConfigError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(2)
        console.print(f"[green]Set[/green] {key} = {value} [dim]({path})[/dim]")
        return

    cfg = load_or_exit(console, config_path, require_sync=False)

    if key is None:
        console.print_json(data=cfg)
        return

    val = get_config_value(cfg, key)
    if val is None:
        console.print(f"[yellow]Key not found:[/yellow] {key}")
    else:
        console.print(f"{key} = {val}")


@app.command()
def doctor(
    config_path: str | None = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    offline: bool = typer.Option(False, "--offline", help="Skip the remote reachability check"),
):
    """Diagnose configuration, credentials and workspace problems."""
    from ..core.workspace import run_checks

    cfg = load_or_exit(console, config_path, require_sync=False)
    report = run_checks(cfg, check_remote=not offline)

    for issue in report["issues"]:
        console.print(f"[red]ERROR:[/red] {issue}")
    for warning in report["warnings"]:
        console.print(f"[yellow]WARN:[/yellow] {warning}")
    if not report["issues"] and not report["warnings"]:
        console.print("[green]All checks passed.[/green]")
    if report["issues"]:
        raise typer.Exit(1)
