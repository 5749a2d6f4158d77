"""Cron schedule management."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.markup import escape

from . import app
from ._common import CONFIG_OPTION_HELP, load_or_exit

console = Console()
schedule_app = typer.Typer(help="Install or remove the periodic cron entry")
app.add_typer(schedule_app, name="schedule")


@schedule_app.command("install")
def schedule_install(
    config_path: str | None = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    interval: int | None = typer.Option(None, "--interval", "-i", help="Minutes between cycles"),
):
    """Add (or update) the crontab line that runs 'reposync run'."""
    from ..core.errors import ScheduleError
    from ..core.schedule import build_cron_line, default_command, install_cron

    cfg = load_or_exit(console, config_path)
    minutes = interval or int(cfg["schedule"]["interval_minutes"])
    try:
        line = build_cron_line(minutes, default_command(config_path), cfg["schedule"]["cron_log"])
        outcome = install_cron(line)
    except ScheduleError as exc:
        console.print(f"[red]Schedule failed: {exc}[/red]")
        raise typer.Exit(1)

    if outcome == "unchanged":
        console.print("[dim]Cron job already installed.[/dim]")
    else:
        console.print(f"[green]Cron job {outcome}[/green] (every {minutes} min)")
    console.print(f"  {escape(line)}", highlight=False)


@schedule_app.command("remove")
def schedule_remove():
    """Remove the reposync crontab line."""
    from ..core.errors import ScheduleError
    from ..core.schedule import remove_cron

    try:
        removed = remove_cron()
    except ScheduleError as exc:
        console.print(f"[red]Schedule failed: {exc}[/red]")
        raise typer.Exit(1)
    if removed:
        console.print("[green]Cron job removed.[/green]")
    else:
        console.print("[dim]No reposync cron job installed.[/dim]")


@schedule_app.command("show")
def schedule_show():
    """Show the installed crontab line."""
    from ..core.errors import ScheduleError
    from ..core.schedule import cron_status

    try:
        line = cron_status()
    except ScheduleError as exc:
        console.print(f"[red]Schedule failed: {exc}[/red]")
        raise typer.Exit(1)
    if line is None:
        console.print("[dim]No reposync cron job installed.[/dim]")
    else:
        console.print(escape(line), highlight=False)
