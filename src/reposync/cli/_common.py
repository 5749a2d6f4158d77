"""Helpers shared by the command modules."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.markup import escape

from ..core.models import LogEntry

CONFIG_OPTION_HELP = "TOML config file (merged over ~/.reposync/config.toml)"


def load_or_exit(console: Console, config_path: str | None, require_sync: bool = True) -> dict:
    from ..core.config import load_config, validate_sync_config
    from ..core.errors import ConfigError

    try:
        cfg = load_config(config_path)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2)

    if require_sync:
        problems = validate_sync_config(cfg)
        if problems:
            for problem in problems:
                console.print(f"[red]Config error:[/red] {problem}")
            console.print("[dim]Set values with 'reposync config <key> <value>'.[/dim]")
            raise typer.Exit(2)
    return cfg


def entry_printer(console: Console):
    def _print(entry: LogEntry) -> None:
        line = escape(entry.format())
        if entry.message.startswith("ERROR:"):
            console.print(f"[red]{line}[/red]", highlight=False)
        elif entry.message.startswith("WARNING:"):
            console.print(f"[yellow]{line}[/yellow]", highlight=False)
        elif entry.message.startswith("==="):
            console.print(f"[bold]{line}[/bold]", highlight=False)
        else:
            console.print(line, highlight=False)

    return _print
