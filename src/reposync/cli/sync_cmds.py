"""Sync commands: run, watch, status."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from . import app
from ._common import CONFIG_OPTION_HELP, entry_printer, load_or_exit

console = Console()


@app.command("run")
def run(
    config_path: str | None = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only write the log file"),
    json_output: bool = typer.Option(False, "--json", help="Print the cycle result as JSON"),
):
    """Run one sync cycle (the command cron invokes)."""
    from ..core.errors import LockError
    from ..sync.auto_sync import run_locked_cycle

    cfg = load_or_exit(console, config_path)
    echo = None if (quiet or json_output) else entry_printer(console)

    try:
        result = run_locked_cycle(cfg, echo=echo)
    except LockError as exc:
        console.print(f"[red]Sync lock error: {exc}[/red]")
        raise typer.Exit(1)

    if result is None:
        if json_output:
            console.print_json(data={"state": "SKIPPED"})
        else:
            console.print("[yellow]Another sync cycle is running; skipped.[/yellow]")
        return

    if json_output:
        console.print_json(data=result.to_dict())
    if not result.ok:
        if not json_output:
            console.print(f"[red]Sync failed: {result.error}[/red]")
        raise typer.Exit(1)
    if not json_output and not quiet:
        console.print(f"[green]Sync complete.[/green] [dim]({result.summary})[/dim]")


@app.command("watch")
def watch(
    config_path: str | None = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    interval: int | None = typer.Option(None, "--interval", "-i", help="Minutes between cycles"),
    max_cycles: int | None = typer.Option(None, "--max-cycles", help="Stop after N cycles"),
):
    """Run cycles in the foreground on a fixed interval (no cron needed)."""
    from ..sync.auto_sync import run_forever

    cfg = load_or_exit(console, config_path)
    minutes = interval or int(cfg["schedule"]["interval_minutes"])
    if minutes < 1:
        console.print("[red]Interval must be at least one minute.[/red]")
        raise typer.Exit(2)

    def _report(result):
        if result is None:
            console.print("[yellow]Cycle skipped (lock held).[/yellow]")
        elif not result.ok:
            console.print(f"[red]Cycle failed: {result.error}[/red]")

    console.print(f"[bold]Watching[/bold] every {minutes} min. Press Ctrl+C to stop.")
    count = run_forever(
        cfg,
        interval_minutes=minutes,
        max_cycles=max_cycles,
        echo=entry_printer(console),
        on_result=_report,
    )
    console.print(f"[dim]Stopped after {count} cycle(s).[/dim]")


@app.command("status")
def status(
    config_path: str | None = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
):
    """Show workspace state without fetching."""
    from ..core.workspace import get_status

    cfg = load_or_exit(console, config_path)
    st = get_status(cfg)

    table = Table(title="reposync status")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Workspace", st["workspace"])
    table.add_row("Remote", st["remote_url"])
    table.add_row("Branch", st["branch"])
    table.add_row("State", st["classification"])

    if "error" in st:
        table.add_row("Error", f"[red]{st['error']}[/red]")
    elif "local_tip" in st:
        current = st.get("current_branch") or "(detached)"
        if current != st["branch"]:
            current = f"[yellow]{current}[/yellow]"
        table.add_row("Checked out", current)
        table.add_row("Local tip", (st["local_tip"] or "-")[:12])
        table.add_row("Remote tip", (st["remote_tip"] or "-")[:12])
        in_sync = st["local_tip"] is not None and st["local_tip"] == st["remote_tip"]
        table.add_row("In sync", "[green]✓[/green]" if in_sync else "[yellow]✗[/yellow]")
        table.add_row("Uncommitted", "yes" if st["dirty"] else "no")
        if st["unmerged"]:
            table.add_row("Conflicts", f"[red]{', '.join(st['unmerged'])}[/red]")
        table.add_row("Auto-stashes", str(st["auto_stashes"]))

    if st["lock_pid"] is not None:
        label = f"pid {st['lock_pid']}" + (" (stale)" if st["lock_stale"] else "")
        table.add_row("Lock", label)

    console.print(table)
