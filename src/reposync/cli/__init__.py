"""CLI interface using Typer."""

import typer

app = typer.Typer(name="reposync", help="reposync — keep a local workspace and a git remote in sync, unattended")

# Import subcommand modules to register them
from . import sync_cmds  # noqa: F401, E402
from . import project_cmds  # noqa: F401, E402
from . import schedule_cmds  # noqa: F401, E402
