"""Cron installation for periodic cycles.

The installed entry is a single crontab line tagged with ``# reposync`` so it
can be found, replaced and removed without touching other entries.
"""

from __future__ import annotations

import shlex
import subprocess
import sys
from pathlib import Path

from .errors import ScheduleError

CRON_MARKER = "# reposync"


def default_command(config_path: str | Path | None = None) -> str:
    cmd = f"{shlex.quote(sys.executable)} -m reposync run"
    if config_path:
        cmd += f" --config {shlex.quote(str(Path(config_path).expanduser().resolve()))}"
    return cmd


def cron_schedule(interval_minutes: int) -> str:
    """Cron time fields for running every ``interval_minutes``."""
    if interval_minutes < 1:
        raise ScheduleError("interval must be at least one minute")
    if interval_minutes < 60:
        return f"*/{interval_minutes} * * * *"
    if interval_minutes % 60 == 0 and interval_minutes < 24 * 60:
        return f"0 */{interval_minutes // 60} * * *"
    raise ScheduleError(f"interval of {interval_minutes} minutes cannot be expressed in cron; use whole hours")


def build_cron_line(interval_minutes: int, command: str, cron_log: str | Path) -> str:
    log = shlex.quote(str(Path(cron_log).expanduser()))
    return f"{cron_schedule(interval_minutes)} {command} >> {log} 2>&1 {CRON_MARKER}"


def read_crontab() -> list[str]:
    try:
        result = subprocess.run(["crontab", "-l"], capture_output=True, text=True, timeout=10)
    except (subprocess.TimeoutExpired, FileNotFoundError) as exc:
        raise ScheduleError(f"crontab unavailable: {exc}") from exc
    if result.returncode != 0:
        # "no crontab for <user>" is an empty table, not an error.
        if "no crontab" in result.stderr.lower():
            return []
        raise ScheduleError(result.stderr.strip() or "crontab -l failed")
    return result.stdout.splitlines()


def write_crontab(lines: list[str]) -> None:
    content = "\n".join(lines) + "\n" if lines else ""
    try:
        result = subprocess.run(["crontab", "-"], input=content, capture_output=True, text=True, timeout=10)
    except (subprocess.TimeoutExpired, FileNotFoundError) as exc:
        raise ScheduleError(f"crontab unavailable: {exc}") from exc
    if result.returncode != 0:
        raise ScheduleError(result.stderr.strip() or "crontab - failed")


def cron_status() -> str | None:
    """The installed reposync line, if any."""
    for line in read_crontab():
        if line.rstrip().endswith(CRON_MARKER):
            return line
    return None


def install_cron(line: str) -> str:
    """Install or replace the reposync entry.

    Returns ``"installed"``, ``"updated"`` or ``"unchanged"``.
    """
    lines = read_crontab()
    kept = [entry for entry in lines if not entry.rstrip().endswith(CRON_MARKER)]
    if len(kept) == len(lines):
        write_crontab(kept + [line])
        return "installed"
    if line in lines:
        return "unchanged"
    write_crontab(kept + [line])
    return "updated"


def remove_cron() -> bool:
    lines = read_crontab()
    kept = [entry for entry in lines if not entry.rstrip().endswith(CRON_MARKER)]
    if len(kept) == len(lines):
        return False
    write_crontab(kept)
    return True
