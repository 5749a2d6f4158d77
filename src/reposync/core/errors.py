"""Error taxonomy for sync cycles.

Fatal step failures derive from ``SyncError`` and abort the current cycle.
``GitCommandError`` is the raw adapter failure that the sync steps wrap.
"""

from __future__ import annotations


class GitCommandError(Exception):
    """Raised when a git invocation fails, times out, or git is missing."""

    def __init__(self, args: list[str], returncode: int | None, stderr: str = "", stdout: str = ""):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        self.stdout = (stdout or "").strip()
        # git reports merge conflicts on stdout, transport errors on stderr
        output = "\n".join(part for part in (self.stderr, self.stdout) if part)
        detail = output or ("timed out or git not found" if returncode is None else f"exit {returncode}")
        super().__init__(f"{' '.join(self.args_list)}: {detail}")


class SyncError(Exception):
    """Base class for cycle-aborting failures."""

    step = "sync"


class BootstrapError(SyncError):
    step = "bootstrap"


class StashError(SyncError):
    step = "stash"


class FetchError(SyncError):
    step = "fetch"


class PullError(SyncError):
    step = "pull"


class CommitError(SyncError):
    step = "commit"


class PushError(SyncError):
    step = "push"


class LockError(SyncError):
    """Raised when the workspace lock cannot be acquired or written."""

    step = "lock"


class ConfigError(Exception):
    """Raised when required sync settings are missing or invalid."""


class ScheduleError(Exception):
    """Raised when the user crontab cannot be read or written."""
