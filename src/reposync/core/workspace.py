"""Workspace status and health checks — read-only views used by the CLI."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Any

from .config import lock_path, validate_sync_config
from .errors import GitCommandError
from .git_utils import (
    GitAdapter,
    get_current_branch,
    get_current_commit,
    get_global_config_value,
    ls_remote_reachable,
)
from .inspector import classify
from .lock import SyncLock
from .models import RepoStatus, RepositoryHandle
from .security import URL_CREDENTIALS, redact_url, scan_for_secrets


def _auto_stash_prefix(config: dict[str, Any]) -> str:
    fmt = config.get("commit", {}).get("stash_message") or "Auto-stash before sync {timestamp}"
    return fmt.split("{", 1)[0].strip()


def _auto_stashes(adapter: GitAdapter, config: dict[str, Any]) -> list[dict]:
    prefix = _auto_stash_prefix(config)
    return [e for e in adapter.stash_list() if prefix and prefix in e["subject"]]


def get_status(config: dict[str, Any]) -> dict:
    """Describe the workspace without fetching or modifying anything."""
    handle = RepositoryHandle.from_config(config)
    lock = SyncLock(lock_path(config))
    holder = lock.holder_pid()
    status: dict[str, Any] = {
        "workspace": str(handle.path),
        "remote_url": redact_url(handle.remote_url),
        "branch": handle.branch,
        "classification": classify(handle.path).value,
        "lock_pid": holder,
        "lock_stale": holder is not None and lock.is_stale(),
    }
    if status["classification"] != RepoStatus.PRESENT_REPO.value:
        return status

    adapter = GitAdapter.from_config(handle, config)
    try:
        status.update(
            {
                "current_branch": get_current_branch(handle.path),
                "local_tip": get_current_commit(handle.path),
                "remote_tip": adapter.remote_commit(handle.branch),
                "dirty": adapter.has_uncommitted_changes(),
                "unmerged": adapter.unmerged_paths(),
                "auto_stashes": len(_auto_stashes(adapter, config)),
            }
        )
    except GitCommandError as exc:
        status["error"] = str(exc)
    return status


def run_checks(config: dict[str, Any], check_remote: bool = True) -> dict[str, list[str]]:
    """Diagnose configuration and environment problems.

    Returns ``{"issues": [...], "warnings": [...]}``; issues block cycles,
    warnings do not.
    """
    issues: list[str] = list(validate_sync_config(config))
    warnings: list[str] = []

    if shutil.which("git") is None:
        issues.append("git executable not found on PATH.")
        return {"issues": issues, "warnings": warnings}

    git_cfg = config.get("git", {})
    if not (git_cfg.get("user_name") or get_global_config_value("user.name")):
        warnings.append("Git user.name not set. Set git.user_name or run: git config --global user.name 'Your Name'")
    if not (git_cfg.get("user_email") or get_global_config_value("user.email")):
        warnings.append(
            "Git user.email not set. Set git.user_email or run: git config --global user.email 'you@example.com'"
        )

    handle = RepositoryHandle.from_config(config)
    if handle.remote_url and scan_for_secrets(handle.remote_url, [URL_CREDENTIALS]):
        warnings.append("Remote URL embeds credentials; prefer a credential helper or SSH key.")

    if check_remote and handle.remote_url:
        timeout = int(git_cfg.get("network_timeout", 120))
        if not ls_remote_reachable(handle.remote_url, timeout=timeout):
            issues.append(f"Cannot access remote {redact_url(handle.remote_url)}. Check authentication.")

    log_file = Path(config.get("log", {}).get("path") or "~/.reposync/sync.log").expanduser()
    log_dir = log_file.parent
    existing = log_dir if log_dir.exists() else next((p for p in log_dir.parents if p.exists()), None)
    if existing is None or not os.access(existing, os.W_OK):
        issues.append(f"Log directory {log_dir} is not writable.")

    lock = SyncLock(lock_path(config))
    if lock.holder_pid() is not None and lock.is_stale():
        warnings.append(f"Stale lock file {lock.path} (pid {lock.holder_pid()}); it will be reclaimed.")

    if config.get("sync", {}).get("workspace") and classify(handle.path) == RepoStatus.PRESENT_REPO:
        adapter = GitAdapter.from_config(handle, config)
        try:
            current = adapter.current_branch()
            if current != handle.branch:
                warnings.append(f"Workspace is on branch {current!r}, expected {handle.branch!r}.")
            unmerged = adapter.unmerged_paths()
            if unmerged:
                warnings.append(f"Unresolved merge conflicts: {', '.join(unmerged)}")
            leftovers = _auto_stashes(adapter, config)
            if leftovers:
                warnings.append(
                    f"{len(leftovers)} auto-stash(es) left from earlier cycles: "
                    + ", ".join(e["ref"] for e in leftovers)
                )
        except GitCommandError as exc:
            issues.append(f"Cannot inspect workspace: {exc}")

    return {"issues": issues, "warnings": warnings}
