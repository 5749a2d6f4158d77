"""Commit and push whatever local changes remain after the merge."""

from __future__ import annotations

from datetime import datetime

from ..core.errors import CommitError, GitCommandError, PushError
from ..core.git_utils import VCSAdapter
from ..core.log import SyncLog
from ..core.models import PublishOutcome, RepositoryHandle, SyncState

DEFAULT_COMMIT_MESSAGE = "Auto-sync: {timestamp}"


def commit_message(message_format: str = DEFAULT_COMMIT_MESSAGE, now: datetime | None = None) -> str:
    now = now or datetime.now()
    return message_format.format(timestamp=now.strftime("%Y-%m-%d %H:%M:%S"))


def _push(handle: RepositoryHandle, adapter: VCSAdapter, set_upstream: bool = False) -> None:
    try:
        adapter.push(handle.branch, set_upstream=set_upstream)
    except GitCommandError as exc:
        raise PushError(f"Failed to push changes to remote: {exc}") from exc


def _unpublished_commits(handle: RepositoryHandle, adapter: VCSAdapter) -> tuple[int, bool]:
    """(commits ahead of the remote branch, whether the remote branch is missing)."""
    if adapter.current_commit() is None:
        return 0, False
    if adapter.remote_commit(handle.branch) is None:
        return 1, True
    return adapter.ahead_count(handle.branch), False


def publish(
    handle: RepositoryHandle,
    adapter: VCSAdapter,
    log: SyncLog,
    state: SyncState | None = None,
    message_format: str = DEFAULT_COMMIT_MESSAGE,
) -> PublishOutcome:
    """Commit everything in the working tree and push it to the tracked branch.

    A clean tree still pushes commits left unpublished by an earlier cycle.
    A commit that was made stays made when the push fails.
    """
    try:
        dirty = adapter.has_uncommitted_changes()
    except GitCommandError as exc:
        raise CommitError(f"Failed to inspect working tree: {exc}") from exc

    if dirty:
        log.info("Local changes detected, committing...")
        try:
            adapter.add_all()
            tip = adapter.commit(commit_message(message_format))
        except GitCommandError as exc:
            raise CommitError(f"Failed to commit changes: {exc}") from exc
        log.info("Changes committed successfully")
        if state is not None:
            state.local_tip = tip
        _push(handle, adapter)
        log.info("Changes pushed to remote successfully")
        if state is not None:
            state.published = True
        return PublishOutcome.PUBLISHED

    try:
        ahead, remote_missing = _unpublished_commits(handle, adapter)
    except GitCommandError as exc:
        raise PushError(f"Failed to compare with remote: {exc}") from exc

    if ahead == 0:
        log.info("No local changes to commit")
        return PublishOutcome.NO_CHANGES

    if remote_missing:
        log.info(f"Re-publishing branch {handle.branch} to remote...")
    else:
        log.info(f"Pushing {ahead} unpublished commit(s)...")
    _push(handle, adapter, set_upstream=remote_missing)
    log.info("Changes pushed to remote successfully")
    if state is not None:
        state.published = True
    return PublishOutcome.PUBLISHED
