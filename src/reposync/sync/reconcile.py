"""Bring remote history into the local branch."""

from __future__ import annotations

from ..core.errors import FetchError, GitCommandError, PullError
from ..core.git_utils import VCSAdapter
from ..core.log import SyncLog
from ..core.models import ReconcileOutcome, RepositoryHandle, SyncState


def reconcile(
    handle: RepositoryHandle,
    adapter: VCSAdapter,
    log: SyncLog,
    state: SyncState | None = None,
) -> ReconcileOutcome:
    """Fetch, compare tips, and pull when they differ.

    Tips are compared by commit id only. Raises :class:`FetchError` when the
    remote cannot be reached and :class:`PullError` when the merge fails; a
    failed merge is left in place for inspection.
    """
    log.info("Fetching from remote...")
    try:
        adapter.fetch()
        local_tip = adapter.current_commit()
        remote_tip = adapter.remote_commit(handle.branch)
    except GitCommandError as exc:
        raise FetchError(f"Failed to fetch from remote: {exc}") from exc

    if state is not None:
        state.local_tip = local_tip
        state.remote_tip = remote_tip

    if remote_tip is None:
        log.warning(f"Remote branch {handle.tracking_ref} not found; it will be re-published")
        return ReconcileOutcome.REMOTE_MISSING

    if local_tip == remote_tip:
        log.info("No new remote changes")
        return ReconcileOutcome.UP_TO_DATE

    log.info("Remote has new changes, pulling...")
    try:
        adapter.pull(handle.branch)
        merged_tip = adapter.current_commit()
    except GitCommandError as exc:
        raise PullError(f"Failed to pull changes: {exc}") from exc

    if state is not None:
        state.pulled = True
        state.local_tip = merged_tip
    log.info("Successfully pulled remote changes")
    return ReconcileOutcome.PULLED
