"""Stash coordination around the merge window.

``protect`` sets uncommitted edits aside before the remote is merged in and
``restore`` puts them back afterwards. A conflicting restore is a warning:
the conflict markers stay in the working tree and the cycle goes on.
"""

from __future__ import annotations

from datetime import datetime

from ..core.errors import GitCommandError, StashError
from ..core.git_utils import VCSAdapter
from ..core.log import SyncLog
from ..core.models import StashPopResult, StashRecord

DEFAULT_STASH_MESSAGE = "Auto-stash before sync {timestamp}"


def protect(
    adapter: VCSAdapter,
    log: SyncLog,
    message_format: str = DEFAULT_STASH_MESSAGE,
) -> StashRecord | None:
    """Stash every uncommitted change, untracked files included.

    Returns None when the working tree is clean.
    """
    try:
        if not adapter.has_uncommitted_changes():
            log.info("No local changes to stash")
            return None
        unmerged = adapter.unmerged_paths()
        if unmerged:
            raise StashError(
                f"Unresolved merge in workspace ({', '.join(unmerged)}); "
                "resolve or abort it before the next sync"
            )
        now = datetime.now()
        message = message_format.format(timestamp=now.strftime("%Y-%m-%d %H:%M:%S"))
        log.info("Stashing local changes...")
        ref = adapter.stash_push(message)
    except GitCommandError as exc:
        raise StashError(f"Failed to stash local changes: {exc}") from exc
    return StashRecord(ref=ref, message=message, created_at=now)


def restore(adapter: VCSAdapter, record: StashRecord | None, log: SyncLog) -> StashPopResult | None:
    """Pop ``record`` back onto the working tree. Never raises."""
    if record is None:
        return None

    log.info("Restoring local changes...")
    try:
        result = adapter.stash_pop(record.ref)
    except GitCommandError as exc:
        log.warning(f"Could not restore stashed changes ({exc}). They remain in stash {record.ref}.")
        return StashPopResult.FAILED

    if result == StashPopResult.OK:
        log.info("Local changes restored")
        return result

    if result == StashPopResult.CONFLICT:
        paths = adapter.unmerged_paths()
        detail = f" in {', '.join(paths)}" if paths else ""
        log.warning(
            f"Conflict while restoring local changes{detail}. Manual intervention may be required."
        )
        # git keeps the entry after a conflicting pop; the changes now live in the tree.
        try:
            adapter.stash_drop(record.ref)
        except GitCommandError as exc:
            log.warning(f"Could not drop applied stash {record.ref}: {exc}")
        return result

    return _restore_files(adapter, record, log)


def _restore_files(adapter: VCSAdapter, record: StashRecord, log: SyncLog) -> StashPopResult:
    """Put stashed files back one by one after ``stash pop`` refused to run."""
    try:
        held = adapter.apply_stash_files(record.ref)
    except GitCommandError as exc:
        log.warning(
            f"Stashed changes could not be applied ({exc}). "
            f"They remain in stash {record.ref} ({record.message})."
        )
        return StashPopResult.FAILED

    if held:
        log.warning(
            f"Stashed changes to {', '.join(sorted(held))} overlap the merged or unmerged tree and were not "
            f"applied. They remain in stash {record.ref} ({record.message})."
        )
        return StashPopResult.FAILED

    try:
        adapter.stash_drop(record.ref)
    except GitCommandError as exc:
        log.warning(f"Could not drop applied stash {record.ref}: {exc}")
    log.info("Local changes restored file by file")
    return StashPopResult.OK
