"""Sync cycle: bootstrap, stash, reconcile, unstash, publish.

One call to :func:`run_cycle` runs the whole state machine

    START -> [BOOTSTRAP] -> STASH -> RECONCILE -> UNSTASH -> PUBLISH -> DONE

and ends in ``DONE`` or ``FAILED``. Stashing always precedes reconciling and
unstashing always precedes publishing, so merges run against a clean tree and
local edits are back in place before anything new is committed. A failed
reconcile still goes through UNSTASH before the cycle fails.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from ..core.errors import BootstrapError, FetchError, GitCommandError, PullError, SyncError
from ..core.git_utils import GitAdapter, VCSAdapter
from ..core.inspector import classify
from ..core.log import SyncLog
from ..core.models import (
    CycleResult,
    CycleState,
    RepoStatus,
    RepositoryHandle,
    StashPopResult,
    StashRecord,
    SyncState,
)
from . import bootstrap, publish, reconcile, stash


@dataclass(frozen=True)
class CycleSettings:
    seed_filename: str = "README.md"
    seed_content: str | None = None
    commit_message: str = publish.DEFAULT_COMMIT_MESSAGE
    stash_message: str = stash.DEFAULT_STASH_MESSAGE

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> CycleSettings:
        seed = config.get("seed", {})
        commit = config.get("commit", {})
        return cls(
            seed_filename=seed.get("filename") or "README.md",
            seed_content=seed.get("content") or None,
            commit_message=commit.get("message") or publish.DEFAULT_COMMIT_MESSAGE,
            stash_message=commit.get("stash_message") or stash.DEFAULT_STASH_MESSAGE,
        )


def _setup_incomplete(adapter: VCSAdapter, log: SyncLog) -> bool:
    """True for a repository left behind by an interrupted bootstrap."""
    try:
        if adapter.current_commit() is None:
            log.info("Repository has no commits yet; resuming setup")
            return True
        if adapter.remote_url() is None:
            log.info("Repository has no remote; resuming setup")
            return True
    except GitCommandError as exc:
        raise BootstrapError(f"Failed to inspect repository: {exc}") from exc
    return False


def _summarize(result: CycleResult) -> str:
    s = result.sync_state
    if result.state == CycleState.FAILED:
        return f"failed at {result.failed_step}: {result.error}"
    parts = []
    if s.reconcile is not None:
        parts.append(s.reconcile.value)
    if s.stash_result is not None:
        parts.append(f"stash {s.stash_result.value}")
    if s.publish is not None:
        parts.append(s.publish.value)
    return ", ".join(parts)


def run_cycle(
    handle: RepositoryHandle,
    adapter: VCSAdapter | None = None,
    log: SyncLog | None = None,
    settings: CycleSettings | None = None,
) -> CycleResult:
    """Run one sync cycle against ``handle`` and return its outcome.

    Step failures end the cycle in ``FAILED`` and are reported in the result
    and the log; they are not raised. Anything unexpected is re-raised after
    the stash has been restored and the failure logged.
    """
    start = time.monotonic()
    adapter = adapter or GitAdapter(handle)
    log = log or SyncLog()
    settings = settings or CycleSettings()

    state = SyncState()
    result = CycleResult(state=CycleState.START, sync_state=state, trail=[CycleState.START])
    record: StashRecord | None = None

    def enter(next_state: CycleState) -> None:
        result.state = next_state
        result.trail.append(next_state)

    def unstash() -> None:
        nonlocal record
        enter(CycleState.UNSTASH)
        pending, record = record, None
        state.stash_result = stash.restore(adapter, pending, log)
        if state.stash_result == StashPopResult.CONFLICT:
            result.warnings.append("stash pop conflict; conflict markers left in working tree")
        elif state.stash_result == StashPopResult.FAILED:
            result.warnings.append("stashed changes could not be applied and remain stashed")

    log.info("=== Git Sync Started ===")
    try:
        status = classify(handle.path)
        state.repo_exists = status != RepoStatus.ABSENT
        state.is_repo = status == RepoStatus.PRESENT_REPO

        if not state.is_repo or _setup_incomplete(adapter, log):
            enter(CycleState.BOOTSTRAP)
            outcome = bootstrap.ensure(
                handle,
                adapter,
                log,
                seed_filename=settings.seed_filename,
                seed_content=settings.seed_content,
            )
            log.info(f"Repository bootstrapped ({outcome})")
            state.is_repo = True
            state.repo_exists = True

        enter(CycleState.STASH)
        log.info("Starting sync process...")
        record = stash.protect(adapter, log, settings.stash_message)
        state.has_local_changes = record is not None
        state.stash_created = record is not None

        enter(CycleState.RECONCILE)
        reconcile_error: SyncError | None = None
        try:
            state.reconcile = reconcile.reconcile(handle, adapter, log, state)
        except (FetchError, PullError) as exc:
            reconcile_error = exc

        unstash()
        if reconcile_error is not None:
            raise reconcile_error

        enter(CycleState.PUBLISH)
        state.publish = publish.publish(handle, adapter, log, state, settings.commit_message)

        enter(CycleState.DONE)
    except SyncError as exc:
        result.error = str(exc)
        result.failed_step = exc.step
        log.error(str(exc))
        enter(CycleState.FAILED)
    except Exception as exc:
        if record is not None:
            unstash()
        result.error = str(exc)
        result.failed_step = "unexpected"
        log.error(f"Unexpected failure: {exc}")
        enter(CycleState.FAILED)
        _finish(result, log, start)
        raise

    _finish(result, log, start)
    return result


def _finish(result: CycleResult, log: SyncLog, start: float) -> None:
    result.duration_ms = int((time.monotonic() - start) * 1000)
    result.summary = _summarize(result)
    if result.state == CycleState.DONE:
        log.info(f"Sync completed successfully ({result.summary})")
    else:
        log.info(f"Sync FAILED ({result.summary})")
    log.info("=== Git Sync Finished ===")
    log.separator()
