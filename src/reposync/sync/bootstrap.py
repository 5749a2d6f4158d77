"""Bootstrap a workspace: create, init, attach remote, adopt or seed the branch."""

from __future__ import annotations

from pathlib import Path

from ..core.errors import BootstrapError, GitCommandError
from ..core.git_utils import VCSAdapter, is_git_repo
from ..core.log import SyncLog
from ..core.models import RepositoryHandle
from ..core.security import redact_url

INITIAL_COMMIT_MESSAGE = "Initial commit"


def _seed_content(handle: RepositoryHandle, content: str | None) -> str:
    if content:
        return content if content.endswith("\n") else content + "\n"
    return f"# {handle.path.name}\n"


def _attach_remote(handle: RepositoryHandle, adapter: VCSAdapter, log: SyncLog) -> None:
    current = adapter.remote_url()
    if current is None:
        log.info(f"Adding remote {handle.remote_name} -> {redact_url(handle.remote_url)}")
        adapter.add_remote(handle.remote_url)
    elif current != handle.remote_url:
        log.info(f"Updating remote {handle.remote_name} URL to {redact_url(handle.remote_url)}")
        adapter.set_remote_url(handle.remote_url)


def _seed_branch(
    handle: RepositoryHandle,
    adapter: VCSAdapter,
    log: SyncLog,
    seed_filename: str,
    seed_content: str | None,
) -> None:
    if adapter.current_branch() != handle.branch:
        if adapter.current_commit() is None:
            adapter.set_head(handle.branch)
        else:
            adapter.checkout_new_branch(handle.branch)

    seed_path = handle.path / seed_filename
    if not seed_path.exists():
        seed_path.parent.mkdir(parents=True, exist_ok=True)
        seed_path.write_text(_seed_content(handle, seed_content), encoding="utf-8")
    adapter.add([seed_filename])
    adapter.commit(INITIAL_COMMIT_MESSAGE)
    adapter.push(handle.branch, set_upstream=True)


def ensure(
    handle: RepositoryHandle,
    adapter: VCSAdapter,
    log: SyncLog,
    seed_filename: str = "README.md",
    seed_content: str | None = None,
) -> str:
    """Make ``handle.path`` a repository with ``handle.branch`` checked out.

    Returns ``"adopted"`` when the remote branch already existed and was
    checked out, or ``"seeded"`` when an initial commit was created and
    pushed. Any failure raises :class:`BootstrapError`; the next cycle starts
    over from classification.
    """
    log.info("Setting up repository...")
    path = Path(handle.path)
    try:
        if not path.exists():
            log.info(f"Creating directory: {path}")
            path.mkdir(parents=True)

        if not is_git_repo(path):
            log.info("Initializing git repository and adding remote...")
            adapter.init(handle.branch)
        else:
            log.info("Git repository already exists")
        _attach_remote(handle, adapter, log)

        adapter.fetch()
        if handle.branch in adapter.list_remote_branches():
            log.info("Remote branch exists, checking out...")
            adapter.checkout_new_branch(handle.branch, handle.tracking_ref)
            return "adopted"

        log.info("Remote branch doesn't exist, creating initial commit...")
        _seed_branch(handle, adapter, log, seed_filename, seed_content)
        return "seeded"
    except (GitCommandError, OSError) as exc:
        raise BootstrapError(f"Bootstrap failed: {exc}") from exc
