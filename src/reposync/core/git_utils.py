"""Git access for the sync cycle.

Every git invocation the sync steps need goes through :class:`GitAdapter`,
and all parsing of git output stays in this module. The module-level helpers
never raise; they answer ``None``/``False`` when git cannot tell.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Protocol

from .errors import GitCommandError
from .models import RepositoryHandle, StashPopResult
from .security import filter_secrets

logger = logging.getLogger(__name__)

LOCAL_TIMEOUT = 30
DEFAULT_NETWORK_TIMEOUT = 120


def _git_env() -> dict[str, str]:
    env = os.environ.copy()
    # Unattended runs must fail instead of waiting on a credential prompt.
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env


def _run_git(
    args: list[str],
    cwd: str | Path,
    check: bool = True,
    timeout: int = LOCAL_TIMEOUT,
) -> subprocess.CompletedProcess:
    cmd = ["git"] + args
    logger.debug("git %s (cwd=%s)", filter_secrets(" ".join(args)), cwd)
    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=timeout,
            env=_git_env(),
        )
    except subprocess.TimeoutExpired as exc:
        raise GitCommandError(cmd, None, f"timed out after {timeout}s") from exc
    except FileNotFoundError as exc:
        raise GitCommandError(cmd, None, str(exc)) from exc
    if check and result.returncode != 0:
        raise GitCommandError(
            cmd,
            result.returncode,
            filter_secrets(result.stderr or ""),
            filter_secrets(result.stdout or ""),
        )
    return result


def get_current_commit(repo_path: str | Path) -> str | None:
    """Get current HEAD commit hash via git rev-parse HEAD."""
    try:
        result = _run_git(["rev-parse", "--verify", "HEAD"], cwd=repo_path, check=False, timeout=5)
        if result.returncode == 0:
            return result.stdout.strip()
    except (GitCommandError, NotADirectoryError, OSError):
        pass
    return None


def get_current_branch(repo_path: str | Path) -> str | None:
    """Get the checked-out branch name, including an unborn one."""
    try:
        result = _run_git(["symbolic-ref", "--short", "HEAD"], cwd=repo_path, check=False, timeout=5)
        if result.returncode == 0:
            return result.stdout.strip() or None
    except (GitCommandError, NotADirectoryError, OSError):
        pass
    return None


def get_repo_toplevel(path: str | Path) -> str | None:
    """Top-level directory of the repository containing ``path``."""
    try:
        result = _run_git(["rev-parse", "--show-toplevel"], cwd=path, check=False, timeout=5)
        if result.returncode == 0:
            return result.stdout.strip()
    except (GitCommandError, NotADirectoryError, OSError):
        pass
    return None


def is_git_repo(path: str | Path) -> bool:
    """True when ``path`` is itself the top level of a git work tree."""
    top = get_repo_toplevel(path)
    if top is None:
        return False
    return Path(top).resolve() == Path(path).resolve()


def ls_remote_reachable(url: str, timeout: int = DEFAULT_NETWORK_TIMEOUT) -> bool:
    """Check that a remote answers ``git ls-remote`` (used by doctor)."""
    try:
        result = _run_git(["ls-remote", "--heads", url], cwd=Path.home(), check=False, timeout=timeout)
    except GitCommandError:
        return False
    return result.returncode == 0


def get_global_config_value(key: str) -> str | None:
    try:
        result = _run_git(["config", "--get", key], cwd=Path.home(), check=False, timeout=5)
    except GitCommandError:
        return None
    if result.returncode == 0:
        return result.stdout.strip() or None
    return None


class VCSAdapter(Protocol):
    """Operation set the sync steps consume."""

    def init(self, branch: str | None = None) -> None: ...
    def add_remote(self, url: str) -> None: ...
    def remote_url(self) -> str | None: ...
    def set_remote_url(self, url: str) -> None: ...
    def fetch(self) -> None: ...
    def current_commit(self) -> str | None: ...
    def current_branch(self) -> str | None: ...
    def remote_commit(self, branch: str) -> str | None: ...
    def has_uncommitted_changes(self) -> bool: ...
    def stash_push(self, message: str) -> str: ...
    def stash_pop(self, ref: str | None = None) -> StashPopResult: ...
    def stash_drop(self, ref: str) -> None: ...
    def stash_list(self) -> list[dict]: ...
    def apply_stash_files(self, ref: str) -> list[str]: ...
    def checkout_new_branch(self, name: str, base_ref: str | None = None) -> None: ...
    def set_head(self, branch: str) -> None: ...
    def pull(self, branch: str) -> None: ...
    def add_all(self) -> None: ...
    def add(self, paths: list[str]) -> None: ...
    def commit(self, message: str) -> str | None: ...
    def push(self, branch: str, set_upstream: bool = False) -> None: ...
    def list_remote_branches(self) -> list[str]: ...
    def ahead_count(self, branch: str) -> int: ...
    def unmerged_paths(self) -> list[str]: ...


class GitAdapter:
    """Runs git in the handle's workspace.

    Args:
        handle: Workspace path, remote and branch to operate on.
        network_timeout: Seconds allowed for fetch, pull, push and ls-remote.
        user_name: Optional commit author name passed as ``-c user.name``.
        user_email: Optional commit author email passed as ``-c user.email``.
    """

    def __init__(
        self,
        handle: RepositoryHandle,
        network_timeout: int = DEFAULT_NETWORK_TIMEOUT,
        user_name: str | None = None,
        user_email: str | None = None,
    ):
        self.handle = handle
        self.network_timeout = network_timeout
        self._identity: list[str] = []
        if user_name:
            self._identity += ["-c", f"user.name={user_name}"]
        if user_email:
            self._identity += ["-c", f"user.email={user_email}"]

    @classmethod
    def from_config(cls, handle: RepositoryHandle, config: dict) -> GitAdapter:
        git_cfg = config.get("git", {})
        return cls(
            handle,
            network_timeout=int(git_cfg.get("network_timeout", DEFAULT_NETWORK_TIMEOUT)),
            user_name=git_cfg.get("user_name") or None,
            user_email=git_cfg.get("user_email") or None,
        )

    @property
    def remote(self) -> str:
        return self.handle.remote_name

    def _git(self, args: list[str], check: bool = True, network: bool = False) -> subprocess.CompletedProcess:
        timeout = self.network_timeout if network else LOCAL_TIMEOUT
        return _run_git(self._identity + args, cwd=self.handle.path, check=check, timeout=timeout)

    # -- repository setup -------------------------------------------------

    def init(self, branch: str | None = None) -> None:
        args = ["init"]
        if branch:
            args.append(f"--initial-branch={branch}")
        self._git(args)

    def add_remote(self, url: str) -> None:
        self._git(["remote", "add", self.remote, url])

    def remote_url(self) -> str | None:
        result = self._git(["remote", "get-url", self.remote], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def set_remote_url(self, url: str) -> None:
        self._git(["remote", "set-url", self.remote, url])

    def checkout_new_branch(self, name: str, base_ref: str | None = None) -> None:
        if base_ref:
            self._git(["checkout", "-B", name, "--track", base_ref])
        else:
            self._git(["checkout", "-B", name])

    def set_head(self, branch: str) -> None:
        """Point an unborn HEAD at ``branch``."""
        self._git(["symbolic-ref", "HEAD", f"refs/heads/{branch}"])

    # -- inspection -------------------------------------------------------

    def current_commit(self) -> str | None:
        result = self._git(["rev-parse", "--verify", "--quiet", "HEAD"], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def current_branch(self) -> str | None:
        result = self._git(["symbolic-ref", "--short", "HEAD"], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def remote_commit(self, branch: str) -> str | None:
        result = self._git(
            ["rev-parse", "--verify", "--quiet", f"refs/remotes/{self.remote}/{branch}"],
            check=False,
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def has_uncommitted_changes(self) -> bool:
        result = self._git(["status", "--porcelain"])
        return bool(result.stdout.strip())

    def unmerged_paths(self) -> list[str]:
        result = self._git(["diff", "--name-only", "--diff-filter=U"], check=False)
        return [line for line in result.stdout.splitlines() if line.strip()]

    def ahead_count(self, branch: str) -> int:
        result = self._git(["rev-list", "--count", f"{self.remote}/{branch}..HEAD"])
        return int(result.stdout.strip() or 0)

    # -- stash ------------------------------------------------------------

    def stash_list(self) -> list[dict]:
        """Stash entries, newest first: ``{"ref", "sha", "subject"}``."""
        result = self._git(["stash", "list", "--format=%gd%x00%H%x00%gs"], check=False)
        entries = []
        for line in result.stdout.splitlines():
            parts = line.split("\x00")
            if len(parts) == 3:
                entries.append({"ref": parts[0], "sha": parts[1], "subject": parts[2]})
        return entries

    def stash_push(self, message: str) -> str:
        """Stash tracked and untracked changes; returns the stash commit sha."""
        self._git(["stash", "push", "--include-untracked", "-m", message])
        result = self._git(["rev-parse", "--verify", "refs/stash"])
        return result.stdout.strip()

    def _selector_for(self, ref: str) -> str | None:
        for entry in self.stash_list():
            if ref in (entry["ref"], entry["sha"]):
                return entry["ref"]
        return None

    def stash_pop(self, ref: str | None = None) -> StashPopResult:
        args = ["stash", "pop"]
        if ref:
            selector = self._selector_for(ref)
            if selector is None:
                raise GitCommandError(["git"] + args + [ref], 1, f"no stash entry {ref}")
            args.append(selector)
        result = self._git(args, check=False)
        if result.returncode == 0:
            return StashPopResult.OK
        output = f"{result.stdout}\n{result.stderr}"
        if "CONFLICT" in output:
            return StashPopResult.CONFLICT
        logger.debug("stash pop failed: %s", output.strip())
        return StashPopResult.FAILED

    def stash_drop(self, ref: str) -> None:
        selector = self._selector_for(ref)
        if selector is None:
            return
        self._git(["stash", "drop", selector])

    def apply_stash_files(self, ref: str) -> list[str]:
        """Copy a stash's files into the working tree without touching the index.

        Fallback for when ``stash pop`` refuses to run, e.g. over an
        unfinished merge. A stashed path is held back, and returned, when the
        index no longer matches the stash base there (the merge touched it)
        or when it was untracked and a file now exists at that path.
        """
        base = f"{ref}^1"
        touched = set(
            self._git(["diff", "--cached", "--name-only", "-z", base]).stdout.split("\x00")
        ) | set(self.unmerged_paths())
        touched.discard("")

        held: list[str] = []
        modified: list[str] = []
        deleted: list[str] = []
        fields = self._git(["diff", "--name-status", "--no-renames", "-z", base, ref]).stdout.split("\x00")
        for code, path in zip(fields[0::2], fields[1::2]):
            if not path:
                continue
            if path in touched:
                held.append(path)
            elif code.startswith("D"):
                deleted.append(path)
            else:
                modified.append(path)

        untracked: list[str] = []
        if self._git(["rev-parse", "--verify", "--quiet", f"{ref}^3"], check=False).returncode == 0:
            listing = self._git(["ls-tree", "-r", "-z", "--name-only", f"{ref}^3"]).stdout
            for path in filter(None, listing.split("\x00")):
                if path in touched or (Path(self.handle.path) / path).exists():
                    held.append(path)
                else:
                    untracked.append(path)

        if modified:
            self._git(["restore", f"--source={ref}", "--worktree", "--"] + modified)
        if untracked:
            self._git(["restore", f"--source={ref}^3", "--worktree", "--"] + untracked)
        for path in deleted:
            (Path(self.handle.path) / path).unlink(missing_ok=True)
        return held

    # -- history ----------------------------------------------------------

    def fetch(self) -> None:
        self._git(["fetch", "--prune", self.remote], network=True)

    def pull(self, branch: str) -> None:
        self._git(["pull", "--no-rebase", "--no-edit", self.remote, branch], network=True)

    def add_all(self) -> None:
        self._git(["add", "-A"])

    def add(self, paths: list[str]) -> None:
        self._git(["add", "--"] + list(paths))

    def commit(self, message: str) -> str | None:
        self._git(["commit", "-m", message])
        return self.current_commit()

    def push(self, branch: str, set_upstream: bool = False) -> None:
        args = ["push"]
        if set_upstream:
            args.append("-u")
        self._git(args + [self.remote, branch], network=True)

    def list_remote_branches(self) -> list[str]:
        result = self._git(["ls-remote", "--heads", self.remote], network=True)
        branches = []
        for line in result.stdout.splitlines():
            # Format: <sha>\trefs/heads/<name>
            parts = line.split("\t", 1)
            if len(parts) == 2 and parts[1].startswith("refs/heads/"):
                branches.append(parts[1][len("refs/heads/") :])
        return branches
