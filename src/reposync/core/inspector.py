"""Workspace classification — decides whether a cycle needs bootstrapping."""

from __future__ import annotations

from pathlib import Path

from .git_utils import is_git_repo
from .models import RepoStatus


def classify(path: str | Path) -> RepoStatus:
    """Classify ``path`` without touching it.

    A directory nested inside some other repository is not a repository of
    its own, so it classifies as ``PRESENT_NOT_REPO``.
    """
    p = Path(path)
    if not p.exists():
        return RepoStatus.ABSENT
    if not p.is_dir():
        return RepoStatus.PRESENT_NOT_REPO
    if is_git_repo(p):
        return RepoStatus.PRESENT_REPO
    return RepoStatus.PRESENT_NOT_REPO
