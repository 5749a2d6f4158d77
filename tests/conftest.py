"""Shared fixtures: a bare "remote" repo, collaborator clones, and handles."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from reposync.core.log import SyncLog
from reposync.core.models import RepositoryHandle


def git(repo: Path, *args: str) -> str:
    """Run git in ``repo`` and return stripped stdout."""
    result = subprocess.run(
        ["git", "-C", str(repo), *args],
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


def commit_file(repo: Path, name: str, content: str, message: str | None = None) -> str:
    path = repo / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    git(repo, "add", name)
    git(repo, "commit", "-m", message or f"update {name}")
    return git(repo, "rev-parse", "HEAD")


@pytest.fixture(autouse=True)
def isolated_git(tmp_path_factory, monkeypatch):
    """Keep user/system git config out of the tests and give commits an author."""
    global_config = tmp_path_factory.mktemp("gitcfg") / "gitconfig"
    global_config.write_text("", encoding="utf-8")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@test.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@test.com")
    return global_config


@pytest.fixture
def isolated_global_config(tmp_path, monkeypatch):
    """Isolate ~/.reposync/config.toml to a temp dir."""
    config_path = tmp_path / "global_rs" / "config.toml"
    monkeypatch.setattr("reposync.core.config._GLOBAL_CONFIG_PATH", config_path)
    return config_path


@pytest.fixture
def remote(tmp_path):
    """Empty bare repository standing in for the remote endpoint."""
    path = tmp_path / "remote.git"
    subprocess.run(
        ["git", "init", "--bare", "--initial-branch=main", str(path)],
        check=True,
        capture_output=True,
    )
    return path


@pytest.fixture
def clone_factory(tmp_path):
    """Clone the remote into a fresh directory, e.g. a second collaborator."""

    def _clone(remote_path: Path, name: str = "other") -> Path:
        dest = tmp_path / name
        subprocess.run(["git", "clone", str(remote_path), str(dest)], check=True, capture_output=True)
        return dest

    return _clone


@pytest.fixture
def seeded_remote(remote, clone_factory):
    """Bare remote whose ``main`` branch holds one commit (``shared.txt``)."""
    seed = clone_factory(remote, "seed")
    git(seed, "symbolic-ref", "HEAD", "refs/heads/main")
    commit_file(seed, "shared.txt", "base\n", "seed commit")
    git(seed, "push", "-u", "origin", "main")
    return remote


@pytest.fixture
def workspace(tmp_path):
    return tmp_path / "workspace"


@pytest.fixture
def handle(workspace, remote):
    return RepositoryHandle(path=workspace, remote_url=str(remote), branch="main")


@pytest.fixture
def log():
    return SyncLog()
