"""Tests for the sync cycle state machine.

The first half drives ``run_cycle`` with a mocked adapter to pin down every
transition; the second half runs whole cycles against real repositories.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from conftest import commit_file, git
from reposync.core.errors import BootstrapError, GitCommandError
from reposync.core.log import SyncLog
from reposync.core.models import (
    CycleState,
    PublishOutcome,
    ReconcileOutcome,
    RepoStatus,
    RepositoryHandle,
    StashPopResult,
)
from reposync.sync.engine import CycleSettings, run_cycle

S = CycleState


def _fake_adapter(dirty: bool = False, local: str = "aaa", remote: str | None = "aaa") -> MagicMock:
    adapter = MagicMock()
    adapter.has_uncommitted_changes.return_value = dirty
    adapter.current_commit.return_value = local
    adapter.remote_commit.return_value = remote
    adapter.ahead_count.return_value = 0
    adapter.stash_push.return_value = "stash-sha"
    adapter.stash_pop.return_value = StashPopResult.OK
    adapter.unmerged_paths.return_value = []
    adapter.apply_stash_files.return_value = []
    adapter.commit.return_value = "new-tip"
    return adapter


@pytest.fixture
def fake_handle(tmp_path):
    return RepositoryHandle(path=tmp_path / "ws", remote_url="https://example.com/r.git")


@pytest.fixture
def as_repo():
    with patch("reposync.sync.engine.classify", return_value=RepoStatus.PRESENT_REPO):
        yield


@pytest.mark.usefixtures("as_repo")
class TestTransitions:
    def test_clean_up_to_date_cycle(self, fake_handle, log):
        adapter = _fake_adapter()
        result = run_cycle(fake_handle, adapter, log)

        assert result.ok
        assert result.trail == [S.START, S.STASH, S.RECONCILE, S.UNSTASH, S.PUBLISH, S.DONE]
        assert result.sync_state.reconcile == ReconcileOutcome.UP_TO_DATE
        assert result.sync_state.publish == PublishOutcome.NO_CHANGES
        assert result.sync_state.stash_created is False
        adapter.stash_push.assert_not_called()
        adapter.push.assert_not_called()

    def test_dirty_tree_is_stashed_restored_and_published(self, fake_handle, log):
        adapter = _fake_adapter(dirty=True, remote="bbb")
        result = run_cycle(fake_handle, adapter, log)

        assert result.ok
        assert result.sync_state.stash_created is True
        assert result.sync_state.reconcile == ReconcileOutcome.PULLED
        assert result.sync_state.stash_result == StashPopResult.OK
        assert result.sync_state.publish == PublishOutcome.PUBLISHED
        assert result.sync_state.local_tip == "new-tip"
        adapter.stash_pop.assert_called_once_with("stash-sha")
        adapter.push.assert_called_once_with("main", set_upstream=False)

    def test_stash_always_precedes_reconcile_and_publish_follows_unstash(self, fake_handle, log):
        adapter = _fake_adapter(dirty=True, remote="bbb")
        run_cycle(fake_handle, adapter, log)

        calls = [c[0] for c in adapter.method_calls]
        assert calls.index("stash_push") < calls.index("fetch") < calls.index("pull")
        assert calls.index("pull") < calls.index("stash_pop") < calls.index("add_all") < calls.index("push")

    def test_fetch_failure_restores_stash_and_fails(self, fake_handle, log):
        adapter = _fake_adapter(dirty=True)
        adapter.fetch.side_effect = GitCommandError(["git", "fetch"], 128, "could not resolve host")

        result = run_cycle(fake_handle, adapter, log)

        assert result.state == S.FAILED
        assert result.failed_step == "fetch"
        assert result.trail == [S.START, S.STASH, S.RECONCILE, S.UNSTASH, S.FAILED]
        adapter.stash_pop.assert_called_once()
        adapter.commit.assert_not_called()
        adapter.push.assert_not_called()
        assert any(e.message.startswith("ERROR: Failed to fetch") for e in log.entries)

    def test_pull_failure_restores_stash_and_fails(self, fake_handle, log):
        adapter = _fake_adapter(dirty=True, remote="bbb")
        adapter.pull.side_effect = GitCommandError(["git", "pull"], 1, "Automatic merge failed")

        result = run_cycle(fake_handle, adapter, log)

        assert result.state == S.FAILED
        assert result.failed_step == "pull"
        assert S.UNSTASH in result.trail
        adapter.stash_pop.assert_called_once()
        adapter.push.assert_not_called()

    def test_stash_failure_aborts_before_reconcile(self, fake_handle, log):
        adapter = _fake_adapter(dirty=True)
        adapter.stash_push.side_effect = GitCommandError(["git", "stash"], 1, "boom")

        result = run_cycle(fake_handle, adapter, log)

        assert result.state == S.FAILED
        assert result.failed_step == "stash"
        assert result.trail == [S.START, S.STASH, S.FAILED]
        adapter.fetch.assert_not_called()

    def test_stash_conflict_is_a_warning(self, fake_handle, log):
        adapter = _fake_adapter(dirty=True, remote="bbb")
        adapter.stash_pop.return_value = StashPopResult.CONFLICT
        adapter.unmerged_paths.return_value = ["notes.md"]

        result = run_cycle(fake_handle, adapter, log)

        assert result.ok
        assert result.sync_state.stash_result == StashPopResult.CONFLICT
        assert len(result.warnings) == 1
        adapter.stash_drop.assert_called_once_with("stash-sha")
        adapter.push.assert_called_once()

    def test_stash_not_applied_is_a_warning(self, fake_handle, log):
        adapter = _fake_adapter(dirty=True, remote="bbb")
        adapter.stash_pop.return_value = StashPopResult.FAILED
        adapter.apply_stash_files.return_value = ["notes.md"]

        result = run_cycle(fake_handle, adapter, log)

        assert result.ok
        assert result.warnings
        adapter.stash_drop.assert_not_called()

    def test_stash_applied_file_by_file_when_pop_refuses(self, fake_handle, log):
        adapter = _fake_adapter(dirty=True, remote="bbb")
        adapter.stash_pop.return_value = StashPopResult.FAILED

        result = run_cycle(fake_handle, adapter, log)

        assert result.ok
        assert result.sync_state.stash_result == StashPopResult.OK
        assert not result.warnings
        adapter.apply_stash_files.assert_called_once_with("stash-sha")
        adapter.stash_drop.assert_called_once_with("stash-sha")

    def test_push_failure(self, fake_handle, log):
        adapter = _fake_adapter(dirty=True)
        adapter.push.side_effect = GitCommandError(["git", "push"], 1, "rejected")

        result = run_cycle(fake_handle, adapter, log)

        assert result.state == S.FAILED
        assert result.failed_step == "push"
        adapter.commit.assert_called_once()

    def test_remote_missing_republishes(self, fake_handle, log):
        adapter = _fake_adapter(remote=None)
        result = run_cycle(fake_handle, adapter, log)

        assert result.ok
        assert result.sync_state.reconcile == ReconcileOutcome.REMOTE_MISSING
        adapter.pull.assert_not_called()
        adapter.push.assert_called_once_with("main", set_upstream=True)

    def test_unexpected_error_restores_stash_and_reraises(self, fake_handle, log):
        adapter = _fake_adapter(dirty=True)
        adapter.fetch.side_effect = RuntimeError("adapter bug")

        with pytest.raises(RuntimeError):
            run_cycle(fake_handle, adapter, log)

        adapter.stash_pop.assert_called_once()
        messages = [e.message for e in log.entries]
        assert "ERROR: Unexpected failure: adapter bug" in messages
        assert messages[-1] == "=== Git Sync Finished ==="

    def test_error_during_restore_does_not_pop_twice(self, fake_handle, log):
        adapter = _fake_adapter(dirty=True, remote="bbb")
        adapter.stash_pop.return_value = StashPopResult.CONFLICT
        adapter.unmerged_paths.side_effect = [[], RuntimeError("timed out")]

        with pytest.raises(RuntimeError, match="timed out"):
            run_cycle(fake_handle, adapter, log)

        assert adapter.stash_pop.call_count == 1

    def test_custom_commit_message(self, fake_handle, log):
        adapter = _fake_adapter(dirty=True)
        run_cycle(fake_handle, adapter, log, CycleSettings(commit_message="wip {timestamp}"))
        assert adapter.commit.call_args[0][0].startswith("wip ")

    def test_log_brackets_every_cycle(self, fake_handle, log):
        run_cycle(fake_handle, _fake_adapter(), log)
        messages = [e.message for e in log.entries]
        assert messages[0] == "=== Git Sync Started ==="
        assert messages[-2].startswith("Sync completed successfully")
        assert messages[-1] == "=== Git Sync Finished ==="

    def test_state_is_fresh_per_cycle(self, fake_handle, log):
        first = run_cycle(fake_handle, _fake_adapter(dirty=True, remote="bbb"), log)
        second = run_cycle(fake_handle, _fake_adapter(), log)
        assert first.sync_state is not second.sync_state
        assert second.sync_state.pulled is False
        assert second.sync_state.published is False


class TestBootstrapTransitions:
    def test_absent_workspace_bootstraps(self, fake_handle, log):
        adapter = _fake_adapter()
        with (
            patch("reposync.sync.engine.classify", return_value=RepoStatus.ABSENT),
            patch("reposync.sync.bootstrap.ensure", return_value="seeded") as ensure,
        ):
            result = run_cycle(fake_handle, adapter, log, CycleSettings(seed_filename="INDEX.md"))

        assert result.ok
        assert result.trail[:3] == [S.START, S.BOOTSTRAP, S.STASH]
        assert ensure.call_args.kwargs["seed_filename"] == "INDEX.md"
        assert result.sync_state.is_repo is True

    def test_bootstrap_failure_ends_cycle(self, fake_handle, log):
        adapter = _fake_adapter()
        with (
            patch("reposync.sync.engine.classify", return_value=RepoStatus.PRESENT_NOT_REPO),
            patch("reposync.sync.bootstrap.ensure", side_effect=BootstrapError("remote unreachable")),
        ):
            result = run_cycle(fake_handle, adapter, log)

        assert result.state == S.FAILED
        assert result.failed_step == "bootstrap"
        assert result.trail == [S.START, S.BOOTSTRAP, S.FAILED]
        adapter.stash_push.assert_not_called()

    @pytest.mark.usefixtures("as_repo")
    def test_repository_without_commits_resumes_setup(self, fake_handle, log):
        adapter = _fake_adapter()
        unborn = iter([None])
        adapter.current_commit.side_effect = lambda: next(unborn, "aaa")
        with patch("reposync.sync.bootstrap.ensure", return_value="seeded") as ensure:
            result = run_cycle(fake_handle, adapter, log)

        assert result.ok
        assert result.trail[:3] == [S.START, S.BOOTSTRAP, S.STASH]
        ensure.assert_called_once()
        assert "Repository has no commits yet; resuming setup" in [e.message for e in log.entries]

    @pytest.mark.usefixtures("as_repo")
    def test_repository_without_remote_resumes_setup(self, fake_handle, log):
        adapter = _fake_adapter()
        adapter.remote_url.return_value = None
        with patch("reposync.sync.bootstrap.ensure", return_value="adopted") as ensure:
            result = run_cycle(fake_handle, adapter, log)

        assert result.ok
        assert S.BOOTSTRAP in result.trail
        ensure.assert_called_once()

    @pytest.mark.usefixtures("as_repo")
    def test_complete_repository_skips_setup(self, fake_handle, log):
        adapter = _fake_adapter()
        adapter.remote_url.return_value = fake_handle.remote_url
        with patch("reposync.sync.bootstrap.ensure") as ensure:
            result = run_cycle(fake_handle, adapter, log)

        assert S.BOOTSTRAP not in result.trail
        ensure.assert_not_called()


def remote_tip(remote) -> str:
    return git(remote, "rev-parse", "refs/heads/main")


class TestScenarios:
    def test_empty_remote_empty_workspace(self, handle, remote, workspace, log):
        result = run_cycle(handle, log=log)

        assert result.ok
        assert S.BOOTSTRAP in result.trail
        assert remote_tip(remote) == git(workspace, "rev-parse", "HEAD")
        assert (workspace / "README.md").exists()

    def test_existing_remote_absent_workspace(self, seeded_remote, workspace, log):
        handle = RepositoryHandle(path=workspace, remote_url=str(seeded_remote))
        result = run_cycle(handle, log=log)

        assert result.ok
        assert git(workspace, "rev-parse", "HEAD") == remote_tip(seeded_remote)
        assert (workspace / "shared.txt").read_text() == "base\n"
        assert result.sync_state.publish == PublishOutcome.NO_CHANGES

    def test_local_edit_with_fast_forward_remote(self, seeded_remote, workspace, clone_factory, log):
        handle = RepositoryHandle(path=workspace, remote_url=str(seeded_remote))
        run_cycle(handle, log=log)

        (workspace / "a.txt").write_text("local edit\n")
        other = clone_factory(seeded_remote, "other")
        y = commit_file(other, "y.txt", "from other\n")
        git(other, "push", "origin", "main")

        result = run_cycle(handle, log=log)

        assert result.ok
        assert result.sync_state.reconcile == ReconcileOutcome.PULLED
        assert result.sync_state.stash_result == StashPopResult.OK
        new_tip = remote_tip(seeded_remote)
        assert git(seeded_remote, "rev-parse", f"{new_tip}^") == y
        assert git(seeded_remote, "show", f"{new_tip}:a.txt") == "local edit"
        assert git(seeded_remote, "show", f"{new_tip}:y.txt") == "from other"

    def test_conflicting_pull_fails_without_publishing(self, seeded_remote, workspace, clone_factory, log):
        handle = RepositoryHandle(path=workspace, remote_url=str(seeded_remote))
        run_cycle(handle, log=log)

        other = clone_factory(seeded_remote, "other")
        commit_file(other, "shared.txt", "theirs\n")
        git(other, "push", "origin", "main")
        # committed locally but not yet pushed, so the histories diverge
        commit_file(workspace, "shared.txt", "mine\n")
        (workspace / "draft.txt").write_text("unsaved\n")
        before = remote_tip(seeded_remote)

        result = run_cycle(handle, log=log)

        assert result.state == S.FAILED
        assert result.failed_step == "pull"
        assert S.UNSTASH in result.trail
        assert result.sync_state.stash_result == StashPopResult.OK
        assert "CONFLICT (content): Merge conflict in shared.txt" in result.error
        assert remote_tip(seeded_remote) == before
        assert (workspace / "draft.txt").read_text() == "unsaved\n"
        assert git(workspace, "stash", "list") == ""

        # the unfinished merge blocks later cycles until it is resolved
        again = run_cycle(handle, log=log)
        assert again.failed_step == "stash"
        assert "Unresolved merge in workspace (shared.txt)" in again.error
        assert remote_tip(seeded_remote) == before
        assert git(workspace, "stash", "list") == ""

    def test_stash_conflict_commits_markers(self, seeded_remote, workspace, clone_factory, log):
        handle = RepositoryHandle(path=workspace, remote_url=str(seeded_remote))
        run_cycle(handle, log=log)

        other = clone_factory(seeded_remote, "other")
        commit_file(other, "shared.txt", "theirs\n")
        git(other, "push", "origin", "main")
        (workspace / "shared.txt").write_text("mine\n")

        result = run_cycle(handle, log=log)

        assert result.ok
        assert result.sync_state.stash_result == StashPopResult.CONFLICT
        assert result.warnings
        published = git(seeded_remote, "show", "main:shared.txt")
        assert "<<<<<<<" in published
        assert git(workspace, "stash", "list") == ""


class TestInterruptedBootstrap:
    def _interrupt(self, workspace, tmp_path, log):
        gone = RepositoryHandle(path=workspace, remote_url=str(tmp_path / "gone.git"))
        result = run_cycle(gone, log=log)
        assert result.failed_step == "bootstrap"
        assert git(workspace, "rev-parse", "--is-inside-work-tree") == "true"

    def test_seeds_empty_remote_on_next_cycle(self, handle, remote, workspace, tmp_path, log):
        self._interrupt(workspace, tmp_path, log)
        (workspace / "notes.txt").write_text("kept\n")

        result = run_cycle(handle, log=log)

        assert result.ok
        assert S.BOOTSTRAP in result.trail
        assert git(workspace, "remote", "get-url", "origin") == str(remote)
        files = git(remote, "ls-tree", "--name-only", "main").splitlines()
        assert sorted(files) == ["README.md", "notes.txt"]

        tip = remote_tip(remote)
        again = run_cycle(handle, log=log)
        assert again.ok
        assert S.BOOTSTRAP not in again.trail
        assert again.sync_state.publish == PublishOutcome.NO_CHANGES
        assert remote_tip(remote) == tip

    def test_empty_workspace_seeds_remote(self, handle, remote, workspace, tmp_path, log):
        self._interrupt(workspace, tmp_path, log)

        result = run_cycle(handle, log=log)

        assert result.ok
        assert remote_tip(remote) == git(workspace, "rev-parse", "HEAD")

    def test_adopts_existing_remote_branch(self, seeded_remote, workspace, tmp_path, log):
        self._interrupt(workspace, tmp_path, log)
        handle = RepositoryHandle(path=workspace, remote_url=str(seeded_remote))

        result = run_cycle(handle, log=log)

        assert result.ok
        assert git(workspace, "rev-parse", "HEAD") == remote_tip(seeded_remote)
        assert (workspace / "shared.txt").read_text() == "base\n"


class TestCycleProperties:
    def test_second_cycle_is_a_no_op(self, seeded_remote, workspace, log):
        handle = RepositoryHandle(path=workspace, remote_url=str(seeded_remote))
        run_cycle(handle, log=log)
        (workspace / "note.txt").write_text("x\n")
        run_cycle(handle, log=log)
        tip = remote_tip(seeded_remote)

        result = run_cycle(handle, log=log)

        assert result.sync_state.reconcile == ReconcileOutcome.UP_TO_DATE
        assert result.sync_state.publish == PublishOutcome.NO_CHANGES
        assert remote_tip(seeded_remote) == tip
        assert git(workspace, "rev-parse", "HEAD") == tip

    def test_no_stash_left_behind_after_clean_cycles(self, seeded_remote, workspace, clone_factory, log):
        handle = RepositoryHandle(path=workspace, remote_url=str(seeded_remote))
        run_cycle(handle, log=log)
        other = clone_factory(seeded_remote, "other")
        for i in range(3):
            (workspace / f"mine{i}.txt").write_text(f"{i}\n")
            git(other, "pull", "--no-rebase", "origin", "main")
            commit_file(other, f"theirs{i}.txt", f"{i}\n")
            git(other, "push", "origin", "main")
            result = run_cycle(handle, log=log)
            assert result.ok
            assert git(workspace, "stash", "list") == ""

    def test_unreachable_remote_keeps_local_edits(self, seeded_remote, workspace, tmp_path, log):
        handle = RepositoryHandle(path=workspace, remote_url=str(seeded_remote))
        run_cycle(handle, log=log)
        (workspace / "keep.txt").write_text("precious\n")

        gone = RepositoryHandle(path=workspace, remote_url=str(tmp_path / "gone.git"))
        git(workspace, "remote", "set-url", "origin", gone.remote_url)
        result = run_cycle(gone, log=log)

        assert result.failed_step == "fetch"
        assert (workspace / "keep.txt").read_text() == "precious\n"
        assert git(workspace, "stash", "list") == ""

    def test_cycle_writes_log_file(self, seeded_remote, workspace, tmp_path):
        handle = RepositoryHandle(path=workspace, remote_url=str(seeded_remote))
        log_path = tmp_path / "logs" / "sync.log"
        with SyncLog(log_path) as file_log:
            run_cycle(handle, log=file_log)
            run_cycle(handle, log=file_log)

        lines = log_path.read_text().splitlines()
        assert sum(1 for line in lines if line.endswith("=== Git Sync Started ===")) == 2
        assert all(line.startswith("[") for line in lines if line)
