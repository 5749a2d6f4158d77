"""Core building blocks for reposync."""

from .config import get_config_value, load_config, save_config, validate_sync_config
from .errors import (
    BootstrapError,
    CommitError,
    ConfigError,
    FetchError,
    GitCommandError,
    PullError,
    PushError,
    StashError,
    SyncError,
)
from .git_utils import GitAdapter, get_current_branch, get_current_commit, is_git_repo
from .inspector import classify
from .log import SyncLog
from .models import CycleResult, CycleState, RepoStatus, RepositoryHandle, SyncState

__all__ = [
    "load_config",
    "save_config",
    "get_config_value",
    "validate_sync_config",
    "SyncError",
    "BootstrapError",
    "StashError",
    "FetchError",
    "PullError",
    "CommitError",
    "PushError",
    "ConfigError",
    "GitCommandError",
    "GitAdapter",
    "get_current_commit",
    "get_current_branch",
    "is_git_repo",
    "classify",
    "SyncLog",
    "CycleResult",
    "CycleState",
    "RepoStatus",
    "RepositoryHandle",
    "SyncState",
]
