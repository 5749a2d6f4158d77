"""Value types shared by the sync steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


class RepoStatus(str, Enum):
    ABSENT = "absent"
    PRESENT_NOT_REPO = "present_not_repo"
    PRESENT_REPO = "present_repo"


class CycleState(str, Enum):
    START = "START"
    BOOTSTRAP = "BOOTSTRAP"
    STASH = "STASH"
    RECONCILE = "RECONCILE"
    UNSTASH = "UNSTASH"
    PUBLISH = "PUBLISH"
    DONE = "DONE"
    FAILED = "FAILED"


class ReconcileOutcome(str, Enum):
    UP_TO_DATE = "up_to_date"
    PULLED = "pulled"
    REMOTE_MISSING = "remote_missing"


class PublishOutcome(str, Enum):
    NO_CHANGES = "no_changes"
    PUBLISHED = "published"


class StashPopResult(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass(frozen=True)
class RepositoryHandle:
    """Where the workspace lives and which remote branch it mirrors."""

    path: Path
    remote_url: str
    branch: str = "main"
    remote_name: str = "origin"

    @property
    def tracking_ref(self) -> str:
        return f"{self.remote_name}/{self.branch}"

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> RepositoryHandle:
        sync = config.get("sync", {})
        return cls(
            path=Path(str(sync.get("workspace", ""))).expanduser(),
            remote_url=str(sync.get("remote_url", "")),
            branch=str(sync.get("branch") or "main"),
            remote_name=str(sync.get("remote_name") or "origin"),
        )


@dataclass(frozen=True)
class StashRecord:
    ref: str
    message: str
    created_at: datetime


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    message: str

    def format(self) -> str:
        return f"[{self.timestamp.strftime('%Y-%m-%d %H:%M:%S')}] {self.message}"


@dataclass
class SyncState:
    """Per-cycle flags. Created by the orchestrator, discarded with the result."""

    repo_exists: bool = False
    is_repo: bool = False
    has_local_changes: bool = False
    stash_created: bool = False
    local_tip: str | None = None
    remote_tip: str | None = None
    pulled: bool = False
    published: bool = False
    stash_result: StashPopResult | None = None
    reconcile: ReconcileOutcome | None = None
    publish: PublishOutcome | None = None


@dataclass
class CycleResult:
    state: CycleState
    sync_state: SyncState
    trail: list[CycleState] = field(default_factory=list)
    error: str | None = None
    failed_step: str | None = None
    warnings: list[str] = field(default_factory=list)
    summary: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.state == CycleState.DONE

    def to_dict(self) -> dict:
        s = self.sync_state
        return {
            "state": self.state.value,
            "trail": [t.value for t in self.trail],
            "error": self.error,
            "failed_step": self.failed_step,
            "warnings": list(self.warnings),
            "summary": self.summary,
            "duration_ms": self.duration_ms,
            "reconcile": s.reconcile.value if s.reconcile else None,
            "publish": s.publish.value if s.publish else None,
            "stash": s.stash_result.value if s.stash_result else None,
            "local_tip": s.local_tip,
            "remote_tip": s.remote_tip,
        }
