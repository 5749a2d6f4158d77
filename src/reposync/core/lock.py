"""PID lock file guarding the workspace against overlapping cycles.

The lock file holds the PID of the process running a cycle. A lock whose
process is gone is stale and gets reclaimed by the next acquirer.
"""

from __future__ import annotations

import errno
import os
import time
from pathlib import Path

from .errors import LockError


def is_process_running(pid: int) -> bool:
    """Return True if the process with the given PID is alive.

    Uses ``os.kill(pid, 0)`` (signal 0 = existence check).
    - ``ProcessLookupError`` / ``OSError(ESRCH)`` → process does not exist → False
    - ``PermissionError`` → process exists but we lack signal permission → True
    """
    try:
        os.kill(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except OSError as exc:
        if exc.errno == errno.ESRCH:
            return False
        return True


def _read_pid(path: Path) -> int | None:
    try:
        return int(path.read_text().strip())
    except (ValueError, OSError):
        return None


class SyncLock:
    # An unreadable lock younger than this may belong to a starter that has
    # not written its PID yet.
    FRESH_SECONDS = 5.0

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self._held = False

    def holder_pid(self) -> int | None:
        """PID recorded in the lock file, or None if absent/unreadable."""
        return _read_pid(self.path)

    def is_stale(self) -> bool:
        pid = self.holder_pid()
        if pid is not None:
            return not is_process_running(pid)
        try:
            age = time.time() - self.path.stat().st_mtime
        except FileNotFoundError:
            return True
        return age >= self.FRESH_SECONDS

    def _reclaim(self) -> None:
        """Remove a stale lock so that only one of several reclaimers wins.

        The file is renamed aside first; if what got moved turns out to be a
        live holder's fresh lock, it is linked back into place.
        """
        aside = self.path.with_name(f"{self.path.name}.{os.getpid()}.stale")
        try:
            os.rename(self.path, aside)
        except FileNotFoundError:
            return
        pid = _read_pid(aside)
        if pid is not None and is_process_running(pid):
            try:
                os.link(aside, self.path)
            except FileExistsError:
                pass
        aside.unlink(missing_ok=True)

    def acquire(self) -> bool:
        """Take the lock. Returns False if a live process already holds it."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LockError(f"cannot create lock directory {self.path.parent}: {exc}") from exc
        for _ in range(3):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if not self.is_stale():
                    return False
                self._reclaim()
                continue
            except OSError as exc:
                raise LockError(f"cannot create lock file {self.path}: {exc}") from exc
            with os.fdopen(fd, "w") as f:
                f.write(f"{os.getpid()}\n")
            self._held = True
            return True
        return False

    def release(self) -> None:
        if not self._held:
            return
        try:
            self.path.unlink()
        except OSError:
            pass
        self._held = False

    def __enter__(self) -> SyncLock:
        if not self.acquire():
            raise LockError(f"sync lock held by pid {self.holder_pid()} ({self.path})")
        return self

    def __exit__(self, *exc) -> None:
        self.release()
