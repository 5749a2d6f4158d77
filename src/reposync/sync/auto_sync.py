"""Unattended entry points: one locked cycle, or a loop of them."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..core.config import lock_path
from ..core.git_utils import GitAdapter
from ..core.lock import SyncLock
from ..core.log import SyncLog
from ..core.models import CycleResult, LogEntry, RepositoryHandle
from .engine import CycleSettings, run_cycle

logger = logging.getLogger(__name__)


def open_log(config: dict, echo: Callable[[LogEntry], None] | None = None) -> SyncLog:
    log_cfg = config.get("log", {})
    return SyncLog(log_cfg.get("path") or None, echo=echo if log_cfg.get("echo", True) else None)


def run_locked_cycle(config: dict, echo: Callable[[LogEntry], None] | None = None) -> CycleResult | None:
    """Run one cycle while holding the workspace lock.

    Returns None without touching the workspace when another cycle holds
    the lock.
    """
    handle = RepositoryHandle.from_config(config)
    lock = SyncLock(lock_path(config))
    with open_log(config, echo) as log:
        if not lock.acquire():
            log.warning(f"Another sync cycle is running (pid {lock.holder_pid()}); skipping")
            log.separator()
            return None
        try:
            return run_cycle(
                handle,
                adapter=GitAdapter.from_config(handle, config),
                log=log,
                settings=CycleSettings.from_config(config),
            )
        finally:
            lock.release()


def run_forever(
    config: dict,
    interval_minutes: int | None = None,
    max_cycles: int | None = None,
    echo: Callable[[LogEntry], None] | None = None,
    on_result: Callable[[CycleResult | None], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Run cycles back to back with ``interval_minutes`` between them.

    Cycles never overlap: the next one starts only after the previous one has
    reached a terminal state and the interval has elapsed. Returns the number
    of cycles run.
    """
    interval = interval_minutes or int(config.get("schedule", {}).get("interval_minutes", 10))
    count = 0
    try:
        while max_cycles is None or count < max_cycles:
            try:
                result = run_locked_cycle(config, echo=echo)
            except Exception:
                logger.warning("Sync cycle raised; continuing with next interval", exc_info=True)
                result = None
            count += 1
            if on_result is not None:
                on_result(result)
            if max_cycles is not None and count >= max_cycles:
                break
            sleep(interval * 60)
    except KeyboardInterrupt:
        logger.debug("Watch loop interrupted after %d cycles", count)
    return count
