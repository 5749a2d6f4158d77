"""Append-only cycle log.

Each ``append`` writes exactly one ``[YYYY-MM-DD HH:MM:SS] message`` line to
the log file. Severity is part of the message text ("WARNING: ...",
"ERROR: ...") and nothing is filtered, so the file is a complete history of
every cycle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from .models import LogEntry
from .security import filter_secrets

# One shared logger; each SyncLog feeds records to its own file handler.
_cycle_logger = logging.getLogger("reposync.cyclelog")
_cycle_logger.propagate = False


def single_line(message: str) -> str:
    """Fold multi-line text (e.g. git output) into one log line."""
    return " | ".join(line.strip() for line in message.splitlines() if line.strip())


class SyncLog:
    """Timestamped sink shared by every step of a cycle.

    Args:
        path: Log file to append to; ``None`` keeps entries in memory only.
        echo: Optional callback receiving every entry as it is written.
    """

    def __init__(self, path: str | Path | None = None, echo: Callable[[LogEntry], None] | None = None):
        self.path = Path(path).expanduser() if path else None
        self.echo = echo
        self.entries: list[LogEntry] = []
        self._handler: logging.FileHandler | None = None
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handler = logging.FileHandler(self.path, mode="a", encoding="utf-8", delay=True)
            self._handler.setFormatter(logging.Formatter("%(message)s"))

    def _write(self, line: str) -> None:
        if self._handler is None:
            return
        record = _cycle_logger.makeRecord(_cycle_logger.name, logging.INFO, __file__, 0, line, None, None)
        self._handler.handle(record)

    def append(self, message: str, timestamp: datetime | None = None) -> LogEntry:
        entry = LogEntry(timestamp=timestamp or datetime.now(), message=single_line(filter_secrets(message)))
        self.entries.append(entry)
        self._write(entry.format())
        if self.echo is not None:
            self.echo(entry)
        return entry

    def info(self, message: str) -> LogEntry:
        return self.append(message)

    def warning(self, message: str) -> LogEntry:
        return self.append(f"WARNING: {message}")

    def error(self, message: str) -> LogEntry:
        return self.append(f"ERROR: {message}")

    def separator(self) -> None:
        """Blank line between cycles."""
        self._write("")

    def close(self) -> None:
        if self._handler is not None:
            self._handler.close()
            self._handler = None

    def __enter__(self) -> SyncLog:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
