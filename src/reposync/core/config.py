"""Configuration management — TOML-based, defaults + global + explicit file merge."""

from __future__ import annotations

import copy
import tomllib
from pathlib import Path
from typing import Any

from .errors import ConfigError

_GLOBAL_CONFIG_PATH = Path.home() / ".reposync" / "config.toml"

DEFAULT_CONFIG: dict[str, Any] = {
    "sync": {
        "workspace": "",
        "remote_url": "",
        "remote_name": "origin",
        "branch": "main",
    },
    "schedule": {
        "interval_minutes": 10,
        "cron_log": "~/.reposync/cron.log",
    },
    "log": {
        "path": "~/.reposync/sync.log",
        "echo": True,
    },
    "git": {
        "network_timeout": 120,
        "user_name": "",
        "user_email": "",
    },
    "seed": {
        "filename": "README.md",
        "content": "",
    },
    "commit": {
        "message": "Auto-sync: {timestamp}",
        "stash_message": "Auto-stash before sync {timestamp}",
    },
    "lock": {
        "path": "",
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Load merged config: defaults <- global <- explicit file."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if _GLOBAL_CONFIG_PATH.exists():
        config = _deep_merge(config, _read_toml(_GLOBAL_CONFIG_PATH))

    if config_path:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        config = _deep_merge(config, _read_toml(path))

    return config


def validate_sync_config(config: dict[str, Any]) -> list[str]:
    """Return a list of problems that would prevent a cycle from running."""
    problems = []
    sync = config.get("sync", {})
    if not sync.get("workspace"):
        problems.append("sync.workspace is not set")
    if not sync.get("remote_url"):
        problems.append("sync.remote_url is not set")
    if not sync.get("branch"):
        problems.append("sync.branch is not set")
    interval = config.get("schedule", {}).get("interval_minutes", 0)
    if not isinstance(interval, int) or interval < 1:
        problems.append("schedule.interval_minutes must be a positive integer")
    return problems


def lock_path(config: dict[str, Any]) -> Path:
    """Lock file location; defaults to ``sync.lock`` beside the log file."""
    explicit = config.get("lock", {}).get("path")
    if explicit:
        return Path(explicit).expanduser()
    log_path = Path(config.get("log", {}).get("path") or DEFAULT_CONFIG["log"]["path"]).expanduser()
    return log_path.parent / "sync.lock"


def save_config(config_path: str | Path | None, key: str, value: str) -> Path:
    """Save a config value. Uses the explicit file if given, else global."""
    path = Path(config_path).expanduser() if config_path else _GLOBAL_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, Any] = {}
    if path.exists():
        existing = _read_toml(path)

    parts = key.split(".")
    target = existing
    for part in parts[:-1]:
        if part not in target:
            target[part] = {}
        target = target[part]

    target[parts[-1]] = _parse_value(value)

    _write_toml(path, existing)
    return path


def get_config_value(config: dict, key: str) -> Any:
    """Get a nested config value by dotted key."""
    parts = key.split(".")
    current = config
    for part in parts:
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return None
    return current


def _parse_value(value: str) -> Any:
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


def _write_toml(path: Path, data: dict) -> None:
    """Write dict as TOML (simple serializer for flat/nested dicts)."""
    lines: list[str] = []
    _write_toml_section(lines, data, [])
    path.write_text("\n".join(lines).lstrip("\n") + "\n", encoding="utf-8")


def _write_toml_section(lines: list[str], data: dict, prefix: list[str]) -> None:
    scalars = {k: v for k, v in data.items() if not isinstance(v, dict)}
    tables = {k: v for k, v in data.items() if isinstance(v, dict)}
    for key, value in scalars.items():
        if isinstance(value, list):
            lines.append(f"{key} = [")
            for item in value:
                lines.append(f"    {_toml_value(item)},")
            lines.append("]")
        else:
            lines.append(f"{key} = {_toml_value(value)}")
    for key, value in tables.items():
        section = ".".join(prefix + [key])
        lines.append(f"\n[{section}]")
        _write_toml_section(lines, value, prefix + [key])


def _toml_value(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, str):
        escaped = v.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return str(v)
