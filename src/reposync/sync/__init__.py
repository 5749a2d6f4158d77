"""Sync cycle steps and the orchestrator that sequences them."""

from .auto_sync import run_forever, run_locked_cycle
from .bootstrap import ensure
from .engine import CycleSettings, run_cycle
from .publish import publish
from .reconcile import reconcile
from .stash import protect, restore

__all__ = [
    "ensure",
    "protect",
    "restore",
    "reconcile",
    "publish",
    "run_cycle",
    "CycleSettings",
    "run_locked_cycle",
    "run_forever",
]
