# src/tasktrack/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the configured storage backend into AppState.
"""

from __future__ import annotations

import logging

from ..config import Settings, get_settings
from ..core.ports import TaskStorage
from ..core.state import AppState
from ..tasks.file_store import FileTaskStore
from ..tasks.task_store import MemoryTaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_path.parent.mkdir(parents=True, exist_ok=True)


def create_storage(settings: Settings) -> TaskStorage:
    if settings.storage_backend == "memory":
        logger.info("Using in-memory storage (nothing is persisted).")
        return MemoryTaskStore(
            upcoming_days=settings.upcoming_days,
            strict_due_dates=settings.strict_due_dates,
        )

    return FileTaskStore(
        settings.tasks_path,
        autosave_interval_seconds=settings.autosave_interval_seconds,
        upcoming_days=settings.upcoming_days,
        strict_due_dates=settings.strict_due_dates,
    )


def create_initial_state(*, settings: Settings | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    The storage is returned unconnected; the caller owns connect()/close().
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    if settings.storage_backend == "file":
        _ensure_local_dirs(settings)

    return AppState(settings=settings, storage=create_storage(settings))
