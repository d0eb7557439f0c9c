# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from tasktrack.config import Settings
from tasktrack.core.state import AppState
from tasktrack.tasks.file_store import FileTaskStore
from tasktrack.tasks.task_store import MemoryTaskStore


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Settings built directly (not from the environment), so tests never pick up
    a developer's .env or TASKTRACK_* variables.
    """
    return Settings(
        app_name="tasktrack-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        tasks_path=tmp_path / "tasks.json",
        log_dir=tmp_path,
        storage_backend="memory",
        autosave_interval_seconds=3600.0,
        upcoming_days=7,
        strict_due_dates=False,
    )


@pytest.fixture()
def store() -> Iterator[MemoryTaskStore]:
    s = MemoryTaskStore()
    s.connect()
    yield s
    if s.is_connected:
        s.close()


@pytest.fixture()
def tasks_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "tasks.json"


@pytest.fixture()
def file_store(tasks_path: Path) -> Iterator[FileTaskStore]:
    """
    File store with a long auto-save interval: connect() seeds an empty file,
    then mutations reach disk only on close() (or an explicit save/import/restore).
    """
    s = FileTaskStore(tasks_path, autosave_interval_seconds=3600.0)
    s.connect()
    yield s
    if s.is_connected:
        s.close()


@pytest.fixture()
def state(settings: Settings, store: MemoryTaskStore) -> AppState:
    return AppState(settings=settings, storage=store)
