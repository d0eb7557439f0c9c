# src/tasktrack/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Nothing but the storage location and store tuning is configurable.
- Settings are injectable: tests build their own instead of reading the env.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKTRACK"

STORAGE_BACKENDS = ("file", "memory")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_path: Path
    log_dir: Path

    # ---- Store tuning ----
    storage_backend: str
    autosave_interval_seconds: float
    upcoming_days: int
    strict_due_dates: bool

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "tasktrack") or "tasktrack"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tasktrack"))
        tasks_path = _env_path(_k("TASKS_PATH"), data_dir / "tasks.json")
        log_dir = _env_path(_k("LOG_DIR"), data_dir)

        storage_backend = _env(_k("STORAGE"), "file").strip().lower()
        if storage_backend not in STORAGE_BACKENDS:
            storage_backend = "file"

        # Never allow a zero/negative interval: the auto-save thread would spin.
        autosave_interval_seconds = max(1.0, _env_float(_k("AUTOSAVE_INTERVAL_SECONDS"), 300.0))
        upcoming_days = max(1, _env_int(_k("UPCOMING_DAYS"), 7))
        strict_due_dates = _env_bool(_k("STRICT_DUE_DATES"), False)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            tasks_path=tasks_path,
            log_dir=log_dir,
            storage_backend=storage_backend,
            autosave_interval_seconds=autosave_interval_seconds,
            upcoming_days=upcoming_days,
            strict_due_dates=strict_due_dates,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv(override=False)
    return Settings.from_env()
