# src/tasktrack/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..config import Settings
from .ports import TaskStorage


@dataclass
class AppState:
    # Store Settings on the state for easy access in command handlers.
    settings: Settings
    storage: TaskStorage
