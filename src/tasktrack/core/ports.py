# src/tasktrack/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the CLI.

The CLI depends on the TaskStorage Protocol instead of a concrete store, so
the in-memory and file-backed stores are interchangeable (and tests can use
either one).
"""

from datetime import datetime
from typing import Iterable, Protocol

from ..tasks.task_models import SubTask, Task, TaskStatus
from ..tasks.task_query import Page, SortOption, TaskFilter
from ..tasks.task_store import ProductivityStats, TaskSummary


class TaskStorage(Protocol):
    # Connection management
    def connect(self) -> None: ...
    def close(self) -> None: ...
    def ping(self) -> None: ...

    # Core CRUD
    def count_tasks(self) -> int: ...
    def create_task(self, task: Task) -> Task: ...
    def get_task(self, task_id: int) -> Task: ...
    def update_task(self, task: Task) -> Task: ...
    def delete_task(self, task_id: int) -> None: ...

    # Batch
    def create_tasks(self, tasks: Iterable[Task]) -> list[Task]: ...
    def delete_tasks(self, task_ids: Iterable[int]) -> None: ...

    # Queries
    def list_tasks(
            self,
            flt: TaskFilter | None = None,
            sort: SortOption | None = None,
            page: Page | None = None,
    ) -> list[Task]: ...
    def search_tasks(self, query: str) -> list[Task]: ...
    def get_tasks_by_category(self, category: str) -> list[Task]: ...
    def get_tasks_by_tag(self, tag: str) -> list[Task]: ...
    def get_tasks_by_status(self, status: TaskStatus) -> list[Task]: ...
    def get_overdue_tasks(self) -> list[Task]: ...
    def get_upcoming_tasks(self, days: int) -> list[Task]: ...
    def get_categories(self) -> list[str]: ...
    def get_tags(self) -> list[str]: ...

    # Status / subtasks / sharing
    def mark_task_complete(self, task_id: int) -> Task: ...
    def mark_task_incomplete(self, task_id: int) -> Task: ...
    def update_progress(self, task_id: int, progress: int) -> Task: ...
    def add_subtask(self, task_id: int, name: str) -> Task: ...
    def complete_subtask(self, task_id: int, subtask_id: int) -> Task: ...
    def update_subtask(self, task_id: int, subtask: SubTask) -> Task: ...
    def delete_subtask(self, task_id: int, subtask_id: int) -> Task: ...
    def get_shared_tasks(self, user_id: str) -> list[Task]: ...
    def share_task(self, task_id: int, user_ids: list[str]) -> Task: ...
    def unshare_task(self, task_id: int, user_ids: list[str]) -> Task: ...

    # Statistics
    def get_task_summary(self) -> TaskSummary: ...
    def get_productivity_stats(self, start: datetime, end: datetime) -> ProductivityStats: ...

    # Data management
    def export(self, fmt: str) -> bytes: ...
    def import_tasks(self, data: bytes | str, fmt: str) -> int: ...
    def backup(self) -> str: ...
    def list_backups(self) -> list[str]: ...
    def restore(self, backup_id: str) -> None: ...
    def clean(self, older_than: datetime) -> int: ...
