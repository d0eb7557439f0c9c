# src/tasktrack/tasks/task_query.py

"""
Query primitives: what subset, order and slice of tasks a caller wants.

TaskFilter / SortOption / Page are plain values owned by the caller for one
query; the helpers below apply them to an already-materialized list.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .task_models import Priority, Task, TaskStatus, utcnow


@dataclass(slots=True)
class TaskFilter:
    """Conjunctive predicate; every field left unset passes."""

    status: TaskStatus | None = None
    priority: Priority | None = None
    category: str = ""
    tags: list[str] = field(default_factory=list)
    due_before: datetime | None = None
    due_after: datetime | None = None
    is_overdue: bool = False
    search_term: str = ""


class TaskFilterBuilder:
    """Fluent helper: TaskFilterBuilder().with_status(...).with_tags("a").build()"""

    def __init__(self) -> None:
        self._filter = TaskFilter()

    def with_status(self, status: TaskStatus) -> TaskFilterBuilder:
        self._filter.status = status
        return self

    def with_priority(self, priority: Priority) -> TaskFilterBuilder:
        self._filter.priority = priority
        return self

    def with_category(self, category: str) -> TaskFilterBuilder:
        self._filter.category = category
        return self

    def with_tags(self, *tags: str) -> TaskFilterBuilder:
        self._filter.tags = list(tags)
        return self

    def with_due_range(self, after: datetime, before: datetime) -> TaskFilterBuilder:
        self._filter.due_after = after
        self._filter.due_before = before
        return self

    def with_overdue(self, overdue: bool = True) -> TaskFilterBuilder:
        self._filter.is_overdue = overdue
        return self

    def with_search_term(self, term: str) -> TaskFilterBuilder:
        self._filter.search_term = term
        return self

    def build(self) -> TaskFilter:
        return self._filter


@dataclass(slots=True)
class SortOption:
    field: str = "id"
    ascending: bool = True


@dataclass(slots=True)
class Page:
    offset: int = 0
    limit: int = 0  # <= 0 means "no pagination"


def task_matches_search(task: Task, query: str) -> bool:
    """Case-insensitive substring match over name, description, category and tags."""
    q = (query or "").lower()
    if q in task.name.lower() or q in task.description.lower() or q in task.category.lower():
        return True
    return any(q in tag.lower() for tag in task.tags)


def matches_filter(task: Task, flt: TaskFilter | None, now: datetime | None = None) -> bool:
    if flt is None:
        return True

    if flt.status is not None and task.status != flt.status:
        return False

    if flt.priority is not None and task.priority != flt.priority:
        return False

    if flt.category and task.category != flt.category:
        return False

    if flt.tags and not set(flt.tags).intersection(task.tags):
        return False

    # A task without a due date never satisfies a due bound.
    if flt.due_before is not None and (task.due_date is None or not task.due_date < flt.due_before):
        return False

    if flt.due_after is not None and (task.due_date is None or not task.due_date > flt.due_after):
        return False

    if flt.is_overdue and not task.is_overdue(now or utcnow()):
        return False

    if flt.search_term and not task_matches_search(task, flt.search_term):
        return False

    return True


def _by_id(t: Task) -> Any:
    return t.id


# key -> extractor; extractors returning None mark "unset" values that always sort last.
_SORT_KEYS: dict[str, Callable[[Task], Any]] = {
    "id": _by_id,
    "due_date": lambda t: t.due_date,
    "priority": lambda t: t.priority.rank,
    "created_at": lambda t: t.created_at,
    "updated_at": lambda t: t.updated_at,
    "completed_at": lambda t: t.completed_at,
    "status": lambda t: t.status.rank,
    "category": lambda t: t.category,
    "name": lambda t: t.name,
}

SORT_FIELDS: tuple[str, ...] = tuple(_SORT_KEYS)


def sort_tasks(tasks: Iterable[Task], sort: SortOption | None) -> list[Task]:
    """
    Stable sort on top of an ID-ascending base order.

    The direction flag inverts the comparator; unset values go last in both
    directions. Unknown keys fall back to "id".
    """
    base = sorted(tasks, key=_by_id)
    if sort is None:
        return base

    key = _SORT_KEYS.get((sort.field or "").strip().lower(), _by_id)

    present = [t for t in base if key(t) is not None]
    missing = [t for t in base if key(t) is None]
    present.sort(key=key, reverse=not sort.ascending)
    return present + missing


def paginate(tasks: list[Task], page: Page | None) -> list[Task]:
    if page is None or page.limit <= 0:
        return tasks

    start = max(0, page.offset)
    if start >= len(tasks):
        return []
    return tasks[start : start + page.limit]
