# src/tasktrack/tasks/task_store.py

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..errors import NotConnectedError, NotFoundError, PersistenceError, ValidationError
from .rwlock import RWLock
from .task_codec import TaskDocument, decode_document, encode_document, export_tasks, import_payload, normalize_format
from .task_models import Priority, SubTask, Task, TaskStatus, utcnow
from .task_query import Page, SortOption, TaskFilter, matches_filter, paginate, sort_tasks, task_matches_search

logger = logging.getLogger(__name__)

DEFAULT_UPCOMING_DAYS = 7


@dataclass(slots=True)
class TaskSummary:
    total_tasks: int = 0
    completed_tasks: int = 0
    pending_tasks: int = 0
    overdue_tasks: int = 0
    upcoming_deadlines: list[Task] = field(default_factory=list)
    tasks_by_category: dict[str, int] = field(default_factory=dict)
    tasks_by_priority: dict[Priority, int] = field(default_factory=dict)


@dataclass(slots=True)
class ProductivityStats:
    start: datetime
    end: datetime
    total_tasks: int = 0
    completed_tasks: int = 0
    completion_rate: float = 0.0  # percent; 0.0 when no task falls in the window
    overdue_tasks: int = 0
    upcoming_tasks: int = 0
    high_priority_tasks: int = 0
    category_distribution: dict[str, int] = field(default_factory=dict)
    priority_distribution: dict[Priority, int] = field(default_factory=dict)
    status_distribution: dict[TaskStatus, int] = field(default_factory=dict)


def new_backup_id(exists: Callable[[str], bool]) -> str:
    base = utcnow().strftime("%Y%m%d%H%M%S%f")
    backup_id = base
    n = 1
    while exists(backup_id):
        backup_id = f"{base}-{n}"
        n += 1
    return backup_id


def _normalize_completion(task: Task, now: datetime) -> None:
    """completed_at is set exactly while status is completed; completed implies progress 100."""
    if task.status == TaskStatus.COMPLETED:
        task.progress = 100
        if task.completed_at is None:
            task.completed_at = now
    else:
        task.completed_at = None


class MemoryTaskStore:
    """
    In-memory task store (the engine).

    Holds the record map and the id counter under one reader/writer lock:
    - reads (get/list/search/summary/stats/listing/export/backup) share it,
    - mutations take it exclusively.

    Ids start at 1, are assigned only here, and are never reused, even after
    deletes. Every returned Task is a copy; mutating it does not touch the store.

    Subclasses hook persistence in through _after_write() (called inside the
    write lock after every mutation) and _persist_now() (after import/restore).
    A PersistenceError from either hook rolls the mutation back before it
    reaches the caller.
    """

    def __init__(
        self,
        *,
        upcoming_days: int = DEFAULT_UPCOMING_DAYS,
        strict_due_dates: bool = False,
    ) -> None:
        self._lock = RWLock()
        self._tasks: dict[int, Task] = {}
        self._max_id = 0
        self._active = False
        self._upcoming_days = int(upcoming_days)
        self._strict_due_dates = bool(strict_due_dates)
        self._backups: dict[str, bytes] = {}

    # ---- lifecycle ----

    def connect(self) -> None:
        with self._lock.write():
            if self._active:
                raise NotConnectedError("store is already connected")
            self._active = True
        logger.info("MemoryTaskStore connected")

    def close(self) -> None:
        with self._lock.write():
            if not self._active:
                raise NotConnectedError("store is already closed")
            self._active = False
        logger.info("MemoryTaskStore closed tasks=%d", len(self._tasks))

    def ping(self) -> None:
        self._check_active()

    @property
    def is_connected(self) -> bool:
        return self._active

    # ---- low-level helpers ----

    def _check_active(self) -> None:
        if not self._active:
            raise NotConnectedError("storage is not connected")

    def _require(self, task_id: int) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"task {task_id} not found", task_id=task_id)
        return task

    def _after_write(self) -> None:
        """Called with the write lock held after each mutation."""

    def _persist_now(self) -> None:
        """Called with the write lock held after import/restore."""

    @contextmanager
    def _transaction(self, *, persist_now: bool = False) -> Iterator[None]:
        """
        Exclusive section for one mutation.

        If persisting the change raises PersistenceError, the record map and
        the id counter are put back as they were before the body ran, so a
        failed write leaves no trace in memory.
        """
        with self._lock.write():
            self._check_active()
            saved_tasks, saved_max_id = dict(self._tasks), self._max_id
            yield
            try:
                if persist_now:
                    self._persist_now()
                else:
                    self._after_write()
            except PersistenceError:
                self._tasks, self._max_id = saved_tasks, saved_max_id
                logger.warning("Write rolled back: persisting failed")
                raise

    def _mutate(self, task_id: int, change: Callable[[Task], object]) -> Task:
        """Apply `change` to a working copy; the stored record is replaced only if it succeeds."""
        with self._transaction():
            work = self._require(task_id).copy()
            change(work)
            now = utcnow()
            work.updated_at = now
            _normalize_completion(work, now)
            work.validate()
            self._tasks[task_id] = work
        return work.copy()

    def _insert_new(self, task: Task, now: datetime) -> Task:
        """Store a copy of `task` under the next id. Caller holds the transaction."""
        stored = task.copy()
        self._max_id += 1
        stored.id = self._max_id
        stored.created_at = now
        stored.updated_at = now
        _normalize_completion(stored, now)
        self._tasks[stored.id] = stored
        return stored

    @staticmethod
    def _stamp(task: Task, stored: Task) -> None:
        """Copy the store-owned fields back onto the caller's object."""
        task.id = stored.id
        task.created_at = stored.created_at
        task.updated_at = stored.updated_at
        task.completed_at = stored.completed_at
        task.progress = stored.progress

    def _replace_all(self, doc: TaskDocument) -> None:
        self._tasks = {t.id: t for t in doc.tasks}
        highest = max(self._tasks, default=0)
        self._max_id = max(self._max_id, highest, doc.max_id)

    # ---- CRUD ----

    def count_tasks(self) -> int:
        with self._lock.read():
            self._check_active()
            return len(self._tasks)

    def create_task(self, task: Task) -> Task:
        """
        Validate and insert a new task.

        Any caller-supplied id/created_at/updated_at is overwritten; once the
        insert is committed the caller's object is updated with the assigned
        values. Returns a copy of the record.
        """
        self._check_active()
        now = utcnow()
        task.validate(reject_past_due=self._strict_due_dates, now=now)

        with self._transaction():
            stored = self._insert_new(task, now)

        self._stamp(task, stored)
        logger.debug("Task created id=%s name=%r", stored.id, stored.name)
        return stored.copy()

    def create_tasks(self, tasks: Iterable[Task]) -> list[Task]:
        """Batch create; every task is validated before any id is assigned."""
        self._check_active()
        batch = list(tasks)
        now = utcnow()
        for i, task in enumerate(batch, start=1):
            try:
                task.validate(reject_past_due=self._strict_due_dates, now=now)
            except ValidationError as exc:
                raise ValidationError(f"validation failed for task {i}: {exc}") from exc

        with self._transaction():
            stored = [self._insert_new(task, now) for task in batch]

        for task, record in zip(batch, stored):
            self._stamp(task, record)
        logger.debug("Batch created %d tasks", len(stored))
        return [record.copy() for record in stored]

    def get_task(self, task_id: int) -> Task:
        with self._lock.read():
            self._check_active()
            return self._require(task_id).copy()

    def update_task(self, task: Task) -> Task:
        """Full-record replace of an existing task (read-modify-write on the caller side)."""
        self._check_active()
        task.validate()

        with self._transaction():
            existing = self._require(task.id)
            now = utcnow()
            stored = task.copy()
            stored.created_at = existing.created_at
            stored.updated_at = now
            _normalize_completion(stored, now)
            self._tasks[stored.id] = stored

        task.updated_at = stored.updated_at
        logger.debug("Task updated id=%s", stored.id)
        return stored.copy()

    def delete_task(self, task_id: int) -> None:
        with self._transaction():
            self._require(task_id)
            del self._tasks[task_id]
        logger.debug("Task deleted id=%s", task_id)

    def delete_tasks(self, task_ids: Iterable[int]) -> None:
        """All-or-nothing: nothing is removed unless every id exists."""
        ids = list(task_ids)
        with self._transaction():
            missing = [i for i in ids if i not in self._tasks]
            if missing:
                raise NotFoundError(
                    f"tasks not found: {', '.join(str(i) for i in missing)}",
                    task_id=missing[0],
                )
            for task_id in ids:
                self._tasks.pop(task_id, None)
        logger.debug("Batch deleted ids=%s", ids)

    # ---- queries ----

    def list_tasks(
        self,
        flt: TaskFilter | None = None,
        sort: SortOption | None = None,
        page: Page | None = None,
    ) -> list[Task]:
        now = utcnow()
        with self._lock.read():
            self._check_active()
            matched = [t.copy() for t in self._tasks.values() if matches_filter(t, flt, now)]
        return paginate(sort_tasks(matched, sort), page)

    def search_tasks(self, query: str) -> list[Task]:
        with self._lock.read():
            self._check_active()
            found = [t.copy() for t in self._tasks.values() if task_matches_search(t, query)]
        found.sort(key=lambda t: t.id)
        return found

    def get_tasks_by_category(self, category: str) -> list[Task]:
        return self.list_tasks(TaskFilter(category=category))

    def get_tasks_by_tag(self, tag: str) -> list[Task]:
        return self.list_tasks(TaskFilter(tags=[tag]))

    def get_tasks_by_status(self, status: TaskStatus) -> list[Task]:
        return self.list_tasks(TaskFilter(status=status))

    def get_overdue_tasks(self) -> list[Task]:
        return self.list_tasks(TaskFilter(is_overdue=True))

    def get_upcoming_tasks(self, days: int) -> list[Task]:
        now = utcnow()
        return self.list_tasks(
            TaskFilter(due_after=now, due_before=now + timedelta(days=days)),
            SortOption(field="due_date"),
        )

    def get_shared_tasks(self, user_id: str) -> list[Task]:
        with self._lock.read():
            self._check_active()
            shared = [t.copy() for t in self._tasks.values() if user_id in t.shared_with]
        shared.sort(key=lambda t: t.id)
        return shared

    def get_categories(self) -> list[str]:
        with self._lock.read():
            self._check_active()
            return sorted({t.category for t in self._tasks.values() if t.category})

    def get_tags(self) -> list[str]:
        with self._lock.read():
            self._check_active()
            return sorted({tag for t in self._tasks.values() for tag in t.tags if tag})

    # ---- status / subtasks / sharing ----

    def mark_task_complete(self, task_id: int) -> Task:
        return self._mutate(task_id, lambda t: t.complete())

    def mark_task_incomplete(self, task_id: int) -> Task:
        return self._mutate(task_id, lambda t: t.reopen())

    def update_progress(self, task_id: int, progress: int) -> Task:
        return self._mutate(task_id, lambda t: t.update_progress(progress))

    def add_subtask(self, task_id: int, name: str) -> Task:
        return self._mutate(task_id, lambda t: t.add_subtask(name))

    def complete_subtask(self, task_id: int, subtask_id: int) -> Task:
        return self._mutate(task_id, lambda t: t.complete_subtask(subtask_id))

    def update_subtask(self, task_id: int, subtask: SubTask) -> Task:
        return self._mutate(task_id, lambda t: t.update_subtask(subtask))

    def delete_subtask(self, task_id: int, subtask_id: int) -> Task:
        return self._mutate(task_id, lambda t: t.delete_subtask(subtask_id))

    def share_task(self, task_id: int, user_ids: list[str]) -> Task:
        return self._mutate(task_id, lambda t: t.share_with(user_ids))

    def unshare_task(self, task_id: int, user_ids: list[str]) -> Task:
        return self._mutate(task_id, lambda t: t.unshare_with(user_ids))

    # ---- aggregation ----

    def get_task_summary(self) -> TaskSummary:
        """Whole-store statistics in one pass (filters do not apply)."""
        now = utcnow()
        horizon = now + timedelta(days=self._upcoming_days)
        summary = TaskSummary()
        by_category: Counter[str] = Counter()
        by_priority: Counter[Priority] = Counter()

        with self._lock.read():
            self._check_active()
            for task in self._tasks.values():
                summary.total_tasks += 1
                if task.status == TaskStatus.COMPLETED:
                    summary.completed_tasks += 1
                else:
                    summary.pending_tasks += 1

                if task.is_overdue(now):
                    summary.overdue_tasks += 1

                if task.category:
                    by_category[task.category] += 1
                by_priority[task.priority] += 1

                if task.due_date is not None and now < task.due_date < horizon:
                    summary.upcoming_deadlines.append(task.copy())

        summary.upcoming_deadlines.sort(key=lambda t: (t.due_date, t.id))
        summary.tasks_by_category = dict(by_category)
        summary.tasks_by_priority = dict(by_priority)
        return summary

    def get_productivity_stats(self, start: datetime, end: datetime) -> ProductivityStats:
        """Stats over tasks created within [start, end] (inclusive)."""
        now = utcnow()
        horizon = now + timedelta(days=self._upcoming_days)
        stats = ProductivityStats(start=start, end=end)
        categories: Counter[str] = Counter()
        priorities: Counter[Priority] = Counter()
        statuses: Counter[TaskStatus] = Counter()

        with self._lock.read():
            self._check_active()
            for task in self._tasks.values():
                if task.created_at is None or task.created_at < start or task.created_at > end:
                    continue

                stats.total_tasks += 1
                statuses[task.status] += 1
                if task.status == TaskStatus.COMPLETED:
                    stats.completed_tasks += 1
                if task.is_overdue(now):
                    stats.overdue_tasks += 1
                elif task.due_date is not None and now < task.due_date < horizon:
                    stats.upcoming_tasks += 1

                priorities[task.priority] += 1
                if task.priority in (Priority.HIGH, Priority.URGENT):
                    stats.high_priority_tasks += 1
                if task.category:
                    categories[task.category] += 1

        if stats.total_tasks:
            stats.completion_rate = stats.completed_tasks / stats.total_tasks * 100.0
        stats.category_distribution = dict(categories)
        stats.priority_distribution = dict(priorities)
        stats.status_distribution = dict(statuses)
        return stats

    # ---- maintenance ----

    def clean(self, older_than: datetime) -> int:
        """Drop completed/archived tasks finished before `older_than`. Returns the count removed."""
        with self._transaction():
            stale: list[int] = []
            for task in self._tasks.values():
                if task.status == TaskStatus.COMPLETED:
                    finished = task.completed_at
                elif task.status == TaskStatus.ARCHIVED:
                    finished = task.completed_at or task.updated_at
                else:
                    continue
                if finished is not None and finished < older_than:
                    stale.append(task.id)

            for task_id in stale:
                del self._tasks[task_id]

        logger.info("Cleaned %d finished tasks older than %s", len(stale), older_than.isoformat())
        return len(stale)

    # ---- import / export ----

    def export(self, fmt: str) -> bytes:
        normalize_format(fmt)
        with self._lock.read():
            self._check_active()
            return export_tasks(self._tasks.values(), self._max_id, fmt)

    def import_tasks(self, data: bytes | str, fmt: str) -> int:
        """
        Merge tasks from a json/csv payload.

        Every record is parsed and validated before the store changes.
        Existing ids are replaced (last write wins); the id counter advances
        to cover every imported id and the document's max_id. Returns the
        number of imported tasks.
        """
        self._check_active()
        doc = import_payload(data, fmt)
        now = utcnow()
        for task in doc.tasks:
            if task.id <= 0:
                raise ValidationError(f"imported task id must be positive, got {task.id}")
            task.validate()
            if task.created_at is None:
                task.created_at = now
            if task.updated_at is None:
                task.updated_at = task.created_at
            _normalize_completion(task, now)

        with self._transaction(persist_now=True):
            for task in doc.tasks:
                self._tasks[task.id] = task
                self._max_id = max(self._max_id, task.id)
            self._max_id = max(self._max_id, doc.max_id)

        logger.info("Imported %d tasks (format=%s)", len(doc.tasks), fmt)
        return len(doc.tasks)

    # ---- backup / restore ----

    def backup(self) -> str:
        with self._lock.write():
            self._check_active()
            payload = encode_document(self._tasks.values(), self._max_id)
            backup_id = new_backup_id(self._backups.__contains__)
            self._backups[backup_id] = payload
        logger.info("In-memory backup created id=%s", backup_id)
        return backup_id

    def list_backups(self) -> list[str]:
        return sorted(self._backups)

    def restore(self, backup_id: str) -> None:
        """Destructive replace of the whole record set from a snapshot."""
        self._check_active()
        payload = self._backups.get(backup_id)
        if payload is None:
            raise PersistenceError(f"backup {backup_id!r} not found")
        doc = decode_document(payload)

        with self._transaction(persist_now=True):
            self._replace_all(doc)
        logger.info("Restored %d tasks from backup id=%s", len(doc.tasks), backup_id)
