# src/tasktrack/tasks/task_models.py

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from enum import StrEnum

from ..errors import NotFoundError, RangeError, ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Declaration order is the sort order (not_started < ... < archived).
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @classmethod
    def parse(cls, raw: str | TaskStatus) -> TaskStatus:
        """Accept a value ("in_progress"), a name ("IN_PROGRESS") or a label ("In Progress")."""
        if isinstance(raw, cls):
            return raw
        key = str(raw or "").strip().lower().replace(" ", "_").replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"invalid status: {raw!r}") from None


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_ORDER.index(self)

    @property
    def label(self) -> str:
        return self.value.title()

    @classmethod
    def parse(cls, raw: str | Priority) -> Priority:
        if isinstance(raw, cls):
            return raw
        key = str(raw or "").strip().lower()
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"invalid priority: {raw!r}") from None


_STATUS_ORDER: tuple[TaskStatus, ...] = tuple(TaskStatus)
_PRIORITY_ORDER: tuple[Priority, ...] = tuple(Priority)

# Joins tags in the CSV "Tags" column, so it may not appear inside a tag.
TAG_DELIMITER = ";"

_TIMESTAMP_FIELDS = ("due_date", "created_at", "updated_at", "completed_at", "reminder")


def _check_tag(tag: object) -> None:
    if not isinstance(tag, str):
        raise ValidationError(f"tags must be strings, got {tag!r}")
    if TAG_DELIMITER in tag:
        raise ValidationError(f"tag {tag!r} cannot contain {TAG_DELIMITER!r}")


@dataclass(slots=True)
class SubTask:
    id: int
    name: str
    completed: bool = False
    created_at: datetime | None = None
    completed_at: datetime | None = None


# Compared as sets in Task.__eq__; order is kept for display only.
_SET_FIELDS = frozenset({"tags", "shared_with"})


@dataclass(slots=True, eq=False)
class Task:
    """
    A to-do item.

    Timestamps are timezone-aware UTC datetimes; None means "not set".
    id/created_at/updated_at are owned by the store and overwritten on create.
    """

    name: str
    id: int = 0
    description: str = ""
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: Priority = Priority.MEDIUM
    category: str = ""
    tags: list[str] = field(default_factory=list)
    due_date: datetime | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    progress: int = 0
    subtasks: list[SubTask] = field(default_factory=list)
    shared_with: list[str] = field(default_factory=list)

    notes: str = ""
    references: list[str] = field(default_factory=list)
    estimated_minutes: int = 0
    actual_minutes: int = 0
    reminder: datetime | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Task):
            return NotImplemented
        for f in fields(self):
            a = getattr(self, f.name)
            b = getattr(other, f.name)
            if f.name in _SET_FIELDS:
                a, b = set(a), set(b)
            if a != b:
                return False
        return True

    def copy(self) -> Task:
        return copy.deepcopy(self)

    # ---- validation ----

    def validate(self, *, reject_past_due: bool = False, now: datetime | None = None) -> None:
        """
        Raise ValidationError if the task cannot be stored.

        reject_past_due is the strict due-date policy: when set, a due date
        earlier than `now` is rejected. Stores only apply it on create.
        """
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("task name cannot be empty")

        if isinstance(self.progress, bool) or not isinstance(self.progress, int):
            raise ValidationError(f"progress must be an integer, got {self.progress!r}")
        if self.progress < 0 or self.progress > 100:
            raise ValidationError("progress must be between 0 and 100")

        if not isinstance(self.status, TaskStatus):
            raise ValidationError(f"invalid status: {self.status!r}")
        if not isinstance(self.priority, Priority):
            raise ValidationError(f"invalid priority: {self.priority!r}")

        for name in _TIMESTAMP_FIELDS:
            value = getattr(self, name)
            if value is None:
                continue
            if not isinstance(value, datetime):
                raise ValidationError(f"{name} must be a datetime, got {value!r}")
            if value.tzinfo is None or value.utcoffset() is None:
                raise ValidationError(f"{name} must be timezone-aware, got {value!r}")

        for tag in self.tags:
            _check_tag(tag)

        if reject_past_due and self.due_date is not None:
            if self.due_date < (now or utcnow()):
                raise ValidationError("due date cannot be in the past")

    # ---- status / progress ----

    def complete(self) -> None:
        """Mark completed. Calling again only refreshes updated_at."""
        now = utcnow()
        if self.status != TaskStatus.COMPLETED or self.completed_at is None:
            self.completed_at = now
        self.status = TaskStatus.COMPLETED
        self.progress = 100
        self.updated_at = now

    def reopen(self) -> None:
        """Back to not_started; progress drops to 0 if it was complete."""
        self.status = TaskStatus.NOT_STARTED
        self.completed_at = None
        if self.progress == 100:
            self.progress = 0
        self.updated_at = utcnow()

    def update_progress(self, progress: int) -> None:
        if isinstance(progress, bool) or not isinstance(progress, int):
            raise RangeError(f"progress must be an integer, got {progress!r}")
        if progress < 0 or progress > 100:
            raise RangeError("progress must be between 0 and 100")

        self.progress = progress
        self.updated_at = utcnow()

        if progress == 100 and self.status != TaskStatus.COMPLETED:
            self.complete()
        elif 0 < progress < 100 and self.status == TaskStatus.NOT_STARTED:
            self.status = TaskStatus.IN_PROGRESS

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.due_date is None or self.status == TaskStatus.COMPLETED:
            return False
        return self.due_date < (now or utcnow())

    def time_until_due(self, now: datetime | None = None) -> timedelta:
        if self.due_date is None:
            raise ValidationError("no due date set")
        return self.due_date - (now or utcnow())

    def set_reminder(self, when: datetime, now: datetime | None = None) -> None:
        if when.tzinfo is None or when.utcoffset() is None:
            raise ValidationError(f"reminder must be timezone-aware, got {when!r}")
        if when < (now or utcnow()):
            raise ValidationError("reminder time cannot be in the past")
        self.reminder = when
        self.updated_at = utcnow()

    # ---- subtasks ----

    def add_subtask(self, name: str) -> SubTask:
        if not name or not name.strip():
            raise ValidationError("subtask name cannot be empty")
        next_id = max((st.id for st in self.subtasks), default=0) + 1
        sub = SubTask(id=next_id, name=name.strip(), created_at=utcnow())
        self.subtasks.append(sub)
        self._recompute_progress()
        return sub

    def complete_subtask(self, subtask_id: int) -> None:
        sub = self._find_subtask(subtask_id)
        if not sub.completed:
            sub.completed = True
            sub.completed_at = utcnow()
        self._recompute_progress()

    def update_subtask(self, subtask: SubTask) -> None:
        """Replace name/completion of an existing subtask (matched by id)."""
        sub = self._find_subtask(subtask.id)
        if not subtask.name or not subtask.name.strip():
            raise ValidationError("subtask name cannot be empty")
        sub.name = subtask.name.strip()
        if subtask.completed and not sub.completed:
            sub.completed_at = subtask.completed_at or utcnow()
        elif not subtask.completed:
            sub.completed_at = None
        sub.completed = subtask.completed
        self._recompute_progress()

    def delete_subtask(self, subtask_id: int) -> None:
        sub = self._find_subtask(subtask_id)
        self.subtasks.remove(sub)
        self._recompute_progress()

    def _find_subtask(self, subtask_id: int) -> SubTask:
        for sub in self.subtasks:
            if sub.id == subtask_id:
                return sub
        raise NotFoundError(f"subtask {subtask_id} not found in task {self.id}", task_id=self.id)

    def _recompute_progress(self) -> None:
        """Subtask completion is authoritative for progress once subtasks exist."""
        self.updated_at = utcnow()
        if not self.subtasks:
            return

        done = sum(1 for st in self.subtasks if st.completed)
        self.progress = (done * 100) // len(self.subtasks)

        if self.progress == 100:
            if self.status != TaskStatus.COMPLETED:
                self.complete()
        elif self.status == TaskStatus.COMPLETED:
            self.status = TaskStatus.IN_PROGRESS
            self.completed_at = None
        elif self.progress > 0 and self.status == TaskStatus.NOT_STARTED:
            self.status = TaskStatus.IN_PROGRESS

    # ---- tags / sharing ----

    def add_tag(self, tag: str) -> None:
        _check_tag(tag)
        if tag in self.tags:
            return
        self.tags.append(tag)
        self.updated_at = utcnow()

    def remove_tag(self, tag: str) -> None:
        if tag not in self.tags:
            return
        self.tags.remove(tag)
        self.updated_at = utcnow()

    def share_with(self, users: list[str]) -> None:
        for user in users:
            if user and user not in self.shared_with:
                self.shared_with.append(user)
        self.updated_at = utcnow()

    def unshare_with(self, users: list[str]) -> None:
        drop = set(users)
        self.shared_with = [u for u in self.shared_with if u not in drop]
        self.updated_at = utcnow()
