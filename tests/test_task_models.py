# tests/test_task_models.py

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from tasktrack.errors import NotFoundError, RangeError, ValidationError
from tasktrack.tasks.task_models import Priority, SubTask, Task, TaskStatus, utcnow


def test_validate_rejects_empty_name_and_bad_progress() -> None:
    with pytest.raises(ValidationError):
        Task(name="   ").validate()

    with pytest.raises(ValidationError):
        Task(name="x", progress=101).validate()

    with pytest.raises(ValidationError):
        Task(name="x", progress=-1).validate()

    Task(name="ok", progress=100).validate()


def test_past_due_is_allowed_unless_strict() -> None:
    t = Task(name="late", due_date=utcnow() - timedelta(days=1))
    t.validate()
    with pytest.raises(ValidationError):
        t.validate(reject_past_due=True)


def test_complete_sets_progress_and_is_idempotent() -> None:
    t = Task(name="x")
    t.complete()
    assert t.status == TaskStatus.COMPLETED
    assert t.progress == 100
    first = t.completed_at
    assert first is not None

    t.complete()
    assert t.completed_at == first


def test_reopen_clears_completion() -> None:
    t = Task(name="x")
    t.complete()
    t.reopen()
    assert t.status == TaskStatus.NOT_STARTED
    assert t.completed_at is None
    assert t.progress == 0


def test_update_progress_transitions() -> None:
    t = Task(name="x")
    t.update_progress(40)
    assert t.status == TaskStatus.IN_PROGRESS

    t.update_progress(100)
    assert t.status == TaskStatus.COMPLETED
    assert t.completed_at is not None

    with pytest.raises(RangeError):
        t.update_progress(150)
    # RangeError is a ValidationError
    with pytest.raises(ValidationError):
        t.update_progress(-5)


def test_is_overdue_ignores_completed_and_undated() -> None:
    now = utcnow()
    assert not Task(name="no due").is_overdue(now)

    late = Task(name="late", due_date=now - timedelta(hours=1))
    assert late.is_overdue(now)

    late.complete()
    assert not late.is_overdue(now)


def test_subtasks_drive_progress() -> None:
    t = Task(name="trip")
    a = t.add_subtask("book flight")
    b = t.add_subtask("book hotel")
    assert (a.id, b.id) == (1, 2)
    assert t.progress == 0

    t.complete_subtask(a.id)
    assert t.progress == 50
    assert t.status == TaskStatus.IN_PROGRESS

    t.complete_subtask(b.id)
    assert t.progress == 100
    assert t.status == TaskStatus.COMPLETED

    # Adding work to a finished task reopens it.
    t.add_subtask("pack")
    assert t.progress == 66
    assert t.status == TaskStatus.IN_PROGRESS
    assert t.completed_at is None


def test_subtask_ids_are_not_reused_after_delete_of_middle() -> None:
    t = Task(name="x")
    t.add_subtask("a")
    t.add_subtask("b")
    t.add_subtask("c")
    t.delete_subtask(2)
    assert t.add_subtask("d").id == 4


def test_update_and_missing_subtask() -> None:
    t = Task(name="x")
    sub = t.add_subtask("draft")
    t.update_subtask(SubTask(id=sub.id, name="final draft", completed=True))
    assert t.subtasks[0].name == "final draft"
    assert t.subtasks[0].completed_at is not None

    with pytest.raises(NotFoundError):
        t.complete_subtask(99)
    with pytest.raises(ValidationError):
        t.add_subtask("  ")


def test_equality_treats_tags_and_sharing_as_sets() -> None:
    a = Task(name="x", tags=["a", "b"], shared_with=["u1", "u2"])
    b = Task(name="x", tags=["b", "a"], shared_with=["u2", "u1"])
    assert a == b

    b.priority = Priority.HIGH
    assert a != b


def test_copy_is_deep() -> None:
    t = Task(name="x", tags=["a"])
    t.add_subtask("s")
    c = t.copy()
    c.tags.append("b")
    c.subtasks[0].name = "changed"
    assert t.tags == ["a"]
    assert t.subtasks[0].name == "s"


def test_enum_parse_accepts_names_and_labels() -> None:
    assert TaskStatus.parse("In Progress") == TaskStatus.IN_PROGRESS
    assert TaskStatus.parse("COMPLETED") == TaskStatus.COMPLETED
    assert Priority.parse("Urgent") == Priority.URGENT
    assert TaskStatus.NOT_STARTED.rank < TaskStatus.ARCHIVED.rank
    assert Priority.LOW.rank < Priority.URGENT.rank

    with pytest.raises(ValidationError):
        Priority.parse("whenever")


def test_tags_and_sharing_helpers() -> None:
    t = Task(name="x")
    t.add_tag("home")
    t.add_tag("home")
    assert t.tags == ["home"]
    t.remove_tag("home")
    assert t.tags == []

    t.share_with(["u1", "u2", "u1"])
    assert t.shared_with == ["u1", "u2"]
    t.unshare_with(["u1"])
    assert t.shared_with == ["u2"]


def test_reminder_and_time_until_due() -> None:
    now = utcnow()
    t = Task(name="x", due_date=now + timedelta(hours=2))
    assert t.time_until_due(now) == timedelta(hours=2)

    t.set_reminder(now + timedelta(hours=1), now)
    assert t.reminder == now + timedelta(hours=1)
    with pytest.raises(ValidationError):
        t.set_reminder(now - timedelta(hours=1), now)
    with pytest.raises(ValidationError):
        Task(name="no due").time_until_due(now)


@pytest.mark.parametrize("field", ["due_date", "created_at", "updated_at", "completed_at", "reminder"])
def test_validate_rejects_naive_timestamps(field: str) -> None:
    t = Task(name="x")
    setattr(t, field, datetime(2020, 1, 1))
    with pytest.raises(ValidationError):
        t.validate()

    setattr(t, field, datetime(2020, 1, 1, tzinfo=utcnow().tzinfo))
    t.validate()


def test_set_reminder_rejects_naive_time() -> None:
    with pytest.raises(ValidationError):
        Task(name="x").set_reminder(datetime(2999, 1, 1))


def test_tags_cannot_contain_csv_delimiter() -> None:
    with pytest.raises(ValidationError):
        Task(name="x", tags=["ok", "c;d"]).validate()

    t = Task(name="x")
    with pytest.raises(ValidationError):
        t.add_tag("a;b")
    assert t.tags == []

    # other separators are fine inside a tag
    Task(name="x", tags=["c,d", "two words", "a|b"]).validate()
