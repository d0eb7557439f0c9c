# tests/test_file_store.py

from __future__ import annotations

import json
import time
from pathlib import Path

import pytest

from tasktrack.errors import FormatError, NotConnectedError, PersistenceError
from tasktrack.tasks.file_store import FileTaskStore
from tasktrack.tasks.task_models import Priority, Task, TaskStatus


def _read_doc(path: Path) -> dict:
    return json.loads(path.read_text("utf-8"))


def test_connect_creates_empty_document(file_store: FileTaskStore, tasks_path: Path) -> None:
    assert tasks_path.exists()
    doc = _read_doc(tasks_path)
    assert doc["tasks"] == []
    assert doc["metadata"]["version"] == "1.0"
    assert doc["metadata"]["task_count"] == 0
    assert doc["metadata"]["max_id"] == 0


def test_close_saves_and_reopen_loads(tasks_path: Path) -> None:
    s = FileTaskStore(tasks_path, autosave_interval_seconds=3600.0)
    s.connect()
    s.create_task(Task(name="a", priority=Priority.HIGH, tags=["x"]))
    s.create_task(Task(name="b"))
    s.add_subtask(1, "step")
    s.delete_task(2)
    before = s.list_tasks()
    s.close()

    doc = _read_doc(tasks_path)
    assert doc["metadata"]["task_count"] == 1
    assert doc["metadata"]["max_id"] == 2
    assert [t["name"] for t in doc["tasks"]] == ["a"]

    s2 = FileTaskStore(tasks_path, autosave_interval_seconds=3600.0)
    s2.connect()
    assert s2.list_tasks() == before
    # id 2 was used before the restart and stays retired
    assert s2.create_task(Task(name="c")).id == 3
    s2.close()


def test_writes_within_interval_are_deferred_until_close(file_store: FileTaskStore, tasks_path: Path) -> None:
    file_store.create_task(Task(name="a"))
    file_store.create_task(Task(name="b"))
    assert _read_doc(tasks_path)["tasks"] == []

    file_store.close()
    assert len(_read_doc(tasks_path)["tasks"]) == 2


def test_explicit_save(file_store: FileTaskStore, tasks_path: Path) -> None:
    file_store.create_task(Task(name="a"))
    file_store.save()
    assert len(_read_doc(tasks_path)["tasks"]) == 1


def test_background_autosave(tasks_path: Path) -> None:
    s = FileTaskStore(tasks_path, autosave_interval_seconds=0.1)
    s.connect()
    try:
        s.create_task(Task(name="a"))
        deadline = time.monotonic() + 5.0
        while time.monotonic() < deadline:
            if _read_doc(tasks_path)["tasks"]:
                break
            time.sleep(0.05)
        assert [t["name"] for t in _read_doc(tasks_path)["tasks"]] == ["a"]
    finally:
        s.close()


def test_load_honors_metadata_max_id(tasks_path: Path) -> None:
    tasks_path.parent.mkdir(parents=True)
    tasks_path.write_text(
        json.dumps({"metadata": {"version": "1.0", "max_id": 10}, "tasks": [{"id": 3, "name": "x"}]}),
        "utf-8",
    )
    s = FileTaskStore(tasks_path)
    s.connect()
    assert s.get_task(3).name == "x"
    assert s.create_task(Task(name="y")).id == 11
    s.close()


def test_load_never_lowers_counter_below_existing_ids(tasks_path: Path) -> None:
    tasks_path.parent.mkdir(parents=True)
    tasks_path.write_text(
        json.dumps({"metadata": {"max_id": 1}, "tasks": [{"id": 5, "name": "x"}]}),
        "utf-8",
    )
    s = FileTaskStore(tasks_path)
    s.connect()
    assert s.create_task(Task(name="y")).id == 6
    s.close()


def test_load_accepts_legacy_zero_dates_and_enum_indices(tasks_path: Path) -> None:
    tasks_path.parent.mkdir(parents=True)
    tasks_path.write_text(
        json.dumps(
            {
                "tasks": [
                    {
                        "id": 1,
                        "name": "legacy",
                        "status": 1,
                        "priority": 3,
                        "due_date": "0001-01-01T00:00:00Z",
                        "completed_at": "0001-01-01T00:00:00Z",
                    }
                ]
            }
        ),
        "utf-8",
    )
    s = FileTaskStore(tasks_path)
    s.connect()
    t = s.get_task(1)
    assert t.status == TaskStatus.IN_PROGRESS
    assert t.priority == Priority.URGENT
    assert t.due_date is None
    assert t.completed_at is None
    s.close()


def test_malformed_file_fails_connect(tasks_path: Path) -> None:
    tasks_path.parent.mkdir(parents=True)
    tasks_path.write_text("{broken", "utf-8")
    s = FileTaskStore(tasks_path)
    with pytest.raises(FormatError):
        s.connect()
    assert not s.is_connected


def test_backup_and_restore(file_store: FileTaskStore, tasks_path: Path) -> None:
    file_store.create_task(Task(name="a"))
    file_store.create_task(Task(name="b"))

    backup_id = file_store.backup()
    snapshot = tasks_path.with_name(f"{tasks_path.name}.backup.{backup_id}")
    assert snapshot.exists()
    assert [t["name"] for t in _read_doc(snapshot)["tasks"]] == ["a", "b"]
    assert file_store.list_backups() == [backup_id]

    second = file_store.backup()
    assert second != backup_id
    assert file_store.list_backups() == sorted([backup_id, second])

    file_store.delete_task(1)
    file_store.create_task(Task(name="c"))
    file_store.restore(backup_id)

    assert [t.name for t in file_store.list_tasks()] == ["a", "b"]
    # restore saves immediately
    assert [t["name"] for t in _read_doc(tasks_path)["tasks"]] == ["a", "b"]
    # and never lowers the counter
    assert file_store.create_task(Task(name="d")).id == 4


def test_restore_missing_backup(file_store: FileTaskStore) -> None:
    with pytest.raises(PersistenceError):
        file_store.restore("20000101000000000000")


def test_import_persists_immediately(file_store: FileTaskStore, tasks_path: Path) -> None:
    payload = b'{"tasks": [{"id": 4, "name": "imported", "status": "completed"}]}'
    assert file_store.import_tasks(payload, "json") == 1

    doc = _read_doc(tasks_path)
    assert [t["name"] for t in doc["tasks"]] == ["imported"]
    assert doc["tasks"][0]["progress"] == 100
    assert doc["metadata"]["max_id"] == 4


def test_closed_store_rejects_operations(tasks_path: Path) -> None:
    s = FileTaskStore(tasks_path, autosave_interval_seconds=3600.0)
    s.connect()
    s.close()
    with pytest.raises(NotConnectedError):
        s.create_task(Task(name="x"))
    with pytest.raises(NotConnectedError):
        s.save()
    with pytest.raises(NotConnectedError):
        s.close()


def test_close_failure_keeps_store_connected(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    s = FileTaskStore(path, autosave_interval_seconds=3600.0)
    s.connect()
    s.create_task(Task(name="a"))

    # A directory where the temp file should go makes the final write fail.
    (tmp_path / "tasks.json.tmp").mkdir()
    with pytest.raises(PersistenceError):
        s.close()
    assert s.is_connected

    (tmp_path / "tasks.json.tmp").rmdir()
    s.close()
    assert len(_read_doc(path)["tasks"]) == 1


def test_mutation_saves_once_interval_has_elapsed(file_store: FileTaskStore, tasks_path: Path) -> None:
    file_store._last_save = time.monotonic() - 7200
    file_store.create_task(Task(name="a"))
    assert [t["name"] for t in _read_doc(tasks_path)["tasks"]] == ["a"]

    # the save restarted the interval, so the next write is deferred again
    file_store.create_task(Task(name="b"))
    assert len(_read_doc(tasks_path)["tasks"]) == 1


def test_failed_save_rolls_back_mutation(file_store: FileTaskStore, tasks_path: Path) -> None:
    file_store._last_save = time.monotonic() - 7200
    file_store.create_task(Task(name="kept"))

    blocker = tasks_path.with_name("tasks.json.tmp")
    blocker.mkdir()

    task = Task(name="lost")
    with pytest.raises(PersistenceError):
        file_store.create_task(task)
    assert task.id == 0
    assert file_store.count_tasks() == 1

    edited = file_store.get_task(1)
    edited.name = "renamed"
    with pytest.raises(PersistenceError):
        file_store.update_task(edited)
    with pytest.raises(PersistenceError):
        file_store.delete_task(1)
    with pytest.raises(PersistenceError):
        file_store.import_tasks(b'{"tasks": [{"id": 5, "name": "imported"}]}', "json")
    assert [t.name for t in file_store.list_tasks()] == ["kept"]

    blocker.rmdir()
    # a retry gets the next id, not a duplicate
    assert file_store.create_task(task).id == 2
    assert [t["name"] for t in _read_doc(tasks_path)["tasks"]] == ["kept", "lost"]
