# tests/test_commands.py

from __future__ import annotations

from pathlib import Path

from tasktrack.cli.commands import CommandRegistry, registry
from tasktrack.core.state import AppState
from tasktrack.errors import NotFoundError
from tasktrack.tasks.task_models import Priority, TaskStatus


def test_command_registry_routes_and_aliases(state: AppState) -> None:
    reg = CommandRegistry()
    seen: list[list[str]] = []

    def h(state, args):
        seen.append(args)
        return "ok"

    reg.register("a", h, "a", aliases=["alpha"])

    assert reg.handle(state, '/a x "y z"') == "ok"
    assert reg.handle(state, "/ALPHA") == "ok"
    assert seen == [["x", "y z"], []]
    assert "/a - a" in reg.build_help()


def test_command_registry_unknown_and_non_command(state: AppState) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")
    assert "Cannot parse" in (reg.handle(state, '/a "unterminated') or "")


def test_store_errors_become_replies(state: AppState) -> None:
    reg = CommandRegistry()

    def boom(state, args):
        raise NotFoundError("task 7 not found", task_id=7)

    reg.register("boom", boom, "boom")
    assert reg.handle(state, "/boom") == "Error: task 7 not found"


def test_add_list_done_flow(state: AppState) -> None:
    reply = registry.handle(
        state, '/add "File taxes" --priority urgent --category admin --tags money,gov --due -1'
    )
    assert reply is not None and reply.startswith("Created:")
    registry.handle(state, "/add Buy milk --priority low")

    task = state.storage.get_task(1)
    assert task.name == "File taxes"
    assert task.priority == Priority.URGENT
    assert task.tags == ["money", "gov"]
    assert state.storage.get_task(2).name == "Buy milk"

    overdue = registry.handle(state, "/overdue") or ""
    assert "File taxes" in overdue and "Buy milk" not in overdue

    listed = registry.handle(state, "/list --sort priority --reverse") or ""
    assert listed.index("File taxes") < listed.index("Buy milk")

    assert "#2" in (registry.handle(state, "/list --priority low") or "")

    registry.handle(state, "/done 1")
    assert state.storage.get_task(1).status == TaskStatus.COMPLETED
    assert "Nothing overdue" in (registry.handle(state, "/overdue") or "")

    registry.handle(state, "/undone 1")
    assert state.storage.get_task(1).status == TaskStatus.NOT_STARTED


def test_add_without_name_reports_validation_error(state: AppState) -> None:
    reply = registry.handle(state, "/add --priority high")
    assert reply is not None and reply.startswith("Error:")
    assert state.storage.count_tasks() == 0


def test_update_show_and_delete(state: AppState) -> None:
    registry.handle(state, "/add draft")
    registry.handle(state, '/update 1 --name "final draft" --status in_progress')
    detail = registry.handle(state, "/show 1") or ""
    assert "final draft" in detail
    assert "In Progress" in detail

    assert "Error:" in (registry.handle(state, "/show 9") or "")
    assert registry.handle(state, "/delete 1") == "Deleted 1 task(s)."
    assert state.storage.count_tasks() == 0


def test_subtasks_progress_and_share(state: AppState) -> None:
    registry.handle(state, "/add trip")
    registry.handle(state, "/sub 1 add book flight")
    registry.handle(state, "/sub 1 add book hotel")
    registry.handle(state, "/sub 1 done 1")
    assert state.storage.get_task(1).progress == 50

    registry.handle(state, "/progress 1 100")
    assert state.storage.get_task(1).status == TaskStatus.COMPLETED

    registry.handle(state, "/share 1 alice bob")
    registry.handle(state, "/share 1 -alice")
    assert state.storage.get_task(1).shared_with == ["bob"]
    assert "trip" in (registry.handle(state, "/shared bob") or "")


def test_stats_search_categories_tags(state: AppState) -> None:
    registry.handle(state, "/add report --category work --tags q3")
    registry.handle(state, "/add gym --category health")
    registry.handle(state, "/done 2")

    stats = registry.handle(state, "/stats 7") or ""
    assert "Total: 2" in stats
    assert "Completed: 1" in stats
    assert "Rate: 50.0%" in stats

    assert "report" in (registry.handle(state, "/search Q3") or "")
    assert registry.handle(state, "/categories") == "Categories: health, work"
    assert registry.handle(state, "/tags") == "Tags: q3"


def test_export_import_backup_restore(state: AppState, tmp_path: Path) -> None:
    registry.handle(state, "/add a")
    registry.handle(state, "/add b")

    out = tmp_path / "tasks.csv"
    assert "Exported" in (registry.handle(state, f"/export csv {out}") or "")
    assert out.read_text("utf-8").startswith("ID,Name")

    backup_reply = registry.handle(state, "/backup") or ""
    backup_id = backup_reply.split(": ", 1)[1]
    assert backup_id in (registry.handle(state, "/backups") or "")

    registry.handle(state, "/delete 1 2")
    assert state.storage.count_tasks() == 0

    assert registry.handle(state, f"/restore {backup_id}") == f"Restored backup {backup_id}."
    assert state.storage.count_tasks() == 2

    registry.handle(state, "/delete 1 2")
    assert registry.handle(state, f"/import csv {out}") == f"Imported 2 task(s) from {out}."
    assert [t.name for t in state.storage.list_tasks()] == ["a", "b"]

    assert "Error:" in (registry.handle(state, f"/export xml {out}") or "")
