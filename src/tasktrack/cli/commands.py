# src/tasktrack/cli/commands.py

from __future__ import annotations

import logging
import shlex
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ..core.state import AppState
from ..errors import TaskStoreError, ValidationError
from ..tasks.task_models import Priority, Task, TaskStatus, utcnow
from ..tasks.task_query import SORT_FIELDS, Page, SortOption, TaskFilter

CommandHandler = Callable[[AppState, list[str]], str]

logger = logging.getLogger(__name__)

# Options that take no value.
_FLAGS = frozenset({"overdue", "reverse"})


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Store errors become reply strings; anything else propagates to the connector.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as e:
            return f"Cannot parse command: {e}"
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return handler(state, args)
        except TaskStoreError as e:
            logger.debug("Command /%s failed: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- argument helpers ----

def _split_opts(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split ["a", "--k", "v", "--overdue"] into (["a"], {"k": "v", "overdue": ""})."""
    positional: list[str] = []
    opts: dict[str, str] = {}
    i = 0
    while i < len(args):
        arg = args[i]
        if arg.startswith("--") and len(arg) > 2:
            key = arg[2:].lower()
            if key in _FLAGS:
                opts[key] = ""
                i += 1
                continue
            if i + 1 >= len(args):
                raise ValidationError(f"option --{key} needs a value")
            opts[key] = args[i + 1]
            i += 2
            continue
        positional.append(arg)
        i += 1
    return positional, opts


def _parse_id(raw: str) -> int:
    try:
        return int(raw.lstrip("#"))
    except ValueError:
        raise ValidationError(f"invalid task id: {raw!r}") from None


def _parse_int(raw: str, name: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got {raw!r}") from None


def _parse_due(raw: str) -> datetime | None:
    """
    Accepts ISO dates/datetimes ("2025-03-01", "2025-03-01T18:00") or a relative
    offset in days ("+3", "-1"). Naive values are taken as UTC. "" / "none" clears.
    """
    value = raw.strip()
    if value.lower() in ("", "none"):
        return None
    if value[0] in "+-" and value[1:].isdigit():
        return utcnow() + timedelta(days=int(value))
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"invalid date: {raw!r}") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_tags(raw: str) -> list[str]:
    return [t.strip() for t in raw.split(",") if t.strip()]


def _apply_opts(task: Task, opts: dict[str, str]) -> None:
    if "name" in opts:
        task.name = opts["name"]
    if "description" in opts:
        task.description = opts["description"]
    if "priority" in opts:
        task.priority = Priority.parse(opts["priority"])
    if "status" in opts:
        task.status = TaskStatus.parse(opts["status"])
    if "category" in opts:
        task.category = opts["category"]
    if "tags" in opts:
        task.tags = _parse_tags(opts["tags"])
    if "due" in opts:
        task.due_date = _parse_due(opts["due"])
    if "notes" in opts:
        task.notes = opts["notes"]
    if "estimate" in opts:
        task.estimated_minutes = _parse_int(opts["estimate"], "estimate")


# ---- formatting ----

def _fmt_dt(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def _task_line(task: Task) -> str:
    mark = "x" if task.status == TaskStatus.COMPLETED else " "
    line = f"[{mark}] #{task.id} {task.name} ({task.priority.label}, {task.status.label})"
    if task.due_date is not None:
        line += f" due {_fmt_dt(task.due_date)}"
        if task.is_overdue():
            line += " OVERDUE"
    if task.category:
        line += f" @{task.category}"
    if task.tags:
        line += " " + " ".join(f"#{t}" for t in task.tags)
    return line


def _task_detail(task: Task) -> str:
    lines = [
        f"Task #{task.id}: {task.name}",
        f"  Status: {task.status.label}  Priority: {task.priority.label}  Progress: {task.progress}%",
        f"  Category: {task.category or '-'}  Tags: {', '.join(task.tags) or '-'}",
        f"  Due: {_fmt_dt(task.due_date)}  Created: {_fmt_dt(task.created_at)}  "
        f"Completed: {_fmt_dt(task.completed_at)}",
    ]
    if task.description:
        lines.append(f"  Description: {task.description}")
    if task.notes:
        lines.append(f"  Notes: {task.notes}")
    if task.shared_with:
        lines.append(f"  Shared with: {', '.join(task.shared_with)}")
    for st in task.subtasks:
        lines.append(f"    [{'x' if st.completed else ' '}] {st.id}. {st.name}")
    return "\n".join(lines)


def _task_list(tasks: list[Task], empty: str = "No tasks.") -> str:
    if not tasks:
        return empty
    return "\n".join(_task_line(t) for t in tasks)


# ---- handlers ----

def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <name> [--description D] [--priority P] [--category C] [--tags a,b] [--due DATE]
    """
    positional, opts = _split_opts(args)
    name = " ".join(positional) or opts.pop("name", "")
    task = Task(name=name)
    _apply_opts(task, opts)
    created = state.storage.create_task(task)
    return f"Created: {_task_line(created)}"


def cmd_list(state: AppState, args: list[str]) -> str:
    """
    /list [--status S] [--priority P] [--category C] [--tag T] [--overdue]
          [--search Q] [--sort FIELD] [--reverse] [--offset N] [--limit N]
    """
    _, opts = _split_opts(args)

    flt = TaskFilter(
        status=TaskStatus.parse(opts["status"]) if "status" in opts else None,
        priority=Priority.parse(opts["priority"]) if "priority" in opts else None,
        category=opts.get("category", ""),
        tags=_parse_tags(opts.get("tag", "")),
        is_overdue="overdue" in opts,
        search_term=opts.get("search", ""),
    )

    sort_field = opts.get("sort", "id").lower()
    if sort_field not in SORT_FIELDS:
        return f"Unknown sort field: {sort_field}. Use one of: {', '.join(SORT_FIELDS)}."
    sort = SortOption(field=sort_field, ascending="reverse" not in opts)

    page = Page(
        offset=_parse_int(opts.get("offset", "0"), "offset"),
        limit=_parse_int(opts.get("limit", "0"), "limit"),
    )

    return _task_list(state.storage.list_tasks(flt, sort, page))


def cmd_show(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /show <id>"
    return _task_detail(state.storage.get_task(_parse_id(args[0])))


def cmd_update(state: AppState, args: list[str]) -> str:
    """/update <id> [--name N] [--description D] [--priority P] [--status S] [--category C] [--tags a,b] [--due DATE]"""
    positional, opts = _split_opts(args)
    if len(positional) != 1 or not opts:
        return "Usage: /update <id> --field value [...]"
    task = state.storage.get_task(_parse_id(positional[0]))
    _apply_opts(task, opts)
    updated = state.storage.update_task(task)
    return f"Updated: {_task_line(updated)}"


def cmd_done(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /done <id>"
    task = state.storage.mark_task_complete(_parse_id(args[0]))
    return f"Completed: {_task_line(task)}"


def cmd_undone(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /undone <id>"
    task = state.storage.mark_task_incomplete(_parse_id(args[0]))
    return f"Reopened: {_task_line(task)}"


def cmd_progress(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /progress <id> <0-100>"
    task = state.storage.update_progress(_parse_id(args[0]), _parse_int(args[1], "progress"))
    return f"Progress {task.progress}%: {_task_line(task)}"


def cmd_delete(state: AppState, args: list[str]) -> str:
    """/delete <id> [<id> ...]  (all-or-nothing)"""
    if not args:
        return "Usage: /delete <id> [<id> ...]"
    ids = [_parse_id(a) for a in args]
    if len(ids) == 1:
        state.storage.delete_task(ids[0])
    else:
        state.storage.delete_tasks(ids)
    return f"Deleted {len(ids)} task(s)."


def cmd_sub(state: AppState, args: list[str]) -> str:
    """
    /sub <id> add <name>
    /sub <id> done <subtask_id>
    /sub <id> rm <subtask_id>
    """
    if len(args) < 3:
        return "Usage: /sub <id> add <name> | /sub <id> done <n> | /sub <id> rm <n>"

    task_id = _parse_id(args[0])
    action = args[1].lower()

    if action == "add":
        task = state.storage.add_subtask(task_id, " ".join(args[2:]))
    elif action == "done":
        task = state.storage.complete_subtask(task_id, _parse_int(args[2], "subtask id"))
    elif action in ("rm", "delete"):
        task = state.storage.delete_subtask(task_id, _parse_int(args[2], "subtask id"))
    else:
        return f"Unknown /sub action: {action}. Use add, done or rm."

    return _task_detail(task)


def cmd_share(state: AppState, args: list[str]) -> str:
    """/share <id> <user> [...]   /share <id> -<user> to unshare"""
    if len(args) < 2:
        return "Usage: /share <id> <user> [...] (prefix a user with - to unshare)"
    task_id = _parse_id(args[0])
    add = [u for u in args[1:] if not u.startswith("-")]
    drop = [u[1:] for u in args[1:] if u.startswith("-") and len(u) > 1]

    task = state.storage.get_task(task_id)
    if add:
        task = state.storage.share_task(task_id, add)
    if drop:
        task = state.storage.unshare_task(task_id, drop)
    return f"Task #{task.id} shared with: {', '.join(task.shared_with) or '-'}"


def cmd_shared(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /shared <user>"
    return _task_list(state.storage.get_shared_tasks(args[0]), empty=f"Nothing shared with {args[0]}.")


def cmd_search(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /search <text>"
    query = " ".join(args)
    return _task_list(state.storage.search_tasks(query), empty=f"No tasks match {query!r}.")


def cmd_overdue(state: AppState, args: list[str]) -> str:
    return _task_list(state.storage.get_overdue_tasks(), empty="Nothing overdue.")


def cmd_upcoming(state: AppState, args: list[str]) -> str:
    days = _parse_int(args[0], "days") if args else state.settings.upcoming_days
    return _task_list(state.storage.get_upcoming_tasks(days), empty=f"Nothing due in the next {days} day(s).")


def cmd_categories(state: AppState, args: list[str]) -> str:
    cats = state.storage.get_categories()
    return "Categories: " + (", ".join(cats) if cats else "-")


def cmd_tags(state: AppState, args: list[str]) -> str:
    tags = state.storage.get_tags()
    return "Tags: " + (", ".join(tags) if tags else "-")


def cmd_stats(state: AppState, args: list[str]) -> str:
    """
    /stats         -> whole-store summary
    /stats <days>  -> summary + productivity over the last <days> days
    """
    summary = state.storage.get_task_summary()
    lines = [
        "Summary:",
        f"  Total: {summary.total_tasks}  Completed: {summary.completed_tasks}  "
        f"Pending: {summary.pending_tasks}  Overdue: {summary.overdue_tasks}",
    ]
    if summary.tasks_by_priority:
        by_prio = sorted(summary.tasks_by_priority.items(), key=lambda kv: kv[0].rank, reverse=True)
        lines.append("  By priority: " + ", ".join(f"{p.label}={n}" for p, n in by_prio))
    if summary.tasks_by_category:
        lines.append("  By category: " + ", ".join(f"{c}={n}" for c, n in sorted(summary.tasks_by_category.items())))
    if summary.upcoming_deadlines:
        lines.append("  Upcoming deadlines:")
        lines.extend(f"    {_task_line(t)}" for t in summary.upcoming_deadlines)

    if args:
        days = _parse_int(args[0], "days")
        end = utcnow()
        stats = state.storage.get_productivity_stats(end - timedelta(days=days), end)
        lines += [
            f"Productivity (last {days} day(s)):",
            f"  Created: {stats.total_tasks}  Completed: {stats.completed_tasks}  "
            f"Rate: {stats.completion_rate:.1f}%",
            f"  Overdue: {stats.overdue_tasks}  Upcoming: {stats.upcoming_tasks}  "
            f"High priority: {stats.high_priority_tasks}",
        ]
    return "\n".join(lines)


def cmd_export(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /export <json|csv> <path>"
    fmt, path = args[0], Path(args[1]).expanduser()
    payload = state.storage.export(fmt)
    try:
        path.write_bytes(payload)
    except OSError as e:
        return f"Cannot write {path}: {e}"
    return f"Exported {len(payload)} bytes to {path}."


def cmd_import(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /import <json|csv> <path>"
    fmt, path = args[0], Path(args[1]).expanduser()
    try:
        payload = path.read_bytes()
    except OSError as e:
        return f"Cannot read {path}: {e}"
    count = state.storage.import_tasks(payload, fmt)
    return f"Imported {count} task(s) from {path}."


def cmd_backup(state: AppState, args: list[str]) -> str:
    backup_id = state.storage.backup()
    return f"Backup created: {backup_id}"


def cmd_backups(state: AppState, args: list[str]) -> str:
    ids = state.storage.list_backups()
    if not ids:
        return "No backups."
    return "Backups:\n" + "\n".join(f"  {b}" for b in ids)


def cmd_restore(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /restore <backup_id>"
    state.storage.restore(args[0])
    return f"Restored backup {args[0]}."


def cmd_clean(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /clean <days>"
    days = _parse_int(args[0], "days")
    removed = state.storage.clean(utcnow() - timedelta(days=days))
    return f"Removed {removed} finished task(s) older than {days} day(s)."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register(
    "add", cmd_add,
    help_text="Create a task: /add <name> [--priority P] [--category C] [--tags a,b] [--due DATE].",
)
registry.register(
    "list", cmd_list,
    help_text="List tasks: /list [--status S] [--priority P] [--tag T] [--overdue] [--sort F] [--reverse].",
    aliases=["ls"],
)
registry.register("show", cmd_show, help_text="Show one task: /show <id>.")
registry.register("update", cmd_update, help_text="Edit a task: /update <id> --field value.")
registry.register("done", cmd_done, help_text="Mark a task completed: /done <id>.")
registry.register("undone", cmd_undone, help_text="Reopen a task: /undone <id>.")
registry.register("progress", cmd_progress, help_text="Set progress: /progress <id> <0-100>.")
registry.register("delete", cmd_delete, help_text="Delete tasks: /delete <id> [<id> ...].", aliases=["rm"])
registry.register("sub", cmd_sub, help_text="Subtasks: /sub <id> add <name> | done <n> | rm <n>.")
registry.register("share", cmd_share, help_text="Share a task: /share <id> <user> [-<user>].")
registry.register("shared", cmd_shared, help_text="Tasks shared with a user: /shared <user>.")
registry.register("search", cmd_search, help_text="Full-text search: /search <text>.")
registry.register("overdue", cmd_overdue, help_text="List overdue tasks.")
registry.register("upcoming", cmd_upcoming, help_text="Tasks due soon: /upcoming [days].")
registry.register("categories", cmd_categories, help_text="List categories in use.")
registry.register("tags", cmd_tags, help_text="List tags in use.")
registry.register("stats", cmd_stats, help_text="Summary: /stats [days].")
registry.register("export", cmd_export, help_text="Export: /export <json|csv> <path>.")
registry.register("import", cmd_import, help_text="Import: /import <json|csv> <path>.")
registry.register("backup", cmd_backup, help_text="Create a snapshot.")
registry.register("backups", cmd_backups, help_text="List snapshots.")
registry.register("restore", cmd_restore, help_text="Restore a snapshot: /restore <backup_id>.")
registry.register("clean", cmd_clean, help_text="Drop finished tasks older than N days: /clean <days>.")
