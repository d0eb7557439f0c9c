# src/tasktrack/tasks/task_codec.py

"""
Serialization of the store state.

Two shapes:
- the JSON document used for the primary file, snapshots and json export:
    {"metadata": {"version", "last_updated", "task_count", "max_id"}, "tasks": [...]}
- a flat CSV table for csv export/import (lossy: no subtasks/progress/sharing).

Decoding problems with the payload itself raise FormatError; bad field values
inside a well-formed payload raise ValidationError.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ..errors import FormatError, ValidationError
from .task_models import TAG_DELIMITER, Priority, SubTask, Task, TaskStatus, utcnow

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"
SUPPORTED_FORMATS: tuple[str, ...] = ("json", "csv")

CSV_HEADER = [
    "ID",
    "Name",
    "Description",
    "Status",
    "Priority",
    "Category",
    "Created At",
    "Due Date",
    "Completed At",
    "Tags",
]


@dataclass(slots=True)
class TaskDocument:
    tasks: list[Task]
    max_id: int
    version: str = FORMAT_VERSION
    last_updated: datetime | None = None


def normalize_format(fmt: str) -> str:
    key = (fmt or "").strip().lower()
    if key not in SUPPORTED_FORMATS:
        raise FormatError(f"unsupported format: {fmt!r} (expected one of {', '.join(SUPPORTED_FORMATS)})")
    return key


# ---- field helpers ----

def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(raw: Any, name: str) -> datetime | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        dt = raw
    else:
        try:
            dt = datetime.fromisoformat(str(raw).strip())
        except ValueError:
            raise ValidationError(f"malformed date in {name}: {raw!r}") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    # Year 1 is the zero value written by older files; it means "unset".
    if dt.year == 1:
        return None
    return dt


def _parse_status(raw: Any) -> TaskStatus:
    if isinstance(raw, int) and not isinstance(raw, bool):
        try:
            return tuple(TaskStatus)[raw]
        except IndexError:
            raise ValidationError(f"invalid status: {raw!r}") from None
    return TaskStatus.parse(raw)


def _parse_priority(raw: Any) -> Priority:
    if isinstance(raw, int) and not isinstance(raw, bool):
        try:
            return tuple(Priority)[raw]
        except IndexError:
            raise ValidationError(f"invalid priority: {raw!r}") from None
    return Priority.parse(raw)


def _parse_int(raw: Any, name: str, default: int = 0) -> int:
    """Accept ints and integer strings (CSV cells); floats and bools are rejected, never truncated."""
    if raw is None or raw == "":
        return default
    if isinstance(raw, (bool, float)):
        raise ValidationError(f"{name} must be an integer, got {raw!r}")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer, got {raw!r}") from None


def _parse_bool(raw: Any, name: str) -> bool:
    if raw is None:
        return False
    if not isinstance(raw, bool):
        raise ValidationError(f"{name} must be a boolean, got {raw!r}")
    return raw


def _str_list(raw: Any, name: str) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"{name} must be a list, got {type(raw).__name__}")
    return [str(x) for x in raw]


# ---- Task <-> dict ----

def subtask_to_dict(sub: SubTask) -> dict[str, Any]:
    return {
        "id": sub.id,
        "name": sub.name,
        "completed": sub.completed,
        "created_at": _dt_to_str(sub.created_at),
        "completed_at": _dt_to_str(sub.completed_at),
    }


def subtask_from_dict(raw: dict[str, Any]) -> SubTask:
    if not isinstance(raw, dict):
        raise ValidationError(f"subtask must be an object, got {type(raw).__name__}")
    return SubTask(
        id=_parse_int(raw.get("id"), "subtask.id"),
        name=str(raw.get("name") or ""),
        completed=_parse_bool(raw.get("completed"), "subtask.completed"),
        created_at=_parse_dt(raw.get("created_at"), "subtask.created_at"),
        completed_at=_parse_dt(raw.get("completed_at"), "subtask.completed_at"),
    )


def task_to_dict(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "name": task.name,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority.value,
        "category": task.category,
        "tags": list(task.tags),
        "due_date": _dt_to_str(task.due_date),
        "created_at": _dt_to_str(task.created_at),
        "updated_at": _dt_to_str(task.updated_at),
        "completed_at": _dt_to_str(task.completed_at),
        "progress": task.progress,
        "subtasks": [subtask_to_dict(st) for st in task.subtasks],
        "shared_with": list(task.shared_with),
        "notes": task.notes,
        "references": list(task.references),
        "estimated_minutes": task.estimated_minutes,
        "actual_minutes": task.actual_minutes,
        "reminder": _dt_to_str(task.reminder),
    }


def task_from_dict(raw: dict[str, Any]) -> Task:
    if not isinstance(raw, dict):
        raise ValidationError(f"task must be an object, got {type(raw).__name__}")

    subtasks_raw = raw.get("subtasks") or []
    if not isinstance(subtasks_raw, list):
        raise ValidationError("subtasks must be a list")

    return Task(
        id=_parse_int(raw.get("id"), "id"),
        name=str(raw.get("name") or ""),
        description=str(raw.get("description") or ""),
        status=_parse_status(raw.get("status", TaskStatus.NOT_STARTED.value)),
        priority=_parse_priority(raw.get("priority", Priority.MEDIUM.value)),
        category=str(raw.get("category") or ""),
        tags=_str_list(raw.get("tags"), "tags"),
        due_date=_parse_dt(raw.get("due_date"), "due_date"),
        created_at=_parse_dt(raw.get("created_at"), "created_at"),
        updated_at=_parse_dt(raw.get("updated_at"), "updated_at"),
        completed_at=_parse_dt(raw.get("completed_at"), "completed_at"),
        progress=_parse_int(raw.get("progress"), "progress"),
        subtasks=[subtask_from_dict(st) for st in subtasks_raw],
        shared_with=_str_list(raw.get("shared_with"), "shared_with"),
        notes=str(raw.get("notes") or ""),
        references=_str_list(raw.get("references"), "references"),
        estimated_minutes=_parse_int(raw.get("estimated_minutes"), "estimated_minutes"),
        actual_minutes=_parse_int(raw.get("actual_minutes"), "actual_minutes"),
        reminder=_parse_dt(raw.get("reminder"), "reminder"),
    )


# ---- JSON document ----

def encode_document(tasks: Iterable[Task], max_id: int) -> bytes:
    ordered = sorted(tasks, key=lambda t: t.id)
    doc = {
        "metadata": {
            "version": FORMAT_VERSION,
            "last_updated": utcnow().isoformat(),
            "task_count": len(ordered),
            "max_id": max_id,
        },
        "tasks": [task_to_dict(t) for t in ordered],
    }
    return json.dumps(doc, ensure_ascii=False, indent=4).encode("utf-8")


def decode_document(data: bytes | str) -> TaskDocument:
    """Parse a document; a bare list of tasks is accepted as well."""
    try:
        raw = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise FormatError(f"malformed JSON document: {exc}") from exc

    if isinstance(raw, list):
        raw = {"tasks": raw}
    if not isinstance(raw, dict):
        raise FormatError(f"document must be an object, got {type(raw).__name__}")

    meta = raw.get("metadata") or {}
    if not isinstance(meta, dict):
        raise FormatError("metadata must be an object")

    tasks_raw = raw.get("tasks") or []
    if not isinstance(tasks_raw, list):
        raise FormatError("tasks must be a list")

    tasks = [task_from_dict(t) for t in tasks_raw]
    return TaskDocument(
        tasks=tasks,
        max_id=_parse_int(meta.get("max_id"), "metadata.max_id"),
        version=str(meta.get("version") or FORMAT_VERSION),
        last_updated=_parse_dt(meta.get("last_updated"), "metadata.last_updated"),
    )


# ---- CSV ----

def encode_csv(tasks: Iterable[Task]) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADER)
    for t in sorted(tasks, key=lambda t: t.id):
        writer.writerow(
            [
                str(t.id),
                t.name,
                t.description,
                t.status.value,
                t.priority.value,
                t.category,
                _dt_to_str(t.created_at) or "",
                _dt_to_str(t.due_date) or "",
                _dt_to_str(t.completed_at) or "",
                TAG_DELIMITER.join(t.tags),
            ]
        )
    return buf.getvalue().encode("utf-8")


def decode_csv(data: bytes | str) -> list[Task]:
    try:
        text = data.decode("utf-8-sig") if isinstance(data, bytes) else data
    except UnicodeDecodeError as exc:
        raise FormatError(f"CSV payload is not valid UTF-8: {exc}") from exc

    reader = csv.reader(io.StringIO(text))
    try:
        header = next(reader, None)
        if header is None:
            return []
        if [h.strip().lower() for h in header[: len(CSV_HEADER)]] != [h.lower() for h in CSV_HEADER]:
            raise FormatError(f"unexpected CSV header: {header!r}")

        out: list[Task] = []
        for lineno, row in enumerate(reader, start=2):
            if not any(cell.strip() for cell in row):
                continue
            if len(row) < len(CSV_HEADER):
                raise FormatError(f"CSV line {lineno}: expected {len(CSV_HEADER)} columns, got {len(row)}")

            status = _parse_status(row[3])
            tags = [tag for tag in row[9].split(TAG_DELIMITER) if tag]
            created_at = _parse_dt(row[6], "Created At")
            out.append(
                Task(
                    id=_parse_int(row[0], "ID"),
                    name=row[1],
                    description=row[2],
                    status=status,
                    priority=_parse_priority(row[4]),
                    category=row[5],
                    created_at=created_at,
                    updated_at=created_at,
                    due_date=_parse_dt(row[7], "Due Date"),
                    completed_at=_parse_dt(row[8], "Completed At"),
                    tags=tags,
                    progress=100 if status == TaskStatus.COMPLETED else 0,
                )
            )
    except csv.Error as exc:
        raise FormatError(f"malformed CSV: {exc}") from exc

    logger.debug("Decoded %d tasks from CSV", len(out))
    return out


# ---- format dispatch ----

def export_tasks(tasks: Iterable[Task], max_id: int, fmt: str) -> bytes:
    key = normalize_format(fmt)
    if key == "json":
        return encode_document(tasks, max_id)
    return encode_csv(tasks)


def import_payload(data: bytes | str, fmt: str) -> TaskDocument:
    key = normalize_format(fmt)
    if key == "json":
        return decode_document(data)
    tasks = decode_csv(data)
    return TaskDocument(tasks=tasks, max_id=max((t.id for t in tasks), default=0))
