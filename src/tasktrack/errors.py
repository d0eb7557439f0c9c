# src/tasktrack/errors.py

"""
Error taxonomy shared by the record model, the stores and the codecs.

Every store error derives from TaskStoreError so callers (the CLI) can catch
the whole family in one place. Where a builtin exception has the same meaning
(ValueError, LookupError, RuntimeError) the store error also derives from it.
"""

from __future__ import annotations


class TaskStoreError(Exception):
    """Base class for all task store errors."""


class ValidationError(TaskStoreError, ValueError):
    """Bad input shape: empty name, out-of-range progress, bad enum or date."""


class RangeError(ValidationError):
    """A numeric argument (progress) is outside its allowed range."""


class NotFoundError(TaskStoreError, LookupError):
    """The operation targets a task (or subtask) id that does not exist."""

    def __init__(self, message: str, *, task_id: int | None = None) -> None:
        super().__init__(message)
        self.task_id = task_id


class NotConnectedError(TaskStoreError, RuntimeError):
    """The store is disconnected, or connect/close was called twice."""


class DuplicateError(TaskStoreError):
    """Reserved: the store assigns ids itself, so create never collides."""


class PersistenceError(TaskStoreError):
    """I/O failure reading or writing the backing file or a snapshot."""


class FormatError(TaskStoreError, ValueError):
    """Unsupported or malformed import/export format."""
