# src/tasktrack/tasks/file_store.py

from __future__ import annotations

import logging
import os
import time
from pathlib import Path

from ..errors import NotConnectedError, PersistenceError, ValidationError
from .task_autosave import AutoSaveRunner, start_autosave_in_background
from .task_codec import TaskDocument, decode_document, encode_document
from .task_store import DEFAULT_UPCOMING_DAYS, MemoryTaskStore, new_backup_id

logger = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_INTERVAL_SECONDS = 300.0
_BACKUP_MARKER = ".backup."


class FileTaskStore(MemoryTaskStore):
    """
    JSON-file backed task store.

    Lifecycle:
    - connect(): create the file with an empty document if missing, load it,
      start the auto-save thread
    - close(): save unconditionally, stop and join the auto-save thread

    Write amplification is bounded: a mutation saves only when the last save
    is at least `autosave_interval_seconds` old; the background thread saves
    on every tick regardless, so staleness never exceeds one interval.

    Files are replaced atomically (write to a sibling .tmp, then os.replace).
    Snapshots live next to the primary file as <name>.backup.<id>.
    """

    def __init__(
        self,
        file_path: str | Path,
        *,
        autosave_interval_seconds: float = DEFAULT_AUTOSAVE_INTERVAL_SECONDS,
        upcoming_days: int = DEFAULT_UPCOMING_DAYS,
        strict_due_dates: bool = False,
    ) -> None:
        super().__init__(upcoming_days=upcoming_days, strict_due_dates=strict_due_dates)
        self._path = Path(file_path)
        self._autosave_interval = float(autosave_interval_seconds)
        self._last_save: float | None = None
        self._autosave: AutoSaveRunner | None = None

    @property
    def path(self) -> Path:
        return self._path

    # ---- lifecycle ----

    def connect(self) -> None:
        with self._lock.write():
            if self._active:
                raise NotConnectedError("store is already connected")

            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise PersistenceError(f"failed to create directory {self._path.parent}: {exc}") from exc

            if not self._path.exists():
                self._write_file(self._path, encode_document([], 0))
                self._last_save = time.monotonic()
                logger.info("Initialized empty task file %s", self._path)

            doc = self._read_file(self._path)
            self._tasks = {}
            self._max_id = 0
            self._replace_all(doc)
            self._active = True

        self._autosave = start_autosave_in_background(
            self._autosave_tick,
            interval_seconds=self._autosave_interval,
        )
        logger.info("FileTaskStore connected path=%s tasks=%d max_id=%d", self._path, len(self._tasks), self._max_id)

    def close(self) -> None:
        """Final save is unconditional; if it fails the store stays connected."""
        with self._lock.write():
            if not self._active:
                raise NotConnectedError("store is already closed")
            self._save_locked()
            self._active = False

        runner, self._autosave = self._autosave, None
        if runner is not None:
            runner.stop()
            runner.join(timeout=5.0)
        logger.info("FileTaskStore closed path=%s tasks=%d", self._path, len(self._tasks))

    def save(self) -> None:
        """Force a save now."""
        with self._lock.write():
            self._check_active()
            self._save_locked()

    # ---- persistence hooks (write lock held) ----

    def _after_write(self) -> None:
        self._save_if_needed()

    def _persist_now(self) -> None:
        self._save_locked()

    def _save_if_needed(self) -> None:
        if self._last_save is None or time.monotonic() - self._last_save >= self._autosave_interval:
            self._save_locked()

    def _autosave_tick(self) -> None:
        with self._lock.write():
            if not self._active:
                return
            self._save_locked()

    def _save_locked(self) -> None:
        payload = encode_document(self._tasks.values(), self._max_id)
        self._write_file(self._path, payload)
        self._last_save = time.monotonic()
        logger.debug("Saved %d tasks to %s", len(self._tasks), self._path)

    # ---- file helpers ----

    @staticmethod
    def _write_file(path: Path, payload: bytes) -> None:
        tmp = path.with_name(path.name + ".tmp")
        try:
            tmp.write_bytes(payload)
            os.replace(tmp, path)
        except OSError as exc:
            raise PersistenceError(f"failed to write {path}: {exc}") from exc

    @staticmethod
    def _read_file(path: Path) -> TaskDocument:
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise PersistenceError(f"failed to read {path}: {exc}") from exc
        return decode_document(data)

    # ---- backup / restore ----

    def _backup_path(self, backup_id: str) -> Path:
        if not backup_id or "/" in backup_id or "\\" in backup_id or backup_id in (".", ".."):
            raise ValidationError(f"invalid backup id: {backup_id!r}")
        return self._path.with_name(f"{self._path.name}{_BACKUP_MARKER}{backup_id}")

    def backup(self) -> str:
        """Write a timestamped snapshot next to the primary file; returns its id."""
        with self._lock.read():
            self._check_active()
            payload = encode_document(self._tasks.values(), self._max_id)
            count = len(self._tasks)

        backup_id = new_backup_id(lambda b: self._backup_path(b).exists())
        target = self._backup_path(backup_id)
        self._write_file(target, payload)
        logger.info("Backup written id=%s path=%s tasks=%d", backup_id, target, count)
        return backup_id

    def list_backups(self) -> list[str]:
        prefix = f"{self._path.name}{_BACKUP_MARKER}"
        ids = [
            p.name[len(prefix):]
            for p in self._path.parent.glob(f"{prefix}*")
            if p.is_file() and not p.name.endswith(".tmp")
        ]
        return sorted(ids)

    def restore(self, backup_id: str) -> None:
        """Replace every record with the snapshot's content and save immediately."""
        self._check_active()
        source = self._backup_path(backup_id)
        if not source.exists():
            raise PersistenceError(f"backup {backup_id!r} not found at {source}")
        doc = self._read_file(source)

        with self._transaction(persist_now=True):
            self._replace_all(doc)
        logger.info("Restored %d tasks from backup id=%s", len(doc.tasks), backup_id)
