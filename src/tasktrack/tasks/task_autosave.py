# src/tasktrack/tasks/task_autosave.py

from __future__ import annotations

"""
Background auto-save.

A daemon thread that calls `save` once per interval until stopped.
Failures are logged and swallowed so a bad tick never kills the loop;
the owner (FileTaskStore) still surfaces errors from its explicit saves.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AutoSaveRunner:
    thread: threading.Thread
    stop_event: threading.Event

    def stop(self) -> None:
        self.stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self.thread is not threading.current_thread():
            self.thread.join(timeout=timeout)

    @property
    def running(self) -> bool:
        return self.thread.is_alive()


def run_autosave_loop(save: Callable[[], None], stop_event: threading.Event, *, interval_seconds: float) -> None:
    """
    Call `save` every interval_seconds until stop_event is set.

    Event.wait doubles as the sleep, so stop() interrupts a long interval
    immediately instead of waiting for the next tick.
    """
    while not stop_event.wait(interval_seconds):
        try:
            save()
        except Exception:
            logger.exception("auto-save tick failed")


def start_autosave_in_background(
    save: Callable[[], None],
    *,
    interval_seconds: float,
    name: str = "tasktrack-autosave",
) -> AutoSaveRunner:
    stop_event = threading.Event()
    interval = max(0.01, float(interval_seconds))

    t = threading.Thread(
        target=run_autosave_loop,
        args=(save, stop_event),
        kwargs={"interval_seconds": interval},
        name=name,
        daemon=True,
    )
    t.start()

    logger.info("Auto-save thread started (interval=%.2fs).", interval)
    return AutoSaveRunner(thread=t, stop_event=stop_event)
