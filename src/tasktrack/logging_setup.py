# src/tasktrack/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Logger name prefix -> lowest level shown on the console. Longest prefix wins.
# Everything still reaches the log file at file_level.
CONSOLE_LEVELS: dict[str, int] = {
    # Per-record create/update/delete lines and codec chatter.
    "tasktrack.tasks": logging.INFO,
    # Ticks run in a background thread and would interleave with the prompt.
    "tasktrack.tasks.task_autosave": logging.WARNING,
    # Failed commands are already echoed back as replies.
    "tasktrack.cli.commands": logging.WARNING,
    "tasktrack": logging.DEBUG,
    "py.warnings": logging.ERROR,
}


class _ConsoleNoiseFilter(logging.Filter):
    """
    Make interactive console usable:
    - store internals only at INFO+ (per-record DEBUG goes to the file only)
    - the auto-save thread only at WARNING+
    - anything not under a known prefix (third-party) only at ERROR+
    """

    def __init__(self, levels: dict[str, int] | None = None) -> None:
        super().__init__()
        levels = CONSOLE_LEVELS if levels is None else levels
        self._levels = sorted(levels.items(), key=lambda kv: len(kv[0]), reverse=True)

    def min_level(self, name: str) -> int:
        for prefix, level in self._levels:
            if name == prefix or name.startswith(prefix + "."):
                return level
        return logging.ERROR

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.min_level(record.name)


def setup_logging(
    *,
    log_dir: str | Path = ".local/tasktrack",
    app_name: str = "tasktrack",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Configure logging with:
    - Console handler: readable + filtered per component
    - File handler: <log_dir>/<app_name>.log with everything at file_level

    Call this ONCE, very early (before first logger.info). Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{app_name}.log"

    root = logging.getLogger()
    root.setLevel(min(console_level, file_level))

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)
    return log_file
