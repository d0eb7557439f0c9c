# src/tasktrack/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, connects the storage, runs the console
REPL in the main thread and closes the storage (final save) on the way out.
"""

from __future__ import annotations

import logging
import sys

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..errors import TaskStoreError
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _shutdown(state) -> None:
    """Close the storage; a failed final save is logged, not raised."""
    try:
        state.storage.close()
    except TaskStoreError:
        logger.exception("Failed to close storage cleanly.")


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.log_dir, app_name=settings.app_name, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        state.storage.connect()
    except TaskStoreError:
        logger.exception("Cannot open task storage.")
        sys.exit(1)

    try:
        run_console_loop(state)
    finally:
        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
