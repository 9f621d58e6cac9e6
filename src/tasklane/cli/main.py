# src/tasklane/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- background jobs (reminder dispatcher + daily recurrence trigger) in a thread,
- the operator console in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..logging_setup import setup_logging
from .console import run_console_loop
from .runtime import start_background

logger = logging.getLogger(__name__)


def _reconcile_console_user(state) -> None:
    """Repair reminder state left behind by a crash before new triggers start firing."""
    try:
        n = state.task_store.reconcile_reminders(state.profiles.owner_for(state.settings.console_user))
        if n:
            logger.info("Startup reconcile repaired %d task(s).", n)
    except Exception:
        logger.exception("Startup reconcile failed.")


def _shutdown(state) -> None:
    # Stores use short-lived sqlite connections per call; close() is a no-op hook.
    state.table.close()
    state.schedules.close()
    removed = state.table.purge_expired()
    logger.debug("Purged %d expired item(s) on shutdown.", removed)


def main() -> None:
    settings = get_settings()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)
    _reconcile_console_user(state)

    runner = start_background(state)

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError):
        logger.debug("Signal handlers not installed.", exc_info=True)

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running background jobs only. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        if runner is not None:
            runner.stop()
            runner.join(timeout=10.0)
        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
