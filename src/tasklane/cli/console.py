# src/tasklane/cli/console.py

from __future__ import annotations

import logging
from datetime import datetime

from ..core.state import AppState
from ..tasks.task_models import Owner
from .commands import registry as command_registry

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def console_owner(state: AppState) -> Owner:
    """The operator identity: configured user, contact claims from settings or the stored profile."""
    s = state.settings
    if s.console_email or s.console_phone:
        state.profiles.put_profile(s.console_user, email=s.console_email, phone=s.console_phone)
    return state.profiles.owner_for(s.console_user)


def run_console_loop(state: AppState) -> None:
    owner = console_owner(state)
    logger.info("Operator console started (user=%s).", owner.username)
    print(f"[{_ts_local()}] [CONSOLE] Use /help for commands. Use /exit to quit.\n")

    while True:
        try:
            line = input(f"{owner.username}> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            reply = command_registry.handle(state, line, owner)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is None:
            reply = "Commands start with '/'. Use /help to list them."
        print(f"[{_ts_local()}] {reply}")
