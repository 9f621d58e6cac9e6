# src/tasklane/cli/runtime.py

from __future__ import annotations

"""
Background runtime.

Runs the two periodic jobs on their own event loop in a daemon thread:
- the reminder dispatcher (polls the schedule table, fires due reminders),
- the daily recurrence trigger (expands recurring templates after local midnight).

Shutdown model:
- main thread sets stop_event via loop.call_soon_threadsafe(stop_event.set)
- both job coroutines are then cancelled and awaited.
"""

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.state import AppState
from ..recurring.expander import run_recurrence_trigger
from ..reminders.backend import run_reminder_dispatcher
from ..reminders.scheduler import REMINDER_TARGET

logger = logging.getLogger(__name__)


async def run_background_jobs(state: AppState, stop_event: asyncio.Event) -> None:
    settings = state.settings

    dispatcher_task = asyncio.create_task(
        run_reminder_dispatcher(
            state.schedules,
            {REMINDER_TARGET: state.dispatcher},
            interval_seconds=settings.dispatcher_interval_seconds,
            retry_delay_seconds=settings.dispatcher_retry_delay_seconds,
            max_attempts=settings.dispatcher_max_attempts,
        )
    )
    recurrence_task = asyncio.create_task(
        run_recurrence_trigger(
            state.service.expand_recurring,
            tz=state.reminders.tz,
            run_on_start=settings.recurrence_run_on_start,
        )
    )
    logger.info("Background jobs started (dispatcher every %.0fs).", settings.dispatcher_interval_seconds)

    try:
        await stop_event.wait()
    finally:
        for task in (dispatcher_task, recurrence_task):
            task.cancel()
        for task in (dispatcher_task, recurrence_task):
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Background jobs stopped.")


@dataclass
class BackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Background loop already closed.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_background(state: AppState) -> BackgroundRunner | None:
    """
    Start the background jobs in a daemon thread (so the console REPL can run in parallel).

    The console REPL blocks on input(); the jobs are async and want their own event loop.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(run_background_jobs(state, stop_event))
        except Exception:
            logger.exception("Background jobs crashed.")
        finally:
            loop.close()

    t = threading.Thread(target=runner, name="tasklane-jobs", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Background thread did not initialize properly.")
        return None

    return BackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
