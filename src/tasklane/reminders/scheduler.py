# src/tasklane/reminders/scheduler.py

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo

from ..core.ports import Clock, SchedulingBackend
from ..errors import AppError, ValidationError
from ..tasks.task_models import Owner, ReminderConfig, ReminderState, Task

logger = logging.getLogger(__name__)

REMINDER_TARGET = "send_reminder"

PersistReminder = Callable[[ReminderConfig], None]


class ReminderScheduler:
    """
    Keeps at most one live trigger per task.

    install()/retire() talk to the scheduling backend only. sync() drives the persisted
    state machine and needs a persist callback that writes the task's reminders field.
    """

    def __init__(
        self,
        backend: SchedulingBackend,
        *,
        tz: tzinfo | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._backend = backend
        self._tz = tz or ZoneInfo("UTC")
        self._clock = clock

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.now(self._tz)

    def compute_fire_time(self, due_date: str, due_time: str | None, minutes_before: int) -> datetime:
        if not due_time:
            raise ValidationError(
                "Reminders require a dueTime", details={"field": "dueTime"}
            )
        try:
            due = datetime.combine(
                date.fromisoformat(due_date), time.fromisoformat(due_time), tzinfo=self._tz
            )
        except ValueError as e:
            raise ValidationError("Invalid dueDate/dueTime for reminder") from e
        return due - timedelta(minutes=int(minutes_before))

    def install(self, task: Task, owner: Owner) -> str:
        """Register a one-shot trigger for the task's reminder; returns the handle."""
        rem = task.reminders
        if rem is None or not rem.enabled:
            raise ValidationError("Reminders are not enabled for this task")

        fire_at = self.compute_fire_time(task.due_date, task.due_time, rem.minutes_before)
        if fire_at <= self.now():
            logger.warning("Trigger time is in the past task=%s fire_at=%s", task.task_id, fire_at.isoformat())
            raise ValidationError(
                "Reminder time is in the past", details={"fireTime": fire_at.isoformat()}
            )

        payload = {
            "taskId": task.task_id,
            "owner": owner.username,
            "title": task.title,
            "dueDate": task.due_date,
            "dueTime": task.due_time,
            "email": rem.email,
            "sms": rem.sms,
            "userEmail": owner.email,
            "userPhone": owner.phone,
        }
        handle = self._backend.schedule(fire_at=fire_at, target=REMINDER_TARGET, payload=payload)
        logger.info("Reminder scheduled task=%s fire_at=%s", task.task_id, fire_at.isoformat())
        return handle

    def retire(self, handle: str | None) -> None:
        """Remove a trigger. Unknown or already-fired handles are a no-op."""
        if not handle:
            return
        self._backend.cancel(handle)

    def is_live(self, handle: str | None) -> bool:
        return bool(handle) and self._backend.exists(handle)

    def sync(self, task: Task, owner: Owner, *, persist: PersistReminder) -> str | None:
        """
        Bring the live schedule in line with task.reminders.

        The old trigger is always retired before a new one is installed; a failed retire
        leaves the task in pending_retire and installs nothing. Returns a warning string
        when the task ends without the reminder it asked for, else None.
        """
        rem = task.reminders
        if rem is None:
            return None

        old = rem.scheduling_handle
        if old:
            rem.state = ReminderState.PENDING_RETIRE
            persist(rem)
            try:
                self.retire(old)
            except Exception:
                logger.exception("Failed to retire reminder task=%s handle=%s", task.task_id, old)
                return "Previous reminder could not be removed; new reminder not scheduled"
            rem.scheduling_handle = None

        if not rem.enabled:
            rem.state = ReminderState.NONE
            persist(rem)
            return None

        rem.state = ReminderState.PENDING_INSTALL
        persist(rem)
        try:
            handle = self.install(task, owner)
        except AppError as e:
            logger.error("Failed to schedule reminder task=%s: %s", task.task_id, e.message)
            rem.state = ReminderState.NONE
            persist(rem)
            return f"Reminder not scheduled: {e.message}"
        except Exception:
            logger.exception("Failed to schedule reminder task=%s", task.task_id)
            rem.state = ReminderState.NONE
            persist(rem)
            return "Reminder not scheduled: scheduling backend error"

        rem.scheduling_handle = handle
        rem.state = ReminderState.INSTALLED
        try:
            persist(rem)
        except Exception:
            # Nothing references the new trigger; drop it so it cannot fire unseen.
            self.retire(handle)
            rem.scheduling_handle = None
            rem.state = ReminderState.PENDING_INSTALL
            raise
        return None
