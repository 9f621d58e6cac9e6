# src/tasklane/reminders/dispatch.py

"""
Reminder dispatch.

Turns a fired "send_reminder" job into notifications:
- builds the reminder text from the job payload,
- publishes it on each enabled channel that has a recipient,
- clears the task's scheduling handle, since a fired one-shot trigger is no longer live.

Channel routing (fan-out, templating, provider choice) belongs to the NotificationSink.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..core.ports import NotificationSink
from ..errors import AppError
from ..tasks.task_models import Owner
from ..tasks.task_store import TaskStore
from .backend import ScheduledJob

logger = logging.getLogger(__name__)

SMS_MAX_CHARS = 160


@dataclass(slots=True, frozen=True)
class ReminderMessage:
    subject: str
    body: str
    sms_body: str


def build_reminder_message(payload: dict[str, Any]) -> ReminderMessage:
    title = str(payload.get("title") or "")
    body = (
        f'Reminder: Your task "{title}" is due on '
        f'{payload.get("dueDate")} at {payload.get("dueTime")}.'
    )
    sms_body = body if len(body) <= SMS_MAX_CHARS else body[: SMS_MAX_CHARS - 3] + "..."
    return ReminderMessage(subject=f"Task Reminder: {title}", body=body, sms_body=sms_body)


class ReminderDispatcher:
    """Job handler for REMINDER_TARGET. Never raises for a single channel's failure."""

    def __init__(self, sink: NotificationSink, task_store: TaskStore | None = None) -> None:
        self._sink = sink
        self._tasks = task_store

    async def __call__(self, job: ScheduledJob) -> None:
        await self.dispatch(job.payload, handle=job.handle)

    async def dispatch(self, payload: dict[str, Any], *, handle: str | None = None) -> list[str]:
        """Deliver one reminder; returns the channels that accepted it."""
        task_id = payload.get("taskId")
        message = build_reminder_message(payload)
        sent: list[str] = []

        if payload.get("email"):
            recipient = payload.get("userEmail")
            if not recipient:
                logger.warning("Email reminder skipped task=%s: no email on file", task_id)
            else:
                try:
                    await self._sink.publish(
                        channel="email", recipient=recipient, message=message.body, subject=message.subject
                    )
                    sent.append("email")
                    logger.info("Email reminder sent task=%s", task_id)
                except Exception:
                    logger.exception("Email reminder failed task=%s", task_id)

        if payload.get("sms"):
            recipient = payload.get("userPhone")
            if not recipient:
                logger.warning("SMS reminder skipped task=%s: no phone on file", task_id)
            else:
                try:
                    await self._sink.publish(channel="sms", recipient=recipient, message=message.sms_body)
                    sent.append("sms")
                    logger.info("SMS reminder sent task=%s", task_id)
                except Exception:
                    logger.exception("SMS reminder failed task=%s", task_id)

        if handle and task_id and payload.get("owner") and self._tasks is not None:
            try:
                self._tasks.clear_fired_reminder(Owner(username=str(payload["owner"])), str(task_id), handle)
            except AppError as e:
                # Task deleted or moved on since the trigger was installed.
                logger.info("Handle not cleared task=%s: %s", task_id, e.message)
            except Exception:
                logger.exception("Failed to clear fired reminder task=%s", task_id)

        return sent
