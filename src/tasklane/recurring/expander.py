# src/tasklane/recurring/expander.py

"""
Recurrence expansion.

Once per local day:
- find every recurring template (recurring.enabled) across all users,
- for templates scheduled on today's weekday, create one instance due today,
- keep going when a single template fails; failures end up in the summary.

Templates are never modified here. Completion state lives on instances.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from ..core.ports import Clock
from ..datetime_utils import weekday_name
from ..tasks.profile_store import ProfileStore
from ..tasks.task_models import Owner, Task
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExpansionSummary:
    date: str
    day: str
    templates: int = 0
    created: int = 0
    skipped: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "day": self.day,
            "templates": self.templates,
            "created": self.created,
            "skipped": self.skipped,
            "failures": [{"taskId": t, "error": e} for t, e in self.failures],
        }


def instance_fields(template: Task, on_date: str) -> dict[str, Any]:
    """Fields for today's instance of a template. The reminder handle is never copied."""
    fields: dict[str, Any] = {
        "title": template.title,
        "priority": template.priority.value,
        "dueDate": on_date,
    }
    if template.description:
        fields["description"] = template.description
    if template.category_id:
        fields["categoryId"] = template.category_id
    if template.due_time:
        fields["dueTime"] = template.due_time
    if template.reminders is not None:
        rem = template.reminders
        fields["reminders"] = {
            "enabled": rem.enabled,
            "email": rem.email,
            "sms": rem.sms,
            "minutesBefore": rem.minutes_before,
        }
    return fields


def expand_recurring_tasks(
    task_store: TaskStore,
    *,
    profiles: ProfileStore | None = None,
    today: date | None = None,
    tz: tzinfo | None = None,
) -> ExpansionSummary:
    if today is None:
        today = datetime.now(tz or ZoneInfo("UTC")).date()
    on_date = today.isoformat()
    day = weekday_name(today)
    summary = ExpansionSummary(date=on_date, day=day)

    logger.info("Processing recurring tasks day=%s date=%s", day, on_date)

    for username, template in task_store.iter_recurring_templates():
        summary.templates += 1
        if day not in (template.recurring.days if template.recurring else []):
            logger.debug("Template %s not scheduled for %s", template.task_id, day)
            continue

        base_task_id = (template.recurring.base_task_id if template.recurring else None) or template.task_id
        try:
            owner = profiles.owner_for(username) if profiles is not None else Owner(username=username)
            if task_store.has_instance(owner, base_task_id, on_date):
                logger.info("Instance already exists template=%s date=%s", template.task_id, on_date)
                summary.skipped += 1
                continue

            instance = task_store.create_task(
                owner, instance_fields(template, on_date), base_task_id=base_task_id
            )
            summary.created += 1
            logger.info("Created task instance task=%s template=%s", instance.task_id, template.task_id)
            for warning in instance.warnings:
                logger.warning("Instance %s created with warning: %s", instance.task_id, warning)
        except Exception as e:
            logger.exception("Error processing recurring template task=%s", template.task_id)
            summary.failures.append((template.task_id, str(e)))

    logger.info(
        "Recurring run done date=%s templates=%d created=%d skipped=%d failed=%d",
        on_date,
        summary.templates,
        summary.created,
        summary.skipped,
        len(summary.failures),
    )
    return summary


def seconds_until_next_midnight(now: datetime, tz: tzinfo) -> float:
    local = now.astimezone(tz)
    next_day = (local + timedelta(days=1)).date()
    midnight = datetime.combine(next_day, datetime.min.time(), tzinfo=tz)
    return max(0.0, (midnight - local).total_seconds())


async def run_recurrence_trigger(
        job: Callable[[date], Any],
        *,
        tz: tzinfo,
        clock: Clock | None = None,
        run_on_start: bool = False,
) -> None:
    """
    Call job(today) right after each local midnight.

    The job runs in a worker thread; runs never overlap because the loop awaits each one.
    To stop the trigger, cancel the coroutine/task.
    """

    def now() -> datetime:
        return clock() if clock is not None else datetime.now(tz)

    if run_on_start:
        await _run_once(job, now().astimezone(tz).date())

    while True:
        delay = seconds_until_next_midnight(now(), tz)
        logger.debug("Next recurrence run in %.0fs", delay)
        await asyncio.sleep(delay + 1.0)
        await _run_once(job, now().astimezone(tz).date())


async def _run_once(job: Callable[[date], Any], today: date) -> None:
    try:
        await asyncio.to_thread(job, today)
    except Exception:
        logger.exception("Recurrence run failed date=%s", today.isoformat())
