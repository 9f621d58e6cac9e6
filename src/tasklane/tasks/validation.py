# src/tasklane/tasks/validation.py

"""
Field validators for task and category input.

Every validator either returns the normalized value or raises ValidationError naming
the offending field. Nothing here touches storage.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any

from ..errors import AuthenticationError, ValidationError
from .task_models import (
    DEFAULT_MINUTES_BEFORE,
    WEEKDAYS,
    Owner,
    Priority,
    RecurringConfig,
    ReminderConfig,
    ReminderState,
)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$", re.ASCII)
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$", re.ASCII)


def _fail(field_name: str, message: str) -> ValidationError:
    return ValidationError(message, details={"field": field_name})


def validate_title(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise _fail("title", "title is required")
    return value.strip()


def validate_date(value: Any, field_name: str = "dueDate") -> str:
    if not isinstance(value, str) or not _DATE_RE.fullmatch(value):
        raise _fail(field_name, f"{field_name} must be in YYYY-MM-DD format")
    try:
        date.fromisoformat(value)
    except ValueError as e:
        raise _fail(field_name, f"{field_name} is not a valid calendar date") from e
    return value


def validate_time(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str) or not _TIME_RE.fullmatch(value):
        raise _fail("dueTime", "dueTime must be in HH:MM format")
    return value


def validate_priority(value: Any) -> Priority:
    if value is None:
        return Priority.MEDIUM
    try:
        return Priority(value)
    except ValueError as e:
        raise _fail("priority", "priority must be high, medium, or low") from e


def validate_optional_text(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise _fail(field_name, f"{field_name} must be a string")
    return value


def validate_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise _fail(field_name, f"{field_name} must be true or false")
    return value


def validate_weekdays(value: Any) -> list[str]:
    if not isinstance(value, list | tuple | set):
        raise _fail("recurring.days", "recurring.days must be a list of weekday names")
    days: list[str] = []
    invalid: list[str] = []
    for raw in value:
        day = str(raw).strip().lower()
        if day not in WEEKDAYS:
            invalid.append(str(raw))
        elif day not in days:
            days.append(day)
    if invalid:
        raise _fail(
            "recurring.days",
            f"Invalid days: {', '.join(invalid)}. Must be one of: {', '.join(WEEKDAYS)}",
        )
    return days


def validate_recurring(
    value: Any,
    *,
    task_id: str,
    existing: RecurringConfig | None = None,
) -> RecurringConfig | None:
    """
    Templates (enabled) need at least one weekday and point baseTaskId at themselves.

    A disabled config keeps whatever instance link the task already had.
    """
    if value is None:
        return None
    if not isinstance(value, dict):
        raise _fail("recurring", "recurring must be an object")

    enabled = validate_bool(value.get("enabled", False), "recurring.enabled")
    days = validate_weekdays(value["days"]) if value.get("days") is not None else []

    if enabled:
        if not days:
            raise _fail("recurring.days", "Recurring tasks must have at least one day selected")
        return RecurringConfig(enabled=True, days=days, base_task_id=task_id)

    base = existing.base_task_id if existing else None
    return RecurringConfig(enabled=False, days=days, base_task_id=base)


def validate_reminders(value: Any, *, existing: ReminderConfig | None = None) -> ReminderConfig | None:
    """
    Normalize user reminder preferences.

    schedulingHandle and state are server-owned: they are carried over from the stored
    task and never taken from input.
    """
    if value is None:
        return None
    if not isinstance(value, dict):
        raise _fail("reminders", "reminders must be an object")

    minutes = value.get("minutesBefore", DEFAULT_MINUTES_BEFORE)
    if minutes is None:
        minutes = DEFAULT_MINUTES_BEFORE
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 0:
        raise _fail("reminders.minutesBefore", "minutesBefore must be a non-negative integer")

    return ReminderConfig(
        enabled=validate_bool(value.get("enabled", False), "reminders.enabled"),
        email=validate_bool(value.get("email", False), "reminders.email"),
        sms=validate_bool(value.get("sms", False), "reminders.sms"),
        minutes_before=minutes,
        scheduling_handle=existing.scheduling_handle if existing else None,
        state=existing.state if existing else ReminderState.NONE,
    )


def validate_category_fields(name: Any, color: Any) -> tuple[str, str]:
    if not isinstance(name, str) or not name.strip() or not isinstance(color, str) or not color.strip():
        raise ValidationError("Name and color are required")
    return name.strip(), color.strip()


def require_owner(owner: Owner | None) -> Owner:
    """Every store operation needs a resolved identity; anonymous access is never implied."""
    if owner is None or not isinstance(owner.username, str) or not owner.username.strip():
        raise AuthenticationError("Username not found in request context")
    return owner
