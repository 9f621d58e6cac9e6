# src/tasklane/datetime_utils.py

"""Utilities for ISO-8601 UTC timestamps, local calendar days and weekday names."""

from __future__ import annotations

from datetime import UTC, date, datetime, tzinfo

from .tasks.task_models import WEEKDAYS


def to_iso_utc(dt: datetime) -> str:
    """Aware datetime -> '2025-03-01T09:00:00.000Z' (millisecond precision)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def local_today(now: datetime, tz: tzinfo) -> date:
    """Calendar day of an instant as seen in the service time zone."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(tz).date()


def weekday_name(d: date) -> str:
    return WEEKDAYS[d.weekday()]
