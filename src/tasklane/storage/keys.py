# src/tasklane/storage/keys.py

"""
Key construction for the single-table layout.

Every item lives under ``USER#{username}``; the sort key prefix tells entities apart:

    PROFILE                      user profile
    CATEGORY#{categoryId}        category
    TASK#{dueDate}#{taskId}      task (date first, so date ranges are contiguous)
    TASKREF#{taskId}             lookup item: taskId -> current task sort key
    INSIGHT#{isoTimestamp}       insight (timestamp ordered)
    RATE_LIMIT#{ACTION}          rate-limit counter

All functions here are pure.
"""

from __future__ import annotations

import re

PK_PREFIX = "USER#"
PROFILE_SK = "PROFILE"
CATEGORY_PREFIX = "CATEGORY#"
TASK_PREFIX = "TASK#"
TASK_REF_PREFIX = "TASKREF#"
INSIGHT_PREFIX = "INSIGHT#"
RATE_LIMIT_PREFIX = "RATE_LIMIT#"

# Sorts after any taskId, so "TASK#{day}#" + RANGE_END closes a whole day.
RANGE_END = "\uffff"

KEY_FIELDS = ("PK", "SK")

_WS_RE = re.compile(r"\s+")


def user_pk(username: str) -> str:
    return f"{PK_PREFIX}{username}"


def username_from_pk(pk: str) -> str:
    if not pk.startswith(PK_PREFIX):
        raise ValueError(f"not a user partition key: {pk!r}")
    return pk[len(PK_PREFIX) :]


def profile_sk() -> str:
    return PROFILE_SK


def category_sk(category_id: str) -> str:
    return f"{CATEGORY_PREFIX}{category_id}"


def category_id_from_name(name: str) -> str:
    """'Deep Work' -> 'deep-work'. Same name always yields the same id."""
    return _WS_RE.sub("-", name.strip().lower())


def task_sk(due_date: str, task_id: str) -> str:
    return f"{TASK_PREFIX}{due_date}#{task_id}"


def task_ref_sk(task_id: str) -> str:
    return f"{TASK_REF_PREFIX}{task_id}"


def task_range(start_date: str | None, end_date: str | None) -> tuple[str, str]:
    """
    Sort-key bounds covering tasks due in [start_date, end_date], both ends inclusive.

    A missing bound is left open on that side.
    """
    low = f"{TASK_PREFIX}{start_date}" if start_date else TASK_PREFIX
    high = f"{TASK_PREFIX}{end_date}#{RANGE_END}" if end_date else f"{TASK_PREFIX}{RANGE_END}"
    return low, high


def insight_sk(timestamp: str) -> str:
    return f"{INSIGHT_PREFIX}{timestamp}"


def rate_limit_sk(action: str) -> str:
    return f"{RATE_LIMIT_PREFIX}{action.upper()}"


def strip_keys(item: dict, *extra: str) -> dict:
    """Copy of an item without storage keys (and any extra internal fields)."""
    drop = set(KEY_FIELDS) | set(extra)
    return {k: v for k, v in item.items() if k not in drop}
