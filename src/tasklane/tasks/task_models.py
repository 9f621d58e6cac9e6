# src/tasklane/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..storage import keys

WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

DEFAULT_MINUTES_BEFORE = 30


class Priority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_db(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM


class ReminderState(StrEnum):
    """
    Reminder schedule lifecycle, persisted with the task.

    none -> pending_install -> installed
    installed -> pending_retire -> pending_install -> installed | none

    A task left in a pending_* state by a crash is picked up by the reconcile sweep.
    """

    NONE = "none"
    PENDING_RETIRE = "pending_retire"
    PENDING_INSTALL = "pending_install"
    INSTALLED = "installed"

    @classmethod
    def from_db(cls, raw: str | None) -> ReminderState:
        if not raw:
            return cls.NONE
        try:
            return cls(raw)
        except ValueError:
            return cls.NONE


@dataclass(frozen=True, slots=True)
class Owner:
    """Resolved caller identity plus the contact claims the auth layer hands over."""

    username: str
    email: str | None = None
    phone: str | None = None


@dataclass(slots=True)
class RecurringConfig:
    enabled: bool
    days: list[str] = field(default_factory=list)
    base_task_id: str | None = None

    def to_item(self) -> dict[str, Any]:
        out: dict[str, Any] = {"enabled": self.enabled}
        if self.days:
            out["days"] = list(self.days)
        if self.base_task_id:
            out["baseTaskId"] = self.base_task_id
        return out

    @classmethod
    def from_item(cls, raw: dict[str, Any] | None) -> RecurringConfig | None:
        if not raw:
            return None
        return cls(
            enabled=bool(raw.get("enabled", False)),
            days=[str(d) for d in raw.get("days") or []],
            base_task_id=raw.get("baseTaskId"),
        )


@dataclass(slots=True)
class ReminderConfig:
    enabled: bool
    email: bool = False
    sms: bool = False
    minutes_before: int = DEFAULT_MINUTES_BEFORE
    scheduling_handle: str | None = None
    state: ReminderState = ReminderState.NONE

    def to_item(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "email": self.email,
            "sms": self.sms,
            "minutesBefore": self.minutes_before,
            "schedulingHandle": self.scheduling_handle,
            "state": self.state.value,
        }

    @classmethod
    def from_item(cls, raw: dict[str, Any] | None) -> ReminderConfig | None:
        if not raw:
            return None
        minutes = raw.get("minutesBefore")
        return cls(
            enabled=bool(raw.get("enabled", False)),
            email=bool(raw.get("email", False)),
            sms=bool(raw.get("sms", False)),
            minutes_before=int(minutes) if minutes is not None else DEFAULT_MINUTES_BEFORE,
            scheduling_handle=raw.get("schedulingHandle"),
            state=ReminderState.from_db(raw.get("state")),
        )


@dataclass(slots=True)
class Task:
    task_id: str
    title: str
    due_date: str
    priority: Priority
    completed: bool
    created_at: str
    updated_at: str

    description: str | None = None
    category_id: str | None = None
    due_time: str | None = None
    recurring: RecurringConfig | None = None
    reminders: ReminderConfig | None = None

    # Not persisted: degraded-success notes for the caller (e.g. reminder not scheduled).
    warnings: list[str] = field(default_factory=list)

    @property
    def sort_key(self) -> str:
        return keys.task_sk(self.due_date, self.task_id)

    @property
    def is_template(self) -> bool:
        return bool(self.recurring and self.recurring.enabled)

    @property
    def scheduling_handle(self) -> str | None:
        return self.reminders.scheduling_handle if self.reminders else None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "taskId": self.task_id,
            "title": self.title,
            "completed": self.completed,
            "priority": self.priority.value,
            "dueDate": self.due_date,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.description is not None:
            out["description"] = self.description
        if self.category_id is not None:
            out["categoryId"] = self.category_id
        if self.due_time is not None:
            out["dueTime"] = self.due_time
        if self.recurring is not None:
            out["recurring"] = self.recurring.to_item()
        if self.reminders is not None:
            out["reminders"] = self.reminders.to_item()
        return out

    def to_item(self, username: str) -> dict[str, Any]:
        return {"PK": keys.user_pk(username), "SK": self.sort_key, **self.to_dict()}

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> Task:
        return cls(
            task_id=str(item["taskId"]),
            title=str(item.get("title") or ""),
            due_date=str(item["dueDate"]),
            priority=Priority.from_db(item.get("priority")),
            completed=bool(item.get("completed", False)),
            created_at=str(item.get("createdAt") or ""),
            updated_at=str(item.get("updatedAt") or ""),
            description=item.get("description"),
            category_id=item.get("categoryId"),
            due_time=item.get("dueTime"),
            recurring=RecurringConfig.from_item(item.get("recurring")),
            reminders=ReminderConfig.from_item(item.get("reminders")),
        )


@dataclass(slots=True)
class Category:
    category_id: str
    name: str
    color: str
    created_at: str
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out = {
            "categoryId": self.category_id,
            "name": self.name,
            "color": self.color,
            "createdAt": self.created_at,
        }
        if self.updated_at:
            out["updatedAt"] = self.updated_at
        return out

    def to_item(self, username: str) -> dict[str, Any]:
        return {
            "PK": keys.user_pk(username),
            "SK": keys.category_sk(self.category_id),
            **self.to_dict(),
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> Category:
        return cls(
            category_id=str(item["categoryId"]),
            name=str(item.get("name") or ""),
            color=str(item.get("color") or ""),
            created_at=str(item.get("createdAt") or ""),
            updated_at=item.get("updatedAt"),
        )


@dataclass(frozen=True, slots=True)
class Insight:
    generated_at: str
    summary: str
    patterns: dict[str, Any]
    recommendations: list[str]
    expires_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Public shape: no storage keys, no expiry."""
        return {
            "generatedAt": self.generated_at,
            "summary": self.summary,
            "patterns": dict(self.patterns),
            "recommendations": list(self.recommendations),
        }

    def to_item(self, username: str) -> dict[str, Any]:
        return {
            "PK": keys.user_pk(username),
            "SK": keys.insight_sk(self.generated_at),
            **self.to_dict(),
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> Insight:
        expires = item.get("expiresAt")
        return cls(
            generated_at=str(item.get("generatedAt") or ""),
            summary=str(item.get("summary") or ""),
            patterns=dict(item.get("patterns") or {}),
            recommendations=[str(r) for r in item.get("recommendations") or []],
            expires_at=int(expires) if expires is not None else None,
        )
