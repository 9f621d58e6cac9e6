# src/tasklane/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .ports import LLMClient, NotificationSink

if TYPE_CHECKING:
    from ..insights.engine import InsightEngine
    from ..reminders.backend import LocalScheduleBackend
    from ..reminders.dispatch import ReminderDispatcher
    from ..reminders.scheduler import ReminderScheduler
    from ..service import TaskService
    from ..storage.table import ItemTable
    from ..tasks.category_store import CategoryStore
    from ..tasks.profile_store import ProfileStore
    from ..tasks.task_store import TaskStore


@dataclass
class AppState:
    """Everything the runtime wires together once at startup."""

    settings: Any

    table: ItemTable
    schedules: LocalScheduleBackend
    llm: LLMClient
    sink: NotificationSink

    task_store: TaskStore
    categories: CategoryStore
    profiles: ProfileStore
    reminders: ReminderScheduler
    dispatcher: ReminderDispatcher
    insights: InsightEngine
    service: TaskService
