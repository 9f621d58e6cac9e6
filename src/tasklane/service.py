# src/tasklane/service.py

"""
Query/command surface over the stores.

Every public method either returns plain data or raises an AppError. Anything else that
escapes a store (a bug, an unexpected dependency failure) is logged and re-raised as
InternalError, so a transport can always render the error with error_response().
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any, ParamSpec, TypeVar

from .errors import AppError, InternalError
from .insights.engine import InsightEngine
from .recurring.expander import ExpansionSummary, expand_recurring_tasks
from .reminders.scheduler import ReminderScheduler
from .tasks.category_store import CategoryDeletePolicy, CategoryStore
from .tasks.profile_store import ProfileStore
from .tasks.task_models import Category, Insight, Owner, Task
from .tasks.task_store import TaskStore

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def _guard(fn: Callable[P, R]) -> Callable[P, R]:
    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return fn(*args, **kwargs)
        except AppError:
            raise
        except Exception as e:
            logger.exception("Unexpected error in %s", fn.__name__)
            raise InternalError() from e

    return wrapper


class TaskService:
    def __init__(
        self,
        tasks: TaskStore,
        categories: CategoryStore,
        profiles: ProfileStore,
        reminders: ReminderScheduler,
        insights: InsightEngine,
    ) -> None:
        self.tasks = tasks
        self.categories = categories
        self.profiles = profiles
        self.reminders = reminders
        self.insights = insights

    # ---- tasks ----

    @_guard
    def create_task(self, owner: Owner | None, fields: Mapping[str, Any]) -> Task:
        return self.tasks.create_task(owner, fields)

    @_guard
    def list_tasks(self, owner: Owner | None, start_date: str | None = None, end_date: str | None = None) -> list[Task]:
        return self.tasks.list_tasks(owner, start_date, end_date)

    @_guard
    def get_task(self, owner: Owner | None, task_id: str) -> Task:
        return self.tasks.get_task(owner, task_id)

    @_guard
    def update_task(self, owner: Owner | None, task_id: str, patch: Mapping[str, Any]) -> Task:
        return self.tasks.update_task(owner, task_id, patch)

    @_guard
    def toggle_complete(self, owner: Owner | None, task_id: str) -> Task:
        return self.tasks.toggle_complete(owner, task_id)

    @_guard
    def delete_task(self, owner: Owner | None, task_id: str) -> Task:
        """Delete only; a live reminder trigger is left for the caller to retire."""
        return self.tasks.delete_task(owner, task_id)

    @_guard
    def delete_task_and_reminder(self, owner: Owner | None, task_id: str) -> Task:
        task = self.tasks.delete_task(owner, task_id)
        handle = task.scheduling_handle
        if handle:
            try:
                self.reminders.retire(handle)
            except Exception:
                logger.exception("Failed to retire reminder of deleted task=%s", task_id)
                task.warnings.append("Reminder could not be removed")
        return task

    @_guard
    def reconcile_reminders(self, owner: Owner | None) -> int:
        return self.tasks.reconcile_reminders(owner)

    # ---- categories ----

    @_guard
    def create_category(self, owner: Owner | None, name: str, color: str) -> Category:
        return self.categories.create_category(owner, name, color)

    @_guard
    def list_categories(self, owner: Owner | None) -> list[Category]:
        return self.categories.list_categories(owner)

    @_guard
    def update_category(
        self,
        owner: Owner | None,
        category_id: str,
        *,
        name: str | None = None,
        color: str | None = None,
    ) -> Category:
        return self.categories.update_category(owner, category_id, name=name, color=color)

    @_guard
    def delete_category(
        self,
        owner: Owner | None,
        category_id: str,
        *,
        policy: CategoryDeletePolicy | None = None,
    ) -> int:
        return self.categories.delete_category(owner, category_id, policy=policy)

    # ---- insights ----

    @_guard
    def generate_insight(self, owner: Owner | None) -> Insight:
        return self.insights.generate(owner)

    @_guard
    def list_insights(self, owner: Owner | None) -> list[Insight]:
        return self.insights.list_insights(owner)

    # ---- system jobs ----

    @_guard
    def expand_recurring(self, today: date | None = None) -> ExpansionSummary:
        return expand_recurring_tasks(self.tasks, profiles=self.profiles, today=today, tz=self.reminders.tz)
