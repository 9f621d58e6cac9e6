# src/tasklane/tasks/task_store.py

from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from typing import Any

from ..core.ports import Clock
from ..datetime_utils import to_iso_utc
from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..reminders.scheduler import ReminderScheduler
from ..storage import keys
from ..storage.table import ConditionFailedError, ItemTable
from .task_models import Owner, RecurringConfig, ReminderConfig, ReminderState, Task
from .validation import (
    require_owner,
    validate_bool,
    validate_date,
    validate_optional_text,
    validate_priority,
    validate_recurring,
    validate_reminders,
    validate_time,
    validate_title,
)

logger = logging.getLogger(__name__)

# Fields a caller may patch. Everything else in a patch is ignored.
UPDATABLE_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "categoryId",
    "priority",
    "dueDate",
    "dueTime",
    "recurring",
    "reminders",
    "completed",
)

# Patching any of these re-derives the reminder fire time.
_SCHEDULE_FIELDS = frozenset({"reminders", "dueDate", "dueTime"})


class TaskStore:
    """
    Task CRUD over the single table.

    Layout:
    - task item at TASK#{dueDate}#{taskId}
    - lookup item at TASKREF#{taskId} holding the task's current sort key, so that
      update/toggle/delete by id cost two point reads instead of a partition scan

    Reminder scheduling runs synchronously after the task write. A scheduling failure
    never fails the task operation: it is logged and reported in Task.warnings.
    """

    def __init__(
        self,
        table: ItemTable,
        reminders: ReminderScheduler,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._table = table
        self._reminders = reminders
        self._clock = clock

    # ---- low-level helpers ----

    def _now_iso(self) -> str:
        now = self._clock() if self._clock is not None else datetime.now(UTC)
        return to_iso_utc(now)

    @staticmethod
    def _ref_item(username: str, task: Task) -> dict[str, Any]:
        return {
            "PK": keys.user_pk(username),
            "SK": keys.task_ref_sk(task.task_id),
            "taskId": task.task_id,
            "taskSk": task.sort_key,
        }

    def _find_item(self, owner: Owner, task_id: str) -> dict[str, Any]:
        pk = keys.user_pk(owner.username)

        item: dict[str, Any] | None = None
        ref = self._table.get_item(pk, keys.task_ref_sk(task_id))
        if ref is not None:
            candidate = self._table.get_item(pk, str(ref.get("taskSk") or ""))
            if candidate is not None and candidate.get("taskId") == task_id:
                item = candidate

        if item is None:
            # Lookup item missing or stale: fall back to scanning the task prefix.
            for candidate in self._table.query(pk, begins_with=keys.TASK_PREFIX):
                if candidate.get("taskId") == task_id:
                    item = candidate
                    break
            if item is not None:
                logger.info("Repairing lookup item for task=%s", task_id)
                self._table.put_item(self._ref_item(owner.username, Task.from_item(item)))

        if item is None:
            logger.warning("Task not found task=%s", task_id)
            raise NotFoundError("Task", task_id)

        if item.get("PK") != pk:
            logger.warning("Unauthorized task access attempt task=%s user=%s", task_id, owner.username)
            raise AuthorizationError("You do not have permission to access this task")

        return item

    def _persist_reminders(self, owner: Owner, task: Task):
        pk = keys.user_pk(owner.username)

        def persist(rem: ReminderConfig) -> None:
            self._table.update_item(pk, task.sort_key, {"reminders": rem.to_item()})

        return persist

    def _sync_reminders(self, owner: Owner, task: Task) -> None:
        try:
            warning = self._reminders.sync(task, owner, persist=self._persist_reminders(owner, task))
        except Exception:
            logger.exception("Reminder state for task=%s could not be saved", task.task_id)
            warning = "Reminder state could not be saved"
        if warning:
            task.warnings.append(warning)

    # ---- public API ----

    def create_task(
        self,
        owner: Owner | None,
        fields: Mapping[str, Any],
        *,
        base_task_id: str | None = None,
    ) -> Task:
        """
        Validate and store a new task.

        base_task_id marks a system-created instance of a recurring template; the
        instance itself is never recurring.
        """
        owner = require_owner(owner)
        if not isinstance(fields, Mapping):
            raise ValidationError("Invalid task payload")
        if not fields.get("title") or not fields.get("dueDate"):
            raise ValidationError("Title and dueDate are required")

        task_id = uuid.uuid4().hex
        title = validate_title(fields.get("title"))
        due_date = validate_date(fields.get("dueDate"))
        due_time = validate_time(fields.get("dueTime"))
        priority = validate_priority(fields.get("priority"))
        description = validate_optional_text(fields.get("description"), "description")
        category_id = validate_optional_text(fields.get("categoryId"), "categoryId")

        if base_task_id:
            recurring: RecurringConfig | None = RecurringConfig(enabled=False, base_task_id=base_task_id)
        else:
            recurring = validate_recurring(fields.get("recurring"), task_id=task_id)

        reminders = validate_reminders(fields.get("reminders"))
        if reminders is not None and reminders.enabled:
            reminders.state = ReminderState.PENDING_INSTALL

        now = self._now_iso()
        task = Task(
            task_id=task_id,
            title=title,
            due_date=due_date,
            priority=priority,
            completed=False,
            created_at=now,
            updated_at=now,
            description=description,
            category_id=category_id,
            due_time=due_time,
            recurring=recurring,
            reminders=reminders,
        )

        logger.info("Creating task user=%s task=%s dueDate=%s", owner.username, task_id, due_date)
        try:
            self._table.put_item(task.to_item(owner.username), if_not_exists=True)
        except ConditionFailedError as e:
            raise ConflictError("Task id collision, retry the request") from e
        self._table.put_item(self._ref_item(owner.username, task))

        if reminders is not None and reminders.enabled:
            self._sync_reminders(owner, task)

        return task

    def get_task(self, owner: Owner | None, task_id: str) -> Task:
        owner = require_owner(owner)
        if not task_id:
            raise ValidationError("taskId is required")
        return Task.from_item(self._find_item(owner, task_id))

    def list_tasks(
        self,
        owner: Owner | None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[Task]:
        """
        All tasks, or tasks due within [start_date, end_date] (inclusive), date-ordered.

        Either bound may be given alone.
        """
        owner = require_owner(owner)
        if start_date is not None:
            validate_date(start_date, "startDate")
        if end_date is not None:
            validate_date(end_date, "endDate")

        pk = keys.user_pk(owner.username)
        if start_date is None and end_date is None:
            items = self._table.query(pk, begins_with=keys.TASK_PREFIX)
        else:
            items = self._table.query(pk, between=keys.task_range(start_date, end_date))

        logger.debug("Listed tasks user=%s count=%d", owner.username, len(items))
        return [Task.from_item(i) for i in items]

    def update_task(self, owner: Owner | None, task_id: str, patch: Mapping[str, Any]) -> Task:
        """
        Apply an allow-listed partial patch.

        All fields are validated before anything is written, so a patch either applies
        completely or not at all.
        """
        owner = require_owner(owner)
        if not task_id:
            raise ValidationError("taskId is required")
        if not isinstance(patch, Mapping):
            raise ValidationError("Invalid task payload")

        changes = {k: v for k, v in patch.items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ValidationError("No valid fields to update")

        item = self._find_item(owner, task_id)
        current = Task.from_item(item)
        updated = dataclasses.replace(current, warnings=[])

        for key, value in changes.items():
            if key == "title":
                updated.title = validate_title(value)
            elif key == "description":
                updated.description = validate_optional_text(value, "description")
            elif key == "categoryId":
                updated.category_id = validate_optional_text(value, "categoryId")
            elif key == "priority":
                if value is None:
                    raise ValidationError("priority must be high, medium, or low", details={"field": "priority"})
                updated.priority = validate_priority(value)
            elif key == "dueDate":
                updated.due_date = validate_date(value)
            elif key == "dueTime":
                updated.due_time = validate_time(value)
            elif key == "recurring":
                updated.recurring = validate_recurring(value, task_id=task_id, existing=current.recurring)
            elif key == "reminders":
                updated.reminders = validate_reminders(value, existing=current.reminders)
            elif key == "completed":
                updated.completed = validate_bool(value, "completed")

        if updated.reminders is None and current.scheduling_handle:
            # Dropping the reminders object still has to retire the live trigger.
            updated.reminders = dataclasses.replace(current.reminders, enabled=False)

        updated.updated_at = self._now_iso()
        pk = keys.user_pk(owner.username)
        logger.info("Updating task user=%s task=%s fields=%s", owner.username, task_id, sorted(changes))

        if updated.due_date != current.due_date:
            self._table.move_item(
                pk,
                current.sort_key,
                updated.to_item(owner.username),
                extra=[self._ref_item(owner.username, updated)],
            )
        else:
            full = updated.to_dict()
            fields = {k: full.get(k) for k in changes}
            fields["updatedAt"] = updated.updated_at
            if updated.reminders is not None and "reminders" not in fields:
                fields["reminders"] = updated.reminders.to_item()
            self._table.update_item(pk, current.sort_key, fields)

        rem = updated.reminders
        if _SCHEDULE_FIELDS.intersection(changes) and rem is not None and (rem.enabled or rem.scheduling_handle):
            self._sync_reminders(owner, updated)

        return updated

    def toggle_complete(self, owner: Owner | None, task_id: str) -> Task:
        owner = require_owner(owner)
        if not task_id:
            raise ValidationError("taskId is required")

        item = self._find_item(owner, task_id)
        new_value = not bool(item.get("completed", False))
        logger.info("Toggling completion task=%s from=%s to=%s", task_id, not new_value, new_value)
        updated = self._table.update_item(
            item["PK"], item["SK"], {"completed": new_value, "updatedAt": self._now_iso()}
        )
        return Task.from_item(updated)

    def delete_task(self, owner: Owner | None, task_id: str) -> Task:
        """
        Remove the task and its lookup item; returns what was deleted.

        The reminder trigger is left alone; callers that care retire
        task.reminders.scheduling_handle themselves.
        """
        owner = require_owner(owner)
        if not task_id:
            raise ValidationError("taskId is required")

        item = self._find_item(owner, task_id)
        self._table.delete_item(item["PK"], item["SK"])
        self._table.delete_item(item["PK"], keys.task_ref_sk(task_id))
        logger.info("Task deleted user=%s task=%s", owner.username, task_id)
        return Task.from_item(item)

    def clear_fired_reminder(self, owner: Owner | None, task_id: str, handle: str) -> bool:
        """Drop a handle whose trigger has fired. No-op if the task moved on to another handle."""
        owner = require_owner(owner)
        item = self._find_item(owner, task_id)
        task = Task.from_item(item)
        rem = task.reminders
        if rem is None or rem.scheduling_handle != handle:
            return False
        rem.scheduling_handle = None
        rem.state = ReminderState.NONE
        self._table.update_item(item["PK"], item["SK"], {"reminders": rem.to_item()})
        return True

    def reconcile_reminders(self, owner: Owner | None) -> int:
        """
        Repair reminder state left behind by interrupted transitions.

        - pending_retire / pending_install: finish the transition
        - installed but the trigger is gone: clear the handle
        Returns the number of tasks touched.
        """
        owner = require_owner(owner)
        repaired = 0
        for task in self.list_tasks(owner):
            rem = task.reminders
            if rem is None:
                continue
            if rem.state in (ReminderState.PENDING_RETIRE, ReminderState.PENDING_INSTALL):
                logger.info("Reconciling task=%s state=%s", task.task_id, rem.state.value)
                self._sync_reminders(owner, task)
                repaired += 1
            elif rem.state == ReminderState.INSTALLED and not self._reminders.is_live(rem.scheduling_handle):
                logger.info("Clearing dead handle task=%s handle=%s", task.task_id, rem.scheduling_handle)
                rem.scheduling_handle = None
                rem.state = ReminderState.NONE
                self._persist_reminders(owner, task)(rem)
                repaired += 1
        if repaired:
            logger.info("Reconciled %d reminder(s) user=%s", repaired, owner.username)
        return repaired

    # ---- system-level helpers (recurrence job) ----

    def iter_recurring_templates(self) -> Iterator[tuple[str, Task]]:
        """(username, template) for every task with recurring.enabled, across all users."""
        for item in self._table.scan(begins_with=keys.TASK_PREFIX):
            recurring = item.get("recurring") or {}
            if not recurring.get("enabled"):
                continue
            try:
                yield keys.username_from_pk(str(item["PK"])), Task.from_item(item)
            except (KeyError, ValueError):
                logger.warning("Skipping malformed task item pk=%s sk=%s", item.get("PK"), item.get("SK"))

    def has_instance(self, owner: Owner, base_task_id: str, on_date: str) -> bool:
        pk = keys.user_pk(owner.username)
        for item in self._table.query(pk, between=keys.task_range(on_date, on_date)):
            recurring = item.get("recurring") or {}
            if recurring.get("baseTaskId") == base_task_id and not recurring.get("enabled"):
                return True
        return False
