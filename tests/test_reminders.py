# tests/test_reminders.py

from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from tasklane.errors import ValidationError
from tasklane.reminders.backend import LocalScheduleBackend
from tasklane.reminders.scheduler import REMINDER_TARGET, ReminderScheduler
from tasklane.service import TaskService
from tasklane.storage import keys
from tasklane.storage.table import ItemTable
from tasklane.tasks.task_models import Owner, ReminderConfig, ReminderState
from tasklane.tasks.task_store import TaskStore

from .fakes import BrokenSchedulingBackend, FixedClock

REMIND_30 = {"enabled": True, "email": True, "minutesBefore": 30}


def _pay_rent(task_store: TaskStore, owner: Owner, **overrides):
    fields = {"title": "Pay rent", "dueDate": "2025-03-01", "dueTime": "09:00", "reminders": REMIND_30}
    fields.update(overrides)
    return task_store.create_task(owner, fields)


def test_create_installs_one_trigger(
    task_store: TaskStore, owner: Owner, schedules: LocalScheduleBackend
) -> None:
    task = _pay_rent(task_store, owner)

    handle = task.scheduling_handle
    assert handle is not None
    assert task.warnings == []

    job = schedules.get_job(handle)
    assert job.target == REMINDER_TARGET
    assert job.fire_at == datetime(2025, 3, 1, 8, 30, tzinfo=UTC).timestamp()
    assert job.payload["taskId"] == task.task_id
    assert job.payload["userEmail"] == "alice@example.com"

    stored = task_store.get_task(owner, task.task_id)
    assert stored.scheduling_handle == handle
    assert stored.reminders.state is ReminderState.INSTALLED


def test_due_time_change_replaces_trigger(
    task_store: TaskStore, owner: Owner, schedules: LocalScheduleBackend
) -> None:
    task = _pay_rent(task_store, owner)
    old = task.scheduling_handle

    updated = task_store.update_task(owner, task.task_id, {"dueTime": "10:00"})

    new = updated.scheduling_handle
    assert new is not None and new != old
    assert not schedules.exists(old)
    assert schedules.exists(new)
    assert schedules.count_jobs() == 1
    assert schedules.get_job(new).fire_at == datetime(2025, 3, 1, 9, 30, tzinfo=UTC).timestamp()
    assert task_store.get_task(owner, task.task_id).scheduling_handle == new


def test_due_date_change_reschedules_after_move(
    task_store: TaskStore, owner: Owner, schedules: LocalScheduleBackend
) -> None:
    task = _pay_rent(task_store, owner)

    updated = task_store.update_task(owner, task.task_id, {"dueDate": "2025-03-02"})

    assert schedules.count_jobs() == 1
    assert schedules.get_job(updated.scheduling_handle).payload["dueDate"] == "2025-03-02"
    assert task_store.get_task(owner, task.task_id).scheduling_handle == updated.scheduling_handle


def test_title_change_keeps_trigger(task_store: TaskStore, owner: Owner) -> None:
    task = _pay_rent(task_store, owner)

    updated = task_store.update_task(owner, task.task_id, {"title": "Pay rent (March)"})

    assert updated.scheduling_handle == task.scheduling_handle


def test_disabling_reminder_retires_trigger(
    task_store: TaskStore, owner: Owner, schedules: LocalScheduleBackend
) -> None:
    task = _pay_rent(task_store, owner)

    updated = task_store.update_task(owner, task.task_id, {"reminders": {"enabled": False}})

    assert updated.scheduling_handle is None
    assert updated.reminders.state is ReminderState.NONE
    assert schedules.count_jobs() == 0


def test_dropping_reminders_object_retires_trigger(
    task_store: TaskStore, owner: Owner, schedules: LocalScheduleBackend
) -> None:
    task = _pay_rent(task_store, owner)

    task_store.update_task(owner, task.task_id, {"reminders": None})

    assert schedules.count_jobs() == 0
    assert task_store.get_task(owner, task.task_id).scheduling_handle is None


def test_past_fire_time_is_degraded_success(
    task_store: TaskStore, owner: Owner, schedules: LocalScheduleBackend
) -> None:
    task = _pay_rent(task_store, owner, dueDate="2025-02-19")

    assert task.scheduling_handle is None
    assert task.warnings == ["Reminder not scheduled: Reminder time is in the past"]
    assert schedules.count_jobs() == 0

    stored = task_store.get_task(owner, task.task_id)
    assert stored.reminders.enabled is True
    assert stored.reminders.state is ReminderState.NONE


def test_reminder_without_due_time_is_not_scheduled(task_store: TaskStore, owner: Owner) -> None:
    task = task_store.create_task(
        owner, {"title": "All day", "dueDate": "2025-03-01", "reminders": REMIND_30}
    )

    assert task.scheduling_handle is None
    assert task.warnings == ["Reminder not scheduled: Reminders require a dueTime"]


def test_backend_failure_never_fails_the_task(table: ItemTable, clock: FixedClock, owner: Owner) -> None:
    backend = BrokenSchedulingBackend()
    store = TaskStore(table, ReminderScheduler(backend, tz=ZoneInfo("UTC"), clock=clock), clock=clock)

    task = _pay_rent(store, owner)

    assert len(backend.attempts) == 1
    assert task.warnings == ["Reminder not scheduled: scheduling backend error"]
    assert store.get_task(owner, task.task_id).title == "Pay rent"


def test_install_rejects_past_times_directly(reminders: ReminderScheduler, task_store: TaskStore, owner: Owner) -> None:
    task = task_store.create_task(owner, {"title": "Old", "dueDate": "2025-01-01", "dueTime": "08:00"})
    task.reminders = ReminderConfig(enabled=True, email=True)

    with pytest.raises(ValidationError) as exc:
        reminders.install(task, owner)
    assert exc.value.message == "Reminder time is in the past"


def test_fire_time_uses_service_time_zone(schedules: LocalScheduleBackend) -> None:
    scheduler = ReminderScheduler(schedules, tz=ZoneInfo("Europe/Berlin"))

    fire = scheduler.compute_fire_time("2025-03-01", "09:00", 30)

    assert fire.astimezone(UTC) == datetime(2025, 3, 1, 7, 30, tzinfo=UTC)


def test_clear_fired_reminder_only_for_current_handle(task_store: TaskStore, owner: Owner) -> None:
    task = _pay_rent(task_store, owner)

    assert task_store.clear_fired_reminder(owner, task.task_id, "send_reminder:stale") is False
    assert task_store.clear_fired_reminder(owner, task.task_id, task.scheduling_handle) is True

    stored = task_store.get_task(owner, task.task_id)
    assert stored.scheduling_handle is None
    assert stored.reminders.enabled is True


def test_reconcile_finishes_pending_install(
    task_store: TaskStore, owner: Owner, table: ItemTable, schedules: LocalScheduleBackend
) -> None:
    task = _pay_rent(task_store, owner)
    schedules.cancel(task.scheduling_handle)
    # Simulate a crash between "pending_install" and the backend call.
    table.update_item(
        keys.user_pk(owner.username),
        task.sort_key,
        {"reminders": {**REMIND_30, "schedulingHandle": None, "state": "pending_install"}},
    )

    assert task_store.reconcile_reminders(owner) == 1

    stored = task_store.get_task(owner, task.task_id)
    assert stored.reminders.state is ReminderState.INSTALLED
    assert schedules.exists(stored.scheduling_handle)
    assert schedules.count_jobs() == 1


def test_reconcile_clears_dead_handles(
    task_store: TaskStore, owner: Owner, schedules: LocalScheduleBackend
) -> None:
    healthy = _pay_rent(task_store, owner)
    dead = _pay_rent(task_store, owner, title="Call mom")
    schedules.cancel(dead.scheduling_handle)

    assert task_store.reconcile_reminders(owner) == 1

    assert task_store.get_task(owner, dead.task_id).scheduling_handle is None
    assert task_store.get_task(owner, healthy.task_id).scheduling_handle == healthy.scheduling_handle
    assert task_store.reconcile_reminders(owner) == 0


def test_plain_delete_leaves_trigger_behind(
    task_store: TaskStore, owner: Owner, schedules: LocalScheduleBackend
) -> None:
    task = _pay_rent(task_store, owner)

    deleted = task_store.delete_task(owner, task.task_id)

    assert deleted.scheduling_handle == task.scheduling_handle
    assert schedules.exists(task.scheduling_handle)


def test_service_delete_retires_trigger(
    service: TaskService, owner: Owner, schedules: LocalScheduleBackend
) -> None:
    task = service.create_task(
        owner, {"title": "Pay rent", "dueDate": "2025-03-01", "dueTime": "09:00", "reminders": REMIND_30}
    )

    deleted = service.delete_task_and_reminder(owner, task.task_id)

    assert deleted.warnings == []
    assert schedules.count_jobs() == 0
