# tests/test_task_store.py

from __future__ import annotations

import pytest

from tasklane.errors import AuthenticationError, NotFoundError, ValidationError, error_response
from tasklane.storage import keys
from tasklane.storage.table import ItemTable
from tasklane.tasks.task_models import Owner, Priority
from tasklane.tasks.task_store import TaskStore


def _create(store: TaskStore, owner: Owner, due: str, title: str = "Task", **fields):
    return store.create_task(owner, {"title": title, "dueDate": due, **fields})


def test_create_then_get_returns_same_fields(task_store: TaskStore, owner: Owner) -> None:
    created = _create(
        task_store,
        owner,
        "2025-03-01",
        title="Pay rent",
        description="Landlord account",
        categoryId="home",
        priority="high",
        dueTime="09:00",
    )

    loaded = task_store.get_task(owner, created.task_id)

    assert loaded.to_dict() == created.to_dict()
    assert [t.to_dict() for t in task_store.list_tasks(owner)] == [created.to_dict()]
    assert loaded.priority is Priority.HIGH
    assert loaded.completed is False
    assert loaded.created_at == loaded.updated_at == "2025-02-20T12:00:00.000Z"


def test_create_defaults_priority_to_medium(task_store: TaskStore, owner: Owner) -> None:
    task = _create(task_store, owner, "2025-03-01")
    assert task.priority is Priority.MEDIUM
    assert "dueTime" not in task.to_dict()


@pytest.mark.parametrize(
    "fields",
    [
        {"dueDate": "2025-03-01"},
        {"title": "No date"},
        {"title": "Bad date", "dueDate": "2025-02-30"},
        {"title": "Bad format", "dueDate": "03/01/2025"},
        {"title": "Bad time", "dueDate": "2025-03-01", "dueTime": "24:00"},
        {"title": "Non-ASCII time", "dueDate": "2025-03-01", "dueTime": "0\u0669:00"},
        {"title": "Non-ASCII date", "dueDate": "2025-03-0\u0661"},
        {"title": "Trailing newline", "dueDate": "2025-03-01", "dueTime": "09:00\n"},
        {"title": "Bad priority", "dueDate": "2025-03-01", "priority": "urgent"},
        {"title": "Bad days", "dueDate": "2025-03-01", "recurring": {"enabled": True, "days": ["funday"]}},
        {"title": "No days", "dueDate": "2025-03-01", "recurring": {"enabled": True, "days": []}},
    ],
)
def test_create_rejects_invalid_input(task_store: TaskStore, owner: Owner, table: ItemTable, fields) -> None:
    with pytest.raises(ValidationError) as exc:
        task_store.create_task(owner, fields)

    assert error_response(exc.value)["statusCode"] == 400
    assert table.count_items() == 0


def test_missing_owner_is_an_authentication_error(task_store: TaskStore) -> None:
    with pytest.raises(AuthenticationError):
        task_store.create_task(None, {"title": "x", "dueDate": "2025-03-01"})
    with pytest.raises(AuthenticationError):
        task_store.list_tasks(Owner(username=" "))


def test_list_filters_by_inclusive_date_range(task_store: TaskStore, owner: Owner) -> None:
    t1 = _create(task_store, owner, "2025-03-01", "first")
    t2 = _create(task_store, owner, "2025-03-05", "second")
    t3 = _create(task_store, owner, "2025-03-10", "third")

    assert [t.task_id for t in task_store.list_tasks(owner)] == [t1.task_id, t2.task_id, t3.task_id]
    assert [t.task_id for t in task_store.list_tasks(owner, "2025-03-01", "2025-03-05")] == [
        t1.task_id,
        t2.task_id,
    ]
    assert [t.task_id for t in task_store.list_tasks(owner, start_date="2025-03-06")] == [t3.task_id]
    assert [t.task_id for t in task_store.list_tasks(owner, end_date="2025-03-04")] == [t1.task_id]

    with pytest.raises(ValidationError):
        task_store.list_tasks(owner, "2025-3-1")


def test_users_never_see_each_other(task_store: TaskStore, owner: Owner) -> None:
    task = _create(task_store, owner, "2025-03-01")
    bob = Owner(username="bob")

    assert task_store.list_tasks(bob) == []
    with pytest.raises(NotFoundError):
        task_store.get_task(bob, task.task_id)


def test_toggle_twice_restores_completion(task_store: TaskStore, owner: Owner, clock) -> None:
    task = _create(task_store, owner, "2025-03-01")

    clock.advance(minutes=5)
    once = task_store.toggle_complete(owner, task.task_id)
    twice = task_store.toggle_complete(owner, task.task_id)

    assert once.completed is True
    assert twice.completed is False
    assert twice.updated_at == "2025-02-20T12:05:00.000Z"


def test_update_with_only_disallowed_fields_is_rejected(task_store: TaskStore, owner: Owner) -> None:
    task = _create(task_store, owner, "2025-03-01")

    with pytest.raises(ValidationError) as exc:
        task_store.update_task(owner, task.task_id, {"owner": "mallory", "createdAt": "1999-01-01"})
    assert exc.value.message == "No valid fields to update"


def test_update_is_all_or_nothing(task_store: TaskStore, owner: Owner) -> None:
    task = _create(task_store, owner, "2025-03-01", title="Original")

    with pytest.raises(ValidationError):
        task_store.update_task(owner, task.task_id, {"title": "Changed", "priority": "urgent"})

    assert task_store.get_task(owner, task.task_id).title == "Original"


def test_update_rejects_non_ascii_digits_in_due_time(task_store: TaskStore, owner: Owner) -> None:
    task = _create(task_store, owner, "2025-03-01", dueTime="09:00")

    with pytest.raises(ValidationError):
        task_store.update_task(owner, task.task_id, {"dueTime": "0\u0669:00"})

    assert task_store.get_task(owner, task.task_id).due_time == "09:00"


def test_update_ignores_unknown_fields_next_to_allowed_ones(task_store: TaskStore, owner: Owner) -> None:
    task = _create(task_store, owner, "2025-03-01")

    updated = task_store.update_task(owner, task.task_id, {"title": "Renamed", "taskId": "hijack"})

    assert updated.task_id == task.task_id
    assert task_store.get_task(owner, task.task_id).title == "Renamed"


def test_due_date_change_moves_task_and_keeps_lookup(
    task_store: TaskStore, owner: Owner, table: ItemTable
) -> None:
    task = _create(task_store, owner, "2025-03-01", title="Movable")

    task_store.update_task(owner, task.task_id, {"dueDate": "2025-03-09"})

    assert task_store.list_tasks(owner, "2025-03-01", "2025-03-01") == []
    moved = task_store.list_tasks(owner, "2025-03-09", "2025-03-09")
    assert [t.task_id for t in moved] == [task.task_id]
    assert task_store.get_task(owner, task.task_id).due_date == "2025-03-09"

    ref = table.get_item(keys.user_pk("alice"), keys.task_ref_sk(task.task_id))
    assert ref["taskSk"] == keys.task_sk("2025-03-09", task.task_id)


def test_lost_lookup_item_is_repaired(task_store: TaskStore, owner: Owner, table: ItemTable) -> None:
    task = _create(task_store, owner, "2025-03-01")
    table.delete_item(keys.user_pk("alice"), keys.task_ref_sk(task.task_id))

    assert task_store.get_task(owner, task.task_id).task_id == task.task_id
    assert table.get_item(keys.user_pk("alice"), keys.task_ref_sk(task.task_id)) is not None


def test_unknown_task_is_not_found(task_store: TaskStore, owner: Owner) -> None:
    with pytest.raises(NotFoundError) as exc:
        task_store.get_task(owner, "nope")
    assert exc.value.status_code == 404
    with pytest.raises(NotFoundError):
        task_store.toggle_complete(owner, "nope")
    with pytest.raises(NotFoundError):
        task_store.update_task(owner, "nope", {"title": "x"})


def test_delete_returns_task_and_removes_lookup(
    task_store: TaskStore, owner: Owner, table: ItemTable
) -> None:
    task = _create(task_store, owner, "2025-03-01", title="Gone soon")

    deleted = task_store.delete_task(owner, task.task_id)

    assert deleted.title == "Gone soon"
    assert table.count_items() == 0
    with pytest.raises(NotFoundError):
        task_store.delete_task(owner, task.task_id)


def test_recurring_template_points_at_itself(task_store: TaskStore, owner: Owner) -> None:
    task = _create(
        task_store,
        owner,
        "2025-03-03",
        title="Standup",
        recurring={"enabled": True, "days": ["Monday", "friday", "monday"]},
    )

    assert task.is_template
    assert task.recurring.days == ["monday", "friday"]
    assert task.recurring.base_task_id == task.task_id
    assert [t.task_id for _, t in task_store.iter_recurring_templates()] == [task.task_id]
