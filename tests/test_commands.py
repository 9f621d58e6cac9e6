# tests/test_commands.py

from __future__ import annotations

from tasklane.cli.commands import CommandRegistry, registry
from tasklane.core.state import AppState
from tasklane.errors import NotFoundError
from tasklane.tasks.task_models import Owner


def test_registry_returns_none_for_non_command(state: AppState, owner: Owner) -> None:
    assert registry.handle(state, "hello", owner) is None


def test_registry_unknown_and_empty_commands(state: AppState, owner: Owner) -> None:
    assert registry.handle(state, "/", owner).startswith("Empty command")
    assert registry.handle(state, "/nope", owner).startswith("Unknown command: /nope")


def test_registry_dispatches_aliases_and_builds_help(state: AppState, owner: Owner) -> None:
    reg = CommandRegistry()
    seen: list[list[str]] = []

    def handler(st: AppState, args: list[str], who: Owner) -> str:
        seen.append(args)
        return "ok"

    reg.register("ping", handler, help_text="Replies ok.", aliases=["p"])

    assert reg.handle(state, "/PING a b", owner) == "ok"
    assert reg.handle(state, "/p", owner) == "ok"
    assert seen == [["a", "b"], []]
    assert reg.build_help() == "Available commands:\n  /ping - Replies ok."


def test_app_errors_are_rendered_not_raised(state: AppState, owner: Owner) -> None:
    reg = CommandRegistry()

    def handler(st: AppState, args: list[str], who: Owner) -> str:
        raise NotFoundError("Task", "x1")

    reg.register("boom", handler, help_text="Fails.")

    assert reg.handle(state, "/boom", owner) == "NotFoundError: Task with identifier 'x1' not found"


def test_add_list_done_rm_flow(state: AppState, owner: Owner) -> None:
    reply = registry.handle(state, "/add 2025-03-01 09:00 Pay rent", owner)
    assert reply.startswith("Created [ ] ")
    assert "2025-03-01 09:00" in reply and "Pay rent" in reply

    [task] = state.service.list_tasks(owner)
    assert task.title == "Pay rent"
    assert task.due_time == "09:00"

    assert "Pay rent" in registry.handle(state, "/ls", owner)
    assert registry.handle(state, f"/done {task.task_id}", owner).startswith("[x]")
    assert registry.handle(state, f"/rm {task.task_id}", owner) == f"Deleted {task.task_id} (Pay rent)"
    assert registry.handle(state, "/list", owner) == "No tasks."


def test_add_with_bad_date_reports_validation_error(state: AppState, owner: Owner) -> None:
    reply = registry.handle(state, "/add 2025-13-01 Nope", owner)

    assert reply.startswith("ValidationError:")
    assert state.table.count_items() == 0


def test_remind_and_repeat_commands(state: AppState, owner: Owner) -> None:
    registry.handle(state, "/add 2025-03-03 09:00 Standup", owner)
    [task] = state.service.list_tasks(owner)

    reply = registry.handle(state, f"/remind {task.task_id} 10", owner)
    assert "reminder -10m" in reply
    assert state.schedules.count_jobs() == 1

    reply = registry.handle(state, f"/repeat {task.task_id} monday,friday", owner)
    assert "repeats monday,friday" in reply

    registry.handle(state, f"/remind {task.task_id} off", owner)
    assert state.schedules.count_jobs() == 0


def test_category_commands(state: AppState, owner: Owner) -> None:
    assert registry.handle(state, "/cat add Deep Work #00ff00", owner) == "Created category deep-work"
    assert registry.handle(state, "/cat", owner) == "deep-work  Deep Work  #00ff00"
    assert registry.handle(state, "/cat add deep work #ffffff", owner).startswith("ConflictError:")
    assert registry.handle(state, "/cat rm deep-work", owner) == "Deleted category deep-work (tasks detached: 0)"


def test_insight_commands(state: AppState, owner: Owner) -> None:
    assert registry.handle(state, "/insight", owner).startswith("ValidationError: Not enough task data")

    registry.handle(state, "/add 2025-02-18 Report", owner)
    reply = registry.handle(state, "/insight", owner)
    assert "Solid month." in reply
    assert "  - Plan Mondays" in reply

    assert "Solid month." in registry.handle(state, "/insights", owner)


def test_status_reports_counts(state: AppState, owner: Owner) -> None:
    reply = registry.handle(state, "/status", owner)

    assert "User: alice" in reply
    assert "Pending reminder jobs: 0" in reply
    assert "offline demo client" in reply
