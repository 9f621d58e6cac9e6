# src/tasklane/cli/commands.py

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from ..core.state import AppState
from ..errors import AppError
from ..tasks.task_models import Owner, Task

CommandHandler = Callable[[AppState, list[str], Owner], str]

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^\d{2}:\d{2}$")


class CommandRegistry:
    """Slash-command registry used by the operator console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases or []:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str, owner: Owner) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return handler(state, parts[1:], owner)
        except AppError as e:
            logger.debug("Command /%s failed: %s", name, e.message)
            return f"{e.error_type}: {e.message}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _format_task(task: Task) -> str:
    mark = "x" if task.completed else " "
    when = f"{task.due_date} {task.due_time}" if task.due_time else task.due_date
    extras = []
    if task.category_id:
        extras.append(f"#{task.category_id}")
    if task.is_template:
        extras.append("repeats " + ",".join(task.recurring.days))
    if task.scheduling_handle:
        extras.append(f"reminder -{task.reminders.minutes_before}m")
    tail = f" ({'; '.join(extras)})" if extras else ""
    return f"[{mark}] {task.task_id}  {when}  [{task.priority.value}] {task.title}{tail}"


def _with_warnings(text: str, task: Task) -> str:
    if not task.warnings:
        return text
    return text + "\n" + "\n".join(f"  warning: {w}" for w in task.warnings)


def cmd_help(state: AppState, args: list[str], owner: Owner) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], owner: Owner) -> str:
    s = state.settings
    llm = "offline demo client" if s.offline_mode else ", ".join(s.llm_models)
    return (
        "Status:\n"
        f"  User: {owner.username}\n"
        f"  Time zone: {s.time_zone}\n"
        f"  Items stored: {state.table.count_items()}\n"
        f"  Pending reminder jobs: {state.schedules.count_jobs()}\n"
        f"  Insight models: {llm}"
    )


def cmd_add(state: AppState, args: list[str], owner: Owner) -> str:
    """
    /add 2025-03-01 Pay rent
    /add 2025-03-01 09:00 Pay rent
    """
    if len(args) < 2:
        return "Usage: /add YYYY-MM-DD [HH:MM] title"
    fields: dict[str, object] = {"dueDate": args[0]}
    rest = args[1:]
    if rest and _TIME_RE.match(rest[0]):
        fields["dueTime"] = rest[0]
        rest = rest[1:]
    fields["title"] = " ".join(rest)
    task = state.service.create_task(owner, fields)
    return _with_warnings(f"Created {_format_task(task)}", task)


def cmd_list(state: AppState, args: list[str], owner: Owner) -> str:
    """
    /list                       -> all tasks
    /list 2025-03-01            -> from that day on
    /list 2025-03-01 2025-03-07 -> inclusive range
    """
    start = args[0] if len(args) > 0 else None
    end = args[1] if len(args) > 1 else None
    tasks = state.service.list_tasks(owner, start, end)
    if not tasks:
        return "No tasks."
    return "\n".join(_format_task(t) for t in tasks)


def cmd_done(state: AppState, args: list[str], owner: Owner) -> str:
    if len(args) != 1:
        return "Usage: /done taskId"
    task = state.service.toggle_complete(owner, args[0])
    return _format_task(task)


def cmd_rm(state: AppState, args: list[str], owner: Owner) -> str:
    if len(args) != 1:
        return "Usage: /rm taskId"
    task = state.service.delete_task_and_reminder(owner, args[0])
    return _with_warnings(f"Deleted {task.task_id} ({task.title})", task)


def cmd_remind(state: AppState, args: list[str], owner: Owner) -> str:
    """
    /remind taskId 30   -> remind 30 minutes before (email/SMS where contact data is known)
    /remind taskId off  -> remove the reminder
    """
    if len(args) != 2:
        return "Usage: /remind taskId minutes|off"
    task_id, arg = args
    if arg.lower() == "off":
        patch = {"reminders": {"enabled": False}}
    else:
        try:
            minutes = int(arg)
        except ValueError:
            return "Usage: /remind taskId minutes|off"
        patch = {
            "reminders": {
                "enabled": True,
                "email": bool(owner.email),
                "sms": bool(owner.phone),
                "minutesBefore": minutes,
            }
        }
    task = state.service.update_task(owner, task_id, patch)
    return _with_warnings(_format_task(task), task)


def cmd_repeat(state: AppState, args: list[str], owner: Owner) -> str:
    """
    /repeat taskId monday,wednesday -> make the task a weekly template
    /repeat taskId off              -> stop repeating
    """
    if len(args) != 2:
        return "Usage: /repeat taskId day,day,...|off"
    task_id, arg = args
    if arg.lower() == "off":
        patch = {"recurring": {"enabled": False}}
    else:
        patch = {"recurring": {"enabled": True, "days": [d for d in arg.split(",") if d]}}
    task = state.service.update_task(owner, task_id, patch)
    return _format_task(task)


def cmd_cat(state: AppState, args: list[str], owner: Owner) -> str:
    """
    /cat                  -> list categories
    /cat add name color   -> create
    /cat rm categoryId    -> delete (configured policy)
    """
    if not args or args[0].lower() == "list":
        cats = state.service.list_categories(owner)
        if not cats:
            return "No categories."
        return "\n".join(f"{c.category_id}  {c.name}  {c.color}" for c in cats)

    sub = args[0].lower()
    if sub == "add" and len(args) >= 3:
        cat = state.service.create_category(owner, " ".join(args[1:-1]), args[-1])
        return f"Created category {cat.category_id}"
    if sub == "rm" and len(args) == 2:
        detached = state.service.delete_category(owner, args[1])
        return f"Deleted category {args[1]} (tasks detached: {detached})"
    return "Usage: /cat | /cat add name color | /cat rm categoryId"


def cmd_insight(state: AppState, args: list[str], owner: Owner) -> str:
    insight = state.service.generate_insight(owner)
    lines = [f"Insight {insight.generated_at}:", insight.summary, ""]
    lines += [f"  {k}: {v}" for k, v in insight.patterns.items()]
    lines += ["", "Recommendations:"] + [f"  - {r}" for r in insight.recommendations]
    return "\n".join(lines)


def cmd_insights(state: AppState, args: list[str], owner: Owner) -> str:
    items = state.service.list_insights(owner)
    if not items:
        return "No insights yet. Use /insight to generate one."
    return "\n".join(f"{i.generated_at}  {i.summary}" for i in items)


def cmd_expand(state: AppState, args: list[str], owner: Owner) -> str:
    summary = state.service.expand_recurring()
    return (
        f"Recurring run {summary.date} ({summary.day}): templates={summary.templates} "
        f"created={summary.created} skipped={summary.skipped} failed={len(summary.failures)}"
    )


def cmd_reconcile(state: AppState, args: list[str], owner: Owner) -> str:
    n = state.service.reconcile_reminders(owner)
    return f"Reminders repaired: {n}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show storage, scheduler and model status.")
registry.register("add", cmd_add, help_text="Create a task: /add YYYY-MM-DD [HH:MM] title.")
registry.register("list", cmd_list, help_text="List tasks: /list [start] [end].", aliases=["ls"])
registry.register("done", cmd_done, help_text="Toggle completion: /done taskId.")
registry.register("rm", cmd_rm, help_text="Delete a task and its reminder: /rm taskId.")
registry.register("remind", cmd_remind, help_text="Set a reminder: /remind taskId minutes|off.")
registry.register("repeat", cmd_repeat, help_text="Weekly recurrence: /repeat taskId day,day|off.")
registry.register("cat", cmd_cat, help_text="Categories: /cat | /cat add name color | /cat rm id.")
registry.register("insight", cmd_insight, help_text="Generate a productivity insight.")
registry.register("insights", cmd_insights, help_text="List stored insights, newest first.")
registry.register("expand", cmd_expand, help_text="Run recurring-task expansion for today now.")
registry.register("reconcile", cmd_reconcile, help_text="Repair reminder state left by interruptions.")
