# src/tasklane/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (table/scheduler/LLM/notifications).
"""

from __future__ import annotations

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import get_settings
from ..core.ports import LLMClient, NotificationSink
from ..core.state import AppState
from ..insights.engine import InsightEngine
from ..llm.client import OpenRouterLLMClient
from ..llm.offline import OfflineLLMClient
from ..reminders.backend import LocalScheduleBackend
from ..reminders.dispatch import ReminderDispatcher
from ..reminders.notifier import LogNotificationSink, WebhookNotificationSink
from ..reminders.scheduler import ReminderScheduler
from ..service import TaskService
from ..storage.table import ItemTable
from ..tasks.category_store import CategoryDeletePolicy, CategoryStore
from ..tasks.profile_store import ProfileStore
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.table_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.schedules_db_path.parent.mkdir(parents=True, exist_ok=True)


def _time_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning("Unknown time zone %r, falling back to UTC", name)
        return ZoneInfo("UTC")


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)
    tz = _time_zone(settings.time_zone)

    llm_client: LLMClient
    if settings.offline_mode:
        logger.info("No LLM API key configured; insights use the offline client.")
        llm_client = OfflineLLMClient()
    else:
        llm_client = OpenRouterLLMClient(settings)

    sink: NotificationSink
    if settings.notification_webhook_url:
        sink = WebhookNotificationSink(settings.notification_webhook_url)
    else:
        sink = LogNotificationSink()

    table = ItemTable(settings.table_db_path)
    schedules = LocalScheduleBackend(settings.schedules_db_path)

    reminders = ReminderScheduler(schedules, tz=tz)
    task_store = TaskStore(table, reminders)
    categories = CategoryStore(table, delete_policy=CategoryDeletePolicy(settings.category_delete_policy))
    profiles = ProfileStore(table)
    insights = InsightEngine(
        table,
        task_store,
        llm_client,
        window_days=settings.insight_window_days,
        ttl_days=settings.insight_ttl_days,
        tz=tz,
    )

    return AppState(
        settings=settings,
        table=table,
        schedules=schedules,
        llm=llm_client,
        sink=sink,
        task_store=task_store,
        categories=categories,
        profiles=profiles,
        reminders=reminders,
        dispatcher=ReminderDispatcher(sink, task_store),
        insights=insights,
        service=TaskService(task_store, categories, profiles, reminders, insights),
    )
