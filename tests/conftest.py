# tests/conftest.py

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from tasklane.core.state import AppState
from tasklane.insights.engine import InsightEngine
from tasklane.reminders.backend import LocalScheduleBackend
from tasklane.reminders.dispatch import ReminderDispatcher
from tasklane.reminders.scheduler import ReminderScheduler
from tasklane.service import TaskService
from tasklane.storage.table import ItemTable
from tasklane.tasks.category_store import CategoryStore
from tasklane.tasks.profile_store import ProfileStore
from tasklane.tasks.task_models import Owner
from tasklane.tasks.task_store import TaskStore

from .fakes import FakeLLMClient, FakeNotificationSink, FixedClock

UTC_ZONE = ZoneInfo("UTC")


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the console commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="tasklane-test",
        time_zone="UTC",
        data_dir=tmp_path,
        table_db_path=tmp_path / "tasklane.sqlite3",
        schedules_db_path=tmp_path / "schedules.sqlite3",
        offline_mode=True,
        llm_models=[],
        insight_window_days=28,
        insight_ttl_days=30,
        console_user="alice",
    )


@pytest.fixture()
def clock() -> FixedClock:
    # Thursday; well before the 2025-03-01 due dates used across the suite.
    return FixedClock(datetime(2025, 2, 20, 12, 0, tzinfo=UTC))


@pytest.fixture()
def table(settings: SimpleNamespace, clock: FixedClock) -> ItemTable:
    return ItemTable(settings.table_db_path, time_fn=clock.timestamp)


@pytest.fixture()
def schedules(settings: SimpleNamespace) -> LocalScheduleBackend:
    return LocalScheduleBackend(settings.schedules_db_path)


@pytest.fixture()
def reminders(schedules: LocalScheduleBackend, clock: FixedClock) -> ReminderScheduler:
    return ReminderScheduler(schedules, tz=UTC_ZONE, clock=clock)


@pytest.fixture()
def task_store(table: ItemTable, reminders: ReminderScheduler, clock: FixedClock) -> TaskStore:
    return TaskStore(table, reminders, clock=clock)


@pytest.fixture()
def categories(table: ItemTable, clock: FixedClock) -> CategoryStore:
    return CategoryStore(table, clock=clock)


@pytest.fixture()
def profiles(table: ItemTable, clock: FixedClock) -> ProfileStore:
    return ProfileStore(table, clock=clock)


@pytest.fixture()
def owner() -> Owner:
    return Owner(username="alice", email="alice@example.com", phone="+15551234567")


@pytest.fixture()
def llm() -> FakeLLMClient:
    return FakeLLMClient(
        '{"summary": "Solid month.", "patterns": {}, "recommendations": ["Plan Mondays", "Batch errands"]}'
    )


@pytest.fixture()
def insights(table: ItemTable, task_store: TaskStore, llm: FakeLLMClient, clock: FixedClock) -> InsightEngine:
    return InsightEngine(table, task_store, llm, tz=UTC_ZONE, clock=clock)


@pytest.fixture()
def sink() -> FakeNotificationSink:
    return FakeNotificationSink()


@pytest.fixture()
def service(
    task_store: TaskStore,
    categories: CategoryStore,
    profiles: ProfileStore,
    reminders: ReminderScheduler,
    insights: InsightEngine,
) -> TaskService:
    return TaskService(task_store, categories, profiles, reminders, insights)


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    table: ItemTable,
    schedules: LocalScheduleBackend,
    llm: FakeLLMClient,
    sink: FakeNotificationSink,
    task_store: TaskStore,
    categories: CategoryStore,
    profiles: ProfileStore,
    reminders: ReminderScheduler,
    insights: InsightEngine,
    service: TaskService,
) -> AppState:
    """
    AppState wired with deterministic fakes.

    NOTE: We keep real SQLite stores here (ItemTable/LocalScheduleBackend) because
    their correctness is part of what we want to test.
    """
    return AppState(
        settings=settings,
        table=table,
        schedules=schedules,
        llm=llm,
        sink=sink,
        task_store=task_store,
        categories=categories,
        profiles=profiles,
        reminders=reminders,
        dispatcher=ReminderDispatcher(sink, task_store),
        insights=insights,
        service=service,
    )
