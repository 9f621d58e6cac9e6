# tests/test_insights.py

from __future__ import annotations

import json
from datetime import date, timedelta

import pytest

from tasklane.errors import ConflictError, ModelOutputError, ValidationError
from tasklane.insights.engine import (
    INSIGHT_SYSTEM_PROMPT,
    STRICT_RETRY_INSTRUCTION,
    InsightEngine,
    InsightParseError,
    parse_insight_response,
)
from tasklane.insights.stats import compute_statistics
from tasklane.llm.offline import OfflineLLMClient
from tasklane.storage.table import ConditionFailedError, ItemTable
from tasklane.tasks.task_models import Owner, Priority, Task
from tasklane.tasks.task_store import TaskStore

from .fakes import FakeLLMClient, FixedClock

VALID = json.dumps(
    {
        "summary": "You finish most of what you plan.",
        "patterns": {"completionRate": 0.99, "focus": "mornings"},
        "recommendations": ["Plan Mondays", "Batch errands", "Review on Fridays"],
    }
)

# Clock is 2025-02-20, so the 28-day window is 2025-01-24 .. 2025-02-20.
WINDOW_START = date(2025, 1, 24)


def _seed(store: TaskStore, owner: Owner, total: int, completed: int) -> None:
    for i in range(total):
        due = WINDOW_START + timedelta(days=(i * 27) // max(total - 1, 1))
        task = store.create_task(owner, {"title": f"Task {i}", "dueDate": due.isoformat()})
        if i < completed:
            store.toggle_complete(owner, task.task_id)


def _task(due: str, completed: bool, category: str | None = None) -> Task:
    return Task(
        task_id=due,
        title="t",
        due_date=due,
        priority=Priority.MEDIUM,
        completed=completed,
        created_at="",
        updated_at="",
        category_id=category,
    )


def test_statistics_counts_missed_and_breaks_ties_by_weekday_order() -> None:
    tasks = [
        _task("2025-03-03", True, "work"),  # monday
        _task("2025-03-05", True, "work"),  # wednesday
        _task("2025-03-07", False),  # friday, before today -> missed
        _task("2025-03-10", False),  # monday, today -> not missed
    ]

    stats = compute_statistics(tasks, today=date(2025, 3, 10))

    assert stats.total == 4
    assert stats.completed == 2
    assert stats.missed == 1
    assert stats.by_category == {"work": 2, "uncategorized": 2}
    assert stats.by_priority == {"high": 0, "medium": 4, "low": 0}
    assert stats.most_productive_day == "wednesday"
    assert stats.least_productive_day == "friday"


def test_statistics_tie_resolves_to_earliest_weekday() -> None:
    stats = compute_statistics(
        [_task("2025-03-05", True), _task("2025-03-03", True)], today=date(2025, 3, 10)
    )

    assert stats.most_productive_day == "monday"
    assert stats.least_productive_day == "monday"


def test_parse_accepts_json_embedded_in_prose() -> None:
    raw = 'Sure! Here is the analysis:\n{"summary": "Good week.", "recommendations": ["Rest"]}\nHope it helps.'

    parsed = parse_insight_response(raw)

    assert parsed == {"summary": "Good week.", "patterns": {}, "recommendations": ["Rest"]}


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "no json here",
        '{"summary": "", "recommendations": []}',
        '{"summary": "ok", "recommendations": "do more"}',
        '{"summary": "ok", "recommendations": [], "patterns": []}',
    ],
)
def test_parse_rejects_wrong_shapes(raw: str) -> None:
    with pytest.raises(InsightParseError):
        parse_insight_response(raw)


def test_generate_without_tasks_writes_nothing(
    insights: InsightEngine, owner: Owner, llm: FakeLLMClient, table: ItemTable
) -> None:
    with pytest.raises(ValidationError) as exc:
        insights.generate(owner)

    assert exc.value.message == "Not enough task data to generate insights. Create some tasks first."
    assert llm.calls == []
    assert insights.list_insights(owner) == []
    assert table.count_items() == 0


def test_generate_uses_computed_numbers(
    table: ItemTable, task_store: TaskStore, owner: Owner, clock: FixedClock
) -> None:
    _seed(task_store, owner, total=15, completed=9)
    # Outside the window on both sides; must not be counted.
    task_store.create_task(owner, {"title": "old", "dueDate": "2025-01-23"})
    task_store.create_task(owner, {"title": "future", "dueDate": "2025-02-21"})
    llm = FakeLLMClient(VALID)
    engine = InsightEngine(table, task_store, llm, clock=clock)

    insight = engine.generate(owner)

    assert insight.summary == "You finish most of what you plan."
    assert insight.patterns["completionRate"] == 0.6
    assert insight.patterns["averageTasksPerDay"] == 0.54
    assert insight.patterns["focus"] == "mornings"
    assert insight.recommendations == ["Plan Mondays", "Batch errands", "Review on Fridays"]
    assert insight.generated_at == "2025-02-20T12:00:00.000Z"

    [(messages, system_prompt)] = llm.calls
    assert system_prompt == INSIGHT_SYSTEM_PROMPT
    assert "Completion Rate: 60.0%" in messages[0]["content"]

    [stored] = engine.list_insights(owner)
    assert stored.to_dict() == insight.to_dict()
    assert "expiresAt" not in stored.to_dict()


def test_generate_retries_once_with_stricter_instruction(
    table: ItemTable, task_store: TaskStore, owner: Owner, clock: FixedClock
) -> None:
    _seed(task_store, owner, total=3, completed=1)
    llm = FakeLLMClient("I think you did great!", VALID)
    engine = InsightEngine(table, task_store, llm, clock=clock)

    insight = engine.generate(owner)

    assert insight.summary == "You finish most of what you plan."
    assert len(llm.calls) == 2
    retry_messages = llm.calls[1][0]
    assert retry_messages[-1]["content"] == STRICT_RETRY_INSTRUCTION
    assert retry_messages[-2] == {"role": "assistant", "content": "I think you did great!"}
    assert len(llm.calls[0][0]) == 1


def test_generate_gives_up_after_second_bad_answer(
    table: ItemTable, task_store: TaskStore, owner: Owner, clock: FixedClock
) -> None:
    _seed(task_store, owner, total=3, completed=1)
    llm = FakeLLMClient("nope", "still nope")
    engine = InsightEngine(table, task_store, llm, clock=clock)

    with pytest.raises(ModelOutputError) as exc:
        engine.generate(owner)

    assert exc.value.status_code == 502
    assert len(llm.calls) == 2
    assert engine.list_insights(owner) == []


def test_insights_list_newest_first_and_expire(
    insights: InsightEngine, task_store: TaskStore, owner: Owner, clock: FixedClock
) -> None:
    _seed(task_store, owner, total=2, completed=1)

    first = insights.generate(owner)
    clock.advance(hours=1)
    second = insights.generate(owner)

    assert [i.generated_at for i in insights.list_insights(owner)] == [second.generated_at, first.generated_at]

    clock.advance(days=31)
    assert insights.list_insights(owner) == []


def test_insights_generated_in_the_same_instant_are_both_kept(
    insights: InsightEngine, task_store: TaskStore, owner: Owner
) -> None:
    _seed(task_store, owner, total=2, completed=1)

    first = insights.generate(owner)
    second = insights.generate(owner)

    assert first.generated_at == "2025-02-20T12:00:00.000Z"
    assert second.generated_at == "2025-02-20T12:00:00.001Z"
    stored = insights.list_insights(owner)
    assert [i.generated_at for i in stored] == [second.generated_at, first.generated_at]
    assert stored[1].summary == first.summary


def test_generate_reports_conflict_when_every_key_is_taken(
    insights: InsightEngine, task_store: TaskStore, owner: Owner, table: ItemTable, monkeypatch: pytest.MonkeyPatch
) -> None:
    _seed(task_store, owner, total=2, completed=1)

    def taken(item, *, if_not_exists=False):
        raise ConditionFailedError("item exists")

    monkeypatch.setattr(table, "put_item", taken)

    with pytest.raises(ConflictError):
        insights.generate(owner)

def test_offline_client_answers_in_insight_shape(
    table: ItemTable, task_store: TaskStore, owner: Owner, clock: FixedClock
) -> None:
    _seed(task_store, owner, total=4, completed=2)
    engine = InsightEngine(table, task_store, OfflineLLMClient(), clock=clock)

    insight = engine.generate(owner)

    assert insight.summary
    assert len(insight.recommendations) == 3
    assert insight.patterns["completionRate"] == 0.5
