# src/tasklane/insights/engine.py

from __future__ import annotations

import dataclasses
import json
import logging
from datetime import datetime, timedelta, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from ..core.ports import Clock, LLMClient
from ..datetime_utils import local_today, to_iso_utc
from ..errors import AppError, ConflictError, InternalError, ModelOutputError, ValidationError
from ..storage import keys
from ..storage.table import ConditionFailedError, ItemTable
from ..tasks.task_models import WEEKDAYS, Insight, Owner
from ..tasks.task_store import TaskStore
from ..tasks.validation import require_owner
from .stats import TaskStatistics, compute_statistics

logger = logging.getLogger(__name__)

INSIGHT_SYSTEM_PROMPT = (
    "You are a productivity analysis assistant. You read task statistics and answer with "
    "exactly one JSON object and nothing else."
)

STRICT_RETRY_INSTRUCTION = (
    "Your previous answer could not be parsed. Reply with ONLY a single JSON object with the "
    'keys "summary" (string), "patterns" (object) and "recommendations" (array of strings). '
    "No markdown, no code fences, no text before or after the object."
)

STORE_ATTEMPTS = 5


class InsightParseError(ValueError):
    """The model answer is not an insight-shaped JSON object."""


def build_insight_prompt(stats: TaskStatistics) -> str:
    completion_pct = f"{stats.completion_rate * 100:.1f}"
    lines = [
        "Analyze the following task data and provide insights.",
        "",
        "Task Statistics (Past 4 Weeks):",
        f"- Total Tasks: {stats.total}",
        f"- Completed Tasks: {stats.completed}",
        f"- Missed Tasks: {stats.missed}",
        f"- Completion Rate: {completion_pct}%",
        f"- Average Tasks Per Day: {stats.average_tasks_per_day:.2f}",
        "",
        "Tasks by Category:",
        *[f"- {cat}: {count}" for cat, count in stats.by_category.items()],
        "",
        "Tasks by Day of Week:",
        *[f"- {day}: {stats.by_day[day]} tasks ({stats.completed_by_day[day]} completed)" for day in WEEKDAYS],
        "",
        "Tasks by Priority:",
        *[f"- {p.capitalize()}: {n}" for p, n in stats.by_priority.items()],
        "",
        "Based on this data, provide a JSON response with the following structure:",
        json.dumps(
            {
                "summary": "A brief 2-3 sentence summary of the user's productivity over the past 4 weeks",
                "patterns": stats.patterns(),
                "recommendations": [
                    "Recommendation 1 based on the data",
                    "Recommendation 2 based on the data",
                    "Recommendation 3 based on the data",
                ],
            },
            indent=2,
        ),
        "",
        "Provide ONLY the JSON response, no additional text.",
    ]
    return "\n".join(lines)


def _first_json_object(text: str) -> Any:
    decoder = json.JSONDecoder()
    idx = text.find("{")
    while idx != -1:
        try:
            obj, _ = decoder.raw_decode(text, idx)
        except json.JSONDecodeError:
            idx = text.find("{", idx + 1)
            continue
        if isinstance(obj, dict):
            return obj
        idx = text.find("{", idx + 1)
    raise InsightParseError("no JSON object in model output")


def parse_insight_response(raw: str) -> dict[str, Any]:
    """
    Parse and validate a model answer.

    Strict json.loads first; if that fails, the first balanced JSON object embedded in the
    text. Either way the result must have the insight shape.
    """
    text = (raw or "").strip()
    if not text:
        raise InsightParseError("empty model output")

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = _first_json_object(text)

    if not isinstance(data, dict):
        raise InsightParseError("model output is not a JSON object")

    summary = data.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise InsightParseError("summary must be a non-empty string")

    recs = data.get("recommendations")
    if not isinstance(recs, list) or not all(isinstance(r, str) for r in recs):
        raise InsightParseError("recommendations must be a list of strings")

    patterns = data.get("patterns")
    if patterns is None:
        patterns = {}
    if not isinstance(patterns, dict):
        raise InsightParseError("patterns must be an object")

    return {"summary": summary.strip(), "patterns": patterns, "recommendations": recs}


class InsightEngine:
    """
    Generates and lists productivity insights.

    The model writes the prose (summary, recommendations); the numbers in patterns always
    come from compute_statistics, whatever the model claimed.
    """

    def __init__(
        self,
        table: ItemTable,
        task_store: TaskStore,
        llm: LLMClient,
        *,
        window_days: int = 28,
        ttl_days: int = 30,
        tz: tzinfo | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._table = table
        self._tasks = task_store
        self._llm = llm
        self._window_days = window_days
        self._ttl_days = ttl_days
        self._tz = tz or ZoneInfo("UTC")
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock() if self._clock is not None else datetime.now(self._tz)

    def _complete(self, messages: list[dict[str, str]]) -> str:
        try:
            return "".join(self._llm.stream_chat(messages, INSIGHT_SYSTEM_PROMPT))
        except AppError:
            raise
        except Exception as e:
            logger.exception("Insight LLM call failed")
            raise InternalError("Text generation failed") from e

    def _ask_model(self, prompt: str) -> dict[str, Any]:
        messages = [{"role": "user", "content": prompt}]
        raw = self._complete(messages)
        try:
            return parse_insight_response(raw)
        except InsightParseError as e:
            logger.warning("Insight output rejected (%s); retrying with stricter instruction. Raw=%r", e, raw[:500])

        messages = [
            *messages,
            {"role": "assistant", "content": raw},
            {"role": "user", "content": STRICT_RETRY_INSTRUCTION},
        ]
        raw = self._complete(messages)
        try:
            return parse_insight_response(raw)
        except InsightParseError as e:
            logger.error("Insight output rejected after retry (%s). Raw=%r", e, raw[:500])
            raise ModelOutputError(
                "Model response is not a valid insight", details={"reason": str(e)}
            ) from e

    def generate(self, owner: Owner | None) -> Insight:
        owner = require_owner(owner)
        now = self._now()
        today = local_today(now, self._tz)
        start = today - timedelta(days=self._window_days - 1)

        tasks = self._tasks.list_tasks(owner, start.isoformat(), today.isoformat())
        logger.info("Generating insights user=%s window=%s..%s tasks=%d", owner.username, start, today, len(tasks))
        if not tasks:
            raise ValidationError("Not enough task data to generate insights. Create some tasks first.")

        stats = compute_statistics(tasks, today, self._window_days)
        answer = self._ask_model(build_insight_prompt(stats))

        insight = Insight(
            generated_at=to_iso_utc(now),
            summary=answer["summary"],
            patterns={**answer["patterns"], **stats.patterns()},
            recommendations=list(answer["recommendations"]),
            expires_at=int((now + timedelta(days=self._ttl_days)).timestamp()),
        )
        insight = self._store(owner, insight, now)
        logger.info("Insight stored user=%s expiresAt=%s", owner.username, insight.expires_at)
        return insight

    def _store(self, owner: Owner, insight: Insight, now: datetime) -> Insight:
        # stored insights are never overwritten; same-millisecond writes move forward
        for attempt in range(STORE_ATTEMPTS):
            try:
                self._table.put_item(insight.to_item(owner.username), if_not_exists=True)
                return insight
            except ConditionFailedError:
                logger.info("Insight key taken user=%s generatedAt=%s", owner.username, insight.generated_at)
                insight = dataclasses.replace(
                    insight, generated_at=to_iso_utc(now + timedelta(milliseconds=attempt + 1))
                )
        raise ConflictError("Insight was generated concurrently, retry the request")

    def list_insights(self, owner: Owner | None) -> list[Insight]:
        """Unexpired insights, newest first."""
        owner = require_owner(owner)
        items = self._table.query(keys.user_pk(owner.username), begins_with=keys.INSIGHT_PREFIX, reverse=True)
        return [Insight.from_item(i) for i in items]
