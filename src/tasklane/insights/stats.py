# src/tasklane/insights/stats.py

"""
Productivity statistics over a window of tasks.

Pure computation: no storage, no clock. The caller passes the tasks and "today".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ..datetime_utils import weekday_name
from ..tasks.task_models import WEEKDAYS, Priority, Task

UNCATEGORIZED = "uncategorized"


@dataclass(slots=True)
class TaskStatistics:
    window_days: int
    total: int = 0
    completed: int = 0
    missed: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=lambda: {p.value: 0 for p in Priority})
    by_day: dict[str, int] = field(default_factory=lambda: dict.fromkeys(WEEKDAYS, 0))
    completed_by_day: dict[str, int] = field(default_factory=lambda: dict.fromkeys(WEEKDAYS, 0))

    @property
    def completion_rate(self) -> float:
        return round(self.completed / self.total, 4) if self.total else 0.0

    @property
    def average_tasks_per_day(self) -> float:
        return round(self.total / self.window_days, 2) if self.window_days else 0.0

    def day_rates(self) -> dict[str, float]:
        """Completion rate per weekday, only for days that had at least one task."""
        return {
            day: self.completed_by_day[day] / self.by_day[day]
            for day in WEEKDAYS
            if self.by_day[day] > 0
        }

    @property
    def most_productive_day(self) -> str | None:
        rates = self.day_rates()
        if not rates:
            return None
        best = max(rates.values())
        return next(d for d in WEEKDAYS if d in rates and rates[d] == best)

    @property
    def least_productive_day(self) -> str | None:
        rates = self.day_rates()
        if not rates:
            return None
        worst = min(rates.values())
        return next(d for d in WEEKDAYS if d in rates and rates[d] == worst)

    def patterns(self) -> dict[str, Any]:
        return {
            "mostProductiveDay": self.most_productive_day,
            "leastProductiveDay": self.least_productive_day,
            "taskTypeFrequency": dict(self.by_category),
            "completionRate": self.completion_rate,
            "averageTasksPerDay": self.average_tasks_per_day,
        }


def compute_statistics(tasks: list[Task], today: date, window_days: int = 28) -> TaskStatistics:
    """
    Missed = due strictly before today and not completed.

    Weekday ties for most/least productive resolve in Monday..Sunday order.
    """
    stats = TaskStatistics(window_days=window_days)
    for task in tasks:
        stats.total += 1
        due = date.fromisoformat(task.due_date)
        day = weekday_name(due)

        stats.by_day[day] += 1
        if task.completed:
            stats.completed += 1
            stats.completed_by_day[day] += 1
        elif due < today:
            stats.missed += 1

        category = task.category_id or UNCATEGORIZED
        stats.by_category[category] = stats.by_category.get(category, 0) + 1
        stats.by_priority[task.priority.value] = stats.by_priority.get(task.priority.value, 0) + 1

    return stats
