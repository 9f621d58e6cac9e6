# src/tasklane/llm/offline.py

from __future__ import annotations

import json
import re
from collections.abc import Iterable

from ..core.ports import ChatMessage

_RATE_RE = re.compile(r"Completion Rate:\s*([\d.]+)%")


class OfflineLLMClient:
    """
    Offline deterministic LLM client used for demos when no external API is configured.

    Behavior:
    - Insight prompts -> a valid insight JSON object (statistics are filled in by the engine)
    - Anything else -> a short offline notice
    """

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        sp = (system_prompt or "").lower()
        user_text = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_text = m["content"]
                break

        if "productivity analysis" not in sp:
            yield "Offline demo mode: no external LLM is configured."
            return

        match = _RATE_RE.search(user_text)
        rate = match.group(1) if match else "unknown"
        yield json.dumps(
            {
                "summary": (
                    f"Offline demo insight: your completion rate over the past 4 weeks was {rate}%. "
                    "Set TASKLANE_OPENROUTER_API_KEY to get a model-written summary."
                ),
                "patterns": {},
                "recommendations": [
                    "Schedule demanding tasks on your most productive day.",
                    "Break large tasks into smaller ones with their own due dates.",
                    "Review overdue tasks at the start of each week.",
                ],
            }
        )
