# src/tasklane/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the scheduling backend, the notification channel and the LLM provider
swappable and makes testing easier.
"""

from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any, Protocol

ChatMessage = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.

Clock = Callable[[], datetime]
# Returns "now" as an aware datetime in the service time zone.


class LLMClient(Protocol):
    """Streaming chat completion client (OpenAI/OpenRouter-compatible)."""
    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]: ...


class NotificationSink(Protocol):
    """
    Publish-only messaging channel.

    channel is "email" or "sms"; the sink owns fan-out and delivery.
    """

    def publish(
            self,
            *,
            channel: str,
            recipient: str,
            message: str,
            subject: str | None = None,
    ) -> Awaitable[None]: ...


class SchedulingBackend(Protocol):
    """
    One-shot trigger registry.

    Handles are opaque to the core. cancel() must tolerate unknown handles.
    """

    def schedule(self, *, fire_at: datetime, target: str, payload: dict[str, Any]) -> str: ...
    def cancel(self, handle: str) -> None: ...
    def exists(self, handle: str) -> bool: ...
