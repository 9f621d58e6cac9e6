# src/tasklane/llm/client.py

from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import Iterable
from typing import Any

import httpx
import openai
from openai import OpenAI

from ..config import Settings, get_settings
from ..core.ports import ChatMessage
from ..errors import InternalError, TemporarilyUnavailableError

logger = logging.getLogger(__name__)

_BAD_MODELS: dict[str, float] = {}  # model -> retry_at (monotonic)

BAD_MODEL_COOLDOWN_SECONDS = 3600.0


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, openai.AuthenticationError | openai.PermissionDeniedError):
        return True
    return exc.__class__.__name__ in {"AuthenticationError", "PermissionDeniedError", "UnauthorizedError"}


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"RateLimitError", "TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    if isinstance(exc, openai.APIConnectionError | httpx.TimeoutException | TimeoutError):
        return True
    return exc.__class__.__name__ in {"APIConnectionError", "APITimeoutError", "ConnectTimeout", "ReadTimeout"}


def _is_not_found_error(exc: Exception) -> bool:
    return isinstance(exc, openai.NotFoundError)


def _close_stream(stream: Any) -> None:
    close = getattr(stream, "close", None)
    if callable(close):
        with contextlib.suppress(Exception):
            close()


class OpenRouterLLMClient:
    """
    LLMClient over an OpenAI-compatible endpoint (OpenRouter by default).

    Behavior:
    - Tries models in the configured order.
    - No first content token within the first-token timeout -> next model.
    - 404 (model not available) -> cool the model down for an hour, next model.
    - Rate limit / network issues -> next model.
    - Auth issues -> fail fast as InternalError (a configuration problem, not the caller's).
    - Every model failed on throttling/network -> TemporarilyUnavailableError.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._client: OpenAI | None = None

    def _timeout(self) -> httpx.Timeout:
        s = self._settings
        return httpx.Timeout(
            connect=s.llm_connect_timeout_seconds,
            read=s.llm_read_timeout_seconds,
            write=10.0,
            pool=s.llm_connect_timeout_seconds,
        )

    def _get_client(self) -> OpenAI:
        """Lazily create the SDK client. SDK retries are off so fallback across models stays fast."""
        if self._client is not None:
            return self._client

        api_key = (self._settings.openrouter_api_key or "").strip()
        base_url = (self._settings.openrouter_base_url or "").strip()
        if not api_key:
            raise InternalError("LLM API key is not set. Set TASKLANE_OPENROUTER_API_KEY in your .env.")
        if not base_url:
            raise InternalError("LLM base URL is not set. Set TASKLANE_OPENROUTER_BASE_URL in your .env.")

        self._client = OpenAI(base_url=base_url, api_key=api_key, timeout=self._timeout(), max_retries=0)
        return self._client

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        models = [m.strip() for m in self._settings.llm_models if m and m.strip()]
        if not models:
            raise InternalError("LLM model list is empty. Set TASKLANE_LLM_MODELS in your .env.")

        client = self._get_client()
        headers = dict(self._settings.extra_headers or {})
        first_token_timeout = float(self._settings.llm_first_token_timeout_seconds)

        last_error: Exception | None = None
        now = time.monotonic()

        for model in models:
            retry_at = _BAD_MODELS.get(model)
            if retry_at is not None and retry_at > now:
                continue

            logger.info("LLM: trying model=%s (first_token_timeout=%.1fs)", model, first_token_timeout)
            t0 = time.monotonic()
            deadline = t0 + first_token_timeout
            stream = None
            used_any = False

            try:
                stream = client.chat.completions.create(
                    model=model,
                    stream=True,
                    extra_headers=headers or None,
                    messages=[{"role": "system", "content": system_prompt}, *messages],
                    timeout=self._timeout(),
                )

                for chunk in stream:
                    if not used_any and time.monotonic() > deadline:
                        last_error = TimeoutError(f"First token timeout on model: {model}")
                        logger.info("LLM: first token timeout on model=%s -> trying next", model)
                        break

                    content = chunk.choices[0].delta.content if chunk.choices else None
                    if content:
                        if not used_any:
                            logger.info("LLM: first token from model=%s (%.2fs)", model, time.monotonic() - t0)
                        used_any = True
                        yield content

                if used_any:
                    logger.debug("LLM: completed with model=%s", model)
                    return

                if last_error is None:
                    last_error = RuntimeError(f"Model returned no content: {model}")

            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise InternalError("LLM authentication failed. Check TASKLANE_OPENROUTER_API_KEY.") from e

                if _is_not_found_error(e):
                    _BAD_MODELS[model] = time.monotonic() + BAD_MODEL_COOLDOWN_SECONDS
                    logger.info("LLM: model not available (404): %s", model)
                elif _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                elif _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                else:
                    logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)

            finally:
                if stream is not None:
                    _close_stream(stream)

        if last_error is not None and (_is_rate_limit_error(last_error) or _is_connection_error(last_error)):
            raise TemporarilyUnavailableError(
                "Text generation is temporarily unavailable. Try again later."
            ) from last_error
        raise InternalError("All LLM models failed.") from last_error
