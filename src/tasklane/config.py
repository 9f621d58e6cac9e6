# src/tasklane/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Every knob has a TASKLANE_* variable and a sane local default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKLANE"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    time_zone: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    table_db_path: Path
    schedules_db_path: Path

    # ---- LLM / OpenRouter ----
    offline_mode: bool
    openrouter_api_key: str | None
    openrouter_base_url: str
    llm_models: list[str]
    extra_headers: dict[str, str]
    llm_connect_timeout_seconds: float
    llm_read_timeout_seconds: float
    llm_first_token_timeout_seconds: float

    # ---- Reminders ----
    notification_webhook_url: str
    dispatcher_interval_seconds: float
    dispatcher_retry_delay_seconds: float
    dispatcher_max_attempts: int

    # ---- Recurrence ----
    recurrence_run_on_start: bool

    # ---- Insights ----
    insight_window_days: int
    insight_ttl_days: int

    # ---- Categories ----
    category_delete_policy: str

    # ---- Operator console ----
    console_enabled: bool
    console_user: str
    console_email: str | None
    console_phone: str | None

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "tasklane")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        time_zone = _env(_k("TIME_ZONE"), "UTC")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tasklane"))
        table_db_path = _env_path(_k("TABLE_DB_PATH"), data_dir / "table.sqlite3")
        schedules_db_path = _env_path(_k("SCHEDULES_DB_PATH"), data_dir / "schedules.sqlite3")

        openrouter_api_key = _first_env(_k("OPENROUTER_API_KEY"), "OPENROUTER_API_KEY", default=None)
        openrouter_base_url = _env(_k("OPENROUTER_BASE_URL"), "https://openrouter.ai/api/v1")
        offline_mode = _env_bool(_k("OFFLINE_MODE"), not (openrouter_api_key or "").strip())

        extra_headers = {
            "HTTP-Referer": _env(_k("HTTP_REFERER"), "https://example.com"),
            "X-Title": _env(_k("APP_TITLE"), app_name),
        }

        llm_models = _env_list(
            _k("LLM_MODELS"),
            [
                "anthropic/claude-3.5-sonnet",
                "qwen/qwen-2.5-72b-instruct:free",
                "deepseek/deepseek-chat-v3-0324:free",
            ],
        )

        # read timeout never shorter than the first-token timeout
        first_token = _env_float(_k("LLM_FIRST_TOKEN_TIMEOUT_SECONDS"), 30.0)
        read_timeout = max(_env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 45.0), first_token)
        connect_timeout = _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            time_zone=time_zone,
            data_dir=data_dir,
            table_db_path=table_db_path,
            schedules_db_path=schedules_db_path,
            offline_mode=offline_mode,
            openrouter_api_key=openrouter_api_key,
            openrouter_base_url=openrouter_base_url,
            llm_models=llm_models,
            extra_headers=extra_headers,
            llm_connect_timeout_seconds=connect_timeout,
            llm_read_timeout_seconds=read_timeout,
            llm_first_token_timeout_seconds=first_token,
            notification_webhook_url=_env(_k("NOTIFICATION_WEBHOOK_URL"), "").strip(),
            dispatcher_interval_seconds=_env_float(_k("DISPATCHER_INTERVAL_SECONDS"), 15.0),
            dispatcher_retry_delay_seconds=_env_float(_k("DISPATCHER_RETRY_DELAY_SECONDS"), 60.0),
            dispatcher_max_attempts=_env_int(_k("DISPATCHER_MAX_ATTEMPTS"), 3),
            recurrence_run_on_start=_env_bool(_k("RECURRENCE_RUN_ON_START"), False),
            insight_window_days=_env_int(_k("INSIGHT_WINDOW_DAYS"), 28),
            insight_ttl_days=_env_int(_k("INSIGHT_TTL_DAYS"), 30),
            category_delete_policy=_env(_k("CATEGORY_DELETE_POLICY"), "orphan").strip().lower(),
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
            console_user=_env(_k("CONSOLE_USER"), "local").strip() or "local",
            console_email=_first_env(_k("CONSOLE_EMAIL"), default=None),
            console_phone=_first_env(_k("CONSOLE_PHONE"), default=None),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
