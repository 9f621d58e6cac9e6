# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Keep them in .env (local, gitignored).
"""

ENV_VARS = {
    # App / logging
    "TASKLANE_APP_NAME": "App display name (default: tasklane).",
    "TASKLANE_LOG_LEVEL": "Logging level (default: INFO).",
    "TASKLANE_TIME_ZONE": "IANA zone used for reminder fire times and recurrence (default: UTC).",
    # Paths (gitignored)
    "TASKLANE_DATA_DIR": "Local data directory (default: .local/tasklane).",
    "TASKLANE_TABLE_DB_PATH": "Item table SQLite path (default: <data_dir>/table.sqlite3).",
    "TASKLANE_SCHEDULES_DB_PATH": "Scheduled jobs SQLite path (default: <data_dir>/schedules.sqlite3).",
    # LLM / OpenRouter
    "TASKLANE_OFFLINE_MODE": "Use the offline insight writer (default: true when no API key is set).",
    "TASKLANE_OPENROUTER_API_KEY": "OpenRouter API key (falls back to OPENROUTER_API_KEY).",
    "TASKLANE_OPENROUTER_BASE_URL": "OpenRouter base URL (default: https://openrouter.ai/api/v1).",
    "TASKLANE_LLM_MODELS": "Comma/space separated list of models to try in order.",
    "TASKLANE_HTTP_REFERER": "Optional OpenRouter metadata header.",
    "TASKLANE_APP_TITLE": "Optional OpenRouter metadata header title.",
    "TASKLANE_LLM_CONNECT_TIMEOUT_SECONDS": "Connect timeout (default: 5).",
    "TASKLANE_LLM_READ_TIMEOUT_SECONDS": "Read timeout, never below the first-token timeout (default: 45).",
    "TASKLANE_LLM_FIRST_TOKEN_TIMEOUT_SECONDS": "Seconds to wait for the first token (default: 30).",
    # Reminders
    "TASKLANE_NOTIFICATION_WEBHOOK_URL": "POST notifications here; empty => log only.",
    "TASKLANE_DISPATCHER_INTERVAL_SECONDS": "Dispatcher poll interval (default: 15).",
    "TASKLANE_DISPATCHER_RETRY_DELAY_SECONDS": "Delay before retrying a failed job (default: 60).",
    "TASKLANE_DISPATCHER_MAX_ATTEMPTS": "Attempts before a job is dropped (default: 3).",
    # Recurrence / insights / categories
    "TASKLANE_RECURRENCE_RUN_ON_START": "Expand recurring tasks once at startup (default: false).",
    "TASKLANE_INSIGHT_WINDOW_DAYS": "Days of tasks an insight covers (default: 28).",
    "TASKLANE_INSIGHT_TTL_DAYS": "Days an insight is kept (default: 30).",
    "TASKLANE_CATEGORY_DELETE_POLICY": "orphan | detach | block (default: orphan).",
    # Operator console
    "TASKLANE_CONSOLE_ENABLED": "Enable the console (true/false).",
    "TASKLANE_CONSOLE_USER": "Username the console acts as (default: local).",
    "TASKLANE_CONSOLE_EMAIL": "Email stored on the console user's profile.",
    "TASKLANE_CONSOLE_PHONE": "Phone stored on the console user's profile.",
}
