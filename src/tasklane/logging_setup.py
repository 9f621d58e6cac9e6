# src/tasklane/logging_setup.py

from __future__ import annotations

import logging
import re
import sys
from pathlib import Path

_JWT_RE = re.compile(r"\beyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\b")
_BEARER_RE = re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE)
_EMAIL_RE = re.compile(r"([a-zA-Z0-9._%+-]+)@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")
_PHONE_RE = re.compile(r"(?<![\w.])(?:\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}(?!\w)")


def _mask_email(m: re.Match[str]) -> str:
    local, domain = m.group(1), m.group(2)
    masked = local[0] + "*" * (len(local) - 2) + local[-1] if len(local) > 2 else "***"
    return f"{masked}@{domain}"


def redact(text: str) -> str:
    """Mask tokens and contact data; the email domain is kept for debugging."""
    text = _JWT_RE.sub("[REDACTED_JWT]", text)
    text = _BEARER_RE.sub("Bearer [REDACTED_TOKEN]", text)
    text = _EMAIL_RE.sub(_mask_email, text)
    return _PHONE_RE.sub("[REDACTED_PHONE]", text)


class RedactingFilter(logging.Filter):
    """
    Scrub log records before any handler formats them.

    Reminder payloads carry recipient emails and phone numbers; they must not reach
    the log files in clear text.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        clean = redact(msg)
        if clean != msg:
            record.msg = clean
            record.args = None
        return True


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable:
    - allow tasklane logs
    - keep the polling dispatcher quiet unless WARNING+
    - suppress third-party noise (httpx, openai) unless ERROR+
    - suppress Python warnings (captured as 'py.warnings') unless ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("tasklane."):
            if name == "tasklane.reminders.backend":
                return record.levelno >= logging.WARNING
            return True

        if name == "py.warnings":
            return record.levelno >= logging.ERROR

        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/tasklane",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Configure logging with:
    - Console handler: readable + filtered
    - File handler: full logs for debugging
    Both handlers redact contact data and tokens.

    Call this ONCE, very early (before first logger.info).
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "tasklane.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    redactor = RedactingFilter()

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(redactor)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    fh.addFilter(redactor)
    root.addHandler(fh)

    logging.captureWarnings(True)
