# src/tasklane/reminders/backend.py

from __future__ import annotations

"""
Local scheduling backend.

A SQLite table of one-shot jobs plus a small polling loop that:
- fetches due jobs,
- claims them (the claim removes the job, so a fired trigger is no longer live),
- hands the payload to the dispatcher registered for the job's target,
- puts the job back with a backoff when dispatch raises, unless the handle was
  cancelled while the job was in flight.
"""

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

RETIRED_TTL_SECONDS = 86400.0

JobHandler = Callable[["ScheduledJob"], Awaitable[None]]


@dataclass(slots=True, frozen=True)
class ScheduledJob:
    handle: str
    fire_at: float
    target: str
    payload: dict[str, Any]
    attempts: int
    created_at: float


class LocalScheduleBackend:
    """
    SQLite-backed SchedulingBackend.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "schedules.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("LocalScheduleBackend ready db=%s pending=%s", self._db_path, self.count_jobs())

    def close(self) -> None:
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schedules (
                    handle TEXT PRIMARY KEY,
                    fire_at REAL NOT NULL,
                    target TEXT NOT NULL,
                    payload TEXT NOT NULL DEFAULT '{}',
                    attempts INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_schedules_fire_at ON schedules(fire_at)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS retired (
                    handle TEXT PRIMARY KEY,
                    retired_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> ScheduledJob:
        try:
            payload = json.loads(row["payload"] or "{}")
        except json.JSONDecodeError:
            logger.warning("Job %s has unreadable payload", row["handle"])
            payload = {}
        return ScheduledJob(
            handle=str(row["handle"]),
            fire_at=float(row["fire_at"]),
            target=str(row["target"]),
            payload=payload if isinstance(payload, dict) else {},
            attempts=int(row["attempts"] or 0),
            created_at=float(row["created_at"] or 0.0),
        )

    # ---- SchedulingBackend ----

    def schedule(self, *, fire_at: datetime, target: str, payload: dict[str, Any]) -> str:
        handle = f"{target}:{uuid.uuid4().hex}"
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO schedules(handle, fire_at, target, payload, attempts, created_at)
                VALUES (?, ?, ?, ?, 0, ?)
                """,
                (handle, fire_at.timestamp(), target, json.dumps(payload, ensure_ascii=False), time.time()),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Scheduled handle=%s target=%s fire_at=%s", handle, target, fire_at.isoformat())
        return handle

    def cancel(self, handle: str) -> None:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM schedules WHERE handle = ?", (handle,))
            if not cur.rowcount:
                # a claimed job must not come back through release()
                now = time.time()
                conn.execute("DELETE FROM retired WHERE retired_at < ?", (now - RETIRED_TTL_SECONDS,))
                conn.execute("INSERT OR REPLACE INTO retired(handle, retired_at) VALUES (?, ?)", (handle, now))
            conn.commit()
        finally:
            conn.close()
        if cur.rowcount:
            logger.debug("Cancelled handle=%s", handle)
        else:
            logger.info("Handle %s not found, may have fired or been removed already", handle)

    def exists(self, handle: str) -> bool:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT 1 FROM schedules WHERE handle = ?", (handle,)).fetchone()
            return row is not None
        finally:
            conn.close()

    # ---- dispatcher API ----

    def count_jobs(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM schedules").fetchone()
            return int(n)
        finally:
            conn.close()

    def get_job(self, handle: str) -> ScheduledJob | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM schedules WHERE handle = ?", (handle,)).fetchone()
            return self._row_to_job(row) if row else None
        finally:
            conn.close()

    def due(self, *, now_ts: float, limit: int = 32) -> list[ScheduledJob]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM schedules WHERE fire_at <= ? ORDER BY fire_at ASC LIMIT ?",
                (float(now_ts), int(limit)),
            ).fetchall()
            return [self._row_to_job(r) for r in rows]
        finally:
            conn.close()

    def claim(self, handle: str) -> bool:
        """Remove a due job. True only for the caller that actually removed it."""
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM schedules WHERE handle = ?", (handle,))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def release(self, job: ScheduledJob, *, retry_at: float) -> bool:
        """
        Put a claimed job back under the same handle, one attempt later.

        Returns False (and drops the job) when the handle was cancelled after the claim.
        """
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM retired WHERE handle = ?", (job.handle,))
            if cur.rowcount:
                conn.commit()
                logger.info("Handle %s was cancelled in flight; not releasing", job.handle)
                return False
            conn.execute(
                """
                INSERT OR REPLACE INTO schedules(handle, fire_at, target, payload, attempts, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    job.handle,
                    float(retry_at),
                    job.target,
                    json.dumps(job.payload, ensure_ascii=False),
                    job.attempts + 1,
                    job.created_at,
                ),
            )
            conn.commit()
            return True
        finally:
            conn.close()


async def run_reminder_dispatcher(
        backend: LocalScheduleBackend,
        handlers: Mapping[str, JobHandler],
        *,
        interval_seconds: float = 15.0,
        retry_delay_seconds: float = 60.0,
        max_attempts: int = 3,
        batch_limit: int = 32,
) -> None:
    """
    Simple polling dispatcher.

    Every interval_seconds:
    - fetch jobs with fire_at <= now
    - claim the job (removes it) to avoid duplicate dispatch
    - await handlers[job.target](job)
      On failure:
        - put the job back with fire_at = now + retry_delay_seconds
        - give up after max_attempts

    To stop the dispatcher, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))
    retry_s = max(0.01, float(retry_delay_seconds))

    while True:
        try:
            jobs = backend.due(now_ts=time.time(), limit=int(batch_limit))
        except Exception:
            logger.exception("due() failed")
            jobs = []

        for job in jobs:
            try:
                claimed = backend.claim(job.handle)
            except Exception:
                logger.exception("claim failed handle=%s", job.handle)
                continue

            if not claimed:
                continue

            handler = handlers.get(job.target)
            if handler is None:
                logger.warning("No handler for target=%s; dropping handle=%s", job.target, job.handle)
                continue

            try:
                await handler(job)
                logger.info("Job %s dispatched target=%s", job.handle, job.target)
            except Exception:
                logger.exception("dispatch failed handle=%s attempt=%s", job.handle, job.attempts + 1)
                if job.attempts + 1 >= max_attempts:
                    logger.error("Giving up on handle=%s after %s attempts", job.handle, job.attempts + 1)
                    continue
                try:
                    backend.release(job, retry_at=time.time() + retry_s)
                except Exception:
                    logger.exception("release(backoff) failed handle=%s", job.handle)

        await asyncio.sleep(sleep_s)
