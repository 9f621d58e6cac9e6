# src/tasklane/storage/rate_limit.py

"""Sliding-window attempt limiter over the item table, for an authentication front end.

Nothing inside this package calls it; the login/signup layer that would is outside the package.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..errors import RateLimitedError
from . import keys
from .table import ItemTable

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """
    Per-user, per-action attempt counter (USER#{username} / RATE_LIMIT#{ACTION}).

    The item keeps the timestamps of recent failed attempts and expires one window after
    the last of them, so an idle user's counter cleans itself up.

    An auth layer calls check() before an attempt, record_failure() after a failed one
    and clear() after a successful one.
    """

    def __init__(
        self,
        table: ItemTable,
        *,
        max_attempts: int = 5,
        window_seconds: float = 15 * 60,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._table = table
        self._max = int(max_attempts)
        self._window = float(window_seconds)
        self._time = time_fn

    def _recent(self, username: str, action: str, now: float) -> list[float]:
        item = self._table.get_item(keys.user_pk(username), keys.rate_limit_sk(action))
        if item is None:
            return []
        return [float(t) for t in item.get("attempts") or [] if float(t) > now - self._window]

    def check(self, username: str, action: str = "login") -> None:
        recent = self._recent(username, action, self._time())
        if len(recent) >= self._max:
            logger.warning("Rate limit exceeded user=%s action=%s attempts=%d", username, action, len(recent))
            minutes = max(1, round(self._window / 60))
            raise RateLimitedError(f"Too many attempts. Please try again in {minutes} minutes.")

    def record_failure(self, username: str, action: str = "login") -> int:
        """Returns the number of failures inside the current window, this one included."""
        now = self._time()
        attempts = [*self._recent(username, action, now), now]
        self._table.put_item(
            {
                "PK": keys.user_pk(username),
                "SK": keys.rate_limit_sk(action),
                "attempts": attempts,
                "expiresAt": int(now + self._window) + 1,
            }
        )
        return len(attempts)

    def clear(self, username: str, action: str = "login") -> None:
        self._table.delete_item(keys.user_pk(username), keys.rate_limit_sk(action))
