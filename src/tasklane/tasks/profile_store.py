# src/tasklane/tasks/profile_store.py

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from ..core.ports import Clock
from ..datetime_utils import to_iso_utc
from ..errors import ValidationError
from ..storage import keys
from ..storage.table import ItemTable
from .task_models import Owner

logger = logging.getLogger(__name__)


class ProfileStore:
    """
    User profile items (USER#{username} / PROFILE).

    Holds the contact data that system jobs need when no request identity is around,
    e.g. reminders on tasks created by the recurrence expander.
    """

    def __init__(self, table: ItemTable, *, clock: Clock | None = None) -> None:
        self._table = table
        self._clock = clock

    def _now_iso(self) -> str:
        now = self._clock() if self._clock is not None else datetime.now(UTC)
        return to_iso_utc(now)

    def put_profile(
        self,
        username: str,
        *,
        email: str | None = None,
        phone: str | None = None,
        preferences: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not username or not username.strip():
            raise ValidationError("username is required")

        existing = self.get_profile(username) or {}
        item: dict[str, Any] = {
            "PK": keys.user_pk(username),
            "SK": keys.profile_sk(),
            "username": username,
            "email": email if email is not None else existing.get("email"),
            "phone": phone if phone is not None else existing.get("phone"),
            "preferences": preferences if preferences is not None else existing.get("preferences", {}),
            "createdAt": existing.get("createdAt") or self._now_iso(),
            "lastLogin": self._now_iso(),
        }
        self._table.put_item(item)
        logger.info("Profile saved user=%s", username)
        return keys.strip_keys(item)

    def get_profile(self, username: str) -> dict[str, Any] | None:
        item = self._table.get_item(keys.user_pk(username), keys.profile_sk())
        return keys.strip_keys(item) if item else None

    def owner_for(self, username: str) -> Owner:
        """Owner with whatever contact claims the profile has; bare username if none."""
        profile = self.get_profile(username) or {}
        return Owner(username=username, email=profile.get("email"), phone=profile.get("phone"))
