# src/tasklane/tasks/category_store.py

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import StrEnum

from ..core.ports import Clock
from ..datetime_utils import to_iso_utc
from ..errors import ConflictError, NotFoundError, ValidationError
from ..storage import keys
from ..storage.table import ConditionFailedError, ItemTable
from .task_models import Category, Owner
from .validation import require_owner, validate_category_fields

logger = logging.getLogger(__name__)


class CategoryDeletePolicy(StrEnum):
    """
    What happens to tasks that still reference a deleted category.

    orphan: tasks keep the dangling categoryId
    detach: tasks get categoryId = None
    block:  deletion fails with ConflictError while any task references it
    """

    ORPHAN = "orphan"
    DETACH = "detach"
    BLOCK = "block"


class CategoryStore:
    def __init__(
        self,
        table: ItemTable,
        *,
        delete_policy: CategoryDeletePolicy = CategoryDeletePolicy.ORPHAN,
        clock: Clock | None = None,
    ) -> None:
        self._table = table
        self._delete_policy = CategoryDeletePolicy(delete_policy)
        self._clock = clock

    @property
    def delete_policy(self) -> CategoryDeletePolicy:
        return self._delete_policy

    def _now_iso(self) -> str:
        now = self._clock() if self._clock is not None else datetime.now(UTC)
        return to_iso_utc(now)

    def _referencing_tasks(self, owner: Owner, category_id: str) -> list[dict]:
        pk = keys.user_pk(owner.username)
        return [
            item
            for item in self._table.query(pk, begins_with=keys.TASK_PREFIX)
            if item.get("categoryId") == category_id
        ]

    def create_category(self, owner: Owner | None, name: str, color: str) -> Category:
        """Category id is derived from the name; two names that normalize alike conflict."""
        owner = require_owner(owner)
        name, color = validate_category_fields(name, color)

        category = Category(
            category_id=keys.category_id_from_name(name),
            name=name,
            color=color,
            created_at=self._now_iso(),
        )
        try:
            self._table.put_item(category.to_item(owner.username), if_not_exists=True)
        except ConditionFailedError as e:
            logger.info("Duplicate category user=%s id=%s", owner.username, category.category_id)
            raise ConflictError("Category with this name already exists") from e

        logger.info("Category created user=%s id=%s", owner.username, category.category_id)
        return category

    def list_categories(self, owner: Owner | None) -> list[Category]:
        owner = require_owner(owner)
        items = self._table.query(keys.user_pk(owner.username), begins_with=keys.CATEGORY_PREFIX)
        return [Category.from_item(i) for i in items]

    def get_category(self, owner: Owner | None, category_id: str) -> Category:
        owner = require_owner(owner)
        item = self._table.get_item(keys.user_pk(owner.username), keys.category_sk(category_id))
        if item is None:
            raise NotFoundError("Category", category_id)
        return Category.from_item(item)

    def update_category(
        self,
        owner: Owner | None,
        category_id: str,
        *,
        name: str | None = None,
        color: str | None = None,
    ) -> Category:
        """Rename and/or recolor. The id stays what it was at creation, even on rename."""
        owner = require_owner(owner)
        if not category_id:
            raise ValidationError("categoryId is required")

        changes: dict[str, str] = {}
        if name is not None:
            if not isinstance(name, str) or not name.strip():
                raise ValidationError("name must be a non-empty string", details={"field": "name"})
            changes["name"] = name.strip()
        if color is not None:
            if not isinstance(color, str) or not color.strip():
                raise ValidationError("color must be a non-empty string", details={"field": "color"})
            changes["color"] = color.strip()
        if not changes:
            raise ValidationError("Name or color is required")

        changes["updatedAt"] = self._now_iso()
        try:
            item = self._table.update_item(
                keys.user_pk(owner.username), keys.category_sk(category_id), changes
            )
        except ConditionFailedError as e:
            raise NotFoundError("Category", category_id) from e

        logger.info("Category updated user=%s id=%s", owner.username, category_id)
        return Category.from_item(item)

    def delete_category(
        self,
        owner: Owner | None,
        category_id: str,
        *,
        policy: CategoryDeletePolicy | None = None,
    ) -> int:
        """
        Delete a category according to the delete policy.

        Returns how many tasks were detached (always 0 for orphan/block).
        """
        owner = require_owner(owner)
        if not category_id:
            raise ValidationError("categoryId is required")
        policy = CategoryDeletePolicy(policy or self._delete_policy)

        pk = keys.user_pk(owner.username)
        if self._table.get_item(pk, keys.category_sk(category_id)) is None:
            raise NotFoundError("Category", category_id)

        detached = 0
        if policy is not CategoryDeletePolicy.ORPHAN:
            referencing = self._referencing_tasks(owner, category_id)
            if referencing and policy is CategoryDeletePolicy.BLOCK:
                raise ConflictError(
                    "Category is still used by tasks",
                    details={"categoryId": category_id, "taskCount": len(referencing)},
                )
            now = self._now_iso()
            for item in referencing:
                self._table.update_item(pk, item["SK"], {"categoryId": None, "updatedAt": now})
                detached += 1

        self._table.delete_item(pk, keys.category_sk(category_id))
        logger.info(
            "Category deleted user=%s id=%s policy=%s detached=%d",
            owner.username,
            category_id,
            policy.value,
            detached,
        )
        return detached
