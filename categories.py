"""
Category registry for the budget tracker.

CategoryManager talks to the entity store; CategoryRegistry is the
immutable, in-memory view the aggregation code works from. A category id
that the registry does not know about is treated as "uncategorized" by
every consumer.
"""

import logging
from typing import Dict, Optional, Sequence, Tuple

from database_ops import Category, DatabaseManager
from domain import DEFAULT_CATEGORY_COLOR, DEFAULT_CATEGORY_ICON, CategoryRecord
from exceptions import ValidationError

logger = logging.getLogger(__name__)


class CategoryRegistry:
    """Read-only view of one user's categories, in display (name) order."""

    def __init__(self, categories: Sequence[CategoryRecord] = ()):
        self._categories: Tuple[CategoryRecord, ...] = tuple(categories)
        self._by_id: Dict[int, CategoryRecord] = {c.id: c for c in self._categories}

    def __iter__(self):
        return iter(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._by_id

    def all(self) -> Tuple[CategoryRecord, ...]:
        return self._categories

    def get(self, category_id: Optional[int]) -> Optional[CategoryRecord]:
        """Return the category, or None for a null or dangling id."""
        if category_id is None:
            return None
        return self._by_id.get(category_id)

    def expense_categories(self) -> Tuple[CategoryRecord, ...]:
        return tuple(c for c in self._categories if not c.is_income)

    def income_categories(self) -> Tuple[CategoryRecord, ...]:
        return tuple(c for c in self._categories if c.is_income)

    def name_for(self, category_id: Optional[int], default: str = "Uncategorized") -> str:
        category = self.get(category_id)
        return category.name if category else default


class CategoryManager:
    """Store-backed operations on budget categories."""

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize the category manager.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db_manager = db_manager

    def list_categories(self, user_id: str) -> CategoryRegistry:
        """
        Load every category owned by ``user_id``.

        Args:
            user_id: Owning user

        Returns:
            CategoryRegistry ordered by name
        """
        rows = self.db_manager.select(Category, user_id, order_by="name")
        registry = CategoryRegistry(CategoryRecord.from_row(row) for row in rows)
        logger.debug("Loaded %s categories for user %s", len(registry), user_id)
        return registry

    def create_category(
        self,
        user_id: str,
        name: str,
        is_income: bool = False,
        color: Optional[str] = None,
        icon: Optional[str] = None
    ) -> CategoryRecord:
        """
        Create a category.

        Args:
            user_id: Owning user
            name: Display name (whitespace is stripped)
            is_income: True for an income category; fixed after creation
            color: Display color, opaque to the engine
            icon: Display icon name, opaque to the engine

        Returns:
            The stored category

        Raises:
            ValidationError: If the name is empty
            StoreError: If the insert fails
        """
        normalized = (name or "").strip()
        if not normalized:
            raise ValidationError("Category name is required", details={"field": "name"})

        row = self.db_manager.insert(Category, {
            "user_id": user_id,
            "name": normalized,
            "is_income": bool(is_income),
            "color": color or DEFAULT_CATEGORY_COLOR,
            "icon": icon or DEFAULT_CATEGORY_ICON,
        })
        logger.info("Created %s category '%s'", "income" if is_income else "expense", normalized)
        return CategoryRecord.from_row(row)

    def delete_category(self, user_id: str, category_id: int) -> None:
        """
        Delete a category. Transactions and budgets that reference it are kept.

        Raises:
            StoreError: If the category does not exist or the delete fails
        """
        self.db_manager.delete(Category, user_id, category_id)
        logger.info("Deleted category %s; referencing transactions become uncategorized", category_id)
