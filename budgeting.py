"""
Budgeting module for per-category monthly spending limits.

A budget row caps spending in one expense category for one (month, year)
period. BudgetManager reads and writes those rows; BudgetTable is the
immutable per-period view the aggregation engine consumes.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Tuple

from database_ops import Budget, Category, DatabaseManager
from domain import BudgetRecord
from exceptions import StoreError, ValidationError
from utils import ZERO, parse_amount, validate_period

# Configure logging
logger = logging.getLogger(__name__)


class BudgetTable:
    """
    Budgets of a single period keyed by category id.

    If the store ever returns two rows for one category, the most
    recently created (highest id) wins.
    """

    def __init__(self, budgets: Iterable[BudgetRecord] = ()):
        ordered = sorted(budgets, key=lambda b: b.id)
        self._budgets: Tuple[BudgetRecord, ...] = tuple(ordered)
        self._by_category: Dict[int, BudgetRecord] = {b.category_id: b for b in ordered}

    def __iter__(self):
        return iter(self._by_category.values())

    def __len__(self) -> int:
        return len(self._by_category)

    def get(self, category_id: Optional[int]) -> Optional[BudgetRecord]:
        if category_id is None:
            return None
        return self._by_category.get(category_id)

    def limit_for(self, category_id: Optional[int]) -> Decimal:
        """Spending limit for the category, or 0 when no budget is set."""
        budget = self.get(category_id)
        return budget.amount if budget else ZERO

    def total_limit(self) -> Decimal:
        return sum((b.amount for b in self._by_category.values()), ZERO)


class BudgetManager:
    """
    Manages monthly category budgets.

    Provides period listing and the upsert-by-lookup used by the "set
    budget" action.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize the budget manager.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db_manager = db_manager
        logger.info("Budget manager initialized")

    def list_for_period(self, user_id: str, month: int, year: int) -> BudgetTable:
        """
        Load every budget for the (month, year) period.

        Args:
            user_id: Owning user
            month: Month number, 1-12
            year: Four digit year

        Returns:
            BudgetTable for the period
        """
        validate_period(month, year)
        rows = self.db_manager.select(Budget, user_id, filters={"month": month, "year": year}, order_by="id")
        return BudgetTable(BudgetRecord.from_row(row) for row in rows)

    def _find(self, user_id: str, category_id: int, month: int, year: int) -> Optional[Any]:
        rows = self.db_manager.select(
            Budget,
            user_id,
            filters={"category_id": category_id, "month": month, "year": year},
            order_by="id",
            order_desc=True,
            limit=1
        )
        return rows[0] if rows else None

    def upsert(
        self,
        user_id: str,
        category_id: Optional[int],
        month: int,
        year: int,
        amount: Any
    ) -> BudgetRecord:
        """
        Create or update the budget for a category and period.

        Looks up the existing row first and updates it in place (same id);
        inserts only when none exists. The store's unique constraint on
        (user_id, category_id, month, year) catches a concurrent insert
        that slipped in between lookup and write; the losing call then
        updates the winner's row instead of adding a second one.

        Args:
            user_id: Owning user
            category_id: Expense category the limit applies to
            month: Month number, 1-12
            year: Four digit year
            amount: Spending limit

        Returns:
            The budget as stored

        Raises:
            ValidationError: If the amount is malformed, or the category is
                missing, unknown or an income category
            StoreError: If the write fails
        """
        if not category_id:
            raise ValidationError("Category is required for a budget", details={"field": "category_id"})
        limit = parse_amount(amount)
        validate_period(month, year)

        category = self.db_manager.get(Category, user_id, category_id)
        if category is None:
            raise ValidationError("Category not found", details={"category_id": category_id})
        if category.is_income:
            raise ValidationError(
                f"Budgets apply to expense categories only; '{category.name}' is an income category",
                details={"category_id": category_id}
            )

        existing = self._find(user_id, category_id, month, year)
        if existing is None:
            logger.info("Creating budget for category %s (%s-%02d): %s", category_id, year, month, limit)
            try:
                row = self.db_manager.insert(Budget, {
                    "user_id": user_id,
                    "category_id": category_id,
                    "amount": limit,
                    "month": month,
                    "year": year,
                })
                return BudgetRecord.from_row(row)
            except StoreError:
                existing = self._find(user_id, category_id, month, year)
                if existing is None:
                    raise
                logger.warning(
                    "Budget for category %s (%s-%02d) was created concurrently; updating row %s",
                    category_id, year, month, existing.id
                )

        logger.info("Updating budget %s for category %s (%s-%02d): %s", existing.id, category_id, year, month, limit)
        self.db_manager.update(Budget, user_id, existing.id, {"amount": limit})
        return BudgetRecord(
            id=existing.id,
            user_id=user_id,
            category_id=category_id,
            amount=limit,
            month=month,
            year=year,
        )

    def delete_budget(self, user_id: str, budget_id: int) -> None:
        """Remove a budget; the category then has no limit for that period."""
        self.db_manager.delete(Budget, user_id, budget_id)
        logger.info("Deleted budget %s", budget_id)
