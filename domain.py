"""
Immutable snapshot types consumed by the aggregation engine.

Store rows are converted into these frozen dataclasses once, at load
time. Optional references are explicit ``Optional`` fields, so every
consumer has to handle "no category" or "no family member" as an
ordinary case rather than probing attributes at runtime.
"""

import enum
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional


class TransactionType(enum.Enum):
    """Direction of cash flow. Amounts are always positive."""
    INCOME = "income"
    EXPENSE = "expense"


class LinkedEntityType(enum.Enum):
    """Productivity entities a transaction can be linked to."""
    GOAL = "goal"
    TASK = "task"
    PROJECT = "project"
    NOTE = "note"
    HABIT = "habit"


INCOME_SOURCES = ("salary", "freelance", "business", "investment", "rental", "gift", "other")
DEFAULT_ACCOUNT = "cash"
DEFAULT_CATEGORY_COLOR = "#6b7280"
DEFAULT_CATEGORY_ICON = "Wallet"


def _as_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


@dataclass(frozen=True)
class CategoryRecord:
    id: int
    user_id: str
    name: str
    is_income: bool
    color: str = DEFAULT_CATEGORY_COLOR
    icon: str = DEFAULT_CATEGORY_ICON

    @classmethod
    def from_row(cls, row: Any) -> "CategoryRecord":
        return cls(
            id=row.id,
            user_id=row.user_id,
            name=row.name,
            is_income=bool(row.is_income),
            color=row.color or DEFAULT_CATEGORY_COLOR,
            icon=row.icon or DEFAULT_CATEGORY_ICON,
        )


@dataclass(frozen=True)
class FamilyMemberRecord:
    id: int
    user_id: str
    name: str
    relationship: str = ""

    @classmethod
    def from_row(cls, row: Any) -> "FamilyMemberRecord":
        return cls(id=row.id, user_id=row.user_id, name=row.name, relationship=row.relationship or "")


@dataclass(frozen=True)
class BudgetRecord:
    """Spending limit for one expense category in one (month, year) period."""

    id: int
    user_id: str
    category_id: int
    amount: Decimal
    month: int
    year: int

    @classmethod
    def from_row(cls, row: Any) -> "BudgetRecord":
        return cls(
            id=row.id,
            user_id=row.user_id,
            category_id=row.category_id,
            amount=_as_decimal(row.amount),
            month=row.month,
            year=row.year,
        )


@dataclass(frozen=True)
class TransactionRecord:
    """
    One ledger entry.

    ``amount`` is always positive; ``type`` carries the sign of the cash
    flow. ``category_id`` may point at a category that no longer exists.
    """

    id: int
    user_id: str
    amount: Decimal
    type: TransactionType
    date: date
    category_id: Optional[int] = None
    family_member_id: Optional[int] = None
    merchant: Optional[str] = None
    account: str = DEFAULT_ACCOUNT
    linked_entity_type: Optional[LinkedEntityType] = None
    linked_entity_id: Optional[str] = None

    @property
    def is_expense(self) -> bool:
        return self.type is TransactionType.EXPENSE

    @property
    def is_income(self) -> bool:
        return self.type is TransactionType.INCOME

    def in_period(self, month: int, year: int) -> bool:
        return self.date.month == month and self.date.year == year

    @classmethod
    def from_row(cls, row: Any) -> "TransactionRecord":
        return cls(
            id=row.id,
            user_id=row.user_id,
            amount=_as_decimal(row.amount),
            type=TransactionType(row.type) if not isinstance(row.type, TransactionType) else row.type,
            date=row.date,
            category_id=row.category_id,
            family_member_id=row.family_member_id,
            merchant=row.merchant,
            account=row.account or DEFAULT_ACCOUNT,
            linked_entity_type=(
                LinkedEntityType(row.linked_entity_type)
                if row.linked_entity_type is not None and not isinstance(row.linked_entity_type, LinkedEntityType)
                else row.linked_entity_type
            ),
            linked_entity_id=row.linked_entity_id,
        )
