"""Shared fixtures: an in-memory entity store and snapshot builders."""

from datetime import date
from decimal import Decimal
from itertools import count

import pytest

from categories import CategoryRegistry
from database_ops import DatabaseManager
from domain import CategoryRecord, TransactionRecord, TransactionType
from ledger import Ledger
from tracker import BudgetTracker

USER = "user-1"
TODAY = date(2024, 6, 15)

_ids = count(1)


@pytest.fixture
def db_manager():
    """Provide a DatabaseManager backed by an in-memory SQLite database."""
    manager = DatabaseManager("sqlite://")
    manager.create_tables()
    try:
        yield manager
    finally:
        manager.close()


@pytest.fixture
def tracker(db_manager):
    return BudgetTracker(db_manager)


def make_tx(amount, type="expense", on=TODAY, category_id=None, **overrides):
    """Build a TransactionRecord without touching the store."""
    return TransactionRecord(
        id=overrides.pop("id", next(_ids)),
        user_id=overrides.pop("user_id", USER),
        amount=Decimal(str(amount)),
        type=TransactionType(type),
        date=on,
        category_id=category_id,
        **overrides
    )


def make_category(category_id, name, is_income=False, color="#22c55e"):
    return CategoryRecord(id=category_id, user_id=USER, name=name, is_income=is_income, color=color)


@pytest.fixture
def registry():
    """Groceries, Rent and Transport (expense) plus Salary (income)."""
    return CategoryRegistry([
        make_category(1, "Groceries"),
        make_category(2, "Rent", color="#ef4444"),
        make_category(3, "Salary", is_income=True),
        make_category(4, "Transport", color="#3b82f6"),
    ])


@pytest.fixture
def empty_ledger():
    return Ledger()
