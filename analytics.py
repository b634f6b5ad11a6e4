"""
Analytics module for budget aggregation.

This module provides the pure aggregation functions behind the budget
screens: per-category progress against monthly limits, the 12-month
income/expense trend, the current-month expense breakdown, and expense
rollups by linked entity and by family member.

Every function takes immutable snapshots (Ledger, BudgetTable,
CategoryRegistry) and returns new frozen results. Sums are exact
Decimals; rounding is left to the report layer. Dangling references are
ordinary input: an unknown category id is "uncategorized", a category
without a budget has a limit of zero.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

import pandas as pd

from alerting import classify
from budgeting import BudgetTable
from categories import CategoryRegistry
from domain import CategoryRecord, FamilyMemberRecord, LinkedEntityType, TransactionRecord
from ledger import Ledger
from utils import ZERO, shift_month

logger = logging.getLogger(__name__)

UNCATEGORIZED_LABEL = "Uncategorized"
UNCATEGORIZED_COLOR = "#9ca3af"
TREND_MONTHS = 12

_HUNDRED = Decimal("100")


def _total(transactions: Iterable[TransactionRecord]) -> Decimal:
    return sum((t.amount for t in transactions), ZERO)


@dataclass(frozen=True)
class CategoryProgress:
    """
    Spend against limit for one expense category in one period.

    Attributes:
        category: The expense category
        spent: Sum of the period's expenses in the category
        limit: Budget amount, 0 when no budget is set
        percentage: min(100, spent / limit * 100), or 0 without a limit
        over_budget: spent > limit with a limit set
        near_limit: At least 80% of the limit used but not over it
    """
    category: CategoryRecord
    spent: Decimal
    limit: Decimal
    percentage: Decimal
    over_budget: bool
    near_limit: bool

    @property
    def name(self) -> str:
        return self.category.name

    @property
    def remaining(self) -> Decimal:
        return self.limit - self.spent


@dataclass(frozen=True)
class TrendPoint:
    label: str
    year: int
    month: int
    income: Decimal
    expense: Decimal
    balance: Decimal


@dataclass(frozen=True)
class BreakdownSlice:
    name: str
    value: Decimal
    color: str
    category_id: Optional[int] = None


@dataclass(frozen=True)
class EntityRollup:
    count: int = 0
    total: Decimal = ZERO


@dataclass(frozen=True)
class MemberRollup:
    member: FamilyMemberRecord
    total: Decimal
    count: int


@dataclass(frozen=True)
class PeriodTotals:
    income: Decimal
    expense: Decimal

    @property
    def balance(self) -> Decimal:
        return self.income - self.expense


def category_spend(ledger: Ledger, category_id: Optional[int], month: int, year: int) -> Decimal:
    """Sum of expenses filed under ``category_id`` during (month, year)."""
    return _total(
        t for t in ledger
        if t.is_expense and t.category_id == category_id and t.in_period(month, year)
    )


def category_progress(
    ledger: Ledger,
    budgets: BudgetTable,
    registry: CategoryRegistry,
    month: int,
    year: int
) -> Tuple[CategoryProgress, ...]:
    """
    Compute budget progress for every relevant expense category.

    A category is relevant when it has a limit or any spend in the
    period; categories with neither are left out.

    Args:
        ledger: Loaded slice, must cover the period
        budgets: Budget table for the period
        registry: The user's categories
        month: Period month
        year: Period year

    Returns:
        Tuple of CategoryProgress in registry (name) order
    """
    spent_by_category: Dict[int, Decimal] = {}
    for t in ledger:
        if t.is_expense and t.category_id is not None and t.in_period(month, year):
            spent_by_category[t.category_id] = spent_by_category.get(t.category_id, ZERO) + t.amount

    progress = []
    for category in registry.expense_categories():
        spent = spent_by_category.get(category.id, ZERO)
        limit = budgets.limit_for(category.id)
        if limit <= ZERO and spent <= ZERO:
            continue
        percentage = min(_HUNDRED, spent / limit * _HUNDRED) if limit > ZERO else ZERO
        state = classify(spent, limit)
        progress.append(CategoryProgress(
            category=category,
            spent=spent,
            limit=limit,
            percentage=percentage,
            over_budget=state.over_budget,
            near_limit=state.near_limit,
        ))

    logger.debug("Computed budget progress for %s categories (%s-%02d)", len(progress), year, month)
    return tuple(progress)


def monthly_trend(ledger: Ledger, today: Optional[date] = None, months: int = TREND_MONTHS) -> Tuple[TrendPoint, ...]:
    """
    Income, expense and balance per calendar month, oldest first.

    Always returns ``months`` entries ending with today's month; months
    without transactions are zero-filled.
    """
    today = today or date.today()
    buckets: Dict[Tuple[int, int], Dict[str, Decimal]] = {}
    for offset in range(months - 1, -1, -1):
        buckets[shift_month(today.year, today.month, -offset)] = {"income": ZERO, "expense": ZERO}

    for t in ledger:
        bucket = buckets.get((t.date.year, t.date.month))
        if bucket is None:
            continue
        bucket["income" if t.is_income else "expense"] += t.amount

    points = tuple(
        TrendPoint(
            label=calendar.month_abbr[month],
            year=year,
            month=month,
            income=totals["income"],
            expense=totals["expense"],
            balance=totals["income"] - totals["expense"],
        )
        for (year, month), totals in buckets.items()
    )
    return points


def expense_breakdown(
    ledger: Ledger,
    registry: CategoryRegistry,
    month: int,
    year: int,
    uncategorized_label: str = UNCATEGORIZED_LABEL,
    uncategorized_color: str = UNCATEGORIZED_COLOR
) -> Tuple[BreakdownSlice, ...]:
    """
    Distribution of the period's expenses across categories.

    Categories with spend are sorted by value, largest first. Expenses
    with no category, or one that is not a known expense category, are
    appended as a single uncategorized slice, so the slice values always
    add up to the period's total expense.
    """
    expense_ids = {c.id for c in registry.expense_categories()}
    per_category: Dict[int, Decimal] = {}
    uncategorized = ZERO
    for t in ledger:
        if not (t.is_expense and t.in_period(month, year)):
            continue
        if t.category_id in expense_ids:
            per_category[t.category_id] = per_category.get(t.category_id, ZERO) + t.amount
        else:
            uncategorized += t.amount

    slices = [
        BreakdownSlice(name=c.name, value=per_category[c.id], color=c.color, category_id=c.id)
        for c in registry.expense_categories()
        if per_category.get(c.id, ZERO) > ZERO
    ]
    slices.sort(key=lambda s: s.value, reverse=True)

    if uncategorized > ZERO:
        slices.append(BreakdownSlice(name=uncategorized_label, value=uncategorized, color=uncategorized_color))
    return tuple(slices)


def entity_rollup(ledger: Ledger) -> Mapping[LinkedEntityType, EntityRollup]:
    """
    Count and total of expenses linked to each entity type.

    Income is never counted, even when linked. All five types are
    present in the result.
    """
    counts = {entity_type: 0 for entity_type in LinkedEntityType}
    totals = {entity_type: ZERO for entity_type in LinkedEntityType}
    for t in ledger:
        if t.is_expense and t.linked_entity_type is not None:
            counts[t.linked_entity_type] += 1
            totals[t.linked_entity_type] += t.amount
    return MappingProxyType({
        entity_type: EntityRollup(count=counts[entity_type], total=totals[entity_type])
        for entity_type in LinkedEntityType
    })


def family_rollup(ledger: Ledger, members: Sequence[FamilyMemberRecord]) -> Tuple[MemberRollup, ...]:
    """Expense total and count per family member, biggest spender first; idle members are omitted."""
    rollups = []
    for member in members:
        member_expenses = [t for t in ledger if t.is_expense and t.family_member_id == member.id]
        total = _total(member_expenses)
        if total > ZERO:
            rollups.append(MemberRollup(member=member, total=total, count=len(member_expenses)))
    rollups.sort(key=lambda r: r.total, reverse=True)
    return tuple(rollups)


def period_totals(
    ledger: Ledger,
    month: int,
    year: int,
    family_member_id: Optional[int] = None
) -> PeriodTotals:
    """Income and expense totals for a period, optionally for one family member."""
    selected = [
        t for t in ledger
        if t.in_period(month, year) and (family_member_id is None or t.family_member_id == family_member_id)
    ]
    return PeriodTotals(
        income=_total(t for t in selected if t.is_income),
        expense=_total(t for t in selected if t.is_expense),
    )


def filter_ledger(
    ledger: Ledger,
    family_member_id: Optional[int] = None,
    entity_type: Optional[LinkedEntityType] = None
) -> Ledger:
    """Narrow a ledger to one family member and/or one linked entity type."""
    return Ledger(
        t for t in ledger
        if (family_member_id is None or t.family_member_id == family_member_id)
        and (entity_type is None or t.linked_entity_type is entity_type)
    )


def trend_frame(points: Sequence[TrendPoint]) -> pd.DataFrame:
    """
    Convert trend points into a DataFrame, preserving their order.

    Returns:
        DataFrame with columns: period, month, income, expense, balance
    """
    if not points:
        return pd.DataFrame(columns=["period", "month", "income", "expense", "balance"])
    return pd.DataFrame([
        {
            "period": f"{p.year}-{p.month:02d}",
            "month": p.label,
            "income": p.income,
            "expense": p.expense,
            "balance": p.balance,
        }
        for p in points
    ])


def breakdown_frame(slices: Sequence[BreakdownSlice]) -> pd.DataFrame:
    """
    Convert breakdown slices into a DataFrame with each slice's share.

    Returns:
        DataFrame with columns: category, total, percentage
    """
    if not slices:
        return pd.DataFrame(columns=["category", "total", "percentage"])
    grand_total = sum((s.value for s in slices), ZERO)
    return pd.DataFrame([
        {
            "category": s.name,
            "total": s.value,
            "percentage": s.value / grand_total * _HUNDRED,
        }
        for s in slices
    ])
