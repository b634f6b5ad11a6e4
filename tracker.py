"""
Budget tracker service.

Ties the store-backed managers to the pure aggregation and alerting
code. Every mutation runs the same sequence: validate the input, issue
the write, and only after it succeeds reload the affected slices and
recompute the dashboard. Aggregates are never patched in place, so a
failed write cannot leak into the totals.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional, Tuple

import analytics
from alerting import BudgetNotice, check_after_expense, collect_alerts
from budgeting import BudgetManager
from categories import CategoryManager
from database_ops import DatabaseManager
from domain import BudgetRecord, LinkedEntityType, TransactionType
from family import FamilyManager
from ledger import DEFAULT_RECENT_LIMIT, TransactionManager, build_transaction_values
from utils import month_period

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BudgetDashboard:
    """Everything the budget screen shows for one period, computed in one pass."""

    month: int
    year: int
    totals: analytics.PeriodTotals
    progress: Tuple[analytics.CategoryProgress, ...]
    alerts: Tuple[analytics.CategoryProgress, ...]
    trend: Tuple[analytics.TrendPoint, ...]
    breakdown: Tuple[analytics.BreakdownSlice, ...]
    entity_rollup: Mapping[LinkedEntityType, analytics.EntityRollup]
    family_rollup: Tuple[analytics.MemberRollup, ...]


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a confirmed write plus the dashboard recomputed from a fresh reload."""

    record: Any
    dashboard: BudgetDashboard
    notice: Optional[BudgetNotice] = None


class BudgetTracker:
    """Facade over the managers that keeps reads, writes and recomputation in order."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
        trend_months: int = analytics.TREND_MONTHS,
        uncategorized_label: str = analytics.UNCATEGORIZED_LABEL,
        uncategorized_color: str = analytics.UNCATEGORIZED_COLOR
    ):
        self.db_manager = db_manager
        self.categories = CategoryManager(db_manager)
        self.transactions = TransactionManager(db_manager)
        self.budgets = BudgetManager(db_manager)
        self.family = FamilyManager(db_manager)
        self.recent_limit = recent_limit
        self.trend_months = trend_months
        self.uncategorized_label = uncategorized_label
        self.uncategorized_color = uncategorized_color

    @classmethod
    def from_config(cls, db_manager: DatabaseManager, config: dict) -> "BudgetTracker":
        ledger_cfg = config.get("ledger", {})
        display_cfg = config.get("display", {})
        return cls(
            db_manager,
            recent_limit=ledger_cfg.get("recent_limit", DEFAULT_RECENT_LIMIT),
            trend_months=ledger_cfg.get("trend_months", analytics.TREND_MONTHS),
            uncategorized_label=display_cfg.get("uncategorized_label", analytics.UNCATEGORIZED_LABEL),
            uncategorized_color=display_cfg.get("uncategorized_color", analytics.UNCATEGORIZED_COLOR),
        )

    def dashboard(
        self,
        user_id: str,
        today: Optional[date] = None,
        family_member_id: Optional[int] = None
    ) -> BudgetDashboard:
        """
        Load fresh snapshots and compute every aggregate for today's period.

        Args:
            user_id: Owning user
            today: Reference date (defaults to date.today())
            family_member_id: Restrict the income/expense summary to one member

        Returns:
            BudgetDashboard for the current month
        """
        today = today or date.today()
        month, year = today.month, today.year

        registry = self.categories.list_categories(user_id)
        budget_table = self.budgets.list_for_period(user_id, month, year)
        members = self.family.list_members(user_id)
        recent = self.transactions.load_recent(user_id, self.recent_limit)
        window = self.transactions.load_trend_window(user_id, today, self.trend_months)
        current = window.for_period(month, year)

        progress = analytics.category_progress(current, budget_table, registry, month, year)
        dashboard = BudgetDashboard(
            month=month,
            year=year,
            totals=analytics.period_totals(current, month, year, family_member_id),
            progress=progress,
            alerts=collect_alerts(progress),
            trend=analytics.monthly_trend(window, today, self.trend_months),
            breakdown=analytics.expense_breakdown(
                current, registry, month, year,
                uncategorized_label=self.uncategorized_label,
                uncategorized_color=self.uncategorized_color,
            ),
            entity_rollup=analytics.entity_rollup(recent),
            family_rollup=analytics.family_rollup(recent, members),
        )
        logger.debug(
            "Dashboard for %s (%s-%02d): %s progress rows, %s alerts",
            user_id, year, month, len(dashboard.progress), len(dashboard.alerts)
        )
        return dashboard

    def record_transaction(self, user_id: str, today: Optional[date] = None, **fields: Any) -> MutationResult:
        """
        Add a transaction and warn immediately if it pushes its category past a threshold.

        The notice is computed from the category's spend before the write
        plus the new amount, i.e. the post-write total. It is only issued
        for expenses with a category, dated in the current period, whose
        category has a budget for that period. A missing date defaults to
        ``today`` so the stored row and the notice agree on the period.

        Raises:
            ValidationError: Before any store access, on bad input
            StoreError: If a read or the write fails
        """
        today = today or date.today()
        if fields.get("date") is None:
            fields["date"] = today
        values = build_transaction_values(user_id, **fields)

        prior_spent = None
        limit = None
        category_name = None
        checks_budget = (
            values["type"] is TransactionType.EXPENSE
            and values["category_id"] is not None
            and values["date"].month == today.month
            and values["date"].year == today.year
        )
        if checks_budget:
            budget_table = self.budgets.list_for_period(user_id, today.month, today.year)
            limit = budget_table.limit_for(values["category_id"])
            if limit > 0:
                current = self.transactions.load_window(user_id, *month_period(today.year, today.month))
                prior_spent = analytics.category_spend(current, values["category_id"], today.month, today.year)
                category_name = self.categories.list_categories(user_id).name_for(values["category_id"])

        record = self.transactions.add_transaction(user_id, **fields)

        notice = None
        if prior_spent is not None:
            notice = check_after_expense(
                prior_spent, record.amount, limit,
                category_id=record.category_id,
                category_name=category_name,
            )
        return MutationResult(record=record, dashboard=self.dashboard(user_id, today), notice=notice)

    def edit_transaction(
        self,
        user_id: str,
        transaction_id: int,
        today: Optional[date] = None,
        **fields: Any
    ) -> MutationResult:
        """Replace a transaction's fields, then reload and recompute."""
        if today is not None and fields.get("date") is None:
            fields["date"] = today
        self.transactions.update_transaction(user_id, transaction_id, **fields)
        record = self.transactions.get_transaction(user_id, transaction_id)
        return MutationResult(record=record, dashboard=self.dashboard(user_id, today))

    def remove_transaction(self, user_id: str, transaction_id: int, today: Optional[date] = None) -> MutationResult:
        self.transactions.delete_transaction(user_id, transaction_id)
        return MutationResult(record=None, dashboard=self.dashboard(user_id, today))

    def set_budget(
        self,
        user_id: str,
        category_id: Optional[int],
        amount: Any,
        today: Optional[date] = None
    ) -> MutationResult:
        """Upsert the current period's limit for a category, then reload and recompute."""
        today = today or date.today()
        budget: BudgetRecord = self.budgets.upsert(user_id, category_id, today.month, today.year, amount)
        return MutationResult(record=budget, dashboard=self.dashboard(user_id, today))
