"""
Unit tests for the aggregation engine.

All inputs are in-memory snapshots; nothing here touches the store.
"""

from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from analytics import (
    UNCATEGORIZED_COLOR,
    UNCATEGORIZED_LABEL,
    BreakdownSlice,
    breakdown_frame,
    category_progress,
    category_spend,
    entity_rollup,
    expense_breakdown,
    family_rollup,
    filter_ledger,
    monthly_trend,
    period_totals,
    trend_frame,
)
from budgeting import BudgetTable
from categories import CategoryRegistry
from conftest import TODAY, USER, make_category, make_tx
from domain import BudgetRecord, FamilyMemberRecord, LinkedEntityType
from ledger import Ledger


def budget(category_id, amount, month=TODAY.month, year=TODAY.year, budget_id=None):
    return BudgetRecord(
        id=budget_id or category_id * 100,
        user_id=USER,
        category_id=category_id,
        amount=Decimal(str(amount)),
        month=month,
        year=year,
    )


class TestCategoryProgress:
    """Tests for category_progress."""

    def test_percentage_and_flags(self, registry):
        ledger = Ledger([
            make_tx("3000", category_id=1),
            make_tx("1200", category_id=1),
            make_tx("500", category_id=2),
        ])
        budgets = BudgetTable([budget(1, "5000"), budget(2, "400")])

        progress = category_progress(ledger, budgets, registry, TODAY.month, TODAY.year)

        by_name = {p.name: p for p in progress}
        groceries = by_name["Groceries"]
        assert groceries.spent == Decimal("4200")
        assert groceries.limit == Decimal("5000")
        assert groceries.percentage == Decimal("84")
        assert groceries.near_limit is True
        assert groceries.over_budget is False

        rent = by_name["Rent"]
        assert rent.percentage == Decimal("100")
        assert rent.over_budget is True
        assert rent.near_limit is False
        assert rent.remaining == Decimal("-100")

    def test_percentage_matches_formula(self, registry):
        amounts = ["12.34", "56.78", "0.01", "333.33"]
        ledger = Ledger(make_tx(a, category_id=1) for a in amounts)
        budgets = BudgetTable([budget(1, "1000")])

        (groceries,) = category_progress(ledger, budgets, registry, TODAY.month, TODAY.year)

        spent = sum(Decimal(a) for a in amounts)
        assert groceries.spent == spent
        assert groceries.percentage == min(Decimal("100"), spent / Decimal("1000") * 100)
        assert groceries.over_budget is (spent > Decimal("1000"))

    def test_omits_categories_without_limit_or_spend(self, registry):
        ledger = Ledger([make_tx("50", category_id=4)])
        budgets = BudgetTable([budget(1, "200")])

        progress = category_progress(ledger, budgets, registry, TODAY.month, TODAY.year)

        assert [p.name for p in progress] == ["Groceries", "Transport"]

    def test_spend_without_limit_has_zero_percentage_and_no_alert(self, registry):
        ledger = Ledger([make_tx("999999", category_id=4)])

        (transport,) = category_progress(ledger, BudgetTable(), registry, TODAY.month, TODAY.year)

        assert transport.limit == Decimal("0")
        assert transport.percentage == Decimal("0")
        assert not transport.over_budget
        assert not transport.near_limit

    def test_ignores_income_and_other_months(self, registry):
        ledger = Ledger([
            make_tx("100", category_id=1),
            make_tx("700", type="income", category_id=1),
            make_tx("900", category_id=1, on=date(2024, 5, 31)),
            make_tx("900", category_id=1, on=date(2023, 6, 10)),
        ])
        budgets = BudgetTable([budget(1, "1000")])

        (groceries,) = category_progress(ledger, budgets, registry, TODAY.month, TODAY.year)

        assert groceries.spent == Decimal("100")

    def test_income_categories_never_listed(self, registry):
        ledger = Ledger([make_tx("5000", type="income", category_id=3)])
        budgets = BudgetTable([budget(3, "100")])

        assert category_progress(ledger, budgets, registry, TODAY.month, TODAY.year) == ()

    def test_budget_for_deleted_category_is_ignored(self, registry):
        budgets = BudgetTable([budget(99, "100")])
        assert category_progress(Ledger(), budgets, registry, TODAY.month, TODAY.year) == ()

    def test_category_spend_helper(self):
        ledger = Ledger([make_tx("10", category_id=1), make_tx("5", category_id=1), make_tx("7", category_id=2)])
        assert category_spend(ledger, 1, TODAY.month, TODAY.year) == Decimal("15")
        assert category_spend(ledger, 42, TODAY.month, TODAY.year) == Decimal("0")


class TestMonthlyTrend:
    """Tests for monthly_trend."""

    def test_always_twelve_months_oldest_first(self, empty_ledger):
        trend = monthly_trend(empty_ledger, TODAY)

        assert len(trend) == 12
        assert (trend[0].year, trend[0].month) == (2023, 7)
        assert (trend[-1].year, trend[-1].month) == (2024, 6)
        assert [p.label for p in trend][:2] == ["Jul", "Aug"]
        keys = [(p.year, p.month) for p in trend]
        assert keys == sorted(keys)
        assert all(p.income == p.expense == p.balance == Decimal("0") for p in trend)

    def test_buckets_and_balance(self):
        ledger = Ledger([
            make_tx("1000", type="income", on=date(2024, 6, 1)),
            make_tx("250.50", on=date(2024, 6, 30)),
            make_tx("80", on=date(2024, 1, 31)),
            make_tx("40", type="income", on=date(2023, 7, 1)),
            make_tx("5000", on=date(2023, 6, 30)),
            make_tx("5000", on=date(2024, 7, 1)),
        ])

        trend = monthly_trend(ledger, TODAY)

        assert trend[-1].income == Decimal("1000")
        assert trend[-1].expense == Decimal("250.50")
        assert trend[0].income == Decimal("40")
        jan = next(p for p in trend if (p.year, p.month) == (2024, 1))
        assert jan.expense == Decimal("80")
        for point in trend:
            assert point.balance == point.income - point.expense
        assert sum(p.expense for p in trend) == Decimal("330.50")

    def test_year_boundary(self):
        trend = monthly_trend(Ledger(), date(2024, 1, 31))
        assert (trend[0].year, trend[0].month) == (2023, 2)
        assert (trend[-1].year, trend[-1].month) == (2024, 1)

    def test_trend_frame_preserves_order(self):
        trend = monthly_trend(Ledger([make_tx("10")]), TODAY)
        df = trend_frame(trend)

        assert list(df.columns) == ["period", "month", "income", "expense", "balance"]
        assert df["period"].iloc[0] == "2023-07"
        assert df["period"].iloc[-1] == "2024-06"
        assert df["expense"].iloc[-1] == Decimal("10")

    def test_trend_frame_empty(self):
        assert trend_frame(()).empty


class TestExpenseBreakdown:
    """Tests for expense_breakdown."""

    def test_uncategorized_is_appended(self):
        registry = CategoryRegistry([make_category(10, "A")])
        ledger = Ledger([make_tx("500", category_id=None), make_tx("300", category_id=10)])

        breakdown = expense_breakdown(ledger, registry, TODAY.month, TODAY.year)

        assert [(s.name, s.value) for s in breakdown] == [("A", Decimal("300")), (UNCATEGORIZED_LABEL, Decimal("500"))]
        assert breakdown[-1].color == UNCATEGORIZED_COLOR

    def test_sorted_descending(self, registry):
        ledger = Ledger([
            make_tx("10", category_id=1),
            make_tx("300", category_id=2),
            make_tx("45", category_id=4),
        ])

        breakdown = expense_breakdown(ledger, registry, TODAY.month, TODAY.year)

        assert [s.name for s in breakdown] == ["Rent", "Transport", "Groceries"]
        assert breakdown[0].color == "#ef4444"

    def test_total_equals_month_expense(self, registry):
        ledger = Ledger([
            make_tx("0.10", category_id=1),
            make_tx("0.20", category_id=1),
            make_tx("19.99", category_id=2),
            make_tx("7.77", category_id=None),
            make_tx("3.33", category_id=404),
            make_tx("12.00", category_id=3),
            make_tx("100", type="income", category_id=3),
            make_tx("55", on=date(2024, 5, 1), category_id=1),
        ])

        breakdown = expense_breakdown(ledger, registry, TODAY.month, TODAY.year)

        total = sum((s.value for s in breakdown), Decimal("0"))
        assert total == period_totals(ledger, TODAY.month, TODAY.year).expense
        assert total == Decimal("43.39")

    def test_dangling_category_counts_as_uncategorized(self, registry):
        ledger = Ledger([make_tx("25", category_id=404)])

        breakdown = expense_breakdown(ledger, registry, TODAY.month, TODAY.year)

        assert breakdown == (BreakdownSlice(name=UNCATEGORIZED_LABEL, value=Decimal("25"), color=UNCATEGORIZED_COLOR),)

    def test_no_uncategorized_slice_when_zero(self, registry):
        ledger = Ledger([make_tx("25", category_id=1)])
        breakdown = expense_breakdown(ledger, registry, TODAY.month, TODAY.year)
        assert UNCATEGORIZED_LABEL not in [s.name for s in breakdown]

    def test_custom_label(self):
        breakdown = expense_breakdown(
            Ledger([make_tx("1")]), CategoryRegistry(), TODAY.month, TODAY.year,
            uncategorized_label="Other", uncategorized_color="#000000"
        )
        assert breakdown[0].name == "Other"
        assert breakdown[0].color == "#000000"

    def test_breakdown_frame_shares(self):
        slices = [
            BreakdownSlice(name="A", value=Decimal("75"), color="#fff"),
            BreakdownSlice(name="B", value=Decimal("25"), color="#000"),
        ]
        df = breakdown_frame(slices)
        assert list(df["category"]) == ["A", "B"]
        assert list(df["percentage"]) == [Decimal("75"), Decimal("25")]
        assert breakdown_frame([]).empty


class TestRollups:
    """Tests for entity and family rollups."""

    def test_entity_rollup_counts_expenses_only(self):
        ledger = Ledger([
            make_tx("100", linked_entity_type=LinkedEntityType.GOAL, linked_entity_id="g1"),
            make_tx("50", linked_entity_type=LinkedEntityType.GOAL, linked_entity_id="g2"),
            make_tx("9999", type="income", linked_entity_type=LinkedEntityType.GOAL, linked_entity_id="g1"),
            make_tx("20", linked_entity_type=LinkedEntityType.HABIT),
            make_tx("70"),
        ])

        rollup = entity_rollup(ledger)

        assert set(rollup) == set(LinkedEntityType)
        assert rollup[LinkedEntityType.GOAL].count == 2
        assert rollup[LinkedEntityType.GOAL].total == Decimal("150")
        assert rollup[LinkedEntityType.HABIT].total == Decimal("20")
        assert rollup[LinkedEntityType.TASK].count == 0
        assert rollup[LinkedEntityType.TASK].total == Decimal("0")

    def test_entity_rollup_is_read_only(self):
        rollup = entity_rollup(Ledger())
        with pytest.raises(TypeError):
            rollup[LinkedEntityType.GOAL] = None

    def test_family_rollup_excludes_idle_members(self):
        members = [
            FamilyMemberRecord(id=1, user_id=USER, name="Amina", relationship="spouse"),
            FamilyMemberRecord(id=2, user_id=USER, name="Rafi", relationship="child"),
            FamilyMemberRecord(id=3, user_id=USER, name="Nila", relationship="parent"),
        ]
        ledger = Ledger([
            make_tx("40", family_member_id=1),
            make_tx("60", family_member_id=2),
            make_tx("15", family_member_id=2),
            make_tx("500", type="income", family_member_id=3),
        ])

        rollups = family_rollup(ledger, members)

        assert [r.member.name for r in rollups] == ["Rafi", "Amina"]
        assert rollups[0].total == Decimal("75")
        assert rollups[0].count == 2
        assert all(r.member.id != 3 for r in rollups)


class TestPeriodTotalsAndFilters:
    """Tests for summary totals and ledger filters."""

    def test_period_totals(self):
        ledger = Ledger([
            make_tx("1000", type="income"),
            make_tx("300"),
            make_tx("200", on=date(2024, 5, 2)),
        ])
        totals = period_totals(ledger, TODAY.month, TODAY.year)
        assert totals.income == Decimal("1000")
        assert totals.expense == Decimal("300")
        assert totals.balance == Decimal("700")

    def test_period_totals_for_member(self):
        ledger = Ledger([make_tx("10", family_member_id=1), make_tx("20", family_member_id=2)])
        assert period_totals(ledger, TODAY.month, TODAY.year, family_member_id=2).expense == Decimal("20")

    def test_filter_ledger(self):
        a = make_tx("1", family_member_id=1, linked_entity_type=LinkedEntityType.TASK)
        b = make_tx("2", family_member_id=1)
        c = make_tx("3", family_member_id=2, linked_entity_type=LinkedEntityType.TASK)
        ledger = Ledger([a, b, c])

        assert filter_ledger(ledger).transactions == (a, b, c)
        assert filter_ledger(ledger, family_member_id=1).transactions == (a, b)
        assert filter_ledger(ledger, entity_type=LinkedEntityType.TASK).transactions == (a, c)
        assert filter_ledger(ledger, 1, LinkedEntityType.TASK).transactions == (a,)


def test_inputs_are_not_mutated(registry):
    transactions = [make_tx("10", category_id=1), make_tx("5", category_id=None)]
    ledger = Ledger(transactions)
    budgets = BudgetTable([budget(1, "100")])

    category_progress(ledger, budgets, registry, TODAY.month, TODAY.year)
    expense_breakdown(ledger, registry, TODAY.month, TODAY.year)
    monthly_trend(ledger, TODAY)

    assert ledger.transactions == tuple(transactions)
    assert isinstance(trend_frame(monthly_trend(ledger, TODAY)), pd.DataFrame)
