"""
Unit tests for the budget alerting policy.

Covers threshold classification, the batch alert filter and the inline
post-write notice.
"""

from decimal import Decimal

import pytest

from alerting import (
    NEAR_LIMIT_RATIO,
    AlertState,
    BudgetNotice,
    NoticeKind,
    check_after_expense,
    classify,
    collect_alerts,
)


class TestClassify:
    """Tests for classify(spent, limit)."""

    @pytest.mark.parametrize("spent, limit, over, near", [
        ("0", "5000", False, False),
        ("3999.99", "5000", False, False),
        ("4000", "5000", False, True),
        ("4200", "5000", False, True),
        ("5000", "5000", False, True),
        ("5000.01", "5000", True, False),
        ("5200", "5000", True, False),
    ])
    def test_thresholds(self, spent, limit, over, near):
        state = classify(Decimal(spent), Decimal(limit))
        assert state.over_budget is over
        assert state.near_limit is near

    def test_zero_limit_never_alerts(self):
        """No budget set means no alert, even for large spend."""
        state = classify(Decimal("1000000"), Decimal("0"))
        assert state == AlertState(over_budget=False, near_limit=False)
        assert not state.triggered

    def test_flags_are_mutually_exclusive(self):
        for spent in range(0, 7000, 50):
            state = classify(Decimal(spent), Decimal("5000"))
            assert not (state.over_budget and state.near_limit)

    def test_threshold_is_eighty_percent(self):
        assert NEAR_LIMIT_RATIO == Decimal("0.80")


class TestInlineCheck:
    """Tests for check_after_expense."""

    def test_groceries_scenario_near_limit(self):
        """3000 spent + 1200 new against 5000 -> 84% -> approaching limit."""
        notice = check_after_expense(Decimal("3000"), Decimal("1200"), Decimal("5000"), category_id=7,
                                     category_name="Groceries")

        assert notice is not None
        assert notice.kind is NoticeKind.APPROACHING_LIMIT
        assert notice.spent == Decimal("4200")
        assert notice.percentage == Decimal("84")
        assert notice.category_name == "Groceries"

    def test_groceries_scenario_over_budget(self):
        """4200 spent + 1000 new against 5000 -> 5200 -> over budget."""
        notice = check_after_expense(Decimal("4200"), Decimal("1000"), Decimal("5000"))

        assert notice.kind is NoticeKind.OVER_BUDGET
        assert notice.spent == Decimal("5200")

    def test_uses_post_write_total(self):
        """Prior spend alone is below the threshold; only the new total crosses it."""
        assert classify(Decimal("3900"), Decimal("5000")).triggered is False
        notice = check_after_expense(Decimal("3900"), Decimal("100"), Decimal("5000"))
        assert notice is not None
        assert notice.kind is NoticeKind.APPROACHING_LIMIT

    def test_below_threshold_returns_none(self):
        assert check_after_expense(Decimal("100"), Decimal("100"), Decimal("5000")) is None

    def test_no_limit_returns_none(self):
        assert check_after_expense(Decimal("100"), Decimal("99999"), Decimal("0")) is None


class TestCollectAlerts:
    """Tests for the batch alert filter."""

    def test_keeps_only_flagged_entries(self):
        entries = [
            AlertState(over_budget=True),
            AlertState(near_limit=True),
            AlertState(),
        ]
        alerts = collect_alerts(entries)
        assert alerts == (entries[0], entries[1])

    def test_empty(self):
        assert collect_alerts([]) == ()


def test_notice_percentage_is_unrounded():
    notice = BudgetNotice(kind=NoticeKind.APPROACHING_LIMIT, spent=Decimal("1"), limit=Decimal("1.2"))
    assert notice.percentage == Decimal("1") / Decimal("1.2") * 100
