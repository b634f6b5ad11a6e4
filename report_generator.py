"""
Report generator module for formatting budget aggregates.

Turns the engine's results into plain-text reports for the terminal.
This is the only place amounts and percentages are rounded.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional, Sequence

import pandas as pd
from tabulate import tabulate

from alerting import BudgetNotice, NoticeKind
from analytics import BreakdownSlice, CategoryProgress, EntityRollup, MemberRollup, PeriodTotals
from categories import CategoryRegistry
from domain import FamilyMemberRecord, LinkedEntityType
from ledger import Ledger

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")
_TENTHS = Decimal("0.1")


class ReportGenerator:
    """
    Generate formatted text reports from aggregation results.

    Tables are rendered with tabulate; the trend and breakdown reports
    consume DataFrames built by analytics.trend_frame / breakdown_frame.
    """

    def __init__(self, currency_symbol: str = "৳", tablefmt: str = "simple"):
        """
        Initialize the report generator.

        Args:
            currency_symbol: Prefix used for every amount
            tablefmt: tabulate table format
        """
        self.currency_symbol = currency_symbol
        self.tablefmt = tablefmt

    def format_currency(self, amount) -> str:
        """
        Format amount as currency string, rounded half-up to cents.

        Args:
            amount: Amount to format (Decimal, int or float)

        Returns:
            Formatted currency string
        """
        value = Decimal(str(amount)).quantize(_CENTS, rounding=ROUND_HALF_UP)
        sign = "-" if value < 0 else ""
        return f"{sign}{self.currency_symbol}{abs(value):,.2f}"

    def format_percentage(self, percentage) -> str:
        value = Decimal(str(percentage)).quantize(_TENTHS, rounding=ROUND_HALF_UP)
        return f"{value}%"

    def format_table(self, rows, headers) -> str:
        return tabulate(rows, headers=headers, tablefmt=self.tablefmt, disable_numparse=True)

    def generate_summary_report(self, totals: PeriodTotals, month: int, year: int) -> str:
        """Income, expense and balance for the period."""
        rows = [
            ["Income", self.format_currency(totals.income)],
            ["Expense", self.format_currency(totals.expense)],
            ["Balance", self.format_currency(totals.balance)],
        ]
        return f"SUMMARY ({year}-{month:02d})\n" + self.format_table(rows, ["", "Amount"])

    def generate_budget_progress_report(self, progress: Sequence[CategoryProgress]) -> str:
        """
        Generate the budget progress table.

        Args:
            progress: Category progress rows

        Returns:
            Formatted text report
        """
        if not progress:
            return "No budgets or spending this month."

        rows = []
        for entry in progress:
            if entry.over_budget:
                status = "OVER BUDGET"
            elif entry.near_limit:
                status = "near limit"
            else:
                status = ""
            rows.append([
                entry.name,
                self.format_currency(entry.spent),
                self.format_currency(entry.limit) if entry.limit > 0 else "-",
                self.format_percentage(entry.percentage),
                status,
            ])
        return "BUDGET PROGRESS\n" + self.format_table(rows, ["Category", "Spent", "Limit", "Used", "Status"])

    def generate_alerts_report(self, alerts: Sequence[CategoryProgress]) -> str:
        """One line per category that is over budget or near its limit."""
        if not alerts:
            return "No budget alerts."
        lines = ["BUDGET ALERTS"]
        for entry in alerts:
            ratio = entry.spent / entry.limit * 100
            label = "Over budget" if entry.over_budget else "Approaching limit"
            lines.append(
                f"  {label}: {entry.name} "
                f"{self.format_currency(entry.spent)} / {self.format_currency(entry.limit)} "
                f"({self.format_percentage(ratio)})"
            )
        return "\n".join(lines)

    def format_notice(self, notice: Optional[BudgetNotice]) -> Optional[str]:
        """Text for the inline notice shown right after an expense is recorded."""
        if notice is None:
            return None
        name = f" for {notice.category_name}" if notice.category_name else ""
        if notice.kind is NoticeKind.OVER_BUDGET:
            return (
                f"Budget exceeded{name}! "
                f"{self.format_currency(notice.spent)} / {self.format_currency(notice.limit)}"
            )
        used = notice.percentage.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return f"Approaching limit{name}: {used}% used"

    def generate_trend_report(self, df: pd.DataFrame) -> str:
        """
        Generate text report for the monthly trend.

        Args:
            df: DataFrame from analytics.trend_frame, oldest month first

        Returns:
            Formatted text report
        """
        if df.empty:
            return "No trend data."
        rows = [
            [
                f"{row['month']} {row['period'][:4]}",
                self.format_currency(row["income"]),
                self.format_currency(row["expense"]),
                self.format_currency(row["balance"]),
            ]
            for _, row in df.iterrows()
        ]
        return "MONTHLY TREND\n" + self.format_table(rows, ["Month", "Income", "Expense", "Balance"])

    def generate_breakdown_report(self, df: pd.DataFrame) -> str:
        """Expense distribution with each category's share of the month's total."""
        if df.empty:
            return "No expenses this month."
        rows = [
            [row["category"], self.format_currency(row["total"]), self.format_percentage(row["percentage"])]
            for _, row in df.iterrows()
        ]
        total = sum(df["total"], Decimal("0"))
        rows.append(["TOTAL", self.format_currency(total), "100.0%"])
        return "EXPENSE BREAKDOWN\n" + self.format_table(rows, ["Category", "Total", "Share"])

    def generate_entity_rollup_report(self, rollup: Mapping[LinkedEntityType, EntityRollup]) -> str:
        rows = [
            [entity_type.value, stats.count, self.format_currency(stats.total)]
            for entity_type, stats in rollup.items()
        ]
        return "EXPENSES BY LINKED ENTITY\n" + self.format_table(rows, ["Entity", "Count", "Total"])

    def generate_family_rollup_report(self, rollups: Sequence[MemberRollup]) -> str:
        if not rollups:
            return "No family member spending."
        rows = [
            [r.member.name, r.member.relationship or "-", r.count, self.format_currency(r.total)]
            for r in rollups
        ]
        return "SPENDING BY FAMILY MEMBER\n" + self.format_table(rows, ["Member", "Relationship", "Count", "Total"])

    def generate_transactions_table(
        self,
        ledger: Ledger,
        registry: CategoryRegistry,
        members: Sequence[FamilyMemberRecord] = ()
    ) -> str:
        """List transactions with category and member names resolved."""
        if not ledger:
            return "No transactions."
        member_names = {m.id: m.name for m in members}
        rows = []
        for t in ledger:
            sign = "+" if t.is_income else "-"
            linked = f"{t.linked_entity_type.value}:{t.linked_entity_id or '?'}" if t.linked_entity_type else ""
            rows.append([
                t.id,
                t.date.isoformat(),
                f"{sign}{self.format_currency(t.amount)}",
                registry.name_for(t.category_id),
                t.merchant or "",
                member_names.get(t.family_member_id, ""),
                t.account,
                linked,
            ])
        return self.format_table(rows, ["ID", "Date", "Amount", "Category", "Merchant", "Member", "Account", "Linked"])
