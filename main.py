"""
Main module for the household budget tracker CLI.

Commands map one-to-one onto user actions: each write is validated,
issued, and followed by a reload before anything is printed, so the
output always reflects what the store confirmed.
"""

import argparse
import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

import yaml

from analytics import breakdown_frame, filter_ledger, trend_frame
from config_manager import DEFAULT_CONFIG, get_setting, load_config, save_config
from database_ops import DatabaseManager
from domain import INCOME_SOURCES, LinkedEntityType
from exceptions import BudgetTrackerError, ValidationError
from report_generator import ReportGenerator
from tracker import BudgetTracker
from utils import resolve_connection_string, resolve_log_path

# Configure module-level logger
logger = logging.getLogger(__name__)

USER_ENV_VAR = "BUDGET_USER"
DEFAULT_USER = "local"


def setup_logging(config: dict) -> None:
    """
    Configure logging based on config settings.

    Args:
        config: Configuration dictionary with logging settings
    """
    log_config = config.get("logging", {})
    level_name = str(log_config.get("level", "INFO")).upper()
    log_level = getattr(logging, level_name, None)
    if not isinstance(log_level, int):
        logger.warning("Invalid log level '%s'; defaulting to INFO", level_name)
        log_level = logging.INFO
    log_format = log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file = log_config.get("file")

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        try:
            log_path = resolve_log_path(log_file)
        except OSError as exc:
            raise RuntimeError(f"Unable to prepare log file path '{log_file}': {exc}") from exc
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True
    )


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError("Date must be in YYYY-MM-DD format", details={"value": value}, original_error=exc) from exc


def _add_transaction_fields(parser: argparse.ArgumentParser, required: bool) -> None:
    parser.add_argument("--amount", type=str, required=required, help="Positive amount")
    parser.add_argument("--type", type=str, default="expense", choices=["expense", "income"], help="Transaction type")
    parser.add_argument("--category-id", type=int, help="Category ID")
    parser.add_argument("--member-id", type=int, help="Family member ID")
    parser.add_argument("--merchant", type=str, help="Where / what")
    parser.add_argument("--account", type=str, choices=["cash", *INCOME_SOURCES], help="Income source (income only)")
    parser.add_argument("--date", type=str, help="Transaction date (YYYY-MM-DD, default: --today or the current date)")
    parser.add_argument(
        "--link-type",
        type=str,
        choices=[entity_type.value for entity_type in LinkedEntityType],
        help="Linked entity type"
    )
    parser.add_argument("--link-id", type=str, help="Linked entity ID")


def _transaction_fields(args: argparse.Namespace, today: date) -> dict:
    return {
        "amount": args.amount,
        "type": args.type,
        "date": args.date or today,
        "category_id": args.category_id,
        "family_member_id": args.member_id,
        "merchant": args.merchant,
        "account": args.account,
        "linked_entity_type": args.link_type,
        "linked_entity_id": args.link_id,
    }


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with every subcommand."""
    parser = argparse.ArgumentParser(
        description="Household budget tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)"
    )
    parser.add_argument(
        "--user",
        "-u",
        type=str,
        default=os.environ.get(USER_ENV_VAR, DEFAULT_USER),
        help=f"Owning user ID (default: ${USER_ENV_VAR} or '{DEFAULT_USER}')"
    )
    parser.add_argument("--today", type=str, help="Reference date for the current period (YYYY-MM-DD)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Category command
    category_parser = subparsers.add_parser("category", aliases=["cat"], help="Manage categories")
    category_sub = category_parser.add_subparsers(dest="category_action", help="Category actions")
    cat_add = category_sub.add_parser("add", help="Create a category")
    cat_add.add_argument("--name", type=str, required=True, help="Category name")
    cat_add.add_argument("--income", action="store_true", help="Create an income category")
    cat_add.add_argument("--color", type=str, help="Display color (e.g. #6b7280)")
    cat_add.add_argument("--icon", type=str, help="Display icon name")
    category_sub.add_parser("list", help="List categories")
    cat_delete = category_sub.add_parser("delete", help="Delete a category (transactions are kept)")
    cat_delete.add_argument("--id", type=int, required=True, help="Category ID")

    # Family command
    family_parser = subparsers.add_parser("family", help="Manage family members")
    family_sub = family_parser.add_subparsers(dest="family_action", help="Family actions")
    fam_add = family_sub.add_parser("add", help="Add a family member")
    fam_add.add_argument("--name", type=str, required=True, help="Member name")
    fam_add.add_argument("--relationship", type=str, help="Relationship")
    family_sub.add_parser("list", help="List family members")
    fam_delete = family_sub.add_parser("delete", help="Delete a family member")
    fam_delete.add_argument("--id", type=int, required=True, help="Member ID")

    # Transaction command
    tx_parser = subparsers.add_parser("transaction", aliases=["tx"], help="Manage transactions")
    tx_sub = tx_parser.add_subparsers(dest="transaction_action", help="Transaction actions")
    tx_add = tx_sub.add_parser("add", help="Record a transaction")
    _add_transaction_fields(tx_add, required=True)
    tx_list = tx_sub.add_parser("list", help="List recent transactions")
    tx_list.add_argument("--limit", type=int, help="Maximum number of transactions")
    tx_list.add_argument("--member-id", type=int, help="Only this family member")
    tx_list.add_argument(
        "--entity-type",
        type=str,
        choices=[entity_type.value for entity_type in LinkedEntityType],
        help="Only transactions linked to this entity type"
    )
    tx_update = tx_sub.add_parser("update", help="Replace a transaction")
    tx_update.add_argument("--id", type=int, required=True, help="Transaction ID")
    _add_transaction_fields(tx_update, required=True)
    tx_delete = tx_sub.add_parser("delete", help="Delete a transaction")
    tx_delete.add_argument("--id", type=int, required=True, help="Transaction ID")

    # Budget command
    budget_parser = subparsers.add_parser("budget", aliases=["bud"], help="Manage monthly budgets")
    budget_sub = budget_parser.add_subparsers(dest="budget_action", help="Budget actions")
    bud_set = budget_sub.add_parser("set", help="Set this month's limit for a category")
    bud_set.add_argument("--category-id", type=int, required=True, help="Expense category ID")
    bud_set.add_argument("--amount", type=str, required=True, help="Spending limit")
    budget_sub.add_parser("list", help="List this month's budgets")
    budget_sub.add_parser("status", help="Show budget progress")
    bud_delete = budget_sub.add_parser("delete", help="Delete a budget")
    bud_delete.add_argument("--id", type=int, required=True, help="Budget ID")

    # Reports
    subparsers.add_parser("alerts", help="Show budget alerts")
    subparsers.add_parser("trend", help="Show the 12-month income/expense trend")
    subparsers.add_parser("breakdown", help="Show this month's expense breakdown")
    rollup_parser = subparsers.add_parser("rollup", help="Show expense rollups")
    rollup_parser.add_argument("kind", choices=["entity", "family"], help="Group by linked entity or family member")
    summary_parser = subparsers.add_parser("summary", help="Show this month's income and expense")
    summary_parser.add_argument("--member-id", type=int, help="Only this family member")

    # Config command
    config_parser = subparsers.add_parser("config", help="Show or change settings")
    config_sub = config_parser.add_subparsers(dest="config_action", help="Config actions")
    config_sub.add_parser("show", help="Print the effective configuration")
    cfg_set = config_sub.add_parser("set", help="Save a setting to the config file")
    cfg_set.add_argument("key", type=str, help="Setting as section.key (e.g. display.currency_symbol)")
    cfg_set.add_argument("value", type=str, help="New value, parsed as YAML (e.g. 50, true, '$')")

    return parser


def handle_category_command(args: argparse.Namespace, tracker: BudgetTracker, reporter: ReportGenerator) -> None:
    """Handle category management commands."""
    if args.category_action == "add":
        category = tracker.categories.create_category(
            args.user, args.name, is_income=args.income, color=args.color, icon=args.icon
        )
        kind = "income" if category.is_income else "expense"
        print(f"Created {kind} category '{category.name}' (id {category.id})")
    elif args.category_action == "list":
        registry = tracker.categories.list_categories(args.user)
        if not len(registry):
            print("No categories found.")
            return
        rows = [[c.id, c.name, "income" if c.is_income else "expense", c.color, c.icon] for c in registry]
        print(reporter.format_table(rows, ["ID", "Name", "Type", "Color", "Icon"]))
    elif args.category_action == "delete":
        tracker.categories.delete_category(args.user, args.id)
        print(f"Deleted category {args.id}")
    else:
        raise ValidationError("Invalid category action")


def handle_family_command(args: argparse.Namespace, tracker: BudgetTracker, reporter: ReportGenerator) -> None:
    """Handle family member commands."""
    if args.family_action == "add":
        member = tracker.family.add_member(args.user, args.name, args.relationship)
        print(f"Added family member '{member.name}' (id {member.id})")
    elif args.family_action == "list":
        members = tracker.family.list_members(args.user)
        if not members:
            print("No family members found.")
            return
        print(reporter.format_table([[m.id, m.name, m.relationship or "-"] for m in members], ["ID", "Name", "Relationship"]))
    elif args.family_action == "delete":
        tracker.family.delete_member(args.user, args.id)
        print(f"Deleted family member {args.id}")
    else:
        raise ValidationError("Invalid family action")


def handle_transaction_command(
    args: argparse.Namespace,
    tracker: BudgetTracker,
    reporter: ReportGenerator,
    today: date
) -> None:
    """Handle transaction commands; 'add' also prints any budget notice."""
    if args.transaction_action == "add":
        result = tracker.record_transaction(args.user, today=today, **_transaction_fields(args, today))
        record = result.record
        print(f"Recorded {record.type.value} of {reporter.format_currency(record.amount)} (id {record.id})")
        notice = reporter.format_notice(result.notice)
        if notice:
            print(notice)
    elif args.transaction_action == "list":
        ledger = tracker.transactions.load_recent(args.user, args.limit or tracker.recent_limit)
        entity_type = LinkedEntityType(args.entity_type) if args.entity_type else None
        ledger = filter_ledger(ledger, family_member_id=args.member_id, entity_type=entity_type)
        registry = tracker.categories.list_categories(args.user)
        members = tracker.family.list_members(args.user)
        print(reporter.generate_transactions_table(ledger, registry, members))
    elif args.transaction_action == "update":
        tracker.edit_transaction(args.user, args.id, today=today, **_transaction_fields(args, today))
        print(f"Updated transaction {args.id}")
    elif args.transaction_action == "delete":
        tracker.remove_transaction(args.user, args.id, today=today)
        print(f"Deleted transaction {args.id}")
    else:
        raise ValidationError("Invalid transaction action")


def handle_budget_command(
    args: argparse.Namespace,
    tracker: BudgetTracker,
    reporter: ReportGenerator,
    today: date
) -> None:
    """Handle budget management commands."""
    if args.budget_action == "set":
        result = tracker.set_budget(args.user, args.category_id, args.amount, today=today)
        budget = result.record
        print(
            f"Budget for category {budget.category_id} set to {reporter.format_currency(budget.amount)} "
            f"for {budget.year}-{budget.month:02d}"
        )
    elif args.budget_action == "list":
        table = tracker.budgets.list_for_period(args.user, today.month, today.year)
        if not len(table):
            print("No budgets for this month.")
            return
        registry = tracker.categories.list_categories(args.user)
        rows = [[b.id, registry.name_for(b.category_id), reporter.format_currency(b.amount)] for b in table]
        print(reporter.format_table(rows, ["ID", "Category", "Limit"]))
        print(f"Total: {reporter.format_currency(table.total_limit())}")
    elif args.budget_action == "status":
        print(reporter.generate_budget_progress_report(tracker.dashboard(args.user, today).progress))
    elif args.budget_action == "delete":
        tracker.budgets.delete_budget(args.user, args.id)
        print(f"Deleted budget {args.id}")
    else:
        raise ValidationError("Invalid budget action")


def handle_report_command(
    args: argparse.Namespace,
    tracker: BudgetTracker,
    reporter: ReportGenerator,
    today: date
) -> None:
    """Handle the read-only report commands."""
    member_id = getattr(args, "member_id", None)
    dashboard = tracker.dashboard(args.user, today, family_member_id=member_id)
    if args.command == "alerts":
        print(reporter.generate_alerts_report(dashboard.alerts))
    elif args.command == "trend":
        print(reporter.generate_trend_report(trend_frame(dashboard.trend)))
    elif args.command == "breakdown":
        print(reporter.generate_breakdown_report(breakdown_frame(dashboard.breakdown)))
    elif args.command == "rollup":
        if args.kind == "entity":
            print(reporter.generate_entity_rollup_report(dashboard.entity_rollup))
        else:
            print(reporter.generate_family_rollup_report(dashboard.family_rollup))
    elif args.command == "summary":
        print(reporter.generate_summary_report(dashboard.totals, dashboard.month, dashboard.year))


def handle_config_command(args: argparse.Namespace, config: dict) -> None:
    """Handle config commands; these never open the database."""
    if args.config_action == "show":
        print(yaml.safe_dump(config, default_flow_style=False, allow_unicode=True, sort_keys=False).rstrip())
    elif args.config_action == "set":
        section, _, key = args.key.partition(".")
        if not section or not key:
            raise ValidationError("Setting must be given as section.key", details={"key": args.key})
        if section not in DEFAULT_CONFIG:
            raise ValidationError(
                f"Unknown config section '{section}'",
                details={"allowed": ", ".join(DEFAULT_CONFIG)}
            )
        try:
            value = yaml.safe_load(args.value)
        except yaml.YAMLError as exc:
            raise ValidationError("Value is not valid YAML", details={"value": args.value}, original_error=exc) from exc
        save_config({section: {key: value}}, Path(args.config))
        print(f"Saved {section}.{key} = {value!r} to {args.config}")
    else:
        raise ValidationError("Invalid config action")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    db_manager = None
    try:
        config = load_config(Path(args.config))
        setup_logging(config)
        if args.command == "config":
            handle_config_command(args, config)
            return 0
        today = _parse_date(args.today) or date.today()

        db_manager = DatabaseManager(resolve_connection_string(config))
        db_manager.create_tables()
        tracker = BudgetTracker.from_config(db_manager, config)
        reporter = ReportGenerator(currency_symbol=get_setting(config, "display", "currency_symbol"))

        if args.command in ("category", "cat"):
            handle_category_command(args, tracker, reporter)
        elif args.command == "family":
            handle_family_command(args, tracker, reporter)
        elif args.command in ("transaction", "tx"):
            handle_transaction_command(args, tracker, reporter, today)
        elif args.command in ("budget", "bud"):
            handle_budget_command(args, tracker, reporter, today)
        else:
            handle_report_command(args, tracker, reporter, today)
        return 0

    except BudgetTrackerError as e:
        logger.debug(f"Command '{args.command}' failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if db_manager is not None:
            db_manager.close()


if __name__ == "__main__":
    sys.exit(main())
