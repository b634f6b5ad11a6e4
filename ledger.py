"""
Ledger loading and transaction writes.

A Ledger is an immutable slice of a user's transactions: whatever was
loaded, nothing more. Aggregations are defined over the slice, so the
caller picks the window it needs (current month for budget progress,
twelve full months for the trend).
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple, Union

from database_ops import DatabaseManager, Transaction
from domain import (
    DEFAULT_ACCOUNT,
    INCOME_SOURCES,
    LinkedEntityType,
    TransactionRecord,
    TransactionType,
)
from exceptions import ValidationError
from utils import month_period, parse_amount, shift_month

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 100


class Ledger:
    """Immutable, ordered collection of TransactionRecord snapshots."""

    def __init__(self, transactions: Iterable[TransactionRecord] = ()):
        self._transactions: Tuple[TransactionRecord, ...] = tuple(transactions)

    def __iter__(self) -> Iterator[TransactionRecord]:
        return iter(self._transactions)

    def __len__(self) -> int:
        return len(self._transactions)

    def __bool__(self) -> bool:
        return bool(self._transactions)

    def __repr__(self) -> str:
        return f"<Ledger({len(self._transactions)} transactions)>"

    @property
    def transactions(self) -> Tuple[TransactionRecord, ...]:
        return self._transactions

    def for_period(self, month: int, year: int) -> "Ledger":
        """Transactions dated inside the given calendar month."""
        return Ledger(t for t in self._transactions if t.in_period(month, year))

    def expenses(self) -> "Ledger":
        return Ledger(t for t in self._transactions if t.is_expense)

    def income(self) -> "Ledger":
        return Ledger(t for t in self._transactions if t.is_income)


def _coerce_date(value: Union[date, datetime, str, None]) -> date:
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise ValidationError(
            "Date must be in YYYY-MM-DD format",
            details={"field": "date", "value": value},
            original_error=exc
        ) from exc


def _coerce_enum(enum_cls, value: Any, field: str):
    if value is None or value == "":
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {field.replace('_', ' ')} '{value}' (expected one of: {allowed})",
            details={"field": field},
            original_error=exc
        ) from exc


def build_transaction_values(
    user_id: str,
    amount: Any,
    type: Union[TransactionType, str] = TransactionType.EXPENSE,
    date: Union[date, datetime, str, None] = None,
    category_id: Optional[int] = None,
    family_member_id: Optional[int] = None,
    merchant: Optional[str] = None,
    account: Optional[str] = None,
    linked_entity_type: Union[LinkedEntityType, str, None] = None,
    linked_entity_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Validate form input and build the full column mapping for a transaction.

    Expenses are always recorded against the "cash" account; income keeps
    the chosen income source.

    Raises:
        ValidationError: If any field is missing or malformed
    """
    if not user_id:
        raise ValidationError("User is required", details={"field": "user_id"})

    tx_type = _coerce_enum(TransactionType, type, "type")
    if tx_type is None:
        raise ValidationError("Transaction type is required", details={"field": "type"})

    if tx_type is TransactionType.INCOME:
        tx_account = (account or DEFAULT_ACCOUNT).strip().lower()
        if tx_account != DEFAULT_ACCOUNT and tx_account not in INCOME_SOURCES:
            raise ValidationError(
                f"Unknown income source '{account}'",
                details={"field": "account", "allowed": ", ".join(INCOME_SOURCES)}
            )
    else:
        tx_account = DEFAULT_ACCOUNT

    entity_type = _coerce_enum(LinkedEntityType, linked_entity_type, "linked_entity_type")
    entity_id = (str(linked_entity_id).strip() or None) if linked_entity_id is not None else None
    if entity_id and entity_type is None:
        raise ValidationError(
            "Linked entity id given without a linked entity type",
            details={"field": "linked_entity_type"}
        )

    return {
        "user_id": user_id,
        "amount": parse_amount(amount),
        "type": tx_type,
        "date": _coerce_date(date),
        "category_id": category_id or None,
        "family_member_id": family_member_id or None,
        "merchant": (merchant or "").strip() or None,
        "account": tx_account,
        "linked_entity_type": entity_type,
        "linked_entity_id": entity_id,
    }


class TransactionManager:
    """
    Loads ledger slices and writes transactions.

    Writes validate first and only then touch the store; nothing here
    caches, so callers reload after every successful write.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize the transaction manager.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db_manager = db_manager

    def load_recent(self, user_id: str, limit: int = DEFAULT_RECENT_LIMIT) -> Ledger:
        """
        Load the most recent transactions, newest first.

        Args:
            user_id: Owning user
            limit: Maximum number of transactions

        Returns:
            Ledger ordered by date descending
        """
        rows = self.db_manager.select(Transaction, user_id, order_by="date", order_desc=True, limit=limit)
        return Ledger(TransactionRecord.from_row(row) for row in rows)

    def load_window(self, user_id: str, from_date: date, to_date: date) -> Ledger:
        """
        Load every transaction dated within [from_date, to_date], oldest first.

        Raises:
            ValidationError: If the range is inverted
        """
        if from_date > to_date:
            raise ValidationError(
                "Start date must not be after end date",
                details={"from_date": from_date, "to_date": to_date}
            )
        rows = self.db_manager.select(
            Transaction,
            user_id,
            filters={"date__gte": from_date, "date__lte": to_date},
            order_by="date"
        )
        ledger = Ledger(TransactionRecord.from_row(row) for row in rows)
        logger.debug("Loaded %s transactions between %s and %s", len(ledger), from_date, to_date)
        return ledger

    def load_trend_window(self, user_id: str, today: Optional[date] = None, months: int = 12) -> Ledger:
        """Load the full calendar months covered by the trend ending in today's month."""
        today = today or date.today()
        start_year, start_month = shift_month(today.year, today.month, -(months - 1))
        from_date, _ = month_period(start_year, start_month)
        _, to_date = month_period(today.year, today.month)
        return self.load_window(user_id, from_date, to_date)

    def get_transaction(self, user_id: str, transaction_id: int) -> Optional[TransactionRecord]:
        row = self.db_manager.get(Transaction, user_id, transaction_id)
        return TransactionRecord.from_row(row) if row is not None else None

    def add_transaction(self, user_id: str, **fields: Any) -> TransactionRecord:
        """
        Validate and insert a new transaction.

        Args:
            user_id: Owning user
            **fields: See build_transaction_values

        Returns:
            The stored transaction

        Raises:
            ValidationError: Before any store call, on bad input
            StoreError: If the insert fails
        """
        values = build_transaction_values(user_id, **fields)
        row = self.db_manager.insert(Transaction, values)
        record = TransactionRecord.from_row(row)
        logger.info(
            "Recorded %s of %s on %s (category=%s)",
            record.type.value, record.amount, record.date, record.category_id
        )
        return record

    def update_transaction(self, user_id: str, transaction_id: int, **fields: Any) -> None:
        """
        Replace every editable field of an existing transaction.

        Omitted optional fields are cleared, not preserved.

        Raises:
            ValidationError: On bad input
            StoreError: If the transaction does not exist or the write fails
        """
        values = build_transaction_values(user_id, **fields)
        values.pop("user_id")
        self.db_manager.update(Transaction, user_id, transaction_id, values)

    def delete_transaction(self, user_id: str, transaction_id: int) -> None:
        self.db_manager.delete(Transaction, user_id, transaction_id)
