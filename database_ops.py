"""
Database operations module for the budget tracker's entity store.

This module defines the SQLAlchemy ORM schema (transactions, categories,
budgets, family members) and a DatabaseManager exposing the four generic
operations the rest of the tracker relies on: select, insert, update and
delete, each scoped to an owning user. SQLite is the default backend.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from domain import (
    DEFAULT_ACCOUNT,
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    LinkedEntityType,
    TransactionType,
)
from exceptions import StoreError

# Configure logging
logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone awareness.

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(UTC)


Base = declarative_base()


class Category(Base):
    """
    A user's income or expense category.

    ``is_income`` is fixed at creation. Deleting a category leaves the
    transactions that reference it untouched.
    """

    __tablename__ = "budget_categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    is_income = Column(Boolean, nullable=False, default=False)
    color = Column(String(16), nullable=False, default=DEFAULT_CATEGORY_COLOR)
    icon = Column(String(32), nullable=False, default=DEFAULT_CATEGORY_ICON)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self) -> str:
        kind = "income" if self.is_income else "expense"
        return f"<Category(id={self.id}, name='{self.name}', {kind})>"


class FamilyMember(Base):
    """A household member that expenses can be attributed to."""

    __tablename__ = "family_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    relationship = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<FamilyMember(id={self.id}, name='{self.name}', relationship='{self.relationship}')>"


class Budget(Base):
    """
    Monthly spending limit for one expense category.

    Attributes:
        id: Auto-incrementing primary key
        user_id: Owning user
        category_id: Category the limit applies to
        amount: Spending limit for the period
        month: Period month (1-12)
        year: Period year
    """

    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    category_id = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    # One limit per category per period
    __table_args__ = (
        UniqueConstraint("user_id", "category_id", "month", "year", name="uq_budget_period"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_budget_month"),
    )

    def __repr__(self) -> str:
        return (
            f"<Budget(id={self.id}, category_id={self.category_id}, "
            f"amount={self.amount}, period={self.year}-{self.month:02d})>"
        )


class Transaction(Base):
    """
    SQLAlchemy model representing one ledger entry.

    Attributes:
        id: Auto-incrementing primary key
        user_id: Owning user
        amount: Positive amount; direction is carried by ``type``
        type: income or expense
        category_id: Optional category reference (may dangle)
        family_member_id: Optional family member reference
        merchant: Optional free text
        account: "cash" for expenses, the income source for income
        date: Calendar date of the transaction
        linked_entity_type: Optional goal/task/project/note/habit
        linked_entity_id: Optional id inside the linked collection
    """

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    type = Column(Enum(TransactionType), nullable=False)
    category_id = Column(Integer, nullable=True)
    family_member_id = Column(Integer, nullable=True)
    merchant = Column(String(255), nullable=True)
    account = Column(String(50), nullable=False, default=DEFAULT_ACCOUNT)
    date = Column(Date, nullable=False)
    linked_entity_type = Column(Enum(LinkedEntityType), nullable=True)
    linked_entity_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
        Index("idx_user_date", "user_id", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, date={self.date}, type={self.type.value}, "
            f"amount={self.amount}, category_id={self.category_id})>"
        )


_FILTER_SUFFIXES = ("gte", "lte", "in", "isnull")


def _build_conditions(model: Type[Base], filters: Dict[str, Any]) -> List[Any]:
    """
    Translate a filter mapping into SQLAlchemy conditions.

    Keys are column names, optionally suffixed with ``__gte``, ``__lte``,
    ``__in`` or ``__isnull``; a bare key is an equality test.
    """
    conditions = []
    for key, value in filters.items():
        column_name, _, op = key.partition("__")
        if op and op not in _FILTER_SUFFIXES:
            raise ValueError(f"Unsupported filter operator '{op}' in '{key}'")
        column = getattr(model, column_name, None)
        if column is None or not hasattr(column, "property"):
            raise ValueError(f"Unknown column '{column_name}' for {model.__name__}")

        if op == "gte":
            conditions.append(column >= value)
        elif op == "lte":
            conditions.append(column <= value)
        elif op == "in":
            conditions.append(column.in_(list(value)))
        elif op == "isnull":
            conditions.append(column.is_(None) if value else column.isnot(None))
        elif value is None:
            conditions.append(column.is_(None))
        else:
            conditions.append(column == value)
    return conditions


def _reason(error: SQLAlchemyError) -> str:
    """Driver message behind a SQLAlchemy error, without the SQL statement."""
    return str(getattr(error, "orig", None) or error)


class DatabaseManager:
    """
    Manages database connections and the generic entity-store operations.

    Every operation opens its own session and commits before returning, so
    a read issued right after a successful write observes that write.
    """

    def __init__(self, connection_string: str):
        """
        Initialize the database manager.

        Args:
            connection_string: SQLAlchemy connection string (e.g., 'sqlite:///data/budget.db')

        Raises:
            StoreError: If the engine cannot be created
        """
        try:
            self.engine = create_engine(connection_string, echo=False)
            self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
            logger.info(f"Database manager initialized with connection: {connection_string}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise StoreError("Failed to initialize database", details={"reason": _reason(e)}, original_error=e) from e

    def create_tables(self) -> None:
        """
        Create all database tables if they don't exist.

        Raises:
            StoreError: If table creation fails
        """
        try:
            Base.metadata.create_all(self.engine)
            logger.info("Database tables created/verified successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise StoreError("Failed to create database tables", details={"reason": _reason(e)}, original_error=e) from e

    def get_session(self) -> Session:
        """
        Get a new database session.

        Note:
            Caller is responsible for closing the session.
        """
        return self.SessionLocal()

    def close(self) -> None:
        """Dispose of the engine's connection pool."""
        self.engine.dispose()

    def select(
        self,
        model: Type[Base],
        user_id: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        order_desc: bool = False,
        limit: Optional[int] = None
    ) -> List[Any]:
        """
        Select rows owned by ``user_id``.

        Args:
            model: ORM model class to query
            user_id: Owning user; always applied
            filters: Conjunctive filter mapping (see _build_conditions)
            order_by: Optional column name to sort by
            order_desc: Sort descending when True
            limit: Optional maximum number of rows

        Returns:
            List of detached model instances

        Raises:
            StoreError: If the query fails
        """
        session = self.get_session()
        try:
            query = session.query(model).filter(model.user_id == user_id)
            if filters:
                query = query.filter(*_build_conditions(model, filters))

            if order_by:
                order_column = getattr(model, order_by)
                if order_desc:
                    query = query.order_by(order_column.desc(), model.id.desc())
                else:
                    query = query.order_by(order_column.asc(), model.id.asc())
            if limit:
                query = query.limit(limit)

            rows = query.all()
            logger.debug(f"Selected {len(rows)} {model.__tablename__} rows with filters: {filters}")
            return rows
        except SQLAlchemyError as e:
            logger.error(f"Failed to select from {model.__tablename__}: {e}")
            raise StoreError(
                f"Failed to load {model.__tablename__}",
                details={"user_id": user_id, "reason": _reason(e)},
                original_error=e
            ) from e
        finally:
            session.close()

    def get(self, model: Type[Base], user_id: str, row_id: int) -> Optional[Any]:
        """Return a single row by id, or None when it does not exist for this user."""
        rows = self.select(model, user_id, filters={"id": row_id}, limit=1)
        return rows[0] if rows else None

    def insert(self, model: Type[Base], values: Dict[str, Any]) -> Any:
        """
        Insert a new row; the store assigns id and timestamps.

        Raises:
            StoreError: If the insert fails (including constraint violations)
        """
        session = self.get_session()
        try:
            row = model(**values)
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info(f"Inserted {model.__tablename__} row {row.id}")
            return row
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to insert into {model.__tablename__}: {e}")
            raise StoreError(
                f"Failed to save {model.__tablename__} row",
                details={"user_id": values.get("user_id"), "reason": _reason(e)},
                original_error=e
            ) from e
        finally:
            session.close()

    def update(self, model: Type[Base], user_id: str, row_id: int, values: Dict[str, Any]) -> None:
        """
        Update an existing row in place.

        Raises:
            StoreError: If the row does not exist or the write fails
        """
        session = self.get_session()
        try:
            row = session.query(model).filter(model.id == row_id, model.user_id == user_id).first()
            if row is None:
                raise StoreError(
                    f"{model.__tablename__} row not found",
                    details={"id": row_id, "user_id": user_id}
                )
            for key, value in values.items():
                setattr(row, key, value)
            session.commit()
            logger.info(f"Updated {model.__tablename__} row {row_id}")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to update {model.__tablename__} row {row_id}: {e}")
            raise StoreError(
                f"Failed to update {model.__tablename__} row",
                details={"id": row_id, "reason": _reason(e)},
                original_error=e
            ) from e
        finally:
            session.close()

    def delete(self, model: Type[Base], user_id: str, row_id: int) -> None:
        """
        Delete a row. Nothing else is touched.

        Raises:
            StoreError: If the row does not exist or the delete fails
        """
        session = self.get_session()
        try:
            row = session.query(model).filter(model.id == row_id, model.user_id == user_id).first()
            if row is None:
                raise StoreError(
                    f"{model.__tablename__} row not found",
                    details={"id": row_id, "user_id": user_id}
                )
            session.delete(row)
            session.commit()
            logger.info(f"Deleted {model.__tablename__} row {row_id}")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to delete {model.__tablename__} row {row_id}: {e}")
            raise StoreError(
                f"Failed to delete {model.__tablename__} row",
                details={"id": row_id, "reason": _reason(e)},
                original_error=e
            ) from e
        finally:
            session.close()
