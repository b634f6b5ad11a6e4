"""
Utility helpers shared by the tracker modules.

Covers money parsing, calendar-month arithmetic, and resolution of the
data directory, database connection string and log file path so the CLI
and the tests agree on where things live.
"""

from __future__ import annotations

import calendar
import logging
import os
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.engine import make_url

from exceptions import ValidationError

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent
_DEFAULT_DATA_DIR_NAME = "data"
_DEFAULT_DB_FILENAME = "budget.db"
CONNECTION_ENV_VAR = "BUDGET_DB_CONNECTION_STRING"

ZERO = Decimal("0")
_CENTS = Decimal("0.01")


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Convert user input into a strictly positive Decimal.

    Floats go through ``str`` first so 0.1 stays 0.1 rather than its
    binary expansion.

    Args:
        value: Raw amount (str, int, float or Decimal).
        field: Field name used in the error details.

    Returns:
        Parsed Decimal amount.

    Raises:
        ValidationError: If the value is missing, non-numeric, not > 0 or
            finer than a cent.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field.capitalize()} is required", details={"field": field})
    if isinstance(value, bool):
        raise ValidationError(f"{field.capitalize()} must be numeric", details={"field": field, "value": value})
    try:
        if isinstance(value, float):
            amount = Decimal(str(value))
        else:
            amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(
            f"{field.capitalize()} must be numeric",
            details={"field": field, "value": value},
            original_error=exc
        ) from exc
    if not amount.is_finite():
        raise ValidationError(f"{field.capitalize()} must be numeric", details={"field": field, "value": value})
    if amount <= 0:
        raise ValidationError(f"{field.capitalize()} must be greater than zero", details={"field": field, "value": value})
    try:
        whole_cents = amount == amount.quantize(_CENTS)
    except InvalidOperation as exc:
        raise ValidationError(f"{field.capitalize()} has too many digits", details={"field": field, "value": value},
                              original_error=exc) from exc
    # Money is stored to the cent; anything finer would be rounded by the store.
    if not whole_cents:
        raise ValidationError(
            f"{field.capitalize()} cannot have more than two decimal places",
            details={"field": field, "value": value}
        )
    return amount


def validate_period(month: int, year: int) -> None:
    """Raise ValidationError unless (month, year) names a real calendar month."""
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12", details={"month": month})
    if not isinstance(year, int) or not 1 <= year <= 9999:
        raise ValidationError("Year is out of range", details={"year": year})


def month_period(year: int, month: int) -> Tuple[date, date]:
    """
    Get the first and last day of a calendar month.

    Args:
        year: Four digit year.
        month: Month number, 1-12.

    Returns:
        Tuple of (period_start, period_end), both inclusive.
    """
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def shift_month(year: int, month: int, offset: int) -> Tuple[int, int]:
    """Return the (year, month) that lies ``offset`` months from the given one."""
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def get_project_root() -> Path:
    """Return the repository root directory."""
    return _PROJECT_ROOT


def _coerce_path(path_value: str | Path) -> Path:
    path = Path(path_value)
    if path.is_absolute():
        return path
    return get_project_root() / path


def ensure_data_dir(config: Optional[Dict[str, Any]] = None) -> Path:
    """
    Ensure the data directory exists and return its Path.

    Args:
        config: Optional configuration dictionary.

    Returns:
        Absolute Path to the data directory.
    """
    db_config = (config or {}).get("database", {})
    data_dir = _coerce_path(db_config.get("data_dir", _DEFAULT_DATA_DIR_NAME))
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("Failed to create data directory '%s': %s", data_dir, exc)
        raise
    return data_dir


def _ensure_sqlite_parent_dir(connection_string: str) -> None:
    try:
        url = make_url(connection_string)
    except Exception as exc:  # pragma: no cover - logging only
        logger.debug("Unable to parse connection string '%s': %s", connection_string, exc)
        return

    if not url.drivername.startswith("sqlite"):
        return
    database = url.database
    if not database or database == ":memory:":
        return

    db_path = Path(database)
    if not db_path.is_absolute():
        db_path = get_project_root() / db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)


def resolve_connection_string(config: Optional[Dict[str, Any]] = None) -> str:
    """
    Resolve the database connection string.

    Order of precedence:
        1. BUDGET_DB_CONNECTION_STRING environment variable
        2. config['database']['connection_string']
        3. SQLite file built from data_dir/path

    Args:
        config: Optional configuration dictionary.

    Returns:
        SQLAlchemy connection string.
    """
    config = config or {}
    env_conn = os.environ.get(CONNECTION_ENV_VAR)
    if env_conn:
        _ensure_sqlite_parent_dir(env_conn)
        return env_conn

    db_config = config.get("database", {})
    config_conn = db_config.get("connection_string")
    if config_conn:
        _ensure_sqlite_parent_dir(config_conn)
        return config_conn

    data_dir = ensure_data_dir(config)
    db_path = Path(db_config.get("path", _DEFAULT_DB_FILENAME))
    if not db_path.is_absolute():
        db_path = data_dir / db_path
    else:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{db_path.as_posix()}"


def resolve_log_path(log_path: str) -> Path:
    """
    Convert a log file path to an absolute path under the project root when needed.

    Args:
        log_path: Configured log file path (relative or absolute).

    Returns:
        Absolute Path for logging output.
    """
    resolved = _coerce_path(log_path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved
