"""
Exception hierarchy for the household budget tracker.

BudgetTrackerError is the root of every error the tracker raises on
purpose. Validation problems are raised before the entity store is
touched; store problems wrap the underlying SQLAlchemy failure so callers
can report the original message once and stop.

Dangling references (a transaction pointing at a deleted category, a
category without a budget) are not errors at all: the aggregation code
treats them as "uncategorized" or "no limit".
"""

from typing import Optional


class BudgetTrackerError(Exception):
    """
    Base exception class for all budget tracker errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
        original_error: Optional original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        """
        Initialize BudgetTrackerError.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({detail_str})"
        return msg


class ConfigError(BudgetTrackerError):
    """Raised when configuration loading or validation fails."""
    pass


class ValidationError(BudgetTrackerError):
    """Raised when user input is missing or malformed. Never retried."""
    pass


class StoreError(BudgetTrackerError):
    """Raised when a read or write against the entity store fails."""
    pass
