"""
Budget threshold alerting.

One policy, applied twice: in batch over every category's progress to
build the alerts banner, and inline right after an expense is recorded,
using the post-write total so the notice never lags one transaction
behind.
"""

import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

# Fraction of the limit at which a category counts as approaching it.
NEAR_LIMIT_RATIO = Decimal("0.80")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class AlertState:
    over_budget: bool = False
    near_limit: bool = False

    @property
    def triggered(self) -> bool:
        return self.over_budget or self.near_limit


def classify(spent: Decimal, limit: Decimal) -> AlertState:
    """
    Map spend against a limit to an alert state.

    A limit of zero means no budget is set, so nothing can alert no
    matter how much was spent. ``over_budget`` requires strictly more
    than the limit; exactly at the limit counts as near the limit.
    """
    if limit is None or limit <= _ZERO:
        return AlertState()
    over_budget = spent > limit
    near_limit = not over_budget and (spent / limit) >= NEAR_LIMIT_RATIO
    return AlertState(over_budget=over_budget, near_limit=near_limit)


class NoticeKind(enum.Enum):
    APPROACHING_LIMIT = "approaching_limit"
    OVER_BUDGET = "over_budget"


@dataclass(frozen=True)
class BudgetNotice:
    """Immediate warning shown after an expense pushes a category past a threshold."""

    kind: NoticeKind
    spent: Decimal
    limit: Decimal
    category_id: Optional[int] = None
    category_name: Optional[str] = None

    @property
    def percentage(self) -> Decimal:
        """Unrounded share of the limit used, in percent."""
        return self.spent / self.limit * _HUNDRED


def check_after_expense(
    prior_spent: Decimal,
    new_amount: Decimal,
    limit: Decimal,
    category_id: Optional[int] = None,
    category_name: Optional[str] = None
) -> Optional[BudgetNotice]:
    """
    Decide whether a just-recorded expense deserves an immediate notice.

    Args:
        prior_spent: Category spend for the period before the new expense
        new_amount: Amount of the expense that was just written
        limit: Category limit for the period (0 when none)
        category_id: Category the expense was filed under
        category_name: Display name for the notice

    Returns:
        BudgetNotice when the post-write total is over or near the limit,
        otherwise None
    """
    new_spent = prior_spent + new_amount
    state = classify(new_spent, limit)
    if not state.triggered:
        return None

    kind = NoticeKind.OVER_BUDGET if state.over_budget else NoticeKind.APPROACHING_LIMIT
    logger.info("Budget notice for category %s: %s (%s / %s)", category_id, kind.value, new_spent, limit)
    return BudgetNotice(
        kind=kind,
        spent=new_spent,
        limit=limit,
        category_id=category_id,
        category_name=category_name,
    )


T = TypeVar("T")


def collect_alerts(progress: Iterable[T]) -> Tuple[T, ...]:
    """Keep the progress entries that are over budget or near their limit."""
    return tuple(p for p in progress if p.over_budget or p.near_limit)
