"""
Budget threshold notifications.

A notification fires only on the expense that CROSSES a threshold, so a
category sitting above 90% does not nag on every further purchase:
- crossing 100%: "exceeded" (error)
- crossing the warning ratio while staying under 100%: "approaching" (warning)

At most one of the two fires for a given expense.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from financely.models.household import (
    Expense,
    Household,
    Notification,
    NotificationSeverity,
)
from financely.models.money import format_inr


def category_spent_in_month(
    expenses: list[Expense],
    category_id: str,
    month: int,
    year: int,
) -> int:
    return sum(
        e.amount for e in expenses
        if e.category_id == category_id and e.date.month == month and e.date.year == year
    )


def budget_notification(
    household: Household,
    expense: Expense,
    as_of: date,
    warning_ratio: float = 0.9,
    currency_symbol: str = "₹",
    timestamp: Optional[datetime] = None,
) -> Optional[Notification]:
    """
    The budget notification this expense triggers, if any.

    Spending is counted for the calendar month of `as_of` (when the
    expense is being recorded), not the month of the expense's own date.
    `household` must not contain `expense` yet.
    """
    budget = household.budget_for(expense.category_id)
    if budget is None or budget.amount <= 0:
        return None

    before = category_spent_in_month(
        household.expenses, expense.category_id, as_of.month, as_of.year
    )
    after = before + expense.amount

    category = household.get_category(expense.category_id)
    category_name = category.name if category else "Uncategorized"
    budget_text = format_inr(budget.amount, symbol=currency_symbol)
    timestamp = timestamp or datetime.utcnow()

    if before < budget.amount <= after:
        return Notification(
            message=f"You've exceeded your {budget_text} budget for {category_name}!",
            timestamp=timestamp,
            severity=NotificationSeverity.ERROR,
        )

    threshold = Decimal(budget.amount) * Decimal(str(warning_ratio))
    if before < threshold <= after < budget.amount:
        return Notification(
            message=f"You're approaching your {budget_text} budget for {category_name}.",
            timestamp=timestamp,
            severity=NotificationSeverity.WARNING,
        )

    return None
