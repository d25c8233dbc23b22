"""
Goals, trips, subscriptions and notifications.

Small pure functions over the household's planning collections. Each
returns new objects; the caller saves the replaced collection.
"""

from datetime import date, datetime
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from financely.models.household import (
    BucketGoal,
    Expense,
    Notification,
    Subscription,
    SubscriptionFrequency,
    Trip,
)
from financely.models.oracle import RecurringPaymentSuggestion
from financely.models.reports import TripSummary
from financely.services.storage.interface import NotFoundError

_FREQUENCY_STEP = {
    SubscriptionFrequency.WEEKLY: relativedelta(weeks=1),
    SubscriptionFrequency.MONTHLY: relativedelta(months=1),
    SubscriptionFrequency.YEARLY: relativedelta(years=1),
}


def remove_expense(expenses: list[Expense], expense_id: str) -> list[Expense]:
    """
    The list without `expense_id`. Its splits go with it.

    Raises:
        NotFoundError: If no expense has that id
    """
    remaining = [e for e in expenses if e.id != expense_id]
    if len(remaining) == len(expenses):
        raise NotFoundError(f"Expense not found: {expense_id}")
    return remaining


def transfer_to_goal(goal: BucketGoal, amount_cents: int) -> BucketGoal:
    """
    Move money into a savings goal. Goals only ever grow.

    Raises:
        ValueError: If the amount is not positive
    """
    if amount_cents <= 0:
        raise ValueError("Transfer amount must be greater than zero")
    return goal.model_copy(update={"current_amount": goal.current_amount + amount_cents})


def trip_summary(trip: Trip) -> TripSummary:
    spent = sum(e.amount for e in trip.expenses)
    return TripSummary(
        trip_id=trip.id,
        total_spent=spent,
        budget=trip.budget,
        remaining=trip.budget - spent,
        is_over_budget=spent > trip.budget,
    )


def next_due_date(last_payment: date, frequency: SubscriptionFrequency) -> date:
    """One period after `last_payment`. Jan 31 + 1 month is Feb 28/29."""
    return last_payment + _FREQUENCY_STEP[SubscriptionFrequency(frequency)]


def subscription_from_suggestion(suggestion: RecurringPaymentSuggestion) -> Subscription:
    return Subscription(
        description=suggestion.description,
        amount=suggestion.amount_cents,
        frequency=suggestion.frequency,
        next_due_date=next_due_date(suggestion.last_payment_date, suggestion.frequency),
        category_id=suggestion.category_id,
    )


def describe_due_date(due: date, today: date) -> str:
    """Human wording for a due date, relative to `today`."""
    days = (due - today).days
    if days < 0:
        return f"Overdue by {-days} day(s)"
    if days == 0:
        return "Due today"
    if days == 1:
        return "Due tomorrow"
    if days <= 7:
        return f"Due in {days} days"
    return f"Due on {due.day} {due.strftime('%b')}"


def time_ago(moment: datetime, now: datetime) -> str:
    """Compact age of a notification: '5m ago', '3d ago'."""
    seconds = int((now - moment).total_seconds())
    for unit_seconds, suffix in (
        (31_536_000, "y"),
        (2_592_000, "mo"),
        (86_400, "d"),
        (3_600, "h"),
        (60, "m"),
    ):
        if seconds > unit_seconds:
            return f"{seconds // unit_seconds}{suffix} ago"
    return f"{max(seconds, 0)}s ago"


def mark_notifications_read(
    notifications: Iterable[Notification],
    ids: Optional[Iterable[str]] = None,
) -> list[Notification]:
    """
    Mark notifications as read: the given ids, or all of them.

    Nothing but `is_read` changes.
    """
    wanted = set(ids) if ids is not None else None
    return [
        n.model_copy(update={"is_read": True})
        if wanted is None or n.id in wanted
        else n
        for n in notifications
    ]
