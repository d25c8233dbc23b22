"""Tests for goals, trips, subscriptions and notification helpers."""

import pytest
from datetime import date, datetime
from decimal import Decimal

from financely.ledger.planning import (
    describe_due_date,
    mark_notifications_read,
    next_due_date,
    remove_expense,
    subscription_from_suggestion,
    time_ago,
    transfer_to_goal,
    trip_summary,
)
from financely.models.household import SubscriptionFrequency
from financely.models.oracle import RecurringPaymentSuggestion
from financely.services.storage import NotFoundError


class TestExpensesAndGoals:
    """Tests for remove_expense and transfer_to_goal."""

    def test_remove_expense(self, household):
        remaining = remove_expense(household.expenses, "exp-3")
        assert len(remaining) == len(household.expenses) - 1
        assert "exp-3" not in [e.id for e in remaining]

    def test_remove_unknown_expense(self, household):
        with pytest.raises(NotFoundError, match="exp-404"):
            remove_expense(household.expenses, "exp-404")

    def test_transfer_to_goal(self, household):
        goal = household.get_goal("goal-1")
        updated = transfer_to_goal(goal, 250000)

        assert updated.current_amount == 1750000
        assert goal.current_amount == 1500000  # Original untouched

    def test_transfer_may_overshoot_target(self, household):
        updated = transfer_to_goal(household.get_goal("goal-2"), 5000000)
        assert updated.current_amount == 13000000
        assert updated.progress > 1

    @pytest.mark.parametrize("amount", [0, -100])
    def test_transfer_must_be_positive(self, household, amount):
        with pytest.raises(ValueError, match="greater than zero"):
            transfer_to_goal(household.get_goal("goal-1"), amount)


class TestTrips:
    """Tests for trip_summary."""

    def test_under_budget(self, household):
        summary = trip_summary(household.trips[0])

        assert summary.total_spent == 2300000
        assert summary.remaining == 700000
        assert summary.is_over_budget is False

    def test_over_budget(self, household):
        trip = household.trips[0].model_copy(update={"budget": 2000000})
        summary = trip_summary(trip)

        assert summary.remaining == -300000
        assert summary.is_over_budget is True


class TestSubscriptions:
    """Tests for due dates."""

    @pytest.mark.parametrize("last, frequency, expected", [
        (date(2024, 3, 5), SubscriptionFrequency.WEEKLY, date(2024, 3, 12)),
        (date(2024, 1, 31), SubscriptionFrequency.MONTHLY, date(2024, 2, 29)),
        (date(2024, 12, 15), SubscriptionFrequency.MONTHLY, date(2025, 1, 15)),
        (date(2024, 2, 29), SubscriptionFrequency.YEARLY, date(2025, 2, 28)),
    ])
    def test_next_due_date(self, last, frequency, expected):
        assert next_due_date(last, frequency) == expected

    def test_subscription_from_suggestion(self):
        suggestion = RecurringPaymentSuggestion(
            description="Spotify",
            amount=Decimal("119"),
            frequency="monthly",
            category_id="cat-5",
            last_payment_date=date(2024, 3, 2),
        )
        subscription = subscription_from_suggestion(suggestion)

        assert subscription.amount == 11900
        assert subscription.next_due_date == date(2024, 4, 2)
        assert subscription.id.startswith("sub-")

    @pytest.mark.parametrize("due, expected", [
        (date(2024, 3, 12), "Overdue by 3 day(s)"),
        (date(2024, 3, 15), "Due today"),
        (date(2024, 3, 16), "Due tomorrow"),
        (date(2024, 3, 22), "Due in 7 days"),
        (date(2024, 4, 5), "Due on 5 Apr"),
    ])
    def test_describe_due_date(self, due, expected):
        assert describe_due_date(due, date(2024, 3, 15)) == expected


class TestNotifications:
    """Tests for read-marking and ages."""

    def test_mark_all_read(self, household):
        notifications = mark_notifications_read(household.notifications)
        assert all(n.is_read for n in notifications)

    def test_mark_some_read_changes_nothing_else(self, household):
        before = household.notifications
        after = mark_notifications_read(before, ["notif-1"])

        assert after[0].is_read is True
        assert after[0].message == before[0].message
        assert after[0].timestamp == before[0].timestamp
        assert after[1] == before[1]

    @pytest.mark.parametrize("moment, expected", [
        (datetime(2024, 3, 15, 10, 29, 30), "30s ago"),
        (datetime(2024, 3, 15, 10, 25), "5m ago"),
        (datetime(2024, 3, 15, 7, 0), "3h ago"),
        (datetime(2024, 3, 12, 10, 0), "3d ago"),
        (datetime(2023, 3, 1, 10, 0), "1y ago"),
    ])
    def test_time_ago(self, moment, expected):
        assert time_ago(moment, datetime(2024, 3, 15, 10, 30)) == expected
