"""
Ledger package.

The deterministic core: splits, rules, budget notifications, aggregates,
trends, CSV export and planning helpers, plus the LedgerEngine that
admits new expenses.
"""

from financely.ledger.aggregates import (
    dashboard_summary,
    expenses_in_month,
    filter_expenses,
    monthly_aggregate,
    spent_by_category,
    spent_by_member,
)
from financely.ledger.budget import budget_notification, category_spent_in_month
from financely.ledger.export import CSV_HEADER, LedgerLookup, export_ledger_csv
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
from financely.ledger.rules import suggest_category
from financely.ledger.splits import (
    compute_equal_split,
    compute_proportional_split,
    drop_zero_splits,
)
from financely.ledger.trends import build_trend_series
from financely.ledger.engine import LedgerEngine

__all__ = [
    # Engine
    "LedgerEngine",
    # Splits and rules
    "compute_equal_split",
    "compute_proportional_split",
    "drop_zero_splits",
    "suggest_category",
    # Budgets
    "budget_notification",
    "category_spent_in_month",
    # Read models
    "build_trend_series",
    "dashboard_summary",
    "expenses_in_month",
    "filter_expenses",
    "monthly_aggregate",
    "spent_by_category",
    "spent_by_member",
    # Export
    "CSV_HEADER",
    "LedgerLookup",
    "export_ledger_csv",
    # Planning
    "describe_due_date",
    "mark_notifications_read",
    "next_due_date",
    "remove_expense",
    "subscription_from_suggestion",
    "time_ago",
    "transfer_to_goal",
    "trip_summary",
]
