"""
Data Models Package

This package contains all Pydantic models used in Financely.
All data flowing through the system must conform to these schemas.
"""

from financely.models.household import (
    BucketGoal,
    Budget,
    Category,
    Expense,
    ExpenseDraft,
    Household,
    HouseholdUpdate,
    Member,
    Notification,
    NotificationSeverity,
    Rule,
    Split,
    Subscription,
    SubscriptionFrequency,
    Trip,
    new_id,
)
from financely.models.money import (
    cents_to_decimal,
    format_decimal,
    format_inr,
    to_cents,
)
from financely.models.oracle import (
    AnomalyVerdict,
    BudgetSuggestion,
    CategorizedTransaction,
    ChatMessage,
    OracleFailure,
    ReceiptExtraction,
    RecurringPaymentSuggestion,
    SavingsSuggestion,
    StatementTransaction,
    TransactionType,
    TransferSuggestion,
)
from financely.models.reports import (
    BudgetStatus,
    DashboardSummary,
    MonthlyAggregate,
    TrendSeries,
    TripSummary,
)
from financely.models.validation import ValidationIssue, ValidationResult
from financely.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Household models
    "BucketGoal",
    "Budget",
    "Category",
    "Expense",
    "ExpenseDraft",
    "Household",
    "HouseholdUpdate",
    "Member",
    "Notification",
    "NotificationSeverity",
    "Rule",
    "Split",
    "Subscription",
    "SubscriptionFrequency",
    "Trip",
    "new_id",
    # Money
    "cents_to_decimal",
    "format_decimal",
    "format_inr",
    "to_cents",
    # Oracle models
    "AnomalyVerdict",
    "BudgetSuggestion",
    "CategorizedTransaction",
    "ChatMessage",
    "OracleFailure",
    "ReceiptExtraction",
    "RecurringPaymentSuggestion",
    "SavingsSuggestion",
    "StatementTransaction",
    "TransactionType",
    "TransferSuggestion",
    # Read models
    "BudgetStatus",
    "DashboardSummary",
    "MonthlyAggregate",
    "TrendSeries",
    "TripSummary",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
