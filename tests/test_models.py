"""
Tests for Financely models

Test strategy:
1. Unit tests for individual components (models, ledger functions, validators)
2. Integration tests for flows (with a fake oracle and in-memory stores)
3. No real API calls in tests
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from financely.models.household import (
    Budget,
    Expense,
    Household,
    HouseholdUpdate,
    Member,
    Notification,
    NotificationSeverity,
    Split,
    Trip,
)
from financely.models.oracle import (
    AnomalyVerdict,
    BudgetSuggestion,
    RecurringPaymentSuggestion,
    StatementTransaction,
    TransactionType,
)
from financely.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from financely.models.validation import ValidationIssue, ValidationResult


class TestHouseholdModels:
    """Tests for the household snapshot models."""

    def test_member_strips_whitespace(self):
        """Test that whitespace is stripped from member names."""
        member = Member(id="mem-9", name="  Asha  ")
        assert member.name == "Asha"

    def test_expense_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            Expense(
                description="Test",
                amount=-100,
                date=date(2024, 3, 1),
                member_id="mem-1",
                category_id="cat-1",
            )

    def test_expense_generates_prefixed_id(self):
        expense = Expense(
            description="Tea",
            amount=2000,
            date=date(2024, 3, 1),
            member_id="mem-1",
            category_id="cat-1",
        )
        assert expense.id.startswith("exp-")

    def test_expense_split_total(self):
        """Test split_total and is_fully_split."""
        expense = Expense(
            description="Dinner",
            amount=1000,
            date=date(2024, 3, 1),
            member_id="mem-1",
            category_id="cat-3",
            splits=[Split(member_id="mem-1", amount=600), Split(member_id="mem-2", amount=300)],
        )
        assert expense.split_total == 900
        assert expense.is_fully_split is False

    def test_trip_date_validation(self):
        """Test that a trip cannot end before it starts."""
        with pytest.raises(ValueError, match="Trip end date cannot be before start date"):
            Trip(
                name="Goa",
                start_date=date(2024, 5, 10),
                end_date=date(2024, 5, 1),
                budget=100000,
            )

    def test_one_budget_per_category(self, household):
        """Test that two budgets for one category are rejected."""
        data = household.model_dump()
        data["budgets"].append({"id": "bud-x", "category_id": "cat-1", "amount": 5})
        with pytest.raises(ValueError, match="Only one budget per category"):
            Household.model_validate(data)

    def test_notification_defaults(self):
        notification = Notification(message="Hello")
        assert notification.severity == NotificationSeverity.INFO
        assert notification.is_read is False

    def test_default_category_prefers_other(self, household):
        assert household.default_category_id() == "cat-8"

    def test_default_category_falls_back_to_first(self, household):
        assert household.default_category_id("Misc") == "cat-1"

    def test_find_category_by_name_is_case_insensitive(self, household):
        assert household.find_category_by_name(" dining out ").id == "cat-3"

    def test_unread_count(self, household):
        assert household.unread_count == 1


class TestHouseholdUpdate:
    """Tests for whole-collection replacement."""

    def test_changed_fields(self):
        update = HouseholdUpdate(budgets=[], monthly_income=0)
        assert update.changed_fields == ["budgets", "monthly_income"]
        assert update.is_empty is False

    def test_empty_update(self):
        assert HouseholdUpdate().is_empty is True

    def test_apply_update_replaces_whole_collection(self, household):
        """Test that a replaced list is replaced in full, not merged."""
        update = HouseholdUpdate(budgets=[Budget(category_id="cat-5", amount=300000)])
        updated = household.apply_update(update)

        assert [b.category_id for b in updated.budgets] == ["cat-5"]
        assert updated.expenses == household.expenses
        assert len(household.budgets) == 4  # Original untouched

    def test_apply_update_revalidates(self, household):
        update = HouseholdUpdate(budgets=[
            Budget(category_id="cat-1", amount=1),
            Budget(category_id="cat-1", amount=2),
        ])
        with pytest.raises(ValueError):
            household.apply_update(update)


class TestOracleModels:
    """Tests for the shapes parsed out of Gemini answers."""

    def test_amount_cents_has_no_float_drift(self):
        transaction = StatementTransaction(
            date=date(2024, 3, 5),
            description="ZOMATO ORDER",
            amount=Decimal("450.75"),
            type=TransactionType.DEBIT,
        )
        assert transaction.amount_cents == 45075

    def test_accepts_camel_case_keys(self):
        """Test that camelCase answers still validate."""
        verdict = AnomalyVerdict.model_validate({"isAnomalous": True, "reasoning": "Too high"})
        suggestion = BudgetSuggestion.model_validate({"categoryId": "cat-1", "amount": 20000})
        assert verdict.is_anomalous is True
        assert suggestion.category_id == "cat-1"
        assert suggestion.amount_cents == 2000000

    def test_recurring_frequency_must_be_known(self):
        with pytest.raises(ValueError):
            RecurringPaymentSuggestion(
                description="Netflix",
                amount=Decimal("649"),
                frequency="fortnightly",
                category_id="cat-5",
                last_payment_date=date(2024, 3, 1),
            )


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_RECORDED,
            description="Expense recorded",
        )
        assert event.event_type == AuditEventType.EXPENSE_RECORDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.GOAL_TRANSFER,
            description="Transferred",
            details={"amount": 500},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "goal_transfer"
        assert log_dict["details"]["amount"] == 500

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            description="Expense deleted",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "expense_deleted"
        assert row[10] == "True"

    def test_builder_expense_recorded(self):
        """Test AuditEventBuilder.expense_recorded."""
        correlation_id = uuid4()
        event = AuditEventBuilder.expense_recorded(
            expense_id="exp-1",
            description="Vegetables",
            amount=100000,
            notification_count=1,
            correlation_id=correlation_id,
        )
        assert event.entity_id == "exp-1"
        assert event.correlation_id == correlation_id
        assert event.details == {"amount": 100000, "notifications": 1}
        assert event.is_user_action is True

    def test_builder_save_failed_is_error(self):
        event = AuditEventBuilder.save_failed("add_expense", "disk full")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "disk full"

    def test_builder_notification_severity(self):
        """Test that warning and error notifications audit as warnings."""
        event = AuditEventBuilder.notification_raised("notif-1", "error", "Over budget")
        assert event.severity == AuditSeverity.WARNING


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount must be greater than zero",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1
        assert result.error_messages == ["Amount must be greater than zero"]

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            schema_valid=True,
            semantic_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message="Date in future",
                    severity="warning",
                ),
            ],
            validated_at=datetime(2024, 3, 15),
        )
        assert result.has_errors is False
        assert result.error_count == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
