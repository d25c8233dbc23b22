"""
Integration tests for the flows.

Everything runs against the in-memory store and the FakeOracle, wired
through create_app_components like the real application.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from financely.agents import OracleUnavailableError
from financely.models.audit import AuditEventType
from financely.models.household import ExpenseDraft, HouseholdUpdate, NotificationSeverity, Split
from financely.models.oracle import (
    BudgetSuggestion,
    RecurringPaymentSuggestion,
    ReceiptExtraction,
    StatementTransaction,
    TransactionType,
)
from financely.orchestrator import AI_NOT_CONFIGURED, create_app_components
from financely.services.storage import (
    InMemoryHouseholdStorage,
    NotFoundError,
    StorageError,
)
from financely.validation import InvalidExpenseError

NOW = datetime(2024, 3, 15, 10, 30)
TODAY = date(2024, 3, 15)


class FailingStore(InMemoryHouseholdStorage):
    async def save(self, update):
        raise StorageError("Failed to save household: database is locked")


def _grocery_draft(amount: int) -> ExpenseDraft:
    return ExpenseDraft(
        description="Monthly stock-up",
        amount=amount,
        date=TODAY,
        member_id="mem-1",
        category_id="cat-1",
        splits=[Split(member_id="mem-1", amount=amount)],
    )


@pytest.fixture
async def app(memory_store, fake_oracle):
    ledger, imports, insights = create_app_components(store=memory_store, oracle=fake_oracle)
    await ledger.start()
    return ledger, imports, insights


@pytest.fixture
def ledger(app):
    return app[0]


@pytest.fixture
def imports(app):
    return app[1]


@pytest.fixture
def insights(app):
    return app[2]


def _event_types(store):
    return [e.event_type for e in store.events]


class TestHouseholdLedgerFlow:
    """Tests for ledger writes."""

    async def test_household_requires_start(self, memory_store):
        ledger, _, _ = create_app_components(store=memory_store, use_ai=False)
        with pytest.raises(StorageError, match="call start"):
            ledger.household

    async def test_add_expense_saves_and_reloads(self, ledger, memory_store, draft):
        count = len(ledger.household.expenses)

        expense, notifications = await ledger.add_expense(draft, NOW)

        assert notifications == []
        assert ledger.household.expenses[-1].id == expense.id
        assert len((await memory_store.load()).expenses) == count + 1
        assert _event_types(memory_store) == [AuditEventType.EXPENSE_RECORDED]

    async def test_add_expense_saves_notifications(self, ledger, memory_store):
        expense, notifications = await ledger.add_expense(_grocery_draft(1500000), NOW)

        stored = await memory_store.load()
        assert stored.notifications[-1].id == notifications[0].id
        assert stored.notifications[-1].severity == NotificationSeverity.WARNING
        assert stored.unread_count == 2

        recorded, raised = memory_store.events
        assert raised.event_type == AuditEventType.NOTIFICATION_RAISED
        assert recorded.correlation_id == raised.correlation_id

    async def test_rejected_expense_is_audited_and_not_saved(self, ledger, memory_store, draft):
        before = ledger.household

        with pytest.raises(InvalidExpenseError):
            await ledger.add_expense(draft.model_copy(update={"amount": 0}), NOW)

        assert ledger.household == before
        assert _event_types(memory_store) == [AuditEventType.EXPENSE_REJECTED]
        assert memory_store.events[0].details["issues"][0]["field"] == "amount"

    async def test_failed_save_leaves_snapshot_unchanged(self, household, draft):
        store = FailingStore(household)
        ledger, _, _ = create_app_components(store=store, use_ai=False)
        await ledger.start()
        before = ledger.household

        with pytest.raises(StorageError, match="database is locked"):
            await ledger.add_expense(draft, NOW)

        assert ledger.household == before
        assert _event_types(store) == [AuditEventType.SAVE_FAILED]
        assert store.events[0].details == {"operation": "add_expense"}

    async def test_add_expenses_crosses_threshold_once(self, ledger):
        drafts = [
            _grocery_draft(1000000),
            _grocery_draft(500000),
            _grocery_draft(0),
            _grocery_draft(10000),
        ]
        recorded, skipped = await ledger.add_expenses(drafts, NOW)

        assert len(recorded) == 3
        assert [d.amount for d in skipped] == [0]
        warnings = [
            n for n in ledger.household.notifications
            if n.message.startswith("You're approaching")
        ]
        assert len(warnings) == 1

    async def test_add_expenses_skips_overlong_description(self, ledger):
        """Test that one oversized statement line does not abort the import."""
        long_line = _grocery_draft(20000).model_copy(update={"description": "x" * 600})
        recorded, skipped = await ledger.add_expenses([_grocery_draft(10000), long_line], NOW)

        assert [e.amount for e in recorded] == [10000]
        assert skipped == [long_line]
        assert recorded[0].id in [e.id for e in ledger.household.expenses]

    async def test_delete_expense(self, ledger, memory_store):
        await ledger.delete_expense("exp-3")

        assert ledger.household.get_category("cat-3") is not None
        assert "exp-3" not in [e.id for e in ledger.household.expenses]
        assert _event_types(memory_store) == [AuditEventType.EXPENSE_DELETED]

    async def test_delete_unknown_expense(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.delete_expense("exp-404")

    async def test_transfer_to_goal(self, ledger, memory_store):
        goal = await ledger.transfer_to_goal("goal-1", 500000)

        assert goal.current_amount == 2000000
        assert ledger.household.get_goal("goal-1").current_amount == 2000000
        assert memory_store.events[0].details == {"amount": 500000}

    async def test_transfer_validation(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.transfer_to_goal("goal-404", 100)
        with pytest.raises(ValueError):
            await ledger.transfer_to_goal("goal-1", 0)

    async def test_mark_notifications_read(self, ledger):
        await ledger.mark_notifications_read()
        assert ledger.household.unread_count == 0

    async def test_update_bulk_and_empty(self, ledger, memory_store):
        before = ledger.household
        assert await ledger.update(HouseholdUpdate()) == before
        assert memory_store.events == []

        household = await ledger.update(HouseholdUpdate(rules=[], monthly_income=9000000))

        assert household.rules == []
        assert household.monthly_income == 9000000
        assert memory_store.events[0].details == {"fields": ["rules", "monthly_income"]}

    async def test_adopt_budget_suggestions(self, ledger):
        budgets = await ledger.adopt_budget_suggestions([
            BudgetSuggestion(category_id="cat-1", amount=Decimal("25000")),
            BudgetSuggestion(category_id="cat-5", amount=Decimal("3000")),
            BudgetSuggestion(category_id="cat-404", amount=Decimal("1")),
        ])

        by_category = {b.category_id: b for b in budgets}
        assert by_category["cat-1"].amount == 2500000
        assert by_category["cat-1"].id == "bud-1"
        assert by_category["cat-5"].amount == 300000
        assert by_category["cat-2"].amount == 1000000
        assert "cat-404" not in by_category

    async def test_add_subscription_from_suggestion(self, ledger):
        subscription = await ledger.add_subscription_from_suggestion(RecurringPaymentSuggestion(
            description="Spotify",
            amount=Decimal("119"),
            frequency="monthly",
            category_id="cat-5",
            last_payment_date=date(2024, 3, 2),
        ))

        assert ledger.household.subscriptions[-1].id == subscription.id
        assert subscription.next_due_date == date(2024, 4, 2)

    async def test_add_trip_expense_skips_budgets(self, ledger, draft):
        before = len(ledger.household.expenses)
        expense = await ledger.add_trip_expense("trip-1", draft, TODAY)

        trip = ledger.household.trips[0]
        assert trip.expenses[-1].id == expense.id
        assert len(ledger.household.expenses) == before

    async def test_add_trip_expense_unknown_trip(self, ledger, draft):
        with pytest.raises(NotFoundError):
            await ledger.add_trip_expense("trip-404", draft)

    async def test_read_views(self, ledger):
        assert ledger.monthly(3, 2024).total == 1210000
        assert ledger.dashboard(TODAY).total_budget == 5300000
        assert len(ledger.trend(TODAY).labels) == 31
        assert ledger.export_csv().startswith("Expense ID,Date,Description")


class TestImportFlow:
    """Tests for receipt and statement intake."""

    async def test_extract_receipt(self, imports, ledger):
        draft, message = await imports.extract_receipt(b"img", "image/jpeg", "mem-2", TODAY)

        assert draft.category_id == "cat-1"
        assert draft.amount == 45075
        assert draft.member_id == "mem-2"
        assert [s.amount for s in draft.splits] == [22538, 22537]
        assert "review" in message
        assert ledger.household.expenses[-1].id == "exp-8"  # Nothing saved

    async def test_receipt_category_from_rules_then_other(self, imports, fake_oracle):
        fake_oracle.receipt = ReceiptExtraction(
            description="Swiggy order", amount=Decimal("300"), category_name="Takeaway"
        )
        draft, _ = await imports.extract_receipt(b"img", "image/jpeg", "mem-1", TODAY)
        assert draft.category_id == "cat-3"

        fake_oracle.receipt = ReceiptExtraction(description="Hardware store", amount=Decimal("300"))
        draft, _ = await imports.extract_receipt(b"img", "image/jpeg", "mem-1", TODAY)
        assert draft.category_id == "cat-8"

    async def test_receipt_failure(self, imports, fake_oracle, memory_store):
        fake_oracle.fail = True
        draft, message = await imports.extract_receipt(b"img", "image/jpeg", "mem-1", TODAY)

        assert draft is None
        assert "service down" in message
        assert _event_types(memory_store) == [AuditEventType.ORACLE_FAILED]

    async def test_parse_statement(self, imports, fake_oracle):
        fake_oracle.statement = [
            StatementTransaction(date=TODAY, description="UBER TRIP", amount=Decimal("210"), type="debit"),
            StatementTransaction(date=TODAY, description="DMART", amount=Decimal("999"), type="debit"),
            StatementTransaction(date=TODAY, description="SALARY", amount=Decimal("90000"), type="credit"),
        ]
        fake_oracle.category_ids = ["cat-1", "cat-1"]

        transactions, message = await imports.parse_statement("csv", "text/csv")

        assert [t.category_id for t in transactions] == ["cat-4", "cat-1"]
        assert all(t.type == TransactionType.DEBIT for t in transactions)
        assert message == "Found 2 expenses (1 credits ignored)."

    async def test_statement_with_only_credits(self, imports, fake_oracle):
        fake_oracle.statement = [
            StatementTransaction(date=TODAY, description="REFUND", amount=Decimal("10"), type="credit"),
        ]
        transactions, message = await imports.parse_statement("csv", "text/csv")
        assert transactions == []
        assert message == "No expenses found in this statement."

    async def test_categorization_outage_falls_back(self, imports, fake_oracle):
        async def unavailable(transactions, household):
            raise OracleUnavailableError("categorization failed: timeout")

        fake_oracle.categorize_batch = unavailable
        fake_oracle.statement = [
            StatementTransaction(date=TODAY, description="OLA CABS", amount=Decimal("150"), type="debit"),
            StatementTransaction(date=TODAY, description="PHARMACY", amount=Decimal("80"), type="debit"),
        ]

        transactions, _ = await imports.parse_statement("csv", "text/csv")
        assert [t.category_id for t in transactions] == ["cat-4", "cat-8"]

    async def test_import_transactions(self, imports, ledger, memory_store, fake_oracle):
        fake_oracle.statement = [
            StatementTransaction(date=TODAY, description="ZOMATO", amount=Decimal("450.50"), type="debit"),
        ]
        transactions, _ = await imports.parse_statement("csv", "text/csv")

        recorded, skipped = await imports.import_transactions(transactions, "mem-2", NOW)

        assert skipped == 0
        assert recorded[0].category_id == "cat-3"
        assert [(s.member_id, s.amount) for s in recorded[0].splits] == [("mem-2", 45050)]
        assert ledger.household.expenses[-1].id == recorded[0].id
        assert _event_types(memory_store)[-1] == AuditEventType.IMPORT_COMPLETED

    async def test_no_oracle(self, memory_store):
        _, imports, _ = create_app_components(store=memory_store, use_ai=False)
        assert await imports.parse_statement("csv", "text/csv") == ([], AI_NOT_CONFIGURED)


class TestInsightsFlow:
    """Tests for the AI insight features."""

    async def test_report(self, insights):
        report, message = await insights.report(TODAY)
        assert report == "## March report"
        assert message == "Report generated."

    async def test_report_failure(self, insights, fake_oracle, memory_store):
        fake_oracle.fail = True
        report, message = await insights.report(TODAY)

        assert report is None
        assert message == "Sorry, the spending report is unavailable right now."
        assert _event_types(memory_store) == [AuditEventType.ORACLE_FAILED]

    async def test_chat(self, insights):
        chunks = [c async for c in insights.chat("How much on groceries?")]
        assert "".join(chunks) == "You spent ₹3,500 on groceries."

    async def test_chat_failure_ends_with_apology(self, insights, fake_oracle):
        fake_oracle.fail = True
        chunks = [c async for c in insights.chat("Hi")]
        assert chunks == ["Sorry, the assistant is unavailable right now."]

    async def test_budget_suggestions_drop_unknown_categories(self, insights, fake_oracle):
        fake_oracle.budgets = [
            BudgetSuggestion(category_id="cat-1", amount=Decimal("20000")),
            BudgetSuggestion(category_id="cat-404", amount=Decimal("1")),
        ]
        suggestions, message = await insights.suggest_budgets()

        assert [s.category_id for s in suggestions] == ["cat-1"]
        assert message == "1 budget suggestions ready."

    async def test_income_budget_needs_income(self, insights, ledger, fake_oracle):
        await ledger.update(HouseholdUpdate(monthly_income=0))
        suggestions, message = await insights.suggest_budgets(from_income=True)

        assert suggestions is None
        assert message == "Set your monthly income first."
        assert "suggest_income_budget" not in fake_oracle.calls

    async def test_recurring_skips_known_subscriptions(self, insights, fake_oracle):
        fake_oracle.recurring = [
            RecurringPaymentSuggestion(
                description="Netflix Subscription", amount=Decimal("649"), frequency="monthly",
                category_id="cat-5", last_payment_date=date(2024, 3, 1),
            ),
            RecurringPaymentSuggestion(
                description="Broadband", amount=Decimal("999"), frequency="monthly",
                category_id="cat-2", last_payment_date=date(2024, 3, 3),
            ),
        ]
        suggestions, message = await insights.detect_recurring()

        assert [s.description for s in suggestions] == ["Broadband"]
        assert message == "Found 1 possible subscriptions."

    async def test_transfer_suggestion(self, insights):
        suggestion, message = await insights.suggest_transfer("goal-1", TODAY)
        assert suggestion.amount_cents == 185050
        assert message == "You are under budget."

    async def test_transfer_unknown_goal(self, insights):
        with pytest.raises(NotFoundError):
            await insights.suggest_transfer("goal-404")

    async def test_savings(self, insights):
        suggestions, message = await insights.suggest_savings(TODAY)
        assert suggestions == []
        assert message == "0 savings ideas."

    async def test_no_oracle(self, memory_store):
        _, _, insights = create_app_components(store=memory_store, use_ai=False)
        assert await insights.report() == (None, AI_NOT_CONFIGURED)


class TestCreateAppComponents:
    """Tests for the factory."""

    async def test_memory_backend_from_environment(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        ledger, _, _ = create_app_components(use_ai=False)
        household = await ledger.start()

        assert household.name == "The Sharma Household"

    async def test_sql_backend_from_environment(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "sql")
        monkeypatch.setenv("STORAGE_DATABASE_URL", "sqlite://")
        ledger, _, _ = create_app_components(use_ai=False)
        await ledger.start()

        expense, _ = await ledger.add_expense(_grocery_draft(1000), NOW)
        await ledger.reload()
        assert ledger.household.expenses[-1].id == expense.id
        await ledger.close()
