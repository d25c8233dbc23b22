"""
Main Orchestrator for Financely

This module ties together all the components and defines the
end-to-end flows for:
1. Ledger writes (record / update / delete / transfer / read-mark)
2. Imports (receipt → draft, statement → categorized transactions → expenses)
3. Insights (reports, chat, budget / transfer / recurring / savings ideas)

DESIGN DECISION: The orchestrator enforces the boundaries:
- The store is the source of truth: after every successful write the
  snapshot is RELOADED, never patched in memory
- A failed write leaves the in-memory snapshot exactly as it was
- AI answers are suggestions; nothing the oracle says is saved without
  going through the ledger or an explicit adopt step
- Every write is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import date, datetime
from typing import AsyncIterator, Optional, Union
from uuid import UUID

import structlog

from financely.agents import (
    GeminiOracle,
    HouseholdOracle,
    OracleError,
)
from financely.audit import AuditLogger, create_correlation_id
from financely.config import Settings, get_settings
from financely.ledger import (
    LedgerEngine,
    LedgerLookup,
    build_trend_series,
    compute_equal_split,
    dashboard_summary,
    export_ledger_csv,
    mark_notifications_read,
    monthly_aggregate,
    remove_expense,
    subscription_from_suggestion,
    suggest_category,
    transfer_to_goal,
)
from financely.models.household import (
    BucketGoal,
    Budget,
    Expense,
    ExpenseDraft,
    Household,
    HouseholdUpdate,
    Notification,
    Subscription,
)
from financely.models.oracle import (
    BudgetSuggestion,
    CategorizedTransaction,
    ChatMessage,
    RecurringPaymentSuggestion,
    SavingsSuggestion,
    StatementTransaction,
    TransactionType,
    TransferSuggestion,
)
from financely.models.reports import DashboardSummary, MonthlyAggregate, TrendSeries
from financely.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsHouseholdStorage,
    HouseholdStorageInterface,
    InMemoryHouseholdStorage,
    NotFoundError,
    SQLHouseholdStorage,
    StorageError,
)
from financely.validation import InvalidExpenseError

logger = structlog.get_logger(__name__)

AI_NOT_CONFIGURED = "AI features are not configured. Set GEMINI_API_KEY to enable them."


class HouseholdLedgerFlow:
    """
    Orchestrates every write to the household.

    Flow for each write:
    1. Compute the new collection(s) from the current snapshot
    2. Save them in one store call
    3. Reload the snapshot from the store

    If step 2 fails the snapshot is untouched, the failure is audited and
    the StorageError propagates.
    """

    def __init__(
        self,
        store: HouseholdStorageInterface,
        engine: Optional[LedgerEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._engine = engine or LedgerEngine(audit_logger=audit_logger)
        self._household: Optional[Household] = None

    @property
    def engine(self) -> LedgerEngine:
        return self._engine

    @property
    def household(self) -> Household:
        """The snapshot as of the last load."""
        if self._household is None:
            raise StorageError("Household not loaded; call start() first")
        return self._household

    async def start(self) -> Household:
        """Open the store (creating / seeding it if needed) and load."""
        await self._store.open()
        return await self.reload()

    async def reload(self) -> Household:
        self._household = await self._store.load()
        return self._household

    async def close(self) -> None:
        await self._store.close()

    async def _save(
        self,
        update: HouseholdUpdate,
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> Household:
        try:
            await self._store.save(update)
        except StorageError as e:
            logger.error("household_save_failed", operation=operation, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    operation=operation,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise
        return await self.reload()

    # -- expenses -----------------------------------------------------------

    async def add_expense(
        self,
        draft: ExpenseDraft,
        as_of: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Expense, list[Notification]]:
        """
        Record one expense and the notifications it raises.

        Raises:
            InvalidExpenseError: Draft rejected; nothing saved
            StorageError: Save failed; snapshot unchanged
        """
        correlation_id = correlation_id or create_correlation_id()
        household = self.household

        try:
            expense, notifications = await self._engine.record_expense(
                draft, household, as_of
            )
        except InvalidExpenseError as e:
            if self._audit_logger:
                await self._audit_logger.log_expense_rejected(
                    description=draft.description,
                    issues=[
                        {"field": i.field, "type": i.issue_type, "message": i.message}
                        for i in e.issues
                    ],
                    correlation_id=correlation_id,
                )
            raise

        update = HouseholdUpdate(
            expenses=household.expenses + [expense],
            notifications=household.notifications + notifications,
        )
        await self._save(update, "add_expense", correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_expense_recorded(
                expense_id=expense.id,
                description=expense.description,
                amount=expense.amount,
                notification_count=len(notifications),
                correlation_id=correlation_id,
            )
            for notification in notifications:
                await self._audit_logger.log_notification_raised(
                    notification_id=notification.id,
                    severity=notification.severity.value,
                    message=notification.message,
                    correlation_id=correlation_id,
                )

        return expense, notifications

    async def add_expenses(
        self,
        drafts: list[ExpenseDraft],
        as_of: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[list[Expense], list[ExpenseDraft]]:
        """
        Record several expenses in one save (statement imports).

        Each draft is admitted against the snapshot including the ones
        before it, so budget thresholds are crossed exactly once. Invalid
        drafts are skipped and returned.

        Returns:
            (recorded, skipped)
        """
        correlation_id = correlation_id or create_correlation_id()
        working = self.household
        recorded: list[Expense] = []
        skipped: list[ExpenseDraft] = []
        new_notifications: list[Notification] = []

        for draft in drafts:
            try:
                expense, notifications = await self._engine.record_expense(
                    draft, working, as_of
                )
            except InvalidExpenseError as e:
                logger.info(
                    "import_row_skipped",
                    description=draft.description,
                    reason=str(e),
                )
                skipped.append(draft)
                continue
            recorded.append(expense)
            new_notifications.extend(notifications)
            working = working.model_copy(update={"expenses": working.expenses + [expense]})

        if recorded:
            update = HouseholdUpdate(
                expenses=working.expenses,
                notifications=self.household.notifications + new_notifications,
            )
            await self._save(update, "add_expenses", correlation_id)

        return recorded, skipped

    async def delete_expense(
        self,
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Household:
        """
        Remove an expense and its splits.

        Raises:
            NotFoundError: Unknown expense id
        """
        expenses = remove_expense(self.household.expenses, expense_id)
        household = await self._save(
            HouseholdUpdate(expenses=expenses), "delete_expense", correlation_id
        )
        if self._audit_logger:
            await self._audit_logger.log_expense_deleted(expense_id, correlation_id)
        return household

    async def add_trip_expense(
        self,
        trip_id: str,
        draft: ExpenseDraft,
        as_of: Optional[date] = None,
    ) -> Expense:
        """
        Record an expense against a trip. Trip expenses are validated like
        household ones but never count towards monthly budgets.
        """
        household = self.household
        trip = next((t for t in household.trips if t.id == trip_id), None)
        if trip is None:
            raise NotFoundError(f"Trip not found: {trip_id}")

        self._engine.validator.ensure_valid(draft, household, as_of)
        expense = Expense(
            description=draft.description,
            amount=draft.amount,
            date=draft.date,
            member_id=draft.member_id,
            category_id=draft.category_id,
            splits=[s for s in draft.splits if s.amount > 0],
        )
        trips = [
            t.model_copy(update={"expenses": t.expenses + [expense]}) if t.id == trip_id else t
            for t in household.trips
        ]
        await self._save(HouseholdUpdate(trips=trips), "add_trip_expense")
        return expense

    # -- collections and settings ------------------------------------------

    async def update(
        self,
        update: HouseholdUpdate,
        correlation_id: Optional[UUID] = None,
    ) -> Household:
        """Bulk replace of rules, budgets, goals, trips, subscriptions or settings."""
        if update.is_empty:
            return self.household

        household = await self._save(update, "update", correlation_id)
        if self._audit_logger:
            await self._audit_logger.log_household_updated(
                update.changed_fields, correlation_id
            )
        return household

    async def transfer_to_goal(
        self,
        goal_id: str,
        amount_cents: int,
        correlation_id: Optional[UUID] = None,
    ) -> BucketGoal:
        """
        Add money to a savings goal.

        Raises:
            NotFoundError: Unknown goal id
            ValueError: Amount not positive
        """
        goal = self.household.get_goal(goal_id)
        if goal is None:
            raise NotFoundError(f"Goal not found: {goal_id}")

        updated = transfer_to_goal(goal, amount_cents)
        goals = [updated if g.id == goal_id else g for g in self.household.bucket_goals]
        household = await self._save(
            HouseholdUpdate(bucket_goals=goals), "transfer_to_goal", correlation_id
        )
        if self._audit_logger:
            await self._audit_logger.log_goal_transfer(goal_id, amount_cents, correlation_id)
        return household.get_goal(goal_id) or updated

    async def mark_notifications_read(self, ids: Optional[list[str]] = None) -> Household:
        notifications = mark_notifications_read(self.household.notifications, ids)
        return await self._save(
            HouseholdUpdate(notifications=notifications), "mark_notifications_read"
        )

    async def add_subscription_from_suggestion(
        self,
        suggestion: RecurringPaymentSuggestion,
    ) -> Subscription:
        """Turn a detected recurring payment into a tracked subscription."""
        subscription = subscription_from_suggestion(suggestion)
        await self.update(HouseholdUpdate(
            subscriptions=self.household.subscriptions + [subscription],
        ))
        return subscription

    async def adopt_budget_suggestions(
        self,
        suggestions: list[BudgetSuggestion],
    ) -> list[Budget]:
        """
        Replace budgets for the suggested categories, keeping the rest.

        Suggestions for categories the household does not have are dropped.
        """
        household = self.household
        suggested = {
            s.category_id: s.amount_cents
            for s in suggestions
            if household.get_category(s.category_id) is not None
        }

        budgets = []
        for budget in household.budgets:
            if budget.category_id in suggested:
                budgets.append(budget.model_copy(
                    update={"amount": suggested.pop(budget.category_id)}
                ))
            else:
                budgets.append(budget)
        budgets.extend(
            Budget(category_id=category_id, amount=amount)
            for category_id, amount in suggested.items()
        )

        household = await self.update(HouseholdUpdate(budgets=budgets))
        return household.budgets

    # -- read views ---------------------------------------------------------

    def monthly(self, month: int, year: int) -> MonthlyAggregate:
        return monthly_aggregate(self.household.expenses, month, year)

    def trend(self, today: Optional[date] = None) -> TrendSeries:
        return build_trend_series(self.household.expenses, today or date.today())

    def dashboard(self, as_of: Optional[date] = None) -> DashboardSummary:
        return dashboard_summary(self.household, as_of or date.today())

    def export_csv(self) -> str:
        household = self.household
        return export_ledger_csv(household.expenses, LedgerLookup.from_household(household))


class ImportFlow:
    """
    Orchestrates receipt and statement intake.

    Flow:
    1. Oracle reads the document → typed transactions
    2. Credits are dropped; debits are categorized (rules first, then AI,
       then the fallback category)
    3. The user reviews the proposals (outside this module)
    4. Accepted rows are recorded through the ledger as imported drafts

    Nothing is saved before step 4.
    """

    def __init__(
        self,
        ledger_flow: HouseholdLedgerFlow,
        oracle: Optional[HouseholdOracle] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger_flow
        self._oracle = oracle
        self._audit_logger = audit_logger

    async def _oracle_failed(self, feature: str, error: Exception) -> str:
        logger.warning("oracle_feature_failed", feature=feature, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_oracle_failed(feature, str(error))
        return f"Could not complete {feature.replace('_', ' ')}: {error}"

    def _fallback_category(self, household: Household) -> str:
        settings = self._ledger.engine.settings
        return household.default_category_id(settings.default_category_name) or ""

    async def extract_receipt(
        self,
        content: bytes,
        mime_type: str,
        member_id: str,
        as_of: Optional[date] = None,
    ) -> tuple[Optional[ExpenseDraft], str]:
        """
        Read a receipt into a draft for the user to review.

        The draft is split equally between all members, paid by `member_id`.

        Returns:
            (draft, message). draft is None if the receipt could not be read.
        """
        if self._oracle is None:
            return None, AI_NOT_CONFIGURED

        household = self._ledger.household
        try:
            receipt = await self._oracle.extract_receipt(content, mime_type, household)
        except OracleError as e:
            return None, await self._oracle_failed("receipt_extraction", e)

        category = household.find_category_by_name(receipt.category_name)
        category_id = (
            category.id if category
            else suggest_category(receipt.description, household.rules, household.categories)
            or self._fallback_category(household)
        )
        amount = receipt.amount_cents
        draft = ExpenseDraft(
            description=receipt.description,
            amount=amount,
            date=as_of or date.today(),
            member_id=member_id,
            category_id=category_id,
            splits=compute_equal_split(amount, [m.id for m in household.members]),
        )
        return draft, "Receipt scanned. Please review the details before saving."

    async def parse_statement(
        self,
        content: Union[bytes, str],
        mime_type: str,
    ) -> tuple[list[CategorizedTransaction], str]:
        """
        Read a statement into categorized debit transactions.

        Returns:
            (transactions, message). Empty list if nothing could be read.
        """
        if self._oracle is None:
            return [], AI_NOT_CONFIGURED

        household = self._ledger.household
        try:
            parsed = await self._oracle.parse_statement(content, mime_type)
        except OracleError as e:
            return [], await self._oracle_failed("statement_parsing", e)

        debits = [t for t in parsed if t.type == TransactionType.DEBIT]
        if not debits:
            return [], "No expenses found in this statement."

        fallback = self._fallback_category(household)
        try:
            categorized = await self._oracle.categorize_transactions(
                debits, household, self._ledger.engine.settings.default_category_name
            )
        except OracleError as e:
            await self._oracle_failed("categorization", e)
            categorized = [
                CategorizedTransaction(**t.model_dump(), category_id=fallback)
                for t in debits
            ]

        # User rules outrank the model
        result = []
        for transaction in categorized:
            rule_category = suggest_category(
                transaction.description, household.rules, household.categories
            )
            if rule_category:
                transaction = transaction.model_copy(update={"category_id": rule_category})
            result.append(transaction)

        skipped = len(parsed) - len(debits)
        message = f"Found {len(result)} expenses"
        if skipped:
            message += f" ({skipped} credits ignored)"
        return result, message + "."

    async def import_transactions(
        self,
        transactions: list[Union[StatementTransaction, CategorizedTransaction]],
        member_id: str,
        as_of: Optional[datetime] = None,
    ) -> tuple[list[Expense], int]:
        """
        Record reviewed statement lines as imported expenses paid by `member_id`.

        Returns:
            (recorded_expenses, skipped_count)
        """
        correlation_id = create_correlation_id()
        household = self._ledger.household
        fallback = self._fallback_category(household)

        drafts = [
            ExpenseDraft(
                description=t.description,
                amount=t.amount_cents,
                date=t.date,
                member_id=member_id,
                category_id=getattr(t, "category_id", None) or fallback,
                imported=True,
            )
            for t in transactions
        ]
        recorded, skipped = await self._ledger.add_expenses(drafts, as_of, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_import_completed(
                source="statement",
                imported=len(recorded),
                skipped=len(skipped),
                correlation_id=correlation_id,
            )
        return recorded, len(skipped)


class InsightsFlow:
    """
    Orchestrates the AI insight features.

    Every method returns (value, message). On any oracle failure value is
    None and message explains what went wrong; the household is untouched.
    Suggestions referencing categories the household does not have are
    dropped before they reach the caller.
    """

    def __init__(
        self,
        ledger_flow: HouseholdLedgerFlow,
        oracle: Optional[HouseholdOracle] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger_flow
        self._oracle = oracle
        self._audit_logger = audit_logger

    async def _failed(self, feature: str, error: Exception) -> tuple[None, str]:
        logger.warning("oracle_feature_failed", feature=feature, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_oracle_failed(feature, str(error))
        return None, f"Sorry, the {feature.replace('_', ' ')} is unavailable right now."

    async def report(self, as_of: Optional[date] = None) -> tuple[Optional[str], str]:
        if self._oracle is None:
            return None, AI_NOT_CONFIGURED
        try:
            text = await self._oracle.generate_report(self._ledger.household, as_of or date.today())
        except OracleError as e:
            return await self._failed("spending_report", e)
        return text, "Report generated."

    async def chat(
        self,
        message: str,
        history: Optional[list[ChatMessage]] = None,
    ) -> AsyncIterator[str]:
        """Stream an answer. A failure mid-stream ends with an apology chunk."""
        if self._oracle is None:
            yield AI_NOT_CONFIGURED
            return
        try:
            async for chunk in self._oracle.chat(self._ledger.household, message, history):
                yield chunk
        except OracleError as e:
            _, apology = await self._failed("assistant", e)
            yield apology

    async def suggest_budgets(
        self,
        from_income: bool = False,
    ) -> tuple[Optional[list[BudgetSuggestion]], str]:
        """Budget ideas from spending history, or from monthly income."""
        if self._oracle is None:
            return None, AI_NOT_CONFIGURED

        household = self._ledger.household
        try:
            if from_income:
                if household.monthly_income <= 0:
                    return None, "Set your monthly income first."
                suggestions = await self._oracle.suggest_income_budget(
                    household.monthly_income, household.categories
                )
            else:
                suggestions = await self._oracle.suggest_budgets(household)
        except OracleError as e:
            return await self._failed("budget_suggestions", e)

        known = [s for s in suggestions if household.get_category(s.category_id)]
        return known, f"{len(known)} budget suggestions ready."

    async def suggest_transfer(
        self,
        goal_id: str,
        as_of: Optional[date] = None,
    ) -> tuple[Optional[TransferSuggestion], str]:
        if self._oracle is None:
            return None, AI_NOT_CONFIGURED

        household = self._ledger.household
        goal = household.get_goal(goal_id)
        if goal is None:
            raise NotFoundError(f"Goal not found: {goal_id}")
        try:
            suggestion = await self._oracle.suggest_transfer(household, goal, as_of)
        except OracleError as e:
            return await self._failed("transfer_suggestion", e)
        return suggestion, suggestion.reasoning

    async def detect_recurring(self) -> tuple[Optional[list[RecurringPaymentSuggestion]], str]:
        """Recurring payments not yet tracked as subscriptions."""
        if self._oracle is None:
            return None, AI_NOT_CONFIGURED

        household = self._ledger.household
        try:
            suggestions = await self._oracle.detect_recurring(household)
        except OracleError as e:
            return await self._failed("recurring_detection", e)

        known = {s.description.lower() for s in household.subscriptions}
        fresh = [
            s for s in suggestions
            if household.get_category(s.category_id) and s.description.lower() not in known
        ]
        if not fresh:
            return [], "No new recurring payments found."
        return fresh, f"Found {len(fresh)} possible subscriptions."

    async def suggest_savings(
        self,
        as_of: Optional[date] = None,
    ) -> tuple[Optional[list[SavingsSuggestion]], str]:
        if self._oracle is None:
            return None, AI_NOT_CONFIGURED
        try:
            suggestions = await self._oracle.suggest_savings(self._ledger.household, as_of)
        except OracleError as e:
            return await self._failed("savings_coach", e)
        return suggestions, f"{len(suggestions)} savings ideas."


def _build_stores(
    settings: Settings,
) -> tuple[HouseholdStorageInterface, Optional[AuditStorageInterface]]:
    storage = settings.storage
    if storage.backend == "memory":
        store = InMemoryHouseholdStorage(seed_demo_data=storage.seed_demo_data)
        return store, store
    if storage.backend == "google_sheets":
        client = GoogleSheetsClient(settings.google_sheets)
        return (
            GoogleSheetsHouseholdStorage(client, seed_demo_data=storage.seed_demo_data),
            GoogleSheetsAuditStorage(client),
        )
    store = SQLHouseholdStorage(
        storage.database_url,
        seed_demo_data=storage.seed_demo_data,
        echo=storage.echo_sql,
    )
    return store, store


def create_app_components(
    settings: Optional[Settings] = None,
    store: Optional[HouseholdStorageInterface] = None,
    oracle: Optional[HouseholdOracle] = None,
    use_ai: bool = True,
) -> tuple[HouseholdLedgerFlow, ImportFlow, InsightsFlow]:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to build from. Environment if None.
        store: Use this store instead of the configured backend.
        oracle: Use this oracle instead of Gemini.
        use_ai: Set to False to run without any oracle.

    Returns:
        (ledger_flow, import_flow, insights_flow). Call
        `await ledger_flow.start()` before using them.
    """
    settings = settings or get_settings()

    audit_storage: Optional[AuditStorageInterface] = None
    if store is None:
        store, audit_storage = _build_stores(settings)
    elif isinstance(store, AuditStorageInterface):
        audit_storage = store
    audit_logger = AuditLogger(audit_storage)

    if oracle is None and use_ai:
        try:
            oracle = GeminiOracle(settings.gemini)
        except Exception as e:
            # Gemini not configured - the ledger works without it
            logger.warning("oracle_not_configured", error=str(e))
            oracle = None
    if not use_ai:
        oracle = None

    engine = LedgerEngine(
        oracle=oracle,
        settings=settings.ledger,
        audit_logger=audit_logger,
    )
    ledger_flow = HouseholdLedgerFlow(store, engine, audit_logger)
    import_flow = ImportFlow(ledger_flow, oracle, audit_logger)
    insights_flow = InsightsFlow(ledger_flow, oracle, audit_logger)

    return ledger_flow, import_flow, insights_flow
