"""
Ledger Engine

DESIGN DECISION: Admitting an expense is a pure computation over a
household snapshot. The engine:
1. Validates the draft (ExpenseValidator, raises InvalidExpenseError)
2. Normalizes splits (payer default for imports, zero shares dropped)
3. Derives the budget notification for the category
4. Asks the oracle whether the expense looks anomalous

It never touches the store. The caller decides what to save, so a
rejected or failed write can never leave half an expense behind.

The oracle is optional and untrusted: any failure in the anomaly check
is logged and skipped, never surfaced as an error.
"""

from datetime import date, datetime, time
from typing import Optional, Union

import structlog

from financely.agents.interface import HouseholdOracle
from financely.audit.logger import AuditLogger
from financely.config import LedgerSettings, get_settings
from financely.ledger.budget import budget_notification
from financely.ledger.splits import drop_zero_splits
from financely.models.household import (
    Expense,
    ExpenseDraft,
    Household,
    Notification,
    NotificationSeverity,
    Split,
    new_id,
)
from financely.validation.validator import ExpenseValidator

logger = structlog.get_logger(__name__)


class LedgerEngine:
    """
    Turns expense drafts into expenses plus the notifications they raise.
    """

    def __init__(
        self,
        oracle: Optional[HouseholdOracle] = None,
        validator: Optional[ExpenseValidator] = None,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Args:
            oracle: Anomaly detection. Skipped entirely if None.
            validator: Draft validation. Built from settings if None.
            settings: Ledger thresholds. Loaded from the environment if None.
            audit_logger: Records anomaly-check failures if given.
        """
        self._settings = settings or get_settings().ledger
        self._validator = validator or ExpenseValidator(self._settings)
        self._oracle = oracle
        self._audit = audit_logger

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    @property
    def validator(self) -> ExpenseValidator:
        return self._validator

    async def record_expense(
        self,
        draft: ExpenseDraft,
        household: Household,
        as_of: Optional[Union[datetime, date]] = None,
    ) -> tuple[Expense, list[Notification]]:
        """
        Validate and admit a new expense.

        Args:
            draft: The expense as entered or imported
            household: Snapshot BEFORE the expense is added
            as_of: When the expense is being recorded. Picks the budget
                   month and stamps the notifications. Defaults to now.

        Returns:
            (expense, notifications): the budget notification, if any,
            comes before the anomaly notification, if any

        Raises:
            InvalidExpenseError: If the draft fails validation
        """
        now = _as_datetime(as_of)
        self._validator.ensure_valid(draft, household, now.date())

        splits = list(draft.splits)
        if draft.imported and not splits:
            splits = [Split(member_id=draft.member_id, amount=draft.amount)]

        expense = Expense(
            id=new_id("exp"),
            description=draft.description,
            amount=draft.amount,
            date=draft.date,
            member_id=draft.member_id,
            category_id=draft.category_id,
            splits=drop_zero_splits(splits),
        )

        notifications = []
        budget_alert = budget_notification(
            household,
            expense,
            now.date(),
            warning_ratio=self._settings.budget_warning_ratio,
            currency_symbol=self._settings.currency_symbol,
            timestamp=now,
        )
        if budget_alert:
            notifications.append(budget_alert)

        anomaly_alert = await self._check_anomaly(household, expense, now)
        if anomaly_alert:
            notifications.append(anomaly_alert)

        logger.info(
            "expense_admitted",
            expense_id=expense.id,
            amount=expense.amount,
            category_id=expense.category_id,
            notifications=len(notifications),
        )
        return expense, notifications

    async def _check_anomaly(
        self,
        household: Household,
        expense: Expense,
        now: datetime,
    ) -> Optional[Notification]:
        if self._oracle is None:
            return None

        try:
            verdict = await self._oracle.detect_anomaly(household, expense)
        except Exception as e:
            # Anomaly detection is enrichment; the expense stands without it
            logger.warning(
                "anomaly_check_failed",
                expense_id=expense.id,
                error_type=type(e).__name__,
                error=str(e),
            )
            if self._audit:
                await self._audit.log_oracle_failed("anomaly_detection", str(e))
            return None

        if not verdict.is_anomalous:
            return None

        return Notification(
            message=f"Unusual Spending Alert: {verdict.reasoning}",
            timestamp=now,
            severity=NotificationSeverity.WARNING,
        )


def _as_datetime(as_of: Optional[Union[datetime, date]]) -> datetime:
    if as_of is None:
        return datetime.utcnow()
    if isinstance(as_of, datetime):
        return as_of
    return datetime.combine(as_of, time())
