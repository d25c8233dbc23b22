"""
Household Oracle Interface

DESIGN DECISION: The LLM sits behind an abstract interface, like storage.
This allows us to:
1. Swap Gemini for another model without touching the ledger
2. Use deterministic fake oracles in tests (no network, ever)
3. Keep a single, typed contract for everything the AI is asked

CRITICAL BOUNDARIES:
- The oracle SUGGESTS. Every answer is parsed into a pydantic model and
  checked against the household before the ledger acts on it.
- The oracle never writes to the store.
- Every call may fail. Callers must have a path that works without it.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import AsyncIterator, Optional, Union

import structlog

from financely.models.household import (
    BucketGoal,
    Category,
    Expense,
    Household,
)
from financely.models.oracle import (
    AnomalyVerdict,
    BudgetSuggestion,
    CategorizedTransaction,
    ChatMessage,
    ReceiptExtraction,
    RecurringPaymentSuggestion,
    SavingsSuggestion,
    StatementTransaction,
    TransferSuggestion,
)

logger = structlog.get_logger(__name__)


class OracleError(Exception):
    """Base exception for oracle calls."""
    pass


class OracleUnavailableError(OracleError):
    """The model could not be reached, refused, or the input cannot be sent."""
    pass


class SchemaMismatchError(OracleError):
    """The model answered, but not in the shape we asked for."""
    pass


class HouseholdOracle(ABC):
    """
    Abstract interface for the AI oracle.

    All methods are async and may raise OracleError subclasses.
    """

    @abstractmethod
    async def extract_receipt(
        self,
        content: bytes,
        mime_type: str,
        household: Household,
    ) -> ReceiptExtraction:
        """
        Read a receipt image or PDF.

        Raises:
            OracleUnavailableError: Unsupported mime type or transport failure
            SchemaMismatchError: Response did not parse
        """
        pass

    @abstractmethod
    async def parse_statement(
        self,
        content: Union[bytes, str],
        mime_type: str,
    ) -> list[StatementTransaction]:
        """
        Extract every transaction from a bank/card statement.

        Images and PDFs are sent as inline data; CSV and plain text as text.
        """
        pass

    @abstractmethod
    async def categorize_batch(
        self,
        transactions: list[StatementTransaction],
        household: Household,
    ) -> list[str]:
        """
        One category id per transaction, in input order.

        Raises:
            SchemaMismatchError: If the answer has the wrong length
        """
        pass

    @abstractmethod
    async def detect_anomaly(
        self,
        household: Household,
        expense: Expense,
    ) -> AnomalyVerdict:
        pass

    @abstractmethod
    async def detect_recurring(
        self,
        household: Household,
    ) -> list[RecurringPaymentSuggestion]:
        pass

    @abstractmethod
    async def suggest_budgets(self, household: Household) -> list[BudgetSuggestion]:
        """Budgets from spending history."""
        pass

    @abstractmethod
    async def suggest_income_budget(
        self,
        monthly_income: int,
        categories: list[Category],
    ) -> list[BudgetSuggestion]:
        """Starter budgets allocated from monthly income (paise)."""
        pass

    @abstractmethod
    async def suggest_transfer(
        self,
        household: Household,
        goal: BucketGoal,
        as_of: Optional[date] = None,
    ) -> TransferSuggestion:
        pass

    @abstractmethod
    async def suggest_savings(
        self,
        household: Household,
        as_of: Optional[date] = None,
    ) -> list[SavingsSuggestion]:
        pass

    @abstractmethod
    async def generate_report(self, household: Household, as_of: date) -> str:
        """Markdown report for the month containing `as_of`."""
        pass

    @abstractmethod
    def chat(
        self,
        household: Household,
        message: str,
        history: Optional[list[ChatMessage]] = None,
    ) -> AsyncIterator[str]:
        """Stream the assistant's answer chunk by chunk."""
        pass

    async def categorize_transactions(
        self,
        transactions: list[StatementTransaction],
        household: Household,
        fallback_category_name: str = "Other",
    ) -> list[CategorizedTransaction]:
        """
        Attach category ids to statement lines.

        A malformed answer puts every line in the fallback category; an
        unknown id puts just that line there.
        """
        if not transactions:
            return []

        fallback = household.default_category_id(fallback_category_name)
        try:
            category_ids = await self.categorize_batch(transactions, household)
        except SchemaMismatchError as e:
            logger.warning(
                "categorization_mismatch",
                error=str(e),
                transactions=len(transactions),
            )
            category_ids = [fallback] * len(transactions)

        categorized = []
        for transaction, category_id in zip(transactions, category_ids):
            if household.get_category(category_id) is None:
                category_id = fallback
            categorized.append(CategorizedTransaction(
                **transaction.model_dump(),
                category_id=category_id or "",
            ))
        return categorized
