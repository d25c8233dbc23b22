"""
Oracle Response Models

Everything Gemini returns is parsed into one of these models before the
ledger looks at it.

CRITICAL: These are SUGGESTIONS. Amounts here are decimal rupees as the
model produced them; they are converted to paise (`amount_cents`) at the
boundary and never trusted for category ids until checked against the
household.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from financely.models.household import SubscriptionFrequency
from financely.models.money import to_cents


class TransactionType(str, Enum):
    """Direction of a statement line."""
    CREDIT = "credit"   # money in
    DEBIT = "debit"     # money out (an expense)


class _OracleModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)


class ReceiptExtraction(_OracleModel):
    """What Gemini read off a receipt image or PDF."""

    description: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0, description="Total in rupees")
    category_name: str = Field(
        default="",
        validation_alias=AliasChoices("category_name", "categoryName"),
    )

    @property
    def amount_cents(self) -> int:
        return to_cents(self.amount)


class StatementTransaction(_OracleModel):
    """One line parsed out of a bank or card statement."""

    date: date
    description: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0, description="Positive amount in rupees")
    type: TransactionType

    @property
    def amount_cents(self) -> int:
        return to_cents(self.amount)


class CategorizedTransaction(StatementTransaction):
    """A statement line with a category id attached."""

    category_id: str


class AnomalyVerdict(_OracleModel):
    """Gemini's opinion on whether a new expense is out of pattern."""

    is_anomalous: bool = Field(
        ...,
        validation_alias=AliasChoices("is_anomalous", "isAnomalous"),
    )
    reasoning: str = ""


class RecurringPaymentSuggestion(_OracleModel):
    """A probable subscription spotted in the expense history."""

    description: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    frequency: SubscriptionFrequency
    category_id: str = Field(
        ...,
        validation_alias=AliasChoices("category_id", "categoryId"),
    )
    last_payment_date: date = Field(
        ...,
        validation_alias=AliasChoices("last_payment_date", "lastPaymentDate"),
    )

    @property
    def amount_cents(self) -> int:
        return to_cents(self.amount)


class BudgetSuggestion(_OracleModel):
    """Suggested monthly budget for one category."""

    category_id: str = Field(
        ...,
        validation_alias=AliasChoices("category_id", "categoryId"),
    )
    amount: Decimal = Field(..., ge=0)
    reasoning: str = ""

    @property
    def amount_cents(self) -> int:
        return to_cents(self.amount)


class TransferSuggestion(_OracleModel):
    """Safe-to-transfer amount for a savings goal."""

    amount: Decimal = Field(..., ge=0)
    reasoning: str = ""

    @property
    def amount_cents(self) -> int:
        return to_cents(self.amount)


class SavingsSuggestion(_OracleModel):
    """A concrete cost-cutting idea."""

    category_name: str = Field(
        ...,
        validation_alias=AliasChoices("category_name", "categoryName"),
    )
    reasoning: str
    suggestion: str
    potential_savings: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        validation_alias=AliasChoices("potential_savings", "potentialSavings"),
    )


class ChatMessage(_OracleModel):
    """One turn of the assistant conversation."""

    role: str = Field(..., pattern="^(user|model)$")
    content: str


class OracleFailure(_OracleModel):
    """What the user is told when an AI feature could not run."""

    feature: str
    message: str
    detail: Optional[str] = None
