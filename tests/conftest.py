"""
Shared fixtures.

No real API calls in tests: the oracle is a FakeOracle with canned
answers, and stores are in memory (or SQLite in memory).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import pytest

from financely.agents.interface import HouseholdOracle, OracleUnavailableError
from financely.config import LedgerSettings
from financely.models.household import ExpenseDraft, Household, Split
from financely.models.oracle import (
    AnomalyVerdict,
    ReceiptExtraction,
    StatementTransaction,
    TransferSuggestion,
)
from financely.services.storage import InMemoryHouseholdStorage, build_demo_household

TODAY = date(2024, 3, 15)
NOW = datetime(2024, 3, 15, 10, 30)


class FakeOracle(HouseholdOracle):
    """
    Canned oracle. Set an attribute to change an answer; set `fail` to
    make every call raise OracleUnavailableError.
    """

    def __init__(self):
        self.fail = False
        self.calls: list[str] = []
        self.anomaly = AnomalyVerdict(is_anomalous=False, reasoning="")
        self.receipt = ReceiptExtraction(
            description="Groceries from Reliance Mart",
            amount=Decimal("450.75"),
            category_name="Groceries",
        )
        self.statement: list[StatementTransaction] = []
        self.category_ids: Optional[list[str]] = None
        self.budgets = []
        self.recurring = []
        self.savings = []
        self.transfer = TransferSuggestion(amount=Decimal("1850.50"), reasoning="You are under budget.")
        self.report = "## March report"
        self.chunks = ["You spent ", "₹3,500 on groceries."]

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise OracleUnavailableError(f"{name} failed: service down")

    async def extract_receipt(self, content, mime_type, household):
        self._record("extract_receipt")
        return self.receipt

    async def parse_statement(self, content, mime_type):
        self._record("parse_statement")
        return self.statement

    async def categorize_batch(self, transactions, household):
        self._record("categorize_batch")
        if self.category_ids is None:
            return [household.categories[0].id] * len(transactions)
        return self.category_ids

    async def detect_anomaly(self, household, expense):
        self._record("detect_anomaly")
        return self.anomaly

    async def detect_recurring(self, household):
        self._record("detect_recurring")
        return self.recurring

    async def suggest_budgets(self, household):
        self._record("suggest_budgets")
        return self.budgets

    async def suggest_income_budget(self, monthly_income, categories):
        self._record("suggest_income_budget")
        return self.budgets

    async def suggest_transfer(self, household, goal, as_of=None):
        self._record("suggest_transfer")
        return self.transfer

    async def suggest_savings(self, household, as_of=None):
        self._record("suggest_savings")
        return self.savings

    async def generate_report(self, household, as_of):
        self._record("generate_report")
        return self.report

    async def chat(self, household, message, history=None):
        self._record("chat")
        for chunk in self.chunks:
            yield chunk


@pytest.fixture
def household() -> Household:
    """The demo household as of 15 March 2024."""
    return build_demo_household(today=TODAY)


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings()


@pytest.fixture
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def memory_store(household) -> InMemoryHouseholdStorage:
    return InMemoryHouseholdStorage(household)


@pytest.fixture
def draft() -> ExpenseDraft:
    """A valid, equally split grocery expense."""
    return ExpenseDraft(
        description="Vegetables",
        amount=100000,
        date=TODAY,
        member_id="mem-1",
        category_id="cat-1",
        splits=[
            Split(member_id="mem-1", amount=50000),
            Split(member_id="mem-2", amount=50000),
        ],
    )
