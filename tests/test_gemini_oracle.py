"""
Tests for the Gemini oracle.

A FakeModel stands in for genai.GenerativeModel: it returns canned text
and records every request. No real API calls.
"""

import pytest
from datetime import date
from decimal import Decimal

from financely.agents import (
    GeminiOracle,
    OracleUnavailableError,
    SchemaMismatchError,
)
from financely.models.household import Expense
from financely.models.oracle import ChatMessage, StatementTransaction, TransactionType


class FakeResponse:
    def __init__(self, text):
        self.text = text


async def _stream(chunks):
    for chunk in chunks:
        yield FakeResponse(chunk)


class FakeChat:
    def __init__(self, chunks, error=None):
        self._chunks = chunks
        self._error = error
        self.sent = []

    async def send_message_async(self, message, stream=False):
        self.sent.append((message, stream))
        if self._error:
            raise self._error
        return _stream(self._chunks)


class FakeModel:
    """Answers requests from a queue; an Exception in the queue is raised."""

    def __init__(self, *answers, chunks=None, chat_error=None):
        self._answers = list(answers)
        self.requests = []
        self.chat_history = None
        self.chat = FakeChat(chunks or [], chat_error)

    async def generate_content_async(self, contents, generation_config=None):
        self.requests.append((contents, generation_config))
        answer = self._answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return FakeResponse(answer)

    def start_chat(self, history=None):
        self.chat_history = history
        return self.chat


def _transactions(*descriptions):
    return [
        StatementTransaction(
            date=date(2024, 3, 5),
            description=d,
            amount=Decimal("100"),
            type=TransactionType.DEBIT,
        )
        for d in descriptions
    ]


class TestDocuments:
    """Tests for receipt and statement reading."""

    async def test_extract_receipt(self, household):
        model = FakeModel('{"description": "Reliance Mart", "amount": 450.75, "category_name": "Groceries"}')
        oracle = GeminiOracle(model=model)

        receipt = await oracle.extract_receipt(b"\x89PNG", "image/png", household)

        assert receipt.description == "Reliance Mart"
        assert receipt.amount_cents == 45075
        contents, config = model.requests[0]
        assert contents[0] == {"mime_type": "image/png", "data": b"\x89PNG"}
        assert config == {"response_mime_type": "application/json"}

    async def test_receipt_in_code_fence(self, household):
        model = FakeModel('```json\n{"description": "Cafe", "amount": "120"}\n```')
        receipt = await GeminiOracle(model=model).extract_receipt(b"%PDF", "application/pdf", household)
        assert receipt.amount_cents == 12000

    async def test_unsupported_receipt_type_never_calls_model(self, household):
        model = FakeModel()
        with pytest.raises(OracleUnavailableError, match="Unsupported receipt type"):
            await GeminiOracle(model=model).extract_receipt(b"PK", "application/zip", household)
        assert model.requests == []

    async def test_parse_csv_statement(self):
        model = FakeModel(
            '[{"date": "2024-03-05", "description": "ZOMATO", "amount": 450, "type": "debit"},'
            ' {"date": "2024-03-06", "description": "SALARY", "amount": 90000, "type": "credit"}]'
        )
        transactions = await GeminiOracle(model=model).parse_statement(
            b"date,desc,amount\n", "text/csv"
        )

        assert [t.type for t in transactions] == [TransactionType.DEBIT, TransactionType.CREDIT]
        assert model.requests[0][0][0] == "date,desc,amount\n"

    async def test_statement_wrapped_in_object(self):
        model = FakeModel(
            '{"transactions": [{"date": "2024-03-05", "description": "UBER", "amount": 210.5, "type": "debit"}]}'
        )
        transactions = await GeminiOracle(model=model).parse_statement("x", "text/plain")
        assert transactions[0].amount_cents == 21050

    async def test_empty_statement_answer(self):
        assert await GeminiOracle(model=FakeModel("  ")).parse_statement("x", "text/csv") == []

    async def test_statement_schema_mismatch(self):
        model = FakeModel('[{"date": "yesterday", "description": "UBER"}]')
        with pytest.raises(SchemaMismatchError):
            await GeminiOracle(model=model).parse_statement("x", "text/csv")

    async def test_not_json(self):
        model = FakeModel("I could not read that statement, sorry.")
        with pytest.raises(SchemaMismatchError, match="not JSON"):
            await GeminiOracle(model=model).parse_statement("x", "text/csv")

    async def test_model_error_becomes_unavailable(self, household):
        model = FakeModel(RuntimeError("quota exceeded"))
        with pytest.raises(OracleUnavailableError, match="quota exceeded"):
            await GeminiOracle(model=model).suggest_budgets(household)


class TestCategorization:
    """Tests for categorize_batch and the fallback wrapper."""

    async def test_categorize_batch(self, household):
        model = FakeModel('["cat-3", "cat-4"]')
        ids = await GeminiOracle(model=model).categorize_batch(
            _transactions("ZOMATO", "UBER"), household
        )
        assert ids == ["cat-3", "cat-4"]

    async def test_wrong_length_is_a_mismatch(self, household):
        model = FakeModel('["cat-3"]')
        with pytest.raises(SchemaMismatchError, match="Expected 2 category ids"):
            await GeminiOracle(model=model).categorize_batch(
                _transactions("ZOMATO", "UBER"), household
            )

    async def test_mismatch_puts_everything_in_other(self, household):
        model = FakeModel('{"categories": "cat-3"}')
        categorized = await GeminiOracle(model=model).categorize_transactions(
            _transactions("ZOMATO", "UBER"), household
        )
        assert [t.category_id for t in categorized] == ["cat-8", "cat-8"]

    async def test_unknown_id_falls_back_for_that_line_only(self, household):
        model = FakeModel('["cat-3", "cat-404"]')
        categorized = await GeminiOracle(model=model).categorize_transactions(
            _transactions("ZOMATO", "MYSTERY"), household
        )
        assert [t.category_id for t in categorized] == ["cat-3", "cat-8"]

    async def test_no_transactions_no_call(self, household):
        model = FakeModel()
        assert await GeminiOracle(model=model).categorize_transactions([], household) == []
        assert model.requests == []


class TestJudgementAndPlanning:
    """Tests for anomaly, recurring, budget, transfer and savings answers."""

    async def test_detect_anomaly(self, household):
        model = FakeModel('{"isAnomalous": true, "reasoning": "A car is not groceries."}')
        expense = Expense(
            description="Car", amount=50000000, date=date(2024, 3, 15),
            member_id="mem-1", category_id="cat-1",
        )
        verdict = await GeminiOracle(model=model).detect_anomaly(household, expense)

        assert verdict.is_anomalous is True
        assert "Weekly groceries" in model.requests[0][0]

    async def test_detect_recurring(self, household):
        model = FakeModel(
            '[{"description": "Spotify", "amount": 119, "frequency": "monthly",'
            ' "category_id": "cat-5", "last_payment_date": "2024-03-02"}]'
        )
        suggestions = await GeminiOracle(model=model).detect_recurring(household)
        assert suggestions[0].amount_cents == 11900

    async def test_income_budget_prompt_has_income(self, household):
        model = FakeModel('[{"category_id": "cat-1", "amount": 15000, "reasoning": "Needs"}]')
        suggestions = await GeminiOracle(model=model).suggest_income_budget(
            household.monthly_income, household.categories
        )

        assert suggestions[0].amount_cents == 1500000
        assert "80000.00" in model.requests[0][0]

    async def test_suggest_transfer(self, household):
        model = FakeModel('{"amount": 1850.5, "reasoning": "Under budget"}')
        suggestion = await GeminiOracle(model=model).suggest_transfer(
            household, household.get_goal("goal-1"), date(2024, 3, 15)
        )
        assert suggestion.amount_cents == 185050

    async def test_suggest_savings(self, household):
        model = FakeModel(
            '[{"category_name": "Dining Out", "reasoning": "High", "suggestion": "Cook twice a week",'
            ' "potential_savings": 2000}]'
        )
        suggestions = await GeminiOracle(model=model).suggest_savings(household, date(2024, 3, 15))
        assert suggestions[0].potential_savings == Decimal("2000")


class TestProse:
    """Tests for the report and the chat stream."""

    async def test_generate_report_is_not_json_mode(self, household):
        model = FakeModel("## March\n| Category | Budget |")
        report = await GeminiOracle(model=model).generate_report(household, date(2024, 3, 15))

        assert report.startswith("## March")
        assert model.requests[0][1] is None
        assert "March 2024" in model.requests[0][0]

    async def test_empty_report(self, household):
        with pytest.raises(SchemaMismatchError):
            await GeminiOracle(model=FakeModel("")).generate_report(household, date(2024, 3, 15))

    async def test_chat_streams_chunks(self, household):
        model = FakeModel(chunks=["You spent ", "", "₹3,500."])
        history = [
            ChatMessage(role="user", content="Hi"),
            ChatMessage(role="model", content="Hello!"),
        ]

        chunks = [c async for c in GeminiOracle(model=model).chat(household, "Groceries?", history)]

        assert chunks == ["You spent ", "₹3,500."]
        assert model.chat.sent == [("Groceries?", True)]
        assert [turn["role"] for turn in model.chat_history] == ["user", "model", "user", "model"]
        assert "The Sharma Household" not in model.chat_history[0]["parts"][0]
        assert "Rohan" in model.chat_history[0]["parts"][0]

    async def test_chat_failure(self, household):
        model = FakeModel(chat_error=RuntimeError("stream reset"))
        with pytest.raises(OracleUnavailableError):
            async for _ in GeminiOracle(model=model).chat(household, "Hi"):
                pass
