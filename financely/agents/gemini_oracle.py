"""
Gemini Oracle

DESIGN DECISION: Gemini is called through `google-generativeai` with JSON
responses requested for every structured feature. The model is treated
as a TRANSLATOR between documents, household data and our schemas:

1. RECEIPTS / STATEMENTS: read a document, return typed transactions
2. CATEGORIZATION / ANOMALIES / RECURRING: judge household data we send
3. REPORTS / CHAT: write prose FROM the data we send, never from memory

Every structured answer goes through `_parse_json` and a pydantic model.
Anything that does not fit raises SchemaMismatchError; anything that never
arrived raises OracleUnavailableError. Transient transport failures are
retried with tenacity before giving up.

All amounts sent to the model are rupees with two decimals; all amounts
coming back are converted to paise by the response models.
"""

import json
from datetime import date, timedelta
from typing import Any, AsyncIterator, Optional, Union

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from pydantic import BaseModel, ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from financely.agents.interface import (
    HouseholdOracle,
    OracleUnavailableError,
    SchemaMismatchError,
)
from financely.config import GeminiSettings, get_settings
from financely.ledger.aggregates import expenses_in_month, spent_by_category
from financely.models.household import (
    BucketGoal,
    Category,
    Expense,
    Household,
)
from financely.models.money import format_decimal
from financely.models.oracle import (
    AnomalyVerdict,
    BudgetSuggestion,
    ChatMessage,
    ReceiptExtraction,
    RecurringPaymentSuggestion,
    SavingsSuggestion,
    StatementTransaction,
    TransferSuggestion,
)

logger = structlog.get_logger(__name__)

# Errors worth a second attempt. Anything else fails fast.
TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.TooManyRequests,
    ConnectionError,
    TimeoutError,
)

TEXT_STATEMENT_TYPES = ("text/csv", "text/plain")

JSON_CONFIG = {"response_mime_type": "application/json"}


def _is_inline_type(mime_type: str) -> bool:
    return mime_type.startswith("image/") or mime_type == "application/pdf"


def _parse_json(text: str) -> Any:
    """
    Parse a JSON answer.

    JSON mode normally returns clean JSON, but models still wrap answers
    in code fences now and then, so fall back to the outermost
    object/array in the text.
    """
    text = (text or "").strip()
    if not text:
        raise SchemaMismatchError("Empty response from model")

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    candidates = []
    for open_char, close_char in (("[", "]"), ("{", "}")):
        start = text.find(open_char)
        end = text.rfind(close_char) + 1
        if start >= 0 and end > start:
            candidates.append((start, text[start:end]))

    # Whichever bracket opens first is the outer structure
    for _, candidate in sorted(candidates):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    raise SchemaMismatchError(f"Response is not JSON: {text[:100]}")


def _validate(model: type[BaseModel], data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise SchemaMismatchError(
            f"Response does not match {model.__name__}: {e.error_count()} errors"
        ) from e


def _validate_list(model: type[BaseModel], data: Any) -> list:
    if isinstance(data, dict):
        # Some answers come back wrapped: {"transactions": [...]}
        lists = [value for value in data.values() if isinstance(value, list)]
        if len(lists) == 1:
            data = lists[0]
    if not isinstance(data, list):
        raise SchemaMismatchError(f"Expected a JSON array of {model.__name__}")
    return [_validate(model, item) for item in data]


def _category_name(household: Household, category_id: str) -> str:
    category = household.get_category(category_id)
    return category.name if category else "Uncategorized"


def _member_name(household: Household, member_id: str) -> str:
    member = household.get_member(member_id)
    return member.name if member else "Unknown"


def _rules_text(household: Household) -> str:
    lines = [
        f'If description contains "{rule.keyword}", the category is '
        f'"{_category_name(household, rule.category_id)}".'
        for rule in household.rules
    ]
    return "\n".join(lines) or "No rules defined."


def _category_info(categories: list[Category]) -> str:
    return json.dumps([{"id": c.id, "name": c.name} for c in categories])


class GeminiOracle(HouseholdOracle):
    """
    Gemini-backed implementation of the household oracle.

    BOUNDARIES:
    - NEVER persists data
    - NEVER invents figures: prompts carry all the data the model may use
    - ALWAYS returns validated models or raises
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Any = None,
    ):
        """
        Args:
            settings: Gemini settings. Loaded from the environment if None.
            model: A ready GenerativeModel (or a stand-in with the same
                   async methods). Built from settings if None.
        """
        if model is not None:
            self._settings = settings
            self._model = model
        else:
            self._settings = settings or get_settings().gemini
            self._model = self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            },
        )

    # -- transport ----------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )
    async def _call_model(self, contents: Any, json_mode: bool):
        if json_mode:
            return await self._model.generate_content_async(
                contents, generation_config=JSON_CONFIG
            )
        return await self._model.generate_content_async(contents)

    async def _generate(self, feature: str, contents: Any, json_mode: bool = True) -> str:
        """Send one request; return the response text."""
        try:
            response = await self._call_model(contents, json_mode)
            text = response.text
        except Exception as e:
            logger.warning("gemini_call_failed", feature=feature, error=str(e))
            raise OracleUnavailableError(f"{feature} failed: {e}") from e

        logger.debug("gemini_call_completed", feature=feature, chars=len(text or ""))
        return text

    async def _generate_json(self, feature: str, contents: Any) -> Any:
        return _parse_json(await self._generate(feature, contents, json_mode=True))

    # -- documents ----------------------------------------------------------

    async def extract_receipt(
        self,
        content: bytes,
        mime_type: str,
        household: Household,
    ) -> ReceiptExtraction:
        if not _is_inline_type(mime_type):
            raise OracleUnavailableError(f"Unsupported receipt type: {mime_type}")

        category_names = ", ".join(c.name for c in household.categories)
        recent = "\n".join(
            f"- {e.description} ({_category_name(household, e.category_id)})"
            for e in household.expenses[:10]
        )
        prompt = f"""Analyze this receipt. Your primary goal is to extract the total amount, a short description, and suggest the most relevant category.

Here is some context about the user's finances:
- Available Categories: [{category_names}]
- User's Custom Rules (these have the highest priority):
{_rules_text(household)}
- User's Recent Spending History:
{recent or 'No recent expenses.'}

The currency is INR. Respond with ONLY a JSON object in this exact format:
{{"description": "Groceries from Reliance Mart", "amount": 450.75, "category_name": "one of the category names above"}}"""

        data = await self._generate_json(
            "receipt_extraction",
            [{"mime_type": mime_type, "data": content}, prompt],
        )
        return _validate(ReceiptExtraction, data)

    async def parse_statement(
        self,
        content: Union[bytes, str],
        mime_type: str,
    ) -> list[StatementTransaction]:
        if _is_inline_type(mime_type):
            if isinstance(content, str):
                content = content.encode("utf-8")
            content_part: Any = {"mime_type": mime_type, "data": content}
        elif mime_type in TEXT_STATEMENT_TYPES:
            if isinstance(content, bytes):
                content = content.decode("utf-8", errors="replace")
            content_part = content
        else:
            raise OracleUnavailableError(f"Unsupported statement type: {mime_type}")

        prompt = f"""You are an expert financial data extraction tool. Analyze the provided bank or credit card statement and extract all transactions.

- Convert every date to "YYYY-MM-DD". Assume {date.today().year} if the year is not specified.
- Remove currency symbols and commas from amounts. All amounts must be positive numbers (e.g., 1250.75).
- "type" is "credit" (money in) or "debit" (money out), judged from debit/credit or withdrawal/deposit columns or a negative sign.
- Ignore summary rows, headers and footers that are not transactions.

Respond with ONLY a JSON array of objects in this format:
[{{"date": "2024-03-05", "description": "ZOMATO ORDER", "amount": 450.0, "type": "debit"}}]"""

        text = await self._generate("statement_parsing", [content_part, prompt])
        if not (text or "").strip():
            return []
        return _validate_list(StatementTransaction, _parse_json(text))

    # -- judgement ----------------------------------------------------------

    async def categorize_batch(
        self,
        transactions: list[StatementTransaction],
        household: Household,
    ) -> list[str]:
        if not transactions:
            return []

        descriptions = json.dumps([t.description for t in transactions])
        prompt = f"""You are an intelligent financial assistant. Categorize a list of bank transactions using the user's categories and rules.

User's Categories:
{_category_info(household.categories)}

User's Auto-Categorization Rules (these have the highest priority):
{_rules_text(household)}

Transaction descriptions to categorize:
{descriptions}

Return ONLY a JSON array of strings: the category id (e.g. "cat-1") for each description, in the same order. If no category fits, use the id of the "Other" category. The array must have exactly {len(transactions)} entries."""

        data = await self._generate_json("categorization", prompt)
        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            raise SchemaMismatchError("Expected a JSON array of category ids")
        if len(data) != len(transactions):
            raise SchemaMismatchError(
                f"Expected {len(transactions)} category ids, got {len(data)}"
            )
        return data

    async def detect_anomaly(
        self,
        household: Household,
        expense: Expense,
    ) -> AnomalyVerdict:
        history = [
            e for e in household.expenses
            if e.category_id == expense.category_id and e.id != expense.id
        ]
        average = sum(e.amount for e in history) // len(history) if history else 0
        history_text = ", ".join(
            f'{format_decimal(e.amount)} for "{e.description}"' for e in history[:20]
        )

        prompt = f"""You are a financial monitoring AI. Decide if a new transaction is unusual compared to historical spending.

Category: "{_category_name(household, expense.category_id)}"
Historical spending in this category (INR): {history_text or 'None'}
Average spending in this category: {format_decimal(average)}

New transaction:
- Description: "{expense.description}"
- Amount: {format_decimal(expense.amount)}

Is it anomalous (unusually high or out of place)? A "car purchase" under "Groceries" would be.
Respond with ONLY a JSON object: {{"is_anomalous": true, "reasoning": "one short sentence"}}"""

        data = await self._generate_json("anomaly_detection", prompt)
        return _validate(AnomalyVerdict, data)

    async def detect_recurring(
        self,
        household: Household,
    ) -> list[RecurringPaymentSuggestion]:
        history = [
            {
                "date": e.date.isoformat(),
                "description": e.description,
                "amount": format_decimal(e.amount),
                "category": _category_name(household, e.category_id),
            }
            for e in household.expenses[:200]
        ]
        known = json.dumps([s.description for s in household.subscriptions])

        prompt = f"""You are a financial analyst AI. Detect likely recurring payments (subscriptions, bills) in this expense history: similar descriptions and amounts at roughly weekly, monthly or yearly intervals.

- Already known subscriptions to ignore: {known}
- Available categories: {_category_info(household.categories)}

Expense history:
{json.dumps(history, indent=2)}

Respond with ONLY a JSON array; each item:
{{"description": "Netflix Subscription", "amount": 649.0, "frequency": "weekly|monthly|yearly", "category_id": "cat-5", "last_payment_date": "YYYY-MM-DD"}}"""

        text = await self._generate("recurring_detection", prompt)
        if not (text or "").strip():
            return []
        return _validate_list(RecurringPaymentSuggestion, _parse_json(text))

    # -- planning -----------------------------------------------------------

    async def suggest_budgets(self, household: Household) -> list[BudgetSuggestion]:
        history = "\n".join(
            f"- {e.description}: {format_decimal(e.amount)} "
            f"[{_category_name(household, e.category_id)}] on {e.date.isoformat()}"
            for e in household.expenses[:100]
        )
        prompt = f"""You are an expert financial planner creating a monthly budget for a family.
Suggest a realistic monthly budget (INR, sensible round numbers) for each category from their recent spending.

Expense history (last 100 transactions):
{history or 'No expense history available.'}

Available categories:
{_category_info(household.categories)}

Respond with ONLY a JSON array; each item:
{{"category_id": "cat-1", "amount": 20000, "reasoning": "one short sentence"}}"""

        data = await self._generate_json("budget_suggestions", prompt)
        return _validate_list(BudgetSuggestion, data)

    async def suggest_income_budget(
        self,
        monthly_income: int,
        categories: list[Category],
    ) -> list[BudgetSuggestion]:
        prompt = f"""You are an expert financial planner creating a starter monthly budget for a family from their income. Currency is INR.

- Total monthly income: {format_decimal(monthly_income)}
- Spending categories: {_category_info(categories)}

Use the 50/30/20 rule (needs/wants/savings) as a guideline. Needs are likely Groceries, Utilities, Transport, Health; wants are likely Dining Out, Entertainment, Shopping. The sum of all budgets must not exceed the income.

Respond with ONLY a JSON array; each item:
{{"category_id": "cat-1", "amount": 15000, "reasoning": "one short sentence"}}"""

        data = await self._generate_json("income_budget", prompt)
        return _validate_list(BudgetSuggestion, data)

    async def suggest_transfer(
        self,
        household: Household,
        goal: BucketGoal,
        as_of: Optional[date] = None,
    ) -> TransferSuggestion:
        as_of = as_of or date.today()
        since = as_of - timedelta(days=30)
        spent_30_days = sum(e.amount for e in household.expenses if e.date > since)
        total_budget = sum(b.amount for b in household.budgets)

        prompt = f"""You are a helpful savings assistant. The user is saving for "{goal.name}" (target {format_decimal(goal.target_amount)}, saved {format_decimal(goal.current_amount)}).

Last 30 days:
- Total monthly budget: {format_decimal(total_budget)}
- Total spent: {format_decimal(spent_30_days)}

Suggest a "safe-to-transfer" amount (INR) they could move to the goal now. Make it a sensible, non-round, achievable number.
Respond with ONLY a JSON object: {{"amount": 1850.5, "reasoning": "one short sentence"}}"""

        data = await self._generate_json("transfer_suggestion", prompt)
        return _validate(TransferSuggestion, data)

    async def suggest_savings(
        self,
        household: Household,
        as_of: Optional[date] = None,
    ) -> list[SavingsSuggestion]:
        as_of = as_of or date.today()
        since = as_of - timedelta(days=60)
        expenses = "\n".join(
            f'- {format_decimal(e.amount)} for "{e.description}" in '
            f"[{_category_name(household, e.category_id)}] on {e.date.isoformat()}"
            for e in household.expenses
            if e.date > since
        )
        budgets = "\n".join(
            f"- {_category_name(household, b.category_id)}: {format_decimal(b.amount)}"
            for b in household.budgets
        )
        category_names = ", ".join(c.name for c in household.categories)

        prompt = f"""You are a pragmatic financial coach. Find the top 3 categories where this family can realistically cut costs, based on the last 60 days. Currency is INR.

- Available categories: [{category_names}]
- Monthly budgets:
{budgets or 'No budgets set.'}
- Recent expenses:
{expenses or 'No recent expenses.'}

For each suggestion name the category, give data-based reasoning, a concrete tip (not "spend less"), and the estimated monthly saving in INR.
Respond with ONLY a JSON array; each item:
{{"category_name": "Dining Out", "reasoning": "...", "suggestion": "...", "potential_savings": 2000}}"""

        text = await self._generate("savings_suggestions", prompt)
        if not (text or "").strip():
            return []
        return _validate_list(SavingsSuggestion, _parse_json(text))

    # -- prose --------------------------------------------------------------

    async def generate_report(self, household: Household, as_of: date) -> str:
        month_expenses = expenses_in_month(household.expenses, as_of.month, as_of.year)
        expenses = "\n".join(
            f"- {e.description}: {format_decimal(e.amount)} on {e.date.isoformat()} "
            f"by {_member_name(household, e.member_id)} "
            f"[{_category_name(household, e.category_id)}]"
            for e in month_expenses
        )
        budgets = "\n".join(
            f"- {_category_name(household, b.category_id)}: {format_decimal(b.amount)}"
            for b in household.budgets
        )

        prompt = f"""You are a friendly and insightful financial analyst for a family.
Analyze this month's data ({as_of.strftime('%B %Y')}) and write a report in markdown. The currency is Indian Rupees (₹).

This month's expenses:
{expenses or 'No expenses recorded for this month.'}

Monthly budgets:
{budgets or 'No budgets set for this month.'}

Include:
1. A markdown table | Category | Budget | Spent | Difference | where a positive difference means money saved.
2. A "### Key Insights" section with 2-3 observations.
3. A "### Actionable Suggestions" section with 2-3 practical tips for next month.

Be encouraging and helpful. Use only the data above."""

        text = await self._generate("spending_report", prompt, json_mode=False)
        if not (text or "").strip():
            raise SchemaMismatchError("Empty report from model")
        return text

    def _chat_context(self, household: Household, as_of: date) -> str:
        month_expenses = expenses_in_month(household.expenses, as_of.month, as_of.year)
        spent = spent_by_category(month_expenses)
        context = {
            "members": [{"id": m.id, "name": m.name} for m in household.members],
            "categories": [{"id": c.id, "name": c.name} for c in household.categories],
            "total_monthly_income": format_decimal(household.monthly_income),
            "current_month_expenses": [
                {
                    "description": e.description,
                    "amount": format_decimal(e.amount),
                    "date": e.date.isoformat(),
                    "category": _category_name(household, e.category_id),
                    "paid_by": _member_name(household, e.member_id),
                }
                for e in month_expenses
            ],
            "budgets": [
                {
                    "category": _category_name(household, b.category_id),
                    "amount": format_decimal(b.amount),
                    "spent": format_decimal(spent.get(b.category_id, 0)),
                }
                for b in household.budgets
            ],
            "goals": [
                {
                    "name": g.name,
                    "target": format_decimal(g.target_amount),
                    "saved": format_decimal(g.current_amount),
                }
                for g in household.bucket_goals
            ],
            "subscriptions": [
                {
                    "description": s.description,
                    "amount": format_decimal(s.amount),
                    "next_due": s.next_due_date.isoformat(),
                }
                for s in household.subscriptions
            ],
        }
        return f"""You are "FinancelyAI", a friendly AI financial assistant for a family.
You are not a licensed financial advisor: NEVER give direct financial advice. Answer from the data below, factually. If asked for an opinion, reframe it as a data-driven observation.
The currency is Indian Rupees (INR, ₹). Today's date is {as_of.isoformat()}.

Family financial summary. Use this data exclusively and do not invent anything:
```json
{json.dumps(context, indent=2)}
```

Keep answers brief, conversational and to the point."""

    async def chat(
        self,
        household: Household,
        message: str,
        history: Optional[list[ChatMessage]] = None,
    ) -> AsyncIterator[str]:
        """
        Stream an answer. The household summary is sent as the opening
        turn of the conversation so the model object can be shared.
        """
        turns = [
            {"role": "user", "parts": [self._chat_context(household, date.today())]},
            {"role": "model", "parts": ["Understood. I will answer only from this data."]},
        ]
        turns.extend(
            {"role": turn.role, "parts": [turn.content]} for turn in history or []
        )

        try:
            session = self._model.start_chat(history=turns)
            response = await session.send_message_async(message, stream=True)
            async for chunk in response:
                text = chunk.text
                if text:
                    yield text
        except Exception as e:
            logger.warning("gemini_chat_failed", error=str(e))
            raise OracleUnavailableError(f"chat failed: {e}") from e
