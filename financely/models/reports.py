"""
Read models produced by the ledger.

These are what the rendering layer consumes: monthly aggregates, the
cumulative trend series, trip and dashboard summaries. All amounts are
paise.
"""

from typing import Optional

from pydantic import BaseModel, Field


class MonthlyAggregate(BaseModel):
    """
    Spending for one calendar month.

    per_category and total use full expense amounts (budget comparison).
    per_member uses split amounts (who actually bears the cost).
    """

    month: int = Field(..., ge=1, le=12)
    year: int
    per_category: dict[str, int] = Field(default_factory=dict)
    per_member: dict[str, int] = Field(default_factory=dict)
    total: int = 0
    expense_count: int = 0


class TrendSeries(BaseModel):
    """
    Cumulative daily spending, this month vs last month.

    Both series have one entry per day of the current month. Days after
    today are None in the current series (no data yet, not zero).
    """

    labels: list[str]
    current_month_cumulative: list[Optional[int]]
    previous_month_cumulative: list[int]


class TripSummary(BaseModel):
    """Budget position of a trip."""

    trip_id: str
    total_spent: int
    budget: int
    remaining: int
    is_over_budget: bool


class BudgetStatus(BaseModel):
    """How much of a category budget has been used this month."""

    category_id: str
    category_name: str
    budget: int
    spent: int

    @property
    def ratio(self) -> float:
        return self.spent / self.budget if self.budget > 0 else 0.0


class DashboardSummary(BaseModel):
    """Headline numbers for the dashboard."""

    month: int
    year: int
    total_spent: int
    total_budget: int
    total_saved: int
    budgets: list[BudgetStatus] = Field(default_factory=list)
    spending_by_member: list[tuple[str, int]] = Field(
        default_factory=list,
        description="(member_id, paise) ordered by amount, highest first"
    )
