"""
Aggregate views over expenses.

Two different sums are in play and must not be mixed:
- full expense amounts: per category and total (what the budget sees)
- split amounts: per member (who actually bears the cost)

Imported rows can carry splits that add up to less than the amount, so
per-member totals are never derived from `amount`.
"""

from collections import defaultdict
from datetime import date
from typing import Iterable, Optional

from financely.models.household import Expense, Household
from financely.models.reports import BudgetStatus, DashboardSummary, MonthlyAggregate


def expenses_in_month(expenses: Iterable[Expense], month: int, year: int) -> list[Expense]:
    return [e for e in expenses if e.date.month == month and e.date.year == year]


def spent_by_category(expenses: Iterable[Expense]) -> dict[str, int]:
    """Full amounts summed per category id."""
    totals: dict[str, int] = defaultdict(int)
    for expense in expenses:
        totals[expense.category_id] += expense.amount
    return dict(totals)


def spent_by_member(expenses: Iterable[Expense]) -> dict[str, int]:
    """Split amounts summed per member id."""
    totals: dict[str, int] = defaultdict(int)
    for expense in expenses:
        for split in expense.splits:
            totals[split.member_id] += split.amount
    return dict(totals)


def monthly_aggregate(expenses: Iterable[Expense], month: int, year: int) -> MonthlyAggregate:
    """Spending per category, per member and in total for one calendar month."""
    in_month = expenses_in_month(expenses, month, year)
    return MonthlyAggregate(
        month=month,
        year=year,
        per_category=spent_by_category(in_month),
        per_member=spent_by_member(in_month),
        total=sum(e.amount for e in in_month),
        expense_count=len(in_month),
    )


def filter_expenses(
    expenses: Iterable[Expense],
    member_id: Optional[str] = None,
    category_id: Optional[str] = None,
) -> list[Expense]:
    """
    Expenses matching the filters, newest first.

    The member filter matches expenses the member has a share in, not just
    the ones they paid for.
    """
    result = []
    for expense in expenses:
        if category_id and expense.category_id != category_id:
            continue
        if member_id and not any(
            s.member_id == member_id and s.amount > 0 for s in expense.splits
        ):
            continue
        result.append(expense)

    result.sort(key=lambda e: e.date, reverse=True)
    return result


def dashboard_summary(household: Household, as_of: date) -> DashboardSummary:
    """Headline numbers for the month containing `as_of`."""
    aggregate = monthly_aggregate(household.expenses, as_of.month, as_of.year)

    budgets = []
    for budget in household.budgets:
        category = household.get_category(budget.category_id)
        budgets.append(BudgetStatus(
            category_id=budget.category_id,
            category_name=category.name if category else "Uncategorized",
            budget=budget.amount,
            spent=aggregate.per_category.get(budget.category_id, 0),
        ))

    by_member = sorted(
        aggregate.per_member.items(),
        key=lambda item: item[1],
        reverse=True,
    )

    return DashboardSummary(
        month=as_of.month,
        year=as_of.year,
        total_spent=aggregate.total,
        total_budget=sum(b.amount for b in household.budgets),
        total_saved=sum(g.current_amount for g in household.bucket_goals),
        budgets=budgets,
        spending_by_member=by_member,
    )
