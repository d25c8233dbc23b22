"""
Cumulative spending trend: this month against last month, day by day.
"""

import calendar
from datetime import date
from itertools import accumulate
from typing import Iterable, Optional

from financely.models.household import Expense
from financely.models.reports import TrendSeries


def _previous_month(year: int, month: int) -> tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def _daily_totals(expenses: Iterable[Expense], year: int, month: int) -> list[int]:
    days = calendar.monthrange(year, month)[1]
    totals = [0] * days
    for expense in expenses:
        if expense.date.year == year and expense.date.month == month:
            totals[expense.date.day - 1] += expense.amount
    return totals


def build_trend_series(expenses: Iterable[Expense], today: date) -> TrendSeries:
    """
    Build the two cumulative series for the month containing `today`.

    Both series have one entry per day of the current month:
    - current month: running total, None for days after `today`
    - previous month: running total, truncated when last month was
      longer, padded with its final value when it was shorter

    January is compared with December of the previous year.
    """
    expenses = list(expenses)
    days_in_month = calendar.monthrange(today.year, today.month)[1]

    current = list(accumulate(_daily_totals(expenses, today.year, today.month)))
    current_series: list[Optional[int]] = [
        total if day <= today.day else None
        for day, total in enumerate(current, start=1)
    ]

    prev_year, prev_month = _previous_month(today.year, today.month)
    previous = list(accumulate(_daily_totals(expenses, prev_year, prev_month)))
    if len(previous) >= days_in_month:
        previous = previous[:days_in_month]
    else:
        previous += [previous[-1]] * (days_in_month - len(previous))

    return TrendSeries(
        labels=[str(day) for day in range(1, days_in_month + 1)],
        current_month_cumulative=current_series,
        previous_month_cumulative=previous,
    )
