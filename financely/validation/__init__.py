"""Expense validation package."""

from financely.validation.validator import ExpenseValidator, InvalidExpenseError

__all__ = ["ExpenseValidator", "InvalidExpenseError"]
