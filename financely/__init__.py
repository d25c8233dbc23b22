"""
Financely - Household Ledger Package

A household finance tracker: expenses split between members, monthly
budgets, savings goals, trips and subscriptions, with Gemini assisting
on receipts, statements, categorization and reports.

DESIGN PRINCIPLES:
1. Money is integer paise, never floats
2. Splits always add up to the expense
3. AI suggests, the ledger decides
4. AI failures never block a ledger write
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Financely Team"
