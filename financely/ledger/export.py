"""
CSV export of the ledger.

One row per split with a positive share, so summing the share column
over an expense's rows gives back what its members carry. Amounts are
rupees with two decimals, computed from paise without floats.
"""

import csv
import io
from typing import Iterable

from pydantic import BaseModel, Field

from financely.models.household import Expense, Household
from financely.models.money import format_decimal

CSV_HEADER = [
    "Expense ID",
    "Date",
    "Description",
    "Total Amount (INR)",
    "Category",
    "Payer",
    "Split Member",
    "Member's Share (INR)",
]


class LedgerLookup(BaseModel):
    """Id -> display name maps for categories and members."""

    category_names: dict[str, str] = Field(default_factory=dict)
    member_names: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_household(cls, household: Household) -> "LedgerLookup":
        return cls(
            category_names={c.id: c.name for c in household.categories},
            member_names={m.id: m.name for m in household.members},
        )

    def category(self, category_id: str) -> str:
        return self.category_names.get(category_id, "Uncategorized")

    def member(self, member_id: str) -> str:
        return self.member_names.get(member_id, "Unknown")


def export_ledger_csv(expenses: Iterable[Expense], lookup: LedgerLookup) -> str:
    """
    Render expenses as CSV text, header first.

    Fields containing a comma, quote or newline are quoted with internal
    quotes doubled (csv.QUOTE_MINIMAL). Rows follow the input order.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    for expense in expenses:
        for split in expense.splits:
            if split.amount <= 0:
                continue
            writer.writerow([
                expense.id,
                expense.date.isoformat(),
                expense.description,
                format_decimal(expense.amount),
                lookup.category(expense.category_id),
                lookup.member(expense.member_id),
                lookup.member(split.member_id),
                format_decimal(split.amount),
            ])

    return buffer.getvalue()
