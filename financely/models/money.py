"""
Money helpers.

All ledger amounts are integers in paise. Decimal rupees only exist at the
edges: Gemini prompts and responses, CSV export and user-facing messages.
Every conversion goes through this module so rounding happens in one place.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

Number = Union[int, float, str, Decimal]

_HUNDRED = Decimal(100)
_PAISE = Decimal("0.01")


def to_cents(amount: Number) -> int:
    """
    Convert a decimal rupee amount to integer paise.

    Floats are routed through str() so 450.75 becomes exactly 45075.
    Half paise round away from zero.
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Not a monetary amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"Not a monetary amount: {amount!r}")
    return int((value * _HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_decimal(cents: int) -> Decimal:
    """Convert integer paise to a two-place Decimal rupee amount."""
    return (Decimal(cents) / _HUNDRED).quantize(_PAISE)


def format_decimal(cents: int) -> str:
    """Plain two-decimal rendering, e.g. 123450 -> '1234.50'."""
    return f"{cents_to_decimal(cents):.2f}"


def _group_indian(digits: str) -> str:
    # 12345678 -> 1,23,45,678
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_inr(cents: int, symbol: str = "₹", show_paise: bool = False) -> str:
    """
    Format paise as Indian rupees with lakh/crore grouping.

    format_inr(200000000) -> '₹20,00,000'
    format_inr(64900, show_paise=True) -> '₹649.00'
    """
    sign = "-" if cents < 0 else ""
    value = cents_to_decimal(abs(cents))
    if show_paise:
        rupees, paise = divmod(abs(cents), 100)
        return f"{sign}{symbol}{_group_indian(str(rupees))}.{paise:02d}"
    rupees = int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return f"{sign}{symbol}{_group_indian(str(rupees))}"
