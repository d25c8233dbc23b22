"""Tests for the paise <-> rupee helpers."""

import pytest
from decimal import Decimal

from financely.models.money import cents_to_decimal, format_decimal, format_inr, to_cents


class TestToCents:
    """Tests for rupee -> paise conversion."""

    @pytest.mark.parametrize("amount, expected", [
        (450.75, 45075),
        ("1250.5", 125050),
        (Decimal("0.01"), 1),
        (0.1 + 0.2, 30),
        (649, 64900),
    ])
    def test_converts_without_float_drift(self, amount, expected):
        assert to_cents(amount) == expected

    def test_half_paisa_rounds_up(self):
        assert to_cents("10.005") == 1001

    @pytest.mark.parametrize("amount", ["abc", "NaN", float("inf")])
    def test_rejects_non_amounts(self, amount):
        with pytest.raises(ValueError, match="Not a monetary amount"):
            to_cents(amount)


class TestFormatting:
    """Tests for display formatting."""

    def test_cents_to_decimal(self):
        assert cents_to_decimal(123450) == Decimal("1234.50")

    def test_format_decimal(self):
        assert format_decimal(5) == "0.05"
        assert format_decimal(100000) == "1000.00"

    def test_format_inr_indian_grouping(self):
        """Test lakh/crore grouping."""
        assert format_inr(200000000) == "₹20,00,000"
        assert format_inr(2000000) == "₹20,000"
        assert format_inr(99900) == "₹999"

    def test_format_inr_with_paise(self):
        assert format_inr(64900, show_paise=True) == "₹649.00"
        assert format_inr(12345678, show_paise=True) == "₹1,23,456.78"

    def test_format_inr_negative(self):
        assert format_inr(-150000) == "-₹1,500"
