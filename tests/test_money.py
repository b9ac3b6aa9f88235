"""Tests for exact amount parsing and atomic unit conversion."""

from decimal import Decimal

import pytest

from tabsplit.exceptions import ValidationError
from tabsplit.money import (
    format_amount,
    from_atomic_units,
    parse_amount,
    parse_weights,
    quantize_amount,
    to_atomic_units,
)


class TestParseAmount:
    """Amounts are parsed exactly and must be positive."""

    def test_string_is_exact(self):
        """'0.1' stays exactly one tenth."""
        assert parse_amount("0.1") == Decimal("0.1")
        assert parse_amount("0.1") + parse_amount("0.2") == Decimal("0.3")

    def test_thousands_separator(self):
        """Commas are stripped before parsing."""
        assert parse_amount("1,250.50") == Decimal("1250.50")

    def test_integer_input(self):
        assert parse_amount(20) == Decimal("20")

    @pytest.mark.parametrize("raw", ["0", "-5", "-0.01"])
    def test_non_positive_rejected(self, raw):
        with pytest.raises(ValidationError):
            parse_amount(raw)

    @pytest.mark.parametrize("raw", ["abc", "", "NaN", "Infinity"])
    def test_garbage_rejected(self, raw):
        with pytest.raises(ValidationError):
            parse_amount(raw)


class TestParseWeights:
    """Weight vectors are optional but must be positive."""

    def test_none_passthrough(self):
        assert parse_weights(None) is None

    def test_parsed_as_decimals(self):
        assert parse_weights(["2", 1]) == [Decimal("2"), Decimal("1")]

    def test_zero_weight_rejected(self):
        with pytest.raises(ValidationError, match="positive"):
            parse_weights(["1", "0"])


class TestAtomicUnits:
    """Conversion between token amounts and integer atomic units."""

    def test_usdc_whole_amount(self):
        assert to_atomic_units(Decimal("20"), 6) == 20_000_000

    def test_fractional_amount(self):
        assert to_atomic_units(Decimal("12.5"), 6) == 12_500_000

    def test_repeating_fraction_rounds_half_up(self):
        """10 / 3 has more digits than USDC can represent."""
        assert to_atomic_units(Decimal("10") / Decimal("3"), 6) == 3_333_333
        assert to_atomic_units(Decimal("0.0000005"), 6) == 1

    def test_back_to_decimal(self):
        assert from_atomic_units(3_333_333, 6) == Decimal("3.333333")

    def test_quantize_matches_atomic(self):
        """Quantizing and converting agree on the same rounding."""
        amount = Decimal("7.1234565")
        assert quantize_amount(amount, 6) == from_atomic_units(
            to_atomic_units(amount, 6), 6
        )


def test_format_amount():
    assert format_amount(Decimal("1234.5"), "USDC") == "1,234.50 USDC"
