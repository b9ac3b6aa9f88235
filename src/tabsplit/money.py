"""Exact decimal helpers for amounts and on-chain atomic units."""

import logging
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

AmountLike = str | int | Decimal


def to_decimal(value: AmountLike) -> Decimal:
    """
    Convert user input to a Decimal without going through binary floats.

    Thousands separators and surrounding whitespace are stripped.

    Raises:
        ValidationError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        cleaned = str(value).strip().replace(",", "")
        try:
            amount = Decimal(cleaned)
        except InvalidOperation as e:
            raise ValidationError(f"Invalid amount: {value!r}") from e

    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount


def parse_amount(value: AmountLike) -> Decimal:
    """
    Parse an expense amount, which must be strictly positive.

    Args:
        value: Raw amount, e.g. "1,250.50", 20 or Decimal("9.99")

    Returns:
        The amount as an exact Decimal
    """
    amount = to_decimal(value)
    if amount <= 0:
        raise ValidationError(f"Amount must be positive, got {value!r}")
    return amount


def parse_weights(weights: Sequence[AmountLike] | None) -> list[Decimal] | None:
    """Parse an optional weight vector; every weight must be positive."""
    if weights is None:
        return None
    parsed = [to_decimal(weight) for weight in weights]
    for weight in parsed:
        if weight <= 0:
            raise ValidationError(f"Weights must be positive, got {weight}")
    return parsed


def quantize_amount(amount: Decimal, decimals: int) -> Decimal:
    """Round an amount to the asset's precision using ROUND_HALF_UP."""
    return amount.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


def to_atomic_units(amount: Decimal, decimals: int) -> int:
    """
    Convert a decimal token amount to integer atomic units.
    Uses ROUND_HALF_UP for consistency.

    Args:
        amount: Token amount as Decimal, e.g. Decimal("12.5")
        decimals: Token decimals, e.g. 6 for USDC

    Returns:
        Amount in atomic units (integer), e.g. 12500000
    """
    atomic = amount.scaleb(decimals)
    return int(atomic.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_atomic_units(atomic_amount: int, decimals: int) -> Decimal:
    """Convert integer atomic units back to a decimal token amount."""
    return Decimal(atomic_amount).scaleb(-decimals)


def format_amount(amount: Decimal, currency: str) -> str:
    """Format an amount for display with two decimals, e.g. '12.50 USDC'."""
    return f"{amount:,.2f} {currency}"
