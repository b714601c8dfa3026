"""Decimal utilities for financial calculations.

All monetary calculations must use Decimal to avoid floating-point precision issues.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional


# Quantum for cent-precision comparisons and keys
CENTS = Decimal("0.01")

# Provider amounts are plain signed decimals, optionally with a decimal comma
AMOUNT_PATTERN = re.compile(r"^[+-]?\d+(?:[.,]\d+)?$")


def parse_amount(raw_amount: object) -> Decimal:
    """Parse a provider amount into a signed Decimal.

    Handles:
    - Strings: "-45.90", "1200", "+3.5", "-12,40"
    - Integers and Decimals as-is
    - Floats via their string representation

    Args:
        raw_amount: The raw amount value.

    Returns:
        Signed Decimal amount.

    Raises:
        ValueError: If the amount cannot be parsed.
    """
    if raw_amount is None or isinstance(raw_amount, bool):
        raise ValueError(f"Cannot parse amount {raw_amount!r}")

    if isinstance(raw_amount, Decimal):
        amount = raw_amount
    elif isinstance(raw_amount, (int, float)):
        amount = Decimal(str(raw_amount))
    else:
        amount_str = str(raw_amount).strip().replace(" ", "")
        if not AMOUNT_PATTERN.match(amount_str):
            raise ValueError(f"Cannot parse amount '{raw_amount}'")
        try:
            amount = Decimal(amount_str.replace(",", "."))
        except InvalidOperation as e:
            raise ValueError(f"Cannot parse amount '{raw_amount}': {e}") from e

    if not amount.is_finite():
        raise ValueError(f"Amount must be finite, got '{raw_amount}'")

    return amount


def quantize_amount(amount: Decimal) -> Decimal:
    """Round an amount to cents, normalizing -0.00 to 0.00.

    Args:
        amount: The amount to quantize.

    Returns:
        Amount rounded half-up to 2 decimal places.
    """
    rounded = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    if rounded == 0:
        return Decimal("0.00")
    return rounded


def format_currency(
    amount: Decimal,
    currency: str = "EUR",
    decimal_places: int = 2,
) -> str:
    """Format a Decimal amount for display.

    Args:
        amount: The amount to format.
        currency: ISO currency code appended to the amount.
        decimal_places: Number of decimal places (default 2).

    Returns:
        Formatted string like "-1,234.56 EUR".
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    rounded = amount.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)
    return f"{rounded:,.{decimal_places}f} {currency}".strip()


def safe_decimal(value: Optional[object], default: Decimal = Decimal("0")) -> Decimal:
    """Safely convert a value to Decimal.

    Args:
        value: Value to convert (string, int, float, or None).
        default: Default value if conversion fails.

    Returns:
        Decimal value or default.
    """
    if value is None:
        return default

    try:
        return parse_amount(value)
    except ValueError:
        return default


def sum_amounts(amounts: list[Decimal]) -> Decimal:
    """Sum a list of Decimal amounts.

    Args:
        amounts: List of Decimal amounts.

    Returns:
        Sum as Decimal.
    """
    total = Decimal("0")
    for amount in amounts:
        total += amount
    return total
