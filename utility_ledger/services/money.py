"""Decimal helpers for money and meter quantities."""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    """Convert int/float/str/Decimal to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value) -> Decimal:
    """Round to two decimal places (half up), the precision of stored amounts."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_units_used(previous_reading, current_reading) -> Decimal:
    """Consumption between two readings (may be negative; validate first)."""
    return quantize(to_decimal(current_reading) - to_decimal(previous_reading))


def calculate_bill_amount(units_used, rate_per_unit, standing_charge) -> Decimal:
    """units_used * rate_per_unit + standing_charge, rounded once at the end."""
    return quantize(to_decimal(units_used) * to_decimal(rate_per_unit) + to_decimal(standing_charge))


def calculate_current_balance(previous_balance, bill_amount, paid_amount) -> Decimal:
    """previous_balance + bill_amount - paid_amount (negative = credit)."""
    return quantize(to_decimal(previous_balance) + to_decimal(bill_amount) - to_decimal(paid_amount))


__all__ = [
    "CENT",
    "ZERO",
    "to_decimal",
    "quantize",
    "calculate_units_used",
    "calculate_bill_amount",
    "calculate_current_balance",
]
