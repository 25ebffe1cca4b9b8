"""Cent-precision money parsing."""

from decimal import Decimal, InvalidOperation

from hsa_reimbursements.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Numeric(12, 2) columns hold at most ten integer digits.
MAX_AMOUNT = Decimal("9999999999.99")


def to_money(value: object, field: str = "amount") -> Decimal:
    """Parse a positive cent amount.

    Accepts Decimal, int, float or numeric strings. Values with more than two
    fractional digits are rejected rather than rounded.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number") from None

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount <= 0:
        raise ValidationError(f"{field} must be a positive number")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} is too large")
    if amount != amount.quantize(CENT):
        raise ValidationError(f"{field} must have at most two decimal places")
    return amount.quantize(CENT)


def format_money(value: Decimal) -> str:
    return f"{value:.2f}"


def money_number(value: Decimal) -> float:
    """Cent-rounded amount as a JSON number, for clients that do arithmetic on it."""
    return float(value.quantize(CENT))
