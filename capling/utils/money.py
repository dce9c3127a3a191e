"""
Money input helpers.

Amounts are stored as NUMERIC(20, 2); inputs are rounded to cents before
any range check so the stored value is the one that was validated.
"""
from decimal import Decimal, InvalidOperation

CENT = Decimal("0.01")


def parse_positive_amount(value) -> tuple[Decimal | None, str | None]:
    """
    Parse a money amount and require it to be > 0 after rounding to cents

    Args:
        value: int / str / Decimal (bool and float-like garbage rejected)

    Returns:
        (amount, None) or (None, error_message)

    Example:
        >>> parse_positive_amount("12.345")
        (Decimal('12.34'), None)
        >>> parse_positive_amount("0.001")
        (None, 'Amount must be at least 0.01')
    """
    if isinstance(value, bool):
        return None, "Amount must be a number"
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None, f"Invalid amount: {value!r}"
    if not amount.is_finite():
        return None, "Amount must be a finite number"

    amount = amount.quantize(CENT)
    if amount <= 0:
        return None, "Amount must be at least 0.01"
    return amount, None
