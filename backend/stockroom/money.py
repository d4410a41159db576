"""
Money helpers.

All amounts are stored and computed as integer cents. Decimal strings only
appear at the API boundary (display and optional input).
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

# Maximum line total (quantity x unit amount): 99,999,999,999.99
MAX_LINE_TOTAL_CENTS = 9_999_999_999_999

_CENT = Decimal("0.01")


def format_cents(cents: int | None) -> str | None:
    """2160 -> "21.60"."""
    if cents is None:
        return None
    return str((Decimal(cents) / 100).quantize(_CENT))


def decimal_to_cents(value) -> int:
    """
    Convert a decimal amount ("1.20", 1.2, Decimal("1.2")) to integer cents.

    Floats are routed through str() so 1.2 becomes exactly 120 rather than
    119.99999. Rounds half-up to the nearest cent.
    """
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError("amount must be a number")
    if not amount.is_finite():
        raise ValueError("amount must be a number")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
