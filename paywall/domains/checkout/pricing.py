"""Charge computation for checkout.

Amounts are handled in minor units (cents) so the discount is rounded once,
half-up, and the provider is always handed an integer.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from ...schemas.payments import CheckoutQuote

MINOR_UNITS = Decimal(100)


def to_minor_units(amount: Union[Decimal, int, float, str]) -> int:
    """Convert a major-unit amount (``100.00``) to minor units (``10000``)."""
    return int((Decimal(str(amount)) * MINOR_UNITS).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_amount(minor: int) -> str:
    """Render minor units as a major-unit string, e.g. ``8000 -> "80.00"``."""
    return str((Decimal(minor) / MINOR_UNITS).quantize(Decimal("0.01")))


def quote(
    base_amount: Union[Decimal, int, float, str],
    discount_percent: float = 0,
    coupon_code: Optional[str] = None,
) -> CheckoutQuote:
    """Price a checkout.

    ``discount = round(base * percent / 100)`` and ``final = max(0, base - discount)``,
    both in minor units.

    Args:
        base_amount: Price in major units
        discount_percent: Coupon discount, 0 to 100
        coupon_code: Code the discount came from, if any

    Returns:
        The computed quote
    """
    base = to_minor_units(base_amount)
    discount = int(
        (Decimal(base) * Decimal(str(discount_percent)) / MINOR_UNITS).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    )
    return CheckoutQuote(
        original_amount=base,
        discount_percent=discount_percent,
        discount_amount=discount,
        final_amount=max(0, base - discount),
        coupon_code=coupon_code,
    )
