"""Booking price and commission split."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class PriceBreakdown:
    total_price: Decimal
    commission_amount: Decimal
    guide_earnings: Decimal


def calculate_price_breakdown(
    unit_price: Decimal,
    guest_count: int,
    commission_rate: Decimal,
) -> PriceBreakdown:
    """
    Compute total price and the platform/guide split.

    guide_earnings is derived as the remainder so the two parts always sum
    to total_price after rounding.

    Example:
        >>> calculate_price_breakdown(Decimal("50"), 3, Decimal("0.15"))
        PriceBreakdown(total_price=Decimal('150.00'), commission_amount=Decimal('22.50'), guide_earnings=Decimal('127.50'))
    """
    total = (Decimal(unit_price) * guest_count).quantize(CENTS, rounding=ROUND_HALF_UP)
    commission = (total * Decimal(commission_rate)).quantize(CENTS, rounding=ROUND_HALF_UP)
    return PriceBreakdown(
        total_price=total,
        commission_amount=commission,
        guide_earnings=total - commission,
    )
