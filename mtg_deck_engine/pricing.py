"""
Volume-tier pricing for card orders.

Every card in an order is charged the same unit price, chosen by the total
number of units ordered. Amounts are plain floats in EUR and are only rounded
to cents at the point of charge or display.
"""

from typing import Optional, Sequence, Tuple


# (minimum total quantity, unit price, tier label), highest threshold first
PRICING_TIERS: Tuple[Tuple[int, float, str], ...] = (
    (50, 0.75, "≥50"),
    (40, 1.00, "40–49"),
    (9, 1.50, "9–39"),
    (0, 2.00, "≤8"),
)

CURRENCY = "eur"


def _tier_for(total_qty: int, tiers: Sequence[Tuple[int, float, str]]) -> Tuple[int, float, str]:
    if total_qty < 0:
        raise ValueError(f"Total quantity cannot be negative (got {total_qty})")

    for tier in tiers:
        if total_qty >= tier[0]:
            return tier

    # Custom tables may not end at zero
    return tiers[-1]


def unit_price(total_qty: int, tiers: Sequence[Tuple[int, float, str]] = PRICING_TIERS) -> float:
    """
    Get the unit price for an order of total_qty cards.

    Args:
        total_qty: Total number of units in the cart or order
        tiers: Tier table, highest threshold first

    Returns:
        Unit price in EUR
    """
    return _tier_for(total_qty, tiers)[1]


def tier_label(total_qty: int, tiers: Sequence[Tuple[int, float, str]] = PRICING_TIERS) -> str:
    """Human-readable label of the tier that total_qty falls into (stored on orders)."""
    return _tier_for(total_qty, tiers)[2]


def total_price(total_qty: int, price_per_unit: Optional[float] = None) -> float:
    """
    Get the charge for total_qty units, rounded to cents.

    Args:
        total_qty: Total number of units
        price_per_unit: Unit price to apply; defaults to the tier price for total_qty

    Returns:
        Total amount in EUR
    """
    if price_per_unit is None:
        price_per_unit = unit_price(total_qty)
    return round(price_per_unit * total_qty, 2)


def apply_discount(price_per_unit: float, percent: float) -> float:
    """
    Apply a percentage discount to a unit price.

    Args:
        price_per_unit: Undiscounted unit price
        percent: Discount percentage; zero or less leaves the price unchanged

    Returns:
        Discounted unit price rounded to cents
    """
    if percent <= 0:
        return price_per_unit
    return round(price_per_unit * (1 - percent / 100), 2)


def to_cents(amount: float) -> int:
    """Convert an EUR amount to integer cents for the payment processor."""
    return int(round(amount * 100))
