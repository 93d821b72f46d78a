"""Money arithmetic shared by coupon quotes, offers and booking totals.

Every computed amount is quantized to two decimal places, half up.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class DiscountMode(str, Enum):
    PERCENT = "percent"
    FLAT = "flat"


def to_money(value) -> Decimal:
    """Coerce ints, floats, strings or Decimals to a 2-place Decimal."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def discount_amount(mode: DiscountMode, value, order_amount) -> Decimal:
    """
    Percent mode takes value% of the order amount.
    Flat mode never discounts more than the order amount.
    """
    order_amount = to_money(order_amount)
    value = Decimal(str(value)) if not isinstance(value, Decimal) else value

    if mode == DiscountMode.PERCENT:
        amount = to_money(order_amount * value / Decimal(100))
    else:
        amount = min(to_money(value), order_amount)

    return max(amount, ZERO)


def subtotal(line_items) -> Decimal:
    return to_money(
        sum((to_money(item.unit_price) * item.quantity for item in line_items), ZERO)
    )


def grand_total(order_subtotal, booking_fee, discount) -> Decimal:
    total = to_money(order_subtotal) + to_money(booking_fee) - to_money(discount)
    return max(to_money(total), ZERO)
