# tests/unit/test_pricing.py

from decimal import Decimal

from marketplace.domain.models import LineItem
from marketplace.domain.pricing import (
    DiscountMode,
    discount_amount,
    grand_total,
    subtotal,
    to_money,
)


def test_percent_discount():
    assert discount_amount(DiscountMode.PERCENT, 10, 1000) == Decimal("100.00")


def test_flat_discount_is_capped_at_order_amount():
    assert discount_amount(DiscountMode.FLAT, 500, 300) == Decimal("300.00")


def test_percent_discount_rounds_half_up():
    # 12.5% of 99.99 = 12.49875
    assert discount_amount(DiscountMode.PERCENT, Decimal("12.5"), Decimal("99.99")) == Decimal("12.50")


def test_discount_on_empty_order_is_zero():
    assert discount_amount(DiscountMode.FLAT, 50, 0) == Decimal("0.00")
    assert discount_amount(DiscountMode.PERCENT, 50, 0) == Decimal("0.00")


def test_subtotal_sums_line_items():
    lines = [
        LineItem(category="GA", unit_price=Decimal("250"), quantity=2),
        LineItem(category="VIP", unit_price=Decimal("999.99"), quantity=1),
    ]
    assert subtotal(lines) == Decimal("1499.99")


def test_grand_total_is_floored_at_zero():
    assert grand_total(Decimal("100"), Decimal("0"), Decimal("150")) == Decimal("0.00")
    assert grand_total(Decimal("500"), Decimal("20"), Decimal("50")) == Decimal("470.00")


def test_to_money_accepts_floats_without_binary_noise():
    assert to_money(0.1 + 0.2) == Decimal("0.30")
