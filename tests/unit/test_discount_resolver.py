# tests/unit/test_discount_resolver.py

from datetime import timedelta
from decimal import Decimal

import pytest

from marketplace.application.discount_resolver import DiscountResolver
from marketplace.application.promotion_service import PromotionService
from marketplace.application.usage_accounting import UsageAccounting
from marketplace.domain.exceptions import (
    CouponNotFoundError,
    ExhaustedError,
    ExpiredError,
    InactiveError,
    InvalidInputError,
    NotEligibleError,
    NotFoundError,
    NotYetValidError,
    OfferNotApplicableError,
    RestrictedRequiresIdentityError,
)
from marketplace.domain.models import Vertical, utc_now
from marketplace.domain.pricing import DiscountMode


def test_validate_normalizes_code_and_quotes_percent(db, make_coupon):
    coupon = make_coupon("SAVE10")

    quote = DiscountResolver(db).validate("  save10 ", Decimal("1000"))

    assert quote.instrument_id == coupon.id
    assert quote.code == "SAVE10"
    assert quote.amount == Decimal("100.00")


def test_validate_flat_never_exceeds_order(db, make_coupon):
    make_coupon("FLAT500", discount_type=DiscountMode.FLAT, discount_value=Decimal("500"))

    quote = DiscountResolver(db).validate("FLAT500", Decimal("300"))

    assert quote.amount == Decimal("300.00")


def test_validate_does_not_consume(db, make_coupon):
    coupon = make_coupon("ONCE", max_uses=1)

    DiscountResolver(db).validate("ONCE", Decimal("100"))
    DiscountResolver(db).validate("ONCE", Decimal("100"))

    db.refresh(coupon)
    assert coupon.used_count == 0


def test_empty_code_is_invalid_input(db):
    with pytest.raises(InvalidInputError):
        DiscountResolver(db).validate("   ", Decimal("100"))


def test_unknown_code_is_not_found(db):
    with pytest.raises(CouponNotFoundError) as exc_info:
        DiscountResolver(db).validate("NOPE", Decimal("100"))

    assert isinstance(exc_info.value, NotFoundError)
    assert str(exc_info.value) == "invalid coupon code"


def test_inactive_coupon(db, make_coupon):
    make_coupon("PAUSED", is_active=False)

    with pytest.raises(InactiveError):
        DiscountResolver(db).validate("PAUSED", Decimal("100"))


def test_coupon_outside_window(db, make_coupon):
    now = utc_now()
    make_coupon("SOON", valid_from=now + timedelta(days=1), valid_until=now + timedelta(days=2))
    make_coupon("GONE", valid_from=now - timedelta(days=2), valid_until=now - timedelta(days=1))

    with pytest.raises(NotYetValidError):
        DiscountResolver(db).validate("SOON", Decimal("100"))
    with pytest.raises(ExpiredError):
        DiscountResolver(db).validate("GONE", Decimal("100"))


def test_exhausted_coupon(db, make_coupon):
    coupon = make_coupon("LASTONE", max_uses=1)
    UsageAccounting(db).consume(coupon.id, coupon.max_uses)
    db.commit()

    with pytest.raises(ExhaustedError):
        DiscountResolver(db).validate("LASTONE", Decimal("100"))


def test_restricted_coupon_requires_listed_buyer(db, make_coupon):
    make_coupon("VIPONLY", buyer_ids=["buyer-1", "buyer-2"])
    resolver = DiscountResolver(db)

    with pytest.raises(RestrictedRequiresIdentityError):
        resolver.validate("VIPONLY", Decimal("100"))
    with pytest.raises(NotEligibleError):
        resolver.validate("VIPONLY", Decimal("100"), buyer_id="buyer-9")

    assert resolver.validate("VIPONLY", Decimal("100"), buyer_id="buyer-2").amount == Decimal("10.00")


def test_coupon_is_scoped_to_its_vertical(db, make_coupon):
    make_coupon("EVENTS10", category=Vertical.EVENT)

    with pytest.raises(NotEligibleError):
        DiscountResolver(db).validate("EVENTS10", Decimal("100"), vertical=Vertical.DINING)


def test_list_active_hides_restricted_from_anonymous(db, make_coupon):
    make_coupon("ALPHA")
    make_coupon("BETA", buyer_ids=["buyer-1"])
    make_coupon("GAMMA", is_active=False)
    make_coupon("DELTA", category=Vertical.DINING)
    spent = make_coupon("EPSILON", max_uses=1)
    UsageAccounting(db).consume(spent.id, 1)
    db.commit()

    resolver = DiscountResolver(db)

    assert [c.code for c in resolver.list_active(Vertical.EVENT)] == ["ALPHA"]
    assert [c.code for c in resolver.list_active(Vertical.EVENT, "buyer-1")] == ["ALPHA", "BETA"]
    assert [c.code for c in resolver.list_active(Vertical.EVENT, "buyer-2")] == ["ALPHA"]
    assert [c.code for c in resolver.list_active(Vertical.DINING)] == ["DELTA"]


def test_resolve_offer_for_targeted_item(db, event_item):
    offer = PromotionService(db).create_offer(
        title="Early bird",
        discount_type=DiscountMode.FLAT,
        discount_value=Decimal("75"),
        applies_to=Vertical.EVENT,
        item_ids=[event_item.id],
        valid_until=utc_now() + timedelta(days=3),
    )
    db.commit()

    quote = DiscountResolver(db).resolve_offer(offer.id, event_item, Decimal("500"))

    assert quote.instrument_id == offer.id
    assert quote.code is None
    assert quote.amount == Decimal("75.00")


def test_resolve_offer_rejects_expired_and_missing(db, event_item):
    service = PromotionService(db)
    expired = service.create_offer(
        title="Last season",
        discount_type=DiscountMode.PERCENT,
        discount_value=Decimal("20"),
        applies_to=Vertical.EVENT,
        item_ids=[event_item.id],
        valid_until=utc_now() - timedelta(minutes=1),
    )
    db.commit()
    resolver = DiscountResolver(db)

    with pytest.raises(OfferNotApplicableError):
        resolver.resolve_offer(expired.id, event_item, Decimal("500"))
    with pytest.raises(OfferNotApplicableError):
        resolver.resolve_offer("missing-offer", event_item, Decimal("500"))
