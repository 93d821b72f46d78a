# tests/unit/test_catalog_and_promotions.py

from datetime import timedelta
from decimal import Decimal

import pytest

from marketplace.application.catalog_service import CatalogService
from marketplace.application.promotion_service import PromotionService
from marketplace.domain.exceptions import (
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
)
from marketplace.domain.models import CategorySpec, Vertical, utc_now
from marketplace.domain.pricing import DiscountMode
from marketplace.domain.state_machine import ItemStatus


def test_new_item_awaits_approval(db, event_item):
    assert event_item.status == ItemStatus.PENDING
    assert [c.name for c in event_item.categories] == ["GA", "VIP"]
    assert event_item.categories[1].capacity is None


def test_edit_sends_approved_item_back_to_pending(db, event_item):
    catalog = CatalogService(db)
    catalog.set_status(event_item.id, ItemStatus.APPROVED)
    db.commit()

    item = catalog.update_item(
        event_item.id,
        title="Rooftop Jazz Night II",
        categories=[CategorySpec(name="GA", price=Decimal("300"), capacity=10)],
    )
    db.commit()

    assert item.status == ItemStatus.PENDING
    assert item.title == "Rooftop Jazz Night II"
    assert [(c.name, c.capacity) for c in item.categories] == [("GA", 10)]


def test_moderation_follows_state_machine(db, event_item):
    with pytest.raises(InvalidStateTransitionError):
        CatalogService(db).set_status(event_item.id, ItemStatus.DRAFT)


def test_duplicate_category_names_rejected(db, organizer):
    with pytest.raises(InvalidInputError, match="duplicate category name: GA"):
        CatalogService(db).create_item(
            organizer_id=organizer.id,
            vertical=Vertical.EVENT,
            title="Doubled",
            categories=[CategorySpec(name="GA"), CategorySpec(name="GA")],
        )


def test_item_needs_existing_organizer(db):
    with pytest.raises(NotFoundError):
        CatalogService(db).create_item("nobody", Vertical.PLAY, "Court 5", [])


def test_organizer_email_is_unique(db, organizer):
    with pytest.raises(InvalidInputError):
        CatalogService(db).create_organizer("Copycat", "HOST@skyline.test")


def test_coupon_code_is_uppercased_and_unique(db, make_coupon):
    coupon = make_coupon(" summer25 ")
    assert coupon.code == "SUMMER25"
    assert coupon.used_count == 0

    with pytest.raises(InvalidInputError, match="already exists"):
        make_coupon("SUMMER25")


def test_coupon_window_and_value_checks(db, make_coupon):
    now = utc_now()
    with pytest.raises(InvalidInputError):
        make_coupon("BACKWARDS", valid_from=now, valid_until=now - timedelta(hours=1))
    with pytest.raises(InvalidInputError):
        make_coupon("TOOMUCH", discount_value=Decimal("150"))


def test_offer_targets_must_match_vertical(db, event_item):
    with pytest.raises(InvalidInputError):
        PromotionService(db).create_offer(
            title="Court deal",
            discount_type=DiscountMode.FLAT,
            discount_value=Decimal("100"),
            applies_to=Vertical.PLAY,
            item_ids=[event_item.id],
            valid_until=utc_now() + timedelta(days=1),
        )


def test_offers_for_item_lists_live_offers_only(db, event_item):
    service = PromotionService(db)
    live = service.create_offer(
        title="Live",
        discount_type=DiscountMode.FLAT,
        discount_value=Decimal("10"),
        applies_to=Vertical.EVENT,
        item_ids=[event_item.id],
        valid_until=utc_now() + timedelta(days=1),
    )
    service.create_offer(
        title="Paused",
        discount_type=DiscountMode.FLAT,
        discount_value=Decimal("10"),
        applies_to=Vertical.EVENT,
        item_ids=[event_item.id],
        valid_until=utc_now() + timedelta(days=1),
        is_active=False,
    )
    db.commit()

    assert [offer.id for offer in service.offers_for_item(event_item.id)] == [live.id]


def test_list_offers_filters_by_vertical(db, event_item, organizer):
    court = CatalogService(db).create_item(organizer.id, Vertical.PLAY, "Court 5", [])
    service = PromotionService(db)
    for title, vertical, item in (
        ("Concert deal", Vertical.EVENT, event_item),
        ("Court deal", Vertical.PLAY, court),
    ):
        service.create_offer(
            title=title,
            discount_type=DiscountMode.FLAT,
            discount_value=Decimal("10"),
            applies_to=vertical,
            item_ids=[item.id],
            valid_until=utc_now() + timedelta(days=1),
        )
    db.commit()

    assert sorted(offer.title for offer in service.list_offers()) == ["Concert deal", "Court deal"]
    assert [offer.title for offer in service.list_offers(Vertical.PLAY)] == ["Court deal"]
