from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from marketplace.application.catalog_service import CatalogService
from marketplace.application.promotion_service import PromotionService
from marketplace.domain.models import CategorySpec, Vertical
from marketplace.domain.pricing import DiscountMode
from marketplace.domain.state_machine import ItemStatus
from marketplace.infrastructure.db.models import Base, Coupon, InventoryItem
from marketplace.infrastructure.db.session import SessionLocal, engine


def _days_from_now(days: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


def seed_organizer(db):
    catalog = CatalogService(db)
    existing = catalog.inventory_repository.get_organizer_by_email("host@skyline.test")
    if existing:
        return existing
    return catalog.create_organizer("Skyline Events", "host@skyline.test")


def seed_items(db, organizer) -> list[InventoryItem]:
    item_defs = [
        {
            "vertical": Vertical.EVENT,
            "title": "Sunidhi Chauhan Live Concert",
            "categories": [
                CategorySpec(name="Regular", price=Decimal("1800"), capacity=400),
                CategorySpec(name="VIP", price=Decimal("4500"), capacity=120),
            ],
        },
        {
            "vertical": Vertical.DINING,
            "title": "Hotel Star",
            "categories": [CategorySpec(name="Table for 4", price=Decimal("2800"))],
        },
        {
            "vertical": Vertical.PLAY,
            "title": "Greenfield Turf",
            "categories": [CategorySpec(name="Court", price=Decimal("1200"))],
        },
    ]

    catalog = CatalogService(db)
    items = []
    for definition in item_defs:
        existing = db.execute(
            select(InventoryItem).where(InventoryItem.title == definition["title"])
        ).scalar_one_or_none()
        if existing:
            items.append(existing)
            continue

        item = catalog.create_item(
            organizer_id=organizer.id,
            vertical=definition["vertical"],
            title=definition["title"],
            categories=definition["categories"],
            sales_notification_emails=["host@skyline.test"],
        )
        catalog.set_status(item.id, ItemStatus.APPROVED)
        items.append(item)
    return items


def seed_promotions(db, items: list[InventoryItem]) -> None:
    promotions = PromotionService(db)
    if db.execute(select(Coupon).where(Coupon.code == "SAVE10")).scalar_one_or_none() is None:
        promotions.create_coupon(
            code="SAVE10",
            category=Vertical.EVENT,
            discount_type=DiscountMode.PERCENT,
            discount_value=Decimal("10"),
            valid_from=_days_from_now(-1),
            valid_until=_days_from_now(30),
            max_uses=100,
        )

    turf = [item for item in items if item.vertical == Vertical.PLAY]
    if turf and not promotions.offers_for_item(turf[0].id):
        promotions.create_offer(
            title="Morning slots",
            description="Flat 200 off early bookings",
            discount_type=DiscountMode.FLAT,
            discount_value=Decimal("200"),
            applies_to=Vertical.PLAY,
            item_ids=[turf[0].id],
            valid_until=_days_from_now(14),
        )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        organizer = seed_organizer(db)
        items = seed_items(db, organizer)
        seed_promotions(db, items)
        db.commit()
        print("Seed complete: concert, Hotel Star dining, Greenfield Turf, SAVE10 coupon.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
