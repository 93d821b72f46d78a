from datetime import datetime
from decimal import Decimal
from typing import Callable

from sqlalchemy.orm import Session

from marketplace.application.discount_resolver import normalize_code
from marketplace.domain.exceptions import InvalidInputError, NotFoundError
from marketplace.domain.models import Vertical, utc_now
from marketplace.domain.pricing import DiscountMode, to_money
from marketplace.infrastructure.db.models import Coupon, CouponBuyer, Offer, OfferTarget
from marketplace.infrastructure.repositories.coupon_repository import CouponRepository
from marketplace.infrastructure.repositories.inventory_repository import InventoryRepository
from marketplace.infrastructure.repositories.offer_repository import OfferRepository


class PromotionService:
    """Admin-side coupon and offer management."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.coupons = CouponRepository(db)
        self.offers = OfferRepository(db)
        self.inventory_repository = InventoryRepository(db)

    def create_coupon(
        self,
        code: str,
        category: Vertical,
        discount_type: DiscountMode,
        discount_value: Decimal,
        valid_from: datetime,
        valid_until: datetime,
        max_uses: int = 0,
        buyer_ids: list[str] | None = None,
        is_active: bool = True,
    ) -> Coupon:
        code = normalize_code(code)
        if not code:
            raise InvalidInputError("coupon code is required")
        if self.coupons.get_by_code(code):
            raise InvalidInputError("coupon code already exists")
        _check_discount(discount_type, discount_value)
        if valid_until < valid_from:
            raise InvalidInputError("valid_until must not be before valid_from")
        if max_uses < 0:
            raise InvalidInputError("max_uses cannot be negative")

        buyers = sorted({buyer.strip() for buyer in buyer_ids or [] if buyer and buyer.strip()})
        coupon = Coupon(
            code=code,
            category=category,
            discount_type=discount_type,
            discount_value=to_money(discount_value),
            valid_from=valid_from,
            valid_until=valid_until,
            max_uses=max_uses,
            used_count=0,
            is_active=is_active,
            allowed_buyers=[CouponBuyer(buyer_id=buyer) for buyer in buyers],
        )
        return self.coupons.add(coupon)

    def list_coupons(self) -> list[Coupon]:
        return self.coupons.list_all()

    def create_offer(
        self,
        title: str,
        discount_type: DiscountMode,
        discount_value: Decimal,
        applies_to: Vertical,
        item_ids: list[str],
        valid_until: datetime,
        description: str = "",
        is_active: bool = True,
    ) -> Offer:
        if not (title or "").strip():
            raise InvalidInputError("title is required")
        _check_discount(discount_type, discount_value)

        targets = list(dict.fromkeys(item_id.strip() for item_id in item_ids if item_id.strip()))
        if not targets:
            raise InvalidInputError("at least one listing is required")
        for item_id in targets:
            item = self.inventory_repository.get_item(item_id)
            if item is None:
                raise NotFoundError(f"item not found: {item_id}")
            if item.vertical != applies_to:
                raise InvalidInputError(f"item {item_id} is not a {applies_to.value} listing")

        offer = Offer(
            title=title.strip(),
            description=description or "",
            discount_type=discount_type,
            discount_value=to_money(discount_value),
            applies_to=applies_to,
            valid_until=valid_until,
            is_active=is_active,
            targets=[OfferTarget(item_id=item_id) for item_id in targets],
        )
        return self.offers.add(offer)

    def list_offers(self, category: Vertical | None = None) -> list[Offer]:
        return self.offers.list_all(applies_to=category)

    def offers_for_item(self, item_id: str) -> list[Offer]:
        if self.inventory_repository.get_item(item_id) is None:
            raise NotFoundError("item not found")
        return self.offers.list_live_for_item(item_id, self.clock())


def _check_discount(discount_type: DiscountMode, discount_value: Decimal) -> None:
    if discount_value <= 0:
        raise InvalidInputError("discount value must be positive")
    if discount_type == DiscountMode.PERCENT and discount_value > 100:
        raise InvalidInputError("percent discount cannot exceed 100")
