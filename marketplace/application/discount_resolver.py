from datetime import datetime
from decimal import Decimal
from typing import Callable
import logging

from sqlalchemy.orm import Session

from marketplace.domain.exceptions import (
    CouponNotFoundError,
    ExhaustedError,
    ExpiredError,
    InactiveError,
    InvalidInputError,
    NotEligibleError,
    NotYetValidError,
    OfferNotApplicableError,
    RestrictedRequiresIdentityError,
)
from marketplace.domain.models import DiscountQuote, Vertical, as_utc, utc_now
from marketplace.domain.pricing import discount_amount, to_money
from marketplace.infrastructure.db.models import Coupon, InventoryItem
from marketplace.infrastructure.repositories.coupon_repository import CouponRepository
from marketplace.infrastructure.repositories.offer_repository import OfferRepository

logger = logging.getLogger(__name__)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


class DiscountResolver:
    """
    Turns a coupon code or offer reference into a discount amount.

    Validation never mutates anything; consuming a coupon use is the job of
    UsageAccounting, so a quote can be shown before the buyer commits.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.coupons = CouponRepository(db)
        self.offers = OfferRepository(db)
        self.clock = clock

    def validate(
        self,
        code: str | None,
        order_amount: Decimal,
        buyer_id: str | None = None,
        vertical: Vertical | None = None,
    ) -> DiscountQuote:
        normalized = normalize_code(code)
        if not normalized:
            raise InvalidInputError("coupon code is required")

        coupon = self.coupons.get_by_code(normalized)
        if coupon is None:
            raise CouponNotFoundError(normalized)

        self._check_coupon(coupon, buyer_id)

        if vertical is not None and coupon.category != vertical:
            raise NotEligibleError(
                f"coupon is only valid for {coupon.category.value} bookings"
            )

        amount = discount_amount(coupon.discount_type, coupon.discount_value, order_amount)
        return DiscountQuote(
            instrument_id=coupon.id,
            code=coupon.code,
            max_uses=coupon.max_uses,
            amount=amount,
        )

    def list_active(self, category: Vertical, buyer_id: str | None = None) -> list[Coupon]:
        return self.coupons.list_active(
            category=category,
            buyer_id=(buyer_id or "").strip() or None,
            now=self.clock(),
        )

    def resolve_offer(
        self,
        offer_id: str,
        item: InventoryItem,
        order_amount: Decimal,
    ) -> DiscountQuote:
        offer = self.offers.get_by_id(offer_id)
        if offer is None:
            raise OfferNotApplicableError("offer not found")
        if not offer.is_active:
            raise OfferNotApplicableError("offer is not active")
        if as_utc(offer.valid_until) <= self.clock():
            raise OfferNotApplicableError("offer has expired")
        if offer.applies_to != item.vertical or item.id not in offer.item_ids:
            raise OfferNotApplicableError("offer does not apply to this listing")

        return DiscountQuote(
            instrument_id=offer.id,
            code=None,
            max_uses=0,
            amount=discount_amount(offer.discount_type, offer.discount_value, order_amount),
        )

    def _check_coupon(self, coupon: Coupon, buyer_id: str | None) -> None:
        if not coupon.is_active:
            raise InactiveError()

        now = self.clock()
        if now < as_utc(coupon.valid_from):
            raise NotYetValidError()
        if now > as_utc(coupon.valid_until):
            raise ExpiredError()

        if coupon.max_uses > 0 and coupon.used_count >= coupon.max_uses:
            raise ExhaustedError()

        allowed = coupon.buyer_ids
        if allowed:
            buyer_id = (buyer_id or "").strip()
            if not buyer_id:
                raise RestrictedRequiresIdentityError()
            if buyer_id not in allowed:
                raise NotEligibleError("coupon is not valid for this user")


def quote_summary(quote: DiscountQuote) -> str:
    return f"{quote.code or quote.instrument_id} -{to_money(quote.amount)}"
