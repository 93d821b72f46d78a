# marketplace/infrastructure/repositories/coupon_repository.py

from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import exists, or_, select, update

from marketplace.domain.models import Vertical
from marketplace.infrastructure.db.models import Coupon, CouponBuyer


class CouponRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> Coupon | None:
        stmt = select(Coupon).where(Coupon.code == code)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_all(self) -> list[Coupon]:
        stmt = select(Coupon).order_by(Coupon.created_at, Coupon.code)
        return list(self.db.execute(stmt).scalars().all())

    def list_active(
        self,
        category: Vertical,
        buyer_id: str | None,
        now: datetime,
    ) -> list[Coupon]:
        """
        Active, in-window, under-cap coupons for a vertical.
        Restricted coupons only appear for a buyer on their list.
        """
        restricted = exists().where(CouponBuyer.coupon_id == Coupon.id)
        if buyer_id:
            audience = or_(
                ~restricted,
                exists()
                .where(CouponBuyer.coupon_id == Coupon.id)
                .where(CouponBuyer.buyer_id == buyer_id),
            )
        else:
            audience = ~restricted

        stmt = (
            select(Coupon)
            .where(Coupon.category == category)
            .where(Coupon.is_active.is_(True))
            .where(Coupon.valid_from <= now)
            .where(Coupon.valid_until >= now)
            .where(or_(Coupon.max_uses == 0, Coupon.used_count < Coupon.max_uses))
            .where(audience)
            .order_by(Coupon.code)
        )
        return list(self.db.execute(stmt).scalars().all())

    def add(self, coupon: Coupon) -> Coupon:
        self.db.add(coupon)
        self.db.flush()
        return coupon

    def increment_usage(self, coupon_id: str, max_uses: int) -> bool:
        """
        Single conditional UPDATE: the cap check and the increment are one
        statement, so concurrent callers cannot both pass a stale check.
        Returns False when the coupon is missing or already at its cap.
        """
        stmt = (
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        if max_uses > 0:
            stmt = stmt.where(Coupon.used_count < max_uses)

        if self.db.execute(stmt).rowcount != 1:
            return False
        # Reload so the session does not keep serving the pre-increment count.
        self.db.get(Coupon, coupon_id, populate_existing=True)
        return True
