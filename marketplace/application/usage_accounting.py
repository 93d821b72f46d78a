from sqlalchemy.orm import Session

from marketplace.domain.exceptions import ExhaustedError
from marketplace.infrastructure.repositories.coupon_repository import CouponRepository


class UsageAccounting:
    """Consumes one use of a coupon without ever passing its cap."""

    def __init__(self, db: Session):
        self.coupons = CouponRepository(db)

    def consume(self, instrument_id: str, max_uses: int) -> None:
        """
        Raises ExhaustedError when the conditional increment matched no row,
        i.e. the coupon reached max_uses (or vanished) since it was validated.
        """
        if not self.coupons.increment_usage(instrument_id, max_uses):
            raise ExhaustedError()
