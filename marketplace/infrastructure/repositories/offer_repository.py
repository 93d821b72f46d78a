# marketplace/infrastructure/repositories/offer_repository.py

from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import select

from marketplace.domain.models import Vertical
from marketplace.infrastructure.db.models import Offer, OfferTarget


class OfferRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, offer_id: str) -> Offer | None:
        stmt = select(Offer).where(Offer.id == offer_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def add(self, offer: Offer) -> Offer:
        self.db.add(offer)
        self.db.flush()
        return offer

    def list_all(self, applies_to: Vertical | None = None) -> list[Offer]:
        stmt = select(Offer).order_by(Offer.created_at, Offer.title)
        if applies_to is not None:
            stmt = stmt.where(Offer.applies_to == applies_to)
        return list(self.db.execute(stmt).scalars().all())

    def list_live_for_item(self, item_id: str, now: datetime) -> list[Offer]:
        stmt = (
            select(Offer)
            .join(OfferTarget, OfferTarget.offer_id == Offer.id)
            .where(OfferTarget.item_id == item_id)
            .where(Offer.is_active.is_(True))
            .where(Offer.valid_until > now)
            .order_by(Offer.created_at)
        )
        return list(self.db.execute(stmt).scalars().unique().all())
