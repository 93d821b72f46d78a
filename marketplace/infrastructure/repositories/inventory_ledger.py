# marketplace/infrastructure/repositories/inventory_ledger.py

from sqlalchemy.orm import Session
from sqlalchemy import func, select

from marketplace.domain.state_machine import BookingStatus
from marketplace.infrastructure.db.models import Booking, BookingLineItem


class InventoryLedger:
    """
    Units already committed per category, derived from live bookings.

    Nothing is stored here: every call aggregates the booking rows,
    so the count cannot drift from the bookings themselves.
    """

    def __init__(self, db: Session):
        self.db = db

    def consumed(self, item_id: str, category: str) -> int:
        stmt = (
            select(func.coalesce(func.sum(BookingLineItem.quantity), 0))
            .join(Booking, Booking.id == BookingLineItem.booking_id)
            .where(Booking.item_id == item_id)
            .where(Booking.status == BookingStatus.BOOKED)
            .where(BookingLineItem.category == category)
        )
        return int(self.db.execute(stmt).scalar_one())

    def consumed_by_category(self, item_id: str) -> dict[str, int]:
        stmt = (
            select(BookingLineItem.category, func.sum(BookingLineItem.quantity))
            .join(Booking, Booking.id == BookingLineItem.booking_id)
            .where(Booking.item_id == item_id)
            .where(Booking.status == BookingStatus.BOOKED)
            .group_by(BookingLineItem.category)
        )
        return {category: int(total) for category, total in self.db.execute(stmt).all()}
