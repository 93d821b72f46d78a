# marketplace/infrastructure/repositories/booking_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import func, select

from marketplace.domain.models import OccurrenceKey
from marketplace.domain.state_machine import BookingStatus
from marketplace.infrastructure.db.models import Booking


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_idempotency_key(
        self,
        idempotency_key: str,
    ) -> Booking | None:

        stmt = select(Booking).where(
            Booking.idempotency_key == idempotency_key
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_id(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def find_live_booking(
        self,
        item_id: str,
        buyer_email: str,
        occurrence: OccurrenceKey | None,
    ) -> Booking | None:
        """Any non-cancelled booking by this buyer for the same item and occurrence."""

        stmt = (
            select(Booking)
            .where(Booking.item_id == item_id)
            .where(func.lower(Booking.buyer_email) == buyer_email.strip().lower())
            .where(Booking.status == BookingStatus.BOOKED)
        )
        if occurrence is not None:
            stmt = stmt.where(Booking.occurrence_date == occurrence.date).where(
                Booking.occurrence_slot == occurrence.slot
            )
        return self.db.execute(stmt.limit(1)).scalars().first()

    def add(self, booking: Booking) -> Booking:
        self.db.add(booking)
        self.db.flush()
        return booking

    def update_status(
        self,
        booking: Booking,
        new_status: BookingStatus,
    ) -> None:

        booking.status = new_status
