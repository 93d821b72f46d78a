from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.application.discount_resolver import (
    DiscountResolver,
    normalize_code,
    quote_summary,
)
from marketplace.application.usage_accounting import UsageAccounting
from marketplace.domain.exceptions import (
    CapacityExceededError,
    DiscountError,
    DuplicateBookingError,
    ExhaustedError,
    InvalidInputError,
    NotFoundError,
)
from marketplace.domain.models import (
    BookingRequest,
    DiscountQuote,
    OccurrenceKey,
    SaleNotice,
    utc_now,
)
from marketplace.domain.pricing import ZERO, grand_total, subtotal, to_money
from marketplace.domain.state_machine import BookingStateMachine, BookingStatus
from marketplace.infrastructure.db.models import Booking, BookingLineItem, InventoryItem
from marketplace.infrastructure.repositories.booking_repository import BookingRepository
from marketplace.infrastructure.repositories.inventory_ledger import InventoryLedger
from marketplace.infrastructure.repositories.inventory_repository import InventoryRepository
from marketplace.infrastructure.repositories.outbox_repository import OutboxRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingOutcome:
    booking: Booking
    replayed: bool = False
    sale_notice: SaleNotice | None = None


class BookingService:
    """
    Single orchestration point for confirming a purchase, for every vertical.

    Received -> Validated -> CapacityChecked -> Priced -> Persisted.
    The item row is locked for the whole transaction, and the coupon use is
    consumed in the same transaction as the booking insert, so both commit
    together or not at all.
    """

    def __init__(
        self,
        db: Session,
        admin_email: str = "",
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.admin_email = admin_email.strip().lower()
        self.booking_repository = BookingRepository(db)
        self.inventory_repository = InventoryRepository(db)
        self.ledger = InventoryLedger(db)
        self.discounts = DiscountResolver(db, clock=clock)
        self.usage = UsageAccounting(db)
        self.outbox = OutboxRepository(db)

    def create_booking(self, request: BookingRequest) -> BookingOutcome:
        buyer_email = self._validate_request(request)

        if request.idempotency_key:
            existing = self.booking_repository.get_by_idempotency_key(request.idempotency_key)
            if existing:
                return self._replay(existing, request, buyer_email)

        item = self.inventory_repository.lock_item(request.item_id.strip())
        if item is None:
            raise NotFoundError("item not found")

        occurrence = self._occurrence_for(item, request.occurrence)
        self._guard_duplicate(item, buyer_email, occurrence)

        order_subtotal = subtotal(request.line_items)
        if request.order_amount is not None and to_money(request.order_amount) != order_subtotal:
            raise InvalidInputError(
                f"order_amount {to_money(request.order_amount)} does not match "
                f"line items total {order_subtotal}"
            )

        self._admit_capacity(item, request)

        coupon_quote, offer_quote = self._resolve_discount(item, request, order_subtotal)
        applied = coupon_quote or offer_quote
        discount = applied.amount if applied else ZERO
        booking_fee = to_money(request.booking_fee)

        booking = Booking(
            item_id=item.id,
            organizer_id=item.organizer_id,
            vertical=item.vertical,
            item_title=item.title,
            buyer_email=buyer_email,
            buyer_id=(request.buyer_id or "").strip() or None,
            occurrence_date=occurrence.date if occurrence else None,
            occurrence_slot=occurrence.slot if occurrence else None,
            subtotal=order_subtotal,
            booking_fee=booking_fee,
            discount_amount=discount,
            grand_total=grand_total(order_subtotal, booking_fee, discount),
            status=BookingStatus.BOOKED,
            coupon_id=coupon_quote.instrument_id if coupon_quote else None,
            coupon_code=coupon_quote.code if coupon_quote else None,
            offer_id=offer_quote.instrument_id if offer_quote else None,
            idempotency_key=request.idempotency_key or None,
            line_items=[
                BookingLineItem(
                    category=line.category.strip(),
                    unit_price=to_money(line.unit_price),
                    quantity=line.quantity,
                    position=position,
                )
                for position, line in enumerate(request.line_items)
            ],
        )

        try:
            self.booking_repository.add(booking)
            self.outbox.add_event(
                aggregate_type="booking",
                aggregate_id=booking.id,
                event_type="BOOKING_CONFIRMED",
                payload={
                    "booking_id": booking.id,
                    "item_id": item.id,
                    "vertical": item.vertical.value,
                    "buyer_email": buyer_email,
                    "grand_total": str(booking.grand_total),
                    "discount_amount": str(booking.discount_amount),
                    "coupon_code": booking.coupon_code,
                    "offer_id": booking.offer_id,
                },
                dedupe_key=f"booking:{booking.id}:confirmed",
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if request.idempotency_key:
                existing = self.booking_repository.get_by_idempotency_key(request.idempotency_key)
                if existing:
                    return self._replay(existing, request, buyer_email)
            raise

        logger.info(
            "Booking confirmed. booking_id=%s item_id=%s grand_total=%s discount=%s",
            booking.id,
            booking.item_id,
            booking.grand_total,
            booking.discount_amount,
        )
        return BookingOutcome(
            booking=booking,
            sale_notice=SaleNotice(
                booking_id=booking.id,
                item_title=booking.item_title,
                buyer_email=booking.buyer_email,
                grand_total=booking.grand_total,
                recipients=tuple(item.sales_notification_emails or ()),
            ),
        )

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundError("booking not found")
        return booking

    def cancel_booking(self, booking_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        self._transition(booking, BookingStatus.CANCELLED)
        self.outbox.add_event(
            aggregate_type="booking",
            aggregate_id=booking.id,
            event_type="BOOKING_CANCELLED",
            payload={"booking_id": booking.id, "item_id": booking.item_id},
            dedupe_key=f"booking:{booking.id}:cancelled",
        )
        self.db.commit()
        return booking

    def availability(self, item_id: str) -> dict[str, int]:
        if self.inventory_repository.get_item(item_id) is None:
            raise NotFoundError("item not found")
        return self.ledger.consumed_by_category(item_id)

    def _validate_request(self, request: BookingRequest) -> str:
        buyer_email = (request.buyer_email or "").strip().lower()
        if not buyer_email:
            raise InvalidInputError("user email is required")
        if not (request.item_id or "").strip():
            raise InvalidInputError("item id is required")
        if not request.line_items:
            raise InvalidInputError("at least one ticket is required")

        for line in request.line_items:
            if not (line.category or "").strip():
                raise InvalidInputError("ticket category is required")
            if line.quantity < 1:
                raise InvalidInputError(f"quantity for {line.category} must be at least 1")
            if Decimal(str(line.unit_price)) < 0:
                raise InvalidInputError(f"price for {line.category} cannot be negative")

        if Decimal(str(request.booking_fee)) < 0:
            raise InvalidInputError("booking fee cannot be negative")
        return buyer_email

    def _replay(
        self,
        existing: Booking,
        request: BookingRequest,
        buyer_email: str,
    ) -> BookingOutcome:
        """A key may only replay the purchase it was first used for."""
        requested = sorted((line.category.strip(), line.quantity) for line in request.line_items)
        stored = sorted((line.category, line.quantity) for line in existing.line_items)
        if (
            existing.item_id != request.item_id.strip()
            or existing.buyer_email != buyer_email
            or requested != stored
        ):
            raise InvalidInputError("idempotency key was already used for a different booking")

        logger.info(
            "Replaying booking for idempotency_key=%s booking_id=%s",
            request.idempotency_key,
            existing.id,
        )
        return BookingOutcome(booking=existing, replayed=True)

    def _occurrence_for(
        self,
        item: InventoryItem,
        occurrence: OccurrenceKey | None,
    ) -> OccurrenceKey | None:
        if not item.vertical.needs_occurrence:
            return None
        if occurrence is None or not occurrence.date.strip() or not occurrence.slot.strip():
            raise InvalidInputError("date and slot are required")
        return OccurrenceKey(date=occurrence.date.strip(), slot=occurrence.slot.strip())

    def _guard_duplicate(
        self,
        item: InventoryItem,
        buyer_email: str,
        occurrence: OccurrenceKey | None,
    ) -> None:
        existing = self.booking_repository.find_live_booking(item.id, buyer_email, occurrence)
        if existing is None:
            return

        # Admin and organizer accounts may book repeatedly for ops testing.
        if self.admin_email and buyer_email == self.admin_email:
            return
        if self.inventory_repository.get_organizer_by_email(buyer_email) is not None:
            return

        if occurrence is None:
            raise DuplicateBookingError("this email has already booked for this event")
        raise DuplicateBookingError("you already have a booking for this slot")

    def _admit_capacity(self, item: InventoryItem, request: BookingRequest) -> None:
        declared = {category.name: category for category in item.categories}

        requested: dict[str, int] = {}
        for line in request.line_items:
            name = line.category.strip()
            if declared and name not in declared:
                raise InvalidInputError(f"unknown ticket category: {name}")
            requested[name] = requested.get(name, 0) + line.quantity

        for name, quantity in requested.items():
            category = declared.get(name)
            if category is None or category.capacity is None:
                continue

            consumed = self.ledger.consumed(item.id, name)
            if consumed + quantity > category.capacity:
                raise CapacityExceededError(name, category.capacity - consumed)

    def _resolve_discount(
        self,
        item: InventoryItem,
        request: BookingRequest,
        order_subtotal: Decimal,
    ) -> tuple[DiscountQuote | None, DiscountQuote | None]:
        """
        At most one discount. A coupon that fails validation, or loses the
        race for its last use, is dropped silently and checkout proceeds.
        """
        code = normalize_code(request.discount_code)
        if code:
            try:
                quote = self.discounts.validate(
                    code,
                    order_subtotal,
                    buyer_id=request.buyer_id,
                    vertical=item.vertical,
                )
            except DiscountError as exc:
                logger.info("Coupon not applied. code=%s item_id=%s reason=%s", code, item.id, exc)
            else:
                try:
                    self.usage.consume(quote.instrument_id, quote.max_uses)
                except ExhaustedError:
                    logger.warning(
                        "Coupon exhausted between validation and booking. code=%s item_id=%s",
                        code,
                        item.id,
                    )
                else:
                    logger.info("Coupon applied. %s item_id=%s", quote_summary(quote), item.id)
                    return quote, None

        if request.offer_id:
            try:
                quote = self.discounts.resolve_offer(request.offer_id, item, order_subtotal)
            except DiscountError as exc:
                logger.info(
                    "Offer not applied. offer_id=%s item_id=%s reason=%s",
                    request.offer_id,
                    item.id,
                    exc,
                )
            else:
                return None, quote

        return None, None

    def _transition(self, booking: Booking, to_status: BookingStatus) -> None:
        BookingStateMachine.validate_transition(booking.status, to_status)
        self.booking_repository.update_status(booking, to_status)
