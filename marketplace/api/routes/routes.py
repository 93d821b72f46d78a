import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError, TimeoutError as SQLAlchemyTimeoutError

from marketplace.infrastructure.config import get_settings
from marketplace.infrastructure.db.session import SessionLocal
from marketplace.application.booking_service import BookingService
from marketplace.application.catalog_service import CatalogService
from marketplace.application.discount_resolver import DiscountResolver
from marketplace.application.notifications import (
    LoggingSaleNotifier,
    SaleNotifier,
    dispatch_sale_notice,
)
from marketplace.application.promotion_service import PromotionService
from marketplace.api.schemas.schemas import (
    AvailabilityResponse,
    BookingCreate,
    BookingDetailResponse,
    BookingResponse,
    CategoryPayload,
    CouponCreate,
    CouponResponse,
    CouponValidateRequest,
    CouponValidateResponse,
    ItemCreate,
    ItemResponse,
    ItemStatusUpdate,
    ItemUpdate,
    LineItemResponse,
    OfferCreate,
    OfferResponse,
    OrganizerCreate,
    OrganizerResponse,
    OutboxEventResponse,
)
from marketplace.domain.exceptions import (
    DiscountError,
    InvalidStateTransitionError,
    MarketplaceError,
    NotFoundError,
)
from marketplace.domain.models import (
    BookingRequest,
    CategorySpec,
    LineItem,
    OccurrenceKey,
    Vertical,
    as_utc,
)
from marketplace.infrastructure.db.models import Booking, Coupon, InventoryItem, Offer, OutboxEvent
from marketplace.infrastructure.repositories.outbox_repository import OutboxRepository


router = APIRouter()
logger = logging.getLogger(__name__)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_sale_notifier() -> SaleNotifier:
    return LoggingSaleNotifier(sender=get_settings().sales_notification_sender)


def _is_db_degraded(exc: Exception) -> bool:
    return isinstance(exc, (OperationalError, SQLAlchemyTimeoutError))


def _http_error(exc: Exception) -> HTTPException:
    """Map a domain or store error onto the HTTP status the caller sees."""
    if _is_db_degraded(exc):
        logger.warning("Store unavailable: %s", exc)
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Store temporarily unavailable. Please retry.",
        )
    if isinstance(exc, InvalidStateTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, NotFoundError) and not isinstance(exc, DiscountError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    # InvalidInputError, DuplicateBookingError, CapacityExceededError, DiscountError.
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


_HANDLED = (MarketplaceError, OperationalError, SQLAlchemyTimeoutError)


def _money(value) -> float:
    return float(value)


def _booking_detail(booking: Booking) -> BookingDetailResponse:
    return BookingDetailResponse(
        booking_id=booking.id,
        item_id=booking.item_id,
        organizer_id=booking.organizer_id,
        vertical=booking.vertical.value,
        item_title=booking.item_title,
        buyer_email=booking.buyer_email,
        occurrence_date=booking.occurrence_date,
        occurrence_slot=booking.occurrence_slot,
        line_items=[
            LineItemResponse(
                category=line.category,
                unit_price=_money(line.unit_price),
                quantity=line.quantity,
            )
            for line in booking.line_items
        ],
        subtotal=_money(booking.subtotal),
        booking_fee=_money(booking.booking_fee),
        discount_amount=_money(booking.discount_amount),
        grand_total=_money(booking.grand_total),
        status=booking.status.value,
        coupon_code=booking.coupon_code,
        offer_id=booking.offer_id,
        created_at=booking.created_at.isoformat(),
    )


def _item_response(item: InventoryItem) -> ItemResponse:
    return ItemResponse(
        id=item.id,
        organizer_id=item.organizer_id,
        vertical=item.vertical.value,
        title=item.title,
        status=item.status.value,
        categories=[
            CategoryPayload(name=category.name, price=category.price, capacity=category.capacity)
            for category in item.categories
        ],
        sales_notification_emails=list(item.sales_notification_emails or []),
    )


def _coupon_response(coupon: Coupon) -> CouponResponse:
    return CouponResponse(
        id=coupon.id,
        code=coupon.code,
        category=coupon.category.value,
        discount_type=coupon.discount_type.value,
        discount_value=_money(coupon.discount_value),
        valid_from=as_utc(coupon.valid_from).isoformat(),
        valid_until=as_utc(coupon.valid_until).isoformat(),
        max_uses=coupon.max_uses,
        used_count=coupon.used_count,
        is_active=coupon.is_active,
        user_ids=sorted(coupon.buyer_ids),
    )


def _offer_response(offer: Offer) -> OfferResponse:
    return OfferResponse(
        id=offer.id,
        title=offer.title,
        description=offer.description,
        discount_type=offer.discount_type.value,
        discount_value=_money(offer.discount_value),
        applies_to=offer.applies_to.value,
        entity_ids=offer.item_ids,
        valid_until=as_utc(offer.valid_until).isoformat(),
        is_active=offer.is_active,
    )


def _outbox_response(item: OutboxEvent) -> OutboxEventResponse:
    return OutboxEventResponse(
        id=item.id,
        aggregate_type=item.aggregate_type,
        aggregate_id=item.aggregate_id,
        event_type=item.event_type,
        status=item.status,
        attempts=item.attempts,
        created_at=item.created_at.isoformat(),
    )


def _category_specs(categories: list[CategoryPayload] | None) -> list[CategorySpec] | None:
    if categories is None:
        return None
    return [
        CategorySpec(name=category.name, price=category.price, capacity=category.capacity)
        for category in categories
    ]


@router.get("/health")
def health():
    return {"message": "Booking marketplace is running"}


# -----------------------------
# Organizers and listings
# -----------------------------
@router.post(
    "/organizers",
    response_model=OrganizerResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_organizer(request: OrganizerCreate, db: Session = Depends(get_db)):
    try:
        organizer = CatalogService(db).create_organizer(request.name, request.email)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return OrganizerResponse(id=organizer.id, name=organizer.name, email=organizer.email)


@router.post("/items", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
def create_item(request: ItemCreate, db: Session = Depends(get_db)):
    try:
        item = CatalogService(db).create_item(
            organizer_id=request.organizer_id,
            vertical=request.vertical,
            title=request.title,
            categories=_category_specs(request.categories),
            sales_notification_emails=request.sales_notification_emails,
        )
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _item_response(item)


@router.get("/items/{item_id}", response_model=ItemResponse)
def get_item(item_id: str, db: Session = Depends(get_db)):
    try:
        item = CatalogService(db).get_item(item_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _item_response(item)


@router.put("/items/{item_id}", response_model=ItemResponse)
def update_item(item_id: str, request: ItemUpdate, db: Session = Depends(get_db)):
    try:
        item = CatalogService(db).update_item(
            item_id,
            title=request.title,
            categories=_category_specs(request.categories),
            sales_notification_emails=request.sales_notification_emails,
        )
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _item_response(item)


@router.post("/admin/items/{item_id}/status", response_model=ItemResponse)
def set_item_status(item_id: str, request: ItemStatusUpdate, db: Session = Depends(get_db)):
    try:
        item = CatalogService(db).set_status(item_id, request.status)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _item_response(item)


@router.get("/items/{item_id}/availability", response_model=AvailabilityResponse)
def get_availability(item_id: str, db: Session = Depends(get_db)):
    try:
        item = CatalogService(db).get_item(item_id)
        booked = BookingService(db).availability(item_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc

    remaining = {
        category.name: max(0, category.capacity - booked.get(category.name, 0))
        for category in item.categories
        if category.capacity is not None
    }
    return AvailabilityResponse(item_id=item_id, booked=booked, remaining=remaining)


# -----------------------------
# Bookings
# -----------------------------
@router.post(
    "/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    request: BookingCreate,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: SaleNotifier = Depends(get_sale_notifier),
):
    occurrence = None
    if request.occurrence_date or request.occurrence_slot:
        occurrence = OccurrenceKey(
            date=request.occurrence_date or "",
            slot=request.occurrence_slot or "",
        )

    command = BookingRequest(
        item_id=request.item_id,
        buyer_email=request.buyer_email,
        line_items=tuple(
            LineItem(category=line.category, unit_price=line.unit_price, quantity=line.quantity)
            for line in request.line_items
        ),
        booking_fee=request.booking_fee,
        order_amount=request.order_amount,
        discount_code=request.discount_code,
        offer_id=request.offer_id,
        buyer_id=request.buyer_id,
        occurrence=occurrence,
        idempotency_key=request.idempotency_key,
    )

    service = BookingService(db, admin_email=get_settings().admin_email)
    try:
        outcome = service.create_booking(command)
    except _HANDLED as exc:
        raise _http_error(exc) from exc

    booking = outcome.booking
    if outcome.replayed:
        response.status_code = status.HTTP_200_OK
    if outcome.sale_notice is not None and outcome.sale_notice.recipients:
        background_tasks.add_task(dispatch_sale_notice, notifier, outcome.sale_notice)

    return BookingResponse(
        booking_id=booking.id,
        status=booking.status.value,
        grand_total=_money(booking.grand_total),
        discount_amount=_money(booking.discount_amount),
    )


@router.get("/bookings/{booking_id}", response_model=BookingDetailResponse)
def get_booking(booking_id: str, db: Session = Depends(get_db)):
    try:
        booking = BookingService(db).get_booking(booking_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _booking_detail(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingDetailResponse)
def cancel_booking(booking_id: str, db: Session = Depends(get_db)):
    try:
        booking = BookingService(db).cancel_booking(booking_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _booking_detail(booking)


# -----------------------------
# Coupons and offers
# -----------------------------
@router.post(
    "/admin/coupons",
    response_model=CouponResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_coupon(request: CouponCreate, db: Session = Depends(get_db)):
    try:
        coupon = PromotionService(db).create_coupon(
            code=request.code,
            category=request.category,
            discount_type=request.discount_type,
            discount_value=request.discount_value,
            valid_from=as_utc(request.valid_from),
            valid_until=as_utc(request.valid_until),
            max_uses=request.max_uses,
            buyer_ids=request.user_ids,
            is_active=request.is_active,
        )
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _coupon_response(coupon)


@router.get("/admin/coupons", response_model=list[CouponResponse])
def list_coupons(db: Session = Depends(get_db)):
    try:
        return [_coupon_response(coupon) for coupon in PromotionService(db).list_coupons()]
    except _HANDLED as exc:
        raise _http_error(exc) from exc


@router.get("/coupons", response_model=list[CouponResponse])
def list_active_coupons(
    category: Vertical,
    buyer_id: str | None = None,
    db: Session = Depends(get_db),
):
    try:
        coupons = DiscountResolver(db).list_active(category, buyer_id)
        return [_coupon_response(coupon) for coupon in coupons]
    except _HANDLED as exc:
        raise _http_error(exc) from exc


@router.post("/coupons/validate", response_model=CouponValidateResponse)
def validate_coupon(request: CouponValidateRequest, db: Session = Depends(get_db)):
    try:
        quote = DiscountResolver(db).validate(
            request.code,
            request.order_amount,
            buyer_id=request.user_id,
            vertical=request.category,
        )
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return CouponValidateResponse(code=quote.code, discount_amount=_money(quote.amount))


@router.post(
    "/admin/offers",
    response_model=OfferResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_offer(request: OfferCreate, db: Session = Depends(get_db)):
    try:
        offer = PromotionService(db).create_offer(
            title=request.title,
            description=request.description,
            discount_type=request.discount_type,
            discount_value=request.discount_value,
            applies_to=request.applies_to,
            item_ids=request.entity_ids,
            valid_until=as_utc(request.valid_until),
            is_active=request.is_active,
        )
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _offer_response(offer)


@router.get("/admin/offers", response_model=list[OfferResponse])
def list_offers(category: Vertical | None = None, db: Session = Depends(get_db)):
    try:
        return [_offer_response(offer) for offer in PromotionService(db).list_offers(category)]
    except _HANDLED as exc:
        raise _http_error(exc) from exc


@router.get("/items/{item_id}/offers", response_model=list[OfferResponse])
def list_item_offers(item_id: str, db: Session = Depends(get_db)):
    try:
        offers = PromotionService(db).offers_for_item(item_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return [_offer_response(offer) for offer in offers]


# -----------------------------
# Outbox
# -----------------------------
@router.get("/outbox/events", response_model=list[OutboxEventResponse])
def list_outbox_events(
    status_filter: str = "PENDING",
    limit: int = 50,
    db: Session = Depends(get_db),
):
    safe_limit = max(1, min(limit, 200))
    try:
        events = OutboxRepository(db).list_by_status(status_filter, safe_limit)
        return [_outbox_response(item) for item in events]
    except _HANDLED as exc:
        raise _http_error(exc) from exc


@router.post("/outbox/events/{event_id}/mark-published", response_model=OutboxEventResponse)
def mark_outbox_event_published(
    event_id: str,
    db: Session = Depends(get_db),
):
    repository = OutboxRepository(db)
    try:
        item = repository.get_by_id(event_id)
        if not item:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Outbox event not found",
            )

        repository.mark_published(item)
        db.flush()
        return _outbox_response(item)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
