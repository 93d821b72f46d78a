from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from marketplace.domain.models import Vertical
from marketplace.domain.pricing import DiscountMode
from marketplace.domain.state_machine import ItemStatus


class LineItemRequest(BaseModel):
    category: str = Field(min_length=1)
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)


class BookingCreate(BaseModel):
    buyer_email: str
    item_id: str
    line_items: list[LineItemRequest]
    order_amount: Decimal | None = Field(default=None, ge=0)
    booking_fee: Decimal = Field(default=Decimal("0"), ge=0)
    discount_code: str | None = None
    offer_id: str | None = None
    buyer_id: str | None = None
    occurrence_date: str | None = None
    occurrence_slot: str | None = None
    idempotency_key: str | None = Field(default=None, max_length=128)


class BookingResponse(BaseModel):
    booking_id: str
    status: str
    grand_total: float
    discount_amount: float


class LineItemResponse(BaseModel):
    category: str
    unit_price: float
    quantity: int


class BookingDetailResponse(BaseModel):
    booking_id: str
    item_id: str
    organizer_id: str
    vertical: str
    item_title: str
    buyer_email: str
    occurrence_date: str | None = None
    occurrence_slot: str | None = None
    line_items: list[LineItemResponse]
    subtotal: float
    booking_fee: float
    discount_amount: float
    grand_total: float
    status: str
    coupon_code: str | None = None
    offer_id: str | None = None
    created_at: str


class AvailabilityResponse(BaseModel):
    item_id: str
    booked: dict[str, int]
    remaining: dict[str, int]


class OrganizerCreate(BaseModel):
    name: str
    email: str


class OrganizerResponse(BaseModel):
    id: str
    name: str
    email: str


class CategoryPayload(BaseModel):
    name: str = Field(min_length=1)
    price: Decimal | None = Field(default=None, ge=0)
    capacity: int | None = Field(default=None, ge=0)


class ItemCreate(BaseModel):
    organizer_id: str
    vertical: Vertical
    title: str
    categories: list[CategoryPayload] = Field(default_factory=list)
    sales_notification_emails: list[str] = Field(default_factory=list)


class ItemUpdate(BaseModel):
    title: str | None = None
    categories: list[CategoryPayload] | None = None
    sales_notification_emails: list[str] | None = None


class ItemStatusUpdate(BaseModel):
    status: ItemStatus


class ItemResponse(BaseModel):
    id: str
    organizer_id: str
    vertical: str
    title: str
    status: str
    categories: list[CategoryPayload]
    sales_notification_emails: list[str]


class CouponCreate(BaseModel):
    code: str
    category: Vertical
    discount_type: DiscountMode
    discount_value: Decimal = Field(gt=0)
    valid_from: datetime
    valid_until: datetime
    max_uses: int = Field(default=0, ge=0)
    user_ids: list[str] = Field(default_factory=list)
    is_active: bool = True


class CouponResponse(BaseModel):
    id: str
    code: str
    category: str
    discount_type: str
    discount_value: float
    valid_from: str
    valid_until: str
    max_uses: int
    used_count: int
    is_active: bool
    user_ids: list[str]


class CouponValidateRequest(BaseModel):
    code: str
    order_amount: Decimal = Field(ge=0)
    user_id: str | None = None
    category: Vertical | None = None


class CouponValidateResponse(BaseModel):
    valid: Literal[True] = True
    code: str
    discount_amount: float


class OfferCreate(BaseModel):
    title: str
    description: str = ""
    discount_type: DiscountMode
    discount_value: Decimal = Field(gt=0)
    applies_to: Vertical
    entity_ids: list[str]
    valid_until: datetime
    is_active: bool = True


class OfferResponse(BaseModel):
    id: str
    title: str
    description: str
    discount_type: str
    discount_value: float
    applies_to: str
    entity_ids: list[str]
    valid_until: str
    is_active: bool


class OutboxEventResponse(BaseModel):
    id: str
    aggregate_type: str
    aggregate_id: str
    event_type: str
    status: str
    attempts: int
    created_at: str
