"""Domain value objects passed between the API layer and the booking pipeline.

Persistence models live in marketplace/infrastructure/db/models.py.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum


class Vertical(str, Enum):
    EVENT = "event"
    DINING = "dining"
    PLAY = "play"

    @property
    def needs_occurrence(self) -> bool:
        return self is not Vertical.EVENT


@dataclass(frozen=True)
class LineItem:
    """One category purchased within a booking."""

    category: str
    unit_price: Decimal
    quantity: int


@dataclass(frozen=True)
class OccurrenceKey:
    """Date and slot of a dining table or play court reservation."""

    date: str
    slot: str


@dataclass(frozen=True)
class BookingRequest:
    item_id: str
    buyer_email: str
    line_items: tuple[LineItem, ...]
    booking_fee: Decimal = Decimal("0")
    order_amount: Decimal | None = None
    discount_code: str | None = None
    offer_id: str | None = None
    buyer_id: str | None = None
    occurrence: OccurrenceKey | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class DiscountQuote:
    """Result of a successful coupon or offer validation. Carries no side effects."""

    instrument_id: str
    code: str | None
    max_uses: int
    amount: Decimal


@dataclass(frozen=True)
class SaleNotice:
    booking_id: str
    item_title: str
    buyer_email: str
    grand_total: Decimal
    recipients: tuple[str, ...] = field(default_factory=tuple)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class CategorySpec:
    """Declared ticket/slot category of a listing. capacity None means unlimited."""

    name: str
    price: Decimal | None = None
    capacity: int | None = None
