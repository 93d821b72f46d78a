# marketplace/infrastructure/db/models.py

from sqlalchemy import (
    JSON,
    Boolean,
    String,
    Integer,
    DateTime,
    Enum,
    Numeric,
    Text,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from marketplace.infrastructure.db.session import Base
from marketplace.domain.models import Vertical
from marketplace.domain.pricing import DiscountMode
from marketplace.domain.state_machine import BookingStatus, ItemStatus


def _uuid() -> str:
    return str(uuid4())


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


# Stored by value ("booked", "percent", ...), shared so each type is created once.
VerticalType = Enum(Vertical, name="vertical", values_callable=_values)
DiscountModeType = Enum(DiscountMode, name="discount_mode", values_callable=_values)
ItemStatusType = Enum(ItemStatus, name="item_status", values_callable=_values)
BookingStatusType = Enum(BookingStatus, name="booking_status", values_callable=_values)


class Organizer(Base):
    __tablename__ = "organizers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class InventoryItem(Base):
    """
    An event, dining venue or play venue.
    One shared shape for every vertical; the owner never changes.
    """

    __tablename__ = "inventory_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    vertical: Mapped[Vertical] = mapped_column(
        VerticalType,
        nullable=False,
    )
    organizer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizers.id"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ItemStatus] = mapped_column(
        ItemStatusType,
        nullable=False,
        default=ItemStatus.PENDING,
    )
    sales_notification_emails: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    categories: Mapped[list["InventoryCategory"]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="InventoryCategory.position",
        lazy="selectin",
    )


class InventoryCategory(Base):
    __tablename__ = "inventory_categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    item_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("inventory_items.id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    # NULL means unlimited.
    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    item: Mapped[InventoryItem] = relationship(back_populates="categories")

    __table_args__ = (
        UniqueConstraint("item_id", "name", name="uq_item_category_name"),
        CheckConstraint(
            "capacity IS NULL OR capacity >= 0",
            name="ck_category_capacity_nonnegative",
        ),
    )


class Booking(Base):
    """
    Priced, auditable booking record.
    Owner and title are snapshots taken at booking time.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    item_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    organizer_id: Mapped[str] = mapped_column(String(36), nullable=False)
    vertical: Mapped[Vertical] = mapped_column(
        VerticalType,
        nullable=False,
    )
    item_title: Mapped[str] = mapped_column(String(255), nullable=False)
    buyer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    buyer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    occurrence_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    occurrence_slot: Mapped[str | None] = mapped_column(String(64), nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    booking_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        BookingStatusType,
        nullable=False,
        default=BookingStatus.BOOKED,
    )
    coupon_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    coupon_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    offer_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    line_items: Mapped[list["BookingLineItem"]] = relationship(
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingLineItem.position",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint(
            "idempotency_key",
            name="uq_booking_idempotency_key",
        ),
        CheckConstraint("discount_amount >= 0", name="ck_booking_discount_nonnegative"),
        CheckConstraint("grand_total >= 0", name="ck_booking_grand_total_nonnegative"),
    )


class BookingLineItem(Base):
    __tablename__ = "booking_line_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
        index=True,
    )
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    booking: Mapped[Booking] = relationship(back_populates="line_items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_line_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_line_item_price_nonnegative"),
    )


class Coupon(Base):
    __tablename__ = "coupons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    category: Mapped[Vertical] = mapped_column(
        VerticalType,
        nullable=False,
    )
    discount_type: Mapped[DiscountMode] = mapped_column(
        DiscountModeType,
        nullable=False,
    )
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # 0 means unlimited.
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    allowed_buyers: Mapped[list["CouponBuyer"]] = relationship(
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def buyer_ids(self) -> set[str]:
        return {entry.buyer_id for entry in self.allowed_buyers}

    __table_args__ = (
        CheckConstraint("max_uses >= 0", name="ck_coupon_max_uses_nonnegative"),
        CheckConstraint("used_count >= 0", name="ck_coupon_used_count_nonnegative"),
        CheckConstraint(
            "max_uses = 0 OR used_count <= max_uses",
            name="ck_coupon_used_lte_max",
        ),
        CheckConstraint("discount_value >= 0", name="ck_coupon_value_nonnegative"),
    )


class CouponBuyer(Base):
    __tablename__ = "coupon_buyers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    coupon_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("coupons.id"),
        nullable=False,
        index=True,
    )
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("coupon_id", "buyer_id", name="uq_coupon_buyer"),
    )


class Offer(Base):
    __tablename__ = "offers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    discount_type: Mapped[DiscountMode] = mapped_column(
        DiscountModeType,
        nullable=False,
    )
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    applies_to: Mapped[Vertical] = mapped_column(
        VerticalType,
        nullable=False,
    )
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    targets: Mapped[list["OfferTarget"]] = relationship(
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def item_ids(self) -> list[str]:
        return [target.item_id for target in self.targets]


class OfferTarget(Base):
    __tablename__ = "offer_targets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    offer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("offers.id"),
        nullable=False,
        index=True,
    )
    item_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("offer_id", "item_id", name="uq_offer_target"),
    )


class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    aggregate_type: Mapped[str] = mapped_column(String(64), nullable=False)
    aggregate_id: Mapped[str] = mapped_column(String(36), nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    dedupe_key: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_outbox_dedupe_key"),
    )
