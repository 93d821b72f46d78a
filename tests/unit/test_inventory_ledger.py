# tests/unit/test_inventory_ledger.py

from decimal import Decimal

from marketplace.domain.models import Vertical
from marketplace.domain.state_machine import BookingStatus
from marketplace.infrastructure.db.models import Booking, BookingLineItem
from marketplace.infrastructure.repositories.inventory_ledger import InventoryLedger


def _booking(item, email, lines, status=BookingStatus.BOOKED):
    total = sum((Decimal("100") * qty for _, qty in lines), Decimal("0"))
    return Booking(
        item_id=item.id,
        organizer_id=item.organizer_id,
        vertical=Vertical.EVENT,
        item_title=item.title,
        buyer_email=email,
        subtotal=total,
        booking_fee=Decimal("0"),
        discount_amount=Decimal("0"),
        grand_total=total,
        status=status,
        line_items=[
            BookingLineItem(category=category, unit_price=Decimal("100"), quantity=qty, position=i)
            for i, (category, qty) in enumerate(lines)
        ],
    )


def test_consumed_is_zero_without_bookings(db, event_item):
    assert InventoryLedger(db).consumed(event_item.id, "GA") == 0
    assert InventoryLedger(db).consumed_by_category(event_item.id) == {}


def test_consumed_sums_live_bookings_only(db, event_item):
    db.add(_booking(event_item, "a@x.com", [("GA", 1), ("VIP", 2)]))
    db.add(_booking(event_item, "b@x.com", [("GA", 1)]))
    db.add(_booking(event_item, "c@x.com", [("GA", 5)], status=BookingStatus.CANCELLED))
    db.commit()

    ledger = InventoryLedger(db)

    assert ledger.consumed(event_item.id, "GA") == 2
    assert ledger.consumed(event_item.id, "VIP") == 2
    assert ledger.consumed_by_category(event_item.id) == {"GA": 2, "VIP": 2}


def test_consumed_is_scoped_to_item(db, organizer, event_item, dining_item):
    db.add(_booking(dining_item, "a@x.com", [("GA", 3)]))
    db.commit()

    assert InventoryLedger(db).consumed(event_item.id, "GA") == 0
    assert InventoryLedger(db).consumed(dining_item.id, "GA") == 3
