# tests/conftest.py

import os

# Must be set before the engine is built at import time.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["ADMIN_EMAIL"] = "ops@marketplace.test"

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from marketplace.application.catalog_service import CatalogService
from marketplace.application.promotion_service import PromotionService
from marketplace.domain.models import CategorySpec, Vertical, utc_now
from marketplace.domain.pricing import DiscountMode
from marketplace.infrastructure.db import models  # noqa: F401
from marketplace.infrastructure.db.session import Base, SessionLocal, engine
from marketplace.main import app


ADMIN_EMAIL = "ops@marketplace.test"


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client():
    # No context manager: the startup hook waits for a real database.
    return TestClient(app)


@pytest.fixture
def organizer(db):
    organizer = CatalogService(db).create_organizer("Skyline Events", "host@skyline.test")
    db.commit()
    return organizer


@pytest.fixture
def event_item(db, organizer):
    item = CatalogService(db).create_item(
        organizer_id=organizer.id,
        vertical=Vertical.EVENT,
        title="Rooftop Jazz Night",
        categories=[
            CategorySpec(name="GA", price=Decimal("250"), capacity=2),
            CategorySpec(name="VIP", price=Decimal("1000")),
        ],
        sales_notification_emails=["sales@skyline.test"],
    )
    db.commit()
    return item


@pytest.fixture
def dining_item(db, organizer):
    item = CatalogService(db).create_item(
        organizer_id=organizer.id,
        vertical=Vertical.DINING,
        title="Harbor Kitchen",
        categories=[],
    )
    db.commit()
    return item


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE10", **overrides):
        now = utc_now()
        fields = {
            "category": Vertical.EVENT,
            "discount_type": DiscountMode.PERCENT,
            "discount_value": Decimal("10"),
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=1),
            "max_uses": 0,
        }
        fields.update(overrides)
        coupon = PromotionService(db).create_coupon(code=code, **fields)
        db.commit()
        return coupon

    return _make
