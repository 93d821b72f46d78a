# tests/integration/test_booking_flow.py


def _seed_event(client, capacity=2):
    organizer = client.post(
        "/organizers",
        json={"name": "Skyline Events", "email": "host@skyline.test"},
    )
    assert organizer.status_code == 201

    item = client.post(
        "/items",
        json={
            "organizer_id": organizer.json()["id"],
            "vertical": "event",
            "title": "Rooftop Jazz Night",
            "categories": [
                {"name": "GA", "price": 250, "capacity": capacity},
                {"name": "VIP", "price": 1000},
            ],
            "sales_notification_emails": ["sales@skyline.test"],
        },
    )
    assert item.status_code == 201
    return item.json()


def _book(client, item_id, email="a@x.com", qty=1, **extra):
    payload = {
        "buyer_email": email,
        "item_id": item_id,
        "line_items": [{"category": "GA", "unit_price": 250, "quantity": qty}],
    }
    payload.update(extra)
    return client.post("/bookings", json=payload)


def test_booking_flow(client):
    item = _seed_event(client)
    assert item["status"] == "pending"

    response = _book(client, item["id"], qty=2, order_amount=500, idempotency_key="abc123")

    assert response.status_code == 201
    body = response.json()
    booking_id = body["booking_id"]
    assert body["status"] == "booked"
    assert body["grand_total"] == 500.0
    assert body["discount_amount"] == 0.0

    availability = client.get(f"/items/{item['id']}/availability")
    assert availability.status_code == 200
    assert availability.json()["booked"] == {"GA": 2}
    assert availability.json()["remaining"] == {"GA": 0}

    sold_out = _book(client, item["id"], email="b@x.com")
    assert sold_out.status_code == 400
    assert sold_out.json()["detail"] == "seats full for category: GA"

    detail = client.get(f"/bookings/{booking_id}")
    assert detail.status_code == 200
    assert detail.json()["item_title"] == "Rooftop Jazz Night"
    assert detail.json()["line_items"] == [
        {"category": "GA", "unit_price": 250.0, "quantity": 2}
    ]

    cancel = client.post(f"/bookings/{booking_id}/cancel")
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "cancelled"

    again = client.post(f"/bookings/{booking_id}/cancel")
    assert again.status_code == 409

    assert client.get(f"/items/{item['id']}/availability").json()["booked"] == {}


def test_idempotent_resubmission_returns_200(client):
    item = _seed_event(client)

    first = _book(client, item["id"], idempotency_key="checkout-7")
    second = _book(client, item["id"], idempotency_key="checkout-7")

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["booking_id"] == first.json()["booking_id"]


def test_idempotency_key_reused_for_other_buyer_is_400(client):
    item = _seed_event(client)

    assert _book(client, item["id"], idempotency_key="checkout-8").status_code == 201
    reused = _book(client, item["id"], email="b@x.com", idempotency_key="checkout-8")

    assert reused.status_code == 400
    assert reused.json()["detail"] == "idempotency key was already used for a different booking"


def test_duplicate_booking_is_400_but_admin_is_exempt(client):
    item = _seed_event(client, capacity=10)

    assert _book(client, item["id"]).status_code == 201
    duplicate = _book(client, item["id"])
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "this email has already booked for this event"

    assert _book(client, item["id"], email="ops@marketplace.test").status_code == 201
    assert _book(client, item["id"], email="ops@marketplace.test").status_code == 201


def test_coupon_applied_once_through_api(client):
    item = _seed_event(client, capacity=10)
    coupon = client.post(
        "/admin/coupons",
        json={
            "code": "save10",
            "category": "event",
            "discount_type": "percent",
            "discount_value": 10,
            "valid_from": "2020-01-01T00:00:00Z",
            "valid_until": "2099-01-01T00:00:00Z",
            "max_uses": 1,
        },
    )
    assert coupon.status_code == 201
    assert coupon.json()["code"] == "SAVE10"

    first = _book(client, item["id"], qty=2, order_amount=500, discount_code="SAVE10")
    assert first.status_code == 201
    assert first.json()["discount_amount"] == 50.0
    assert first.json()["grand_total"] == 450.0

    second = _book(
        client, item["id"], email="b@x.com", qty=2, order_amount=500, discount_code="SAVE10"
    )
    assert second.status_code == 201
    assert second.json()["discount_amount"] == 0.0

    coupons = client.get("/admin/coupons").json()
    assert coupons[0]["used_count"] == 1


def test_booking_validation_errors_are_400(client):
    item = _seed_event(client)

    missing_lines = client.post(
        "/bookings",
        json={"buyer_email": "a@x.com", "item_id": item["id"], "line_items": []},
    )
    assert missing_lines.status_code == 400
    assert missing_lines.json()["detail"] == "at least one ticket is required"

    malformed = client.post("/bookings", json={"item_id": item["id"]})
    assert malformed.status_code == 400

    unknown_item = _book(client, "no-such-item")
    assert unknown_item.status_code == 404


def test_outbox_events_follow_bookings(client):
    item = _seed_event(client)
    booking_id = _book(client, item["id"]).json()["booking_id"]

    events = client.get("/outbox/events").json()
    assert [e["event_type"] for e in events] == ["BOOKING_CONFIRMED"]
    assert events[0]["aggregate_id"] == booking_id

    published = client.post(f"/outbox/events/{events[0]['id']}/mark-published")
    assert published.status_code == 200
    assert published.json()["status"] == "PUBLISHED"
    assert client.get("/outbox/events").json() == []

    assert client.post("/outbox/events/missing/mark-published").status_code == 404
