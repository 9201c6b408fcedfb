from datetime import timedelta

from delivery_service.timeutils import utcnow

from conftest import MERCHANT_ID, admin_headers, courier_headers, merchant_headers

WEBHOOK_HEADERS = {"X-Webhook-Secret": "test-secret"}


def pizza(make_product):
    return make_product(price="30.00", groups=[
        ("Flavors", "half_half", True, 1, 2, [("Calabresa", "10.00"), ("Margherita", "6.00")]),
    ])


def checkout_body(product, **overrides):
    flavor_ids = [choice.id for choice in product.option_groups[0].choices]
    body = {
        "merchant_id": MERCHANT_ID,
        "customer_name": "Ana",
        "customer_phone": "+5511999990000",
        "payment_method": "online",
        "delivery_fee": "6.00",
        "items": [{"product_id": product.id, "quantity": 2, "selections": flavor_ids}],
    }
    body.update(overrides)
    return body


def test_root_and_health(client):
    assert client.get("/").json()["docs"] == "/docs"
    assert client.get("/health").json()["database"] == "healthy"


def test_end_to_end_delivery(client, push, make_product, make_courier):
    product = pizza(make_product)
    courier = make_courier()
    merchant = merchant_headers()
    rider = courier_headers(courier.id)

    response = client.post("/orders", json=checkout_body(product))
    assert response.status_code == 201, response.text
    order = response.json()
    order_id = order["id"]
    assert order["status"] == "pending"
    assert order["subtotal"] == "76.00"
    assert order["total"] == "82.00"

    response = client.post(
        "/payments/webhook",
        json={"event_id": "pay-1", "order_id": order_id, "status": "succeeded"},
        headers=WEBHOOK_HEADERS,
    )
    assert response.json() == {"event_id": "pay-1", "processed": True}
    assert client.get(f"/orders/{order_id}").json()["status"] == "confirmed"

    for target in ("preparing", "ready"):
        response = client.post(f"/orders/{order_id}/transition", json={"target_status": target}, headers=merchant)
        assert response.status_code == 200, response.text

    response = client.post(f"/orders/{order_id}/offer", json={"courier_id": courier.id}, headers=merchant)
    assert response.json()["status"] == "awaiting_driver"

    response = client.post(f"/orders/{order_id}/accept", json={"courier_id": courier.id}, headers=rider)
    assert response.json()["status"] == "ready"
    assert response.json()["courier_committed"] is True

    assert [o["id"] for o in client.get(f"/couriers/{courier.id}/orders", headers=rider).json()] == [order_id]

    response = client.post(f"/orders/{order_id}/start-delivery", json={"courier_id": courier.id}, headers=rider)
    assert response.json()["status"] == "out_for_delivery"

    client.post(
        f"/couriers/{courier.id}/location",
        json={"lat": -23.55, "lon": -46.63, "ts": utcnow().isoformat()},
        headers=rider,
    )
    tracking = client.get(f"/orders/{order_id}/tracking").json()
    assert tracking["courier_id"] == courier.id
    assert tracking["courier_position"]["latitude"] == -23.55

    response = client.post(f"/orders/{order_id}/complete", json={"courier_id": courier.id}, headers=rider)
    assert response.json()["status"] == "delivered"

    log = client.get(f"/orders/{order_id}/events").json()
    assert [entry["event_type"] for entry in log] == [
        "order_created",
        "status_changed",
        "status_changed",
        "status_changed",
        "courier_offered",
        "offer_accepted",
        "delivery_started",
        "status_changed",
    ]
    assert [entry["sequence"] for entry in log] == list(range(1, 9))
    assert [entry["payload"]["status"] for entry in log] == [
        "pending", "confirmed", "preparing", "ready", "awaiting_driver", "ready", "out_for_delivery", "delivered",
    ]
    assert [event.event_id for event in push.events] == [entry["event_id"] for entry in log]
    assert client.get(f"/couriers/{courier.id}/orders", headers=rider).json() == []


def test_errors_render_code_and_detail(client, make_product):
    product = pizza(make_product)
    order_id = client.post("/orders", json=checkout_body(product)).json()["id"]

    response = client.post(f"/orders/{order_id}/transition", json={"target_status": "ready"}, headers=merchant_headers())
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidTransition"

    response = client.post(f"/orders/{order_id}/transition", json={"target_status": "confirmed"})
    assert response.status_code == 401
    assert response.json()["error"] == "Unauthenticated"

    response = client.post(
        f"/orders/{order_id}/transition", json={"target_status": "confirmed"}, headers=merchant_headers("merchant-2")
    )
    assert response.status_code == 403

    assert client.get("/orders/missing").json()["error"] == "NotFound"


def test_missing_required_flavor(client, make_product):
    product = pizza(make_product)
    body = checkout_body(product)
    body["items"][0]["selections"] = []
    response = client.post("/orders", json=body)
    assert response.status_code == 422
    assert response.json()["error"] == "MissingRequiredSelection"


def test_coupon_endpoints(client):
    response = client.post(
        "/coupons",
        json={
            "merchant_id": MERCHANT_ID,
            "code": "pizza10",
            "discount_type": "percentage",
            "discount_value": "10",
            "min_order_value": "50",
        },
        headers=merchant_headers(),
    )
    assert response.status_code == 201
    assert response.json()["code"] == "PIZZA10"

    below = client.post("/coupons/validate", json={"code": "PIZZA10", "merchant_id": MERCHANT_ID, "subtotal": "40"})
    assert below.json() == {"valid": False, "discount_amount": "0.00", "reason": "BelowMinimumOrder"}

    ok = client.post("/coupons/validate", json={"code": "PIZZA10", "merchant_id": MERCHANT_ID, "subtotal": "100"})
    assert ok.json()["valid"] is True
    assert ok.json()["discount_amount"] == "10.00"


def test_courier_management(client):
    response = client.post("/couriers", json={"merchant_id": MERCHANT_ID, "name": "Bia"}, headers=merchant_headers())
    assert response.status_code == 201
    courier_id = response.json()["id"]

    response = client.post(
        f"/couriers/{courier_id}/availability", json={"is_available": False}, headers=courier_headers(courier_id)
    )
    assert response.json()["is_available"] is False

    response = client.patch(f"/couriers/{courier_id}", json={"is_active": False}, headers=merchant_headers())
    assert response.json()["is_active"] is False

    response = client.post(
        f"/couriers/{courier_id}/availability", json={"is_available": True}, headers=courier_headers("someone-else")
    )
    assert response.status_code == 403


def test_location_last_write_wins(client, make_courier):
    courier = make_courier()
    rider = courier_headers(courier.id)
    now = utcnow()
    url = f"/couriers/{courier.id}/location"

    assert client.get(url).status_code == 404
    assert client.post(url, json={"lat": 1, "lon": 1, "ts": now.isoformat()}, headers=rider).json()["accepted"]
    stale = client.post(url, json={"lat": 2, "lon": 2, "ts": (now - timedelta(seconds=5)).isoformat()}, headers=rider)
    assert stale.json()["accepted"] is False
    assert client.get(url).json()["lat"] == 1


def test_webhook_requires_secret(client):
    response = client.post(
        "/payments/webhook",
        json={"event_id": "x", "order_id": "y", "status": "succeeded"},
        headers={"X-Webhook-Secret": "wrong"},
    )
    assert response.status_code == 401


def test_merchant_order_list(client, make_product):
    product = pizza(make_product)
    client.post("/orders", json=checkout_body(product))
    client.post("/orders", json=checkout_body(product))

    response = client.get(f"/merchants/{MERCHANT_ID}/orders", params={"status": "pending"}, headers=merchant_headers())
    assert response.json()["total"] == 2
    assert client.get(f"/merchants/{MERCHANT_ID}/orders", headers=merchant_headers("merchant-2")).status_code == 403


def test_reconcile_is_admin_only(client):
    assert client.post("/admin/reconcile-offers", headers=merchant_headers()).status_code == 403
    assert client.post("/admin/reconcile-offers", headers=admin_headers()).json()["expired"] == 0


def test_merchant_courier_list(client, make_courier):
    courier = make_courier()
    make_courier(merchant_id="merchant-2")
    response = client.get(f"/merchants/{MERCHANT_ID}/couriers", headers=merchant_headers())
    assert [c["id"] for c in response.json()] == [courier.id]
    assert response.json()[0]["dispatch_status"] == "idle"
