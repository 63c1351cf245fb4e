"""Tests for the FastAPI API."""

import pytest

USER = {"X-User-Id": "u1"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}


@pytest.fixture
def shipping(address):
    return address.model_dump()


@pytest.fixture
def stocked_cart(api_client, headphones):
    response = api_client.post("/api/cart", json={"productId": headphones.id, "quantity": 2}, headers=USER)
    assert response.status_code == 200
    return response.json()


def pay(api_client, payment_provider, token="tok_visa", headers=USER):
    """Creates a payment intent for the cart and confirms it at the provider."""
    response = api_client.post("/api/payments/stripe/payment-intent", headers=headers)
    assert response.status_code == 200
    intent_id = response.json()["paymentIntentId"]
    payment_provider.post(f"/v1/payment_intents/{intent_id}/confirm", json={"paymentToken": token})
    return intent_id


class TestHealthCheck:
    def test_health(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestCartEndpoints:
    def test_requires_user_header(self, api_client):
        assert api_client.get("/api/cart").status_code == 422

    def test_get_creates_cart(self, api_client):
        response = api_client.get("/api/cart", headers=USER)
        assert response.status_code == 200
        assert response.json()["items"] == []

    def test_add_item(self, stocked_cart):
        assert stocked_cart["subtotal"] == pytest.approx(199.98)
        assert stocked_cart["total"] == pytest.approx(199.98)

    def test_add_rejects_zero_quantity(self, api_client, headphones):
        response = api_client.post("/api/cart", json={"productId": headphones.id, "quantity": 0}, headers=USER)
        assert response.status_code == 422

    def test_add_more_than_stock(self, api_client, headphones):
        response = api_client.post("/api/cart", json={"productId": headphones.id, "quantity": 6}, headers=USER)
        assert response.status_code == 400
        assert response.json() == {"message": "Insufficient stock for Studio Headphones"}

    def test_add_unknown_product(self, api_client):
        response = api_client.post("/api/cart", json={"productId": "missing"}, headers=USER)
        assert response.status_code == 404

    def test_update_to_zero_removes(self, api_client, stocked_cart, headphones):
        response = api_client.put("/api/cart", json={"productId": headphones.id, "quantity": 0}, headers=USER)
        assert response.status_code == 200
        assert response.json()["items"] == []

    def test_remove_item(self, api_client, stocked_cart, headphones):
        response = api_client.delete(f"/api/cart/{headphones.id}", headers=USER)
        assert response.json()["total"] == 0

    def test_clear_cart_without_cart(self, api_client):
        response = api_client.delete("/api/cart", headers=USER)
        assert response.status_code == 404
        assert response.json()["message"] == "Cart not found"

    def test_apply_and_remove_coupon(self, api_client, stocked_cart, add_coupon):
        add_coupon()
        response = api_client.post("/api/cart/coupon", json={"code": "save10"}, headers=USER)
        assert response.status_code == 200
        body = response.json()
        assert body["couponCode"] == "SAVE10"
        assert body["discount"] == pytest.approx(19.998)
        assert body["total"] == pytest.approx(179.982)

        response = api_client.delete("/api/cart/coupon", headers=USER)
        assert response.json()["couponCode"] is None

    def test_apply_expired_coupon(self, api_client, stocked_cart, add_coupon):
        add_coupon(expiresAt="2020-01-01T00:00:00Z")
        response = api_client.post("/api/cart/coupon", json={"code": "SAVE10"}, headers=USER)
        assert response.status_code == 400
        assert response.json()["message"] == "Coupon has expired"


class TestOrderEndpoints:
    def test_cash_on_delivery_order(self, api_client, stocked_cart, shipping, store, headphones):
        response = api_client.post("/api/orders", json={"shippingAddress": shipping, "paymentMethod": "cod"},
                                   headers=USER)
        assert response.status_code == 201
        order = response.json()
        assert order["paymentStatus"] == "completed"
        assert order["orderStatus"] == "confirmed"
        assert order["orderNumber"].startswith("ORD-")
        assert store.find_product(headphones.id).stock == 3

    def test_card_orders_must_use_confirm(self, api_client, stocked_cart, shipping):
        response = api_client.post("/api/orders", json={"shippingAddress": shipping, "paymentMethod": "stripe"},
                                   headers=USER)
        assert response.status_code == 400

    def test_empty_cart(self, api_client, shipping):
        response = api_client.post("/api/orders", json={"shippingAddress": shipping, "paymentMethod": "cod"},
                                   headers=USER)
        assert response.status_code == 400
        assert response.json() == {"message": "Cart is empty"}

    def test_my_orders_and_lookup(self, api_client, stocked_cart, shipping):
        created = api_client.post("/api/orders", json={"shippingAddress": shipping, "paymentMethod": "cod"},
                                  headers=USER).json()

        mine = api_client.get("/api/orders/my", headers=USER).json()
        assert [o["id"] for o in mine] == [created["id"]]

        assert api_client.get(f"/api/orders/{created['id']}", headers=USER).status_code == 200
        assert api_client.get(f"/api/orders/{created['id']}", headers={"X-User-Id": "u2"}).status_code == 403
        assert api_client.get(f"/api/orders/{created['id']}", headers=ADMIN).status_code == 200
        assert api_client.get("/api/orders/missing", headers=USER).status_code == 404

    def test_admin_status_update(self, api_client, stocked_cart, shipping):
        created = api_client.post("/api/orders", json={"shippingAddress": shipping, "paymentMethod": "cod"},
                                  headers=USER).json()
        url = f"/api/orders/{created['id']}/status"

        assert api_client.put(url, json={"orderStatus": "shipped"}, headers=USER).status_code == 403
        assert api_client.put(url, json={"orderStatus": "lost"}, headers=ADMIN).status_code == 422

        response = api_client.put(url, json={"orderStatus": "shipped"}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["orderStatus"] == "shipped"
        assert response.json()["total"] == created["total"]


class TestPaymentEndpoints:
    def test_payment_intent_for_empty_cart(self, api_client):
        response = api_client.post("/api/payments/stripe/payment-intent", headers=USER)
        assert response.status_code == 400

    def test_payment_intent_amount(self, api_client, stocked_cart, payment_provider):
        intent_id = pay(api_client, payment_provider)
        intent = payment_provider.get(f"/v1/payment_intents/{intent_id}").json()
        assert intent["amount"] == 19998
        assert intent["metadata"]["userId"] == "u1"

    def test_confirm_is_idempotent(self, api_client, stocked_cart, payment_provider, shipping, store, headphones):
        intent_id = pay(api_client, payment_provider)
        body = {"paymentIntentId": intent_id, "shippingAddress": shipping}

        first = api_client.post("/api/payments/stripe/confirm", json=body, headers=USER)
        assert first.status_code == 201
        assert first.json()["reused"] is False
        assert first.json()["order"]["paymentIntentId"] == intent_id

        second = api_client.post("/api/payments/stripe/confirm", json=body, headers=USER)
        assert second.status_code == 200
        assert second.json()["reused"] is True
        assert second.json()["order"]["id"] == first.json()["order"]["id"]
        assert store.find_product(headphones.id).stock == 3
        assert len(store.orders) == 1

    def test_confirm_unpaid_intent(self, api_client, stocked_cart, payment_provider, shipping, store):
        intent_id = pay(api_client, payment_provider, token="tok_decline_card")
        response = api_client.post("/api/payments/stripe/confirm",
                                   json={"paymentIntentId": intent_id, "shippingAddress": shipping}, headers=USER)
        assert response.status_code == 400
        assert response.json()["message"] == "Payment not completed. Status: requires_payment_method"
        assert store.orders == {}

    def test_confirm_unknown_intent(self, api_client, stocked_cart, shipping):
        response = api_client.post("/api/payments/stripe/confirm",
                                   json={"paymentIntentId": "pi_missing", "shippingAddress": shipping}, headers=USER)
        assert response.status_code == 404
        assert response.json()["message"] == "Payment intent not found"

    def test_payments_not_configured(self, store, stocked_cart, monkeypatch):
        from fastapi.testclient import TestClient

        from checkout_service import clients
        from checkout_service.main import app, get_payment_client

        monkeypatch.setattr(clients, "PAYMENT_API_KEY", "")
        app.dependency_overrides.pop(get_payment_client)
        response = TestClient(app).post("/api/payments/stripe/payment-intent", headers=USER)
        assert response.status_code == 503

    def test_confirm_with_another_users_intent(self, api_client, stocked_cart, payment_provider, shipping,
                                               store, headphones):
        intent_id = pay(api_client, payment_provider)
        body = {"paymentIntentId": intent_id, "shippingAddress": shipping}
        assert api_client.post("/api/payments/stripe/confirm", json=body, headers=USER).status_code == 201

        other = {"X-User-Id": "u2"}
        api_client.post("/api/cart", json={"productId": headphones.id, "quantity": 1}, headers=other)
        response = api_client.post("/api/payments/stripe/confirm", json=body, headers=other)
        assert response.status_code == 403
        assert response.json()["message"] == "Payment does not belong to this user"
        assert len(store.orders) == 1
        assert store.find_product(headphones.id).stock == 3
        assert len(store.find_cart("u2").items) == 1

    def test_confirm_after_cart_grew(self, api_client, stocked_cart, payment_provider, shipping, store, headphones):
        intent_id = pay(api_client, payment_provider)
        api_client.post("/api/cart", json={"productId": headphones.id, "quantity": 3}, headers=USER)

        response = api_client.post("/api/payments/stripe/confirm",
                                   json={"paymentIntentId": intent_id, "shippingAddress": shipping}, headers=USER)
        assert response.status_code == 400
        assert response.json()["message"] == "Payment amount 199.98 does not match cart total 499.95"
        assert store.orders == {}
        assert store.find_product(headphones.id).stock == 5
        assert store.find_cart("u1").items[0].quantity == 5

    def test_retry_after_cart_changed_returns_existing_order(self, api_client, stocked_cart, payment_provider,
                                                             shipping, headphones):
        intent_id = pay(api_client, payment_provider)
        body = {"paymentIntentId": intent_id, "shippingAddress": shipping}
        first = api_client.post("/api/payments/stripe/confirm", json=body, headers=USER)

        api_client.post("/api/cart", json={"productId": headphones.id, "quantity": 1}, headers=USER)
        second = api_client.post("/api/payments/stripe/confirm", json=body, headers=USER)
        assert second.status_code == 200
        assert second.json()["order"]["id"] == first.json()["order"]["id"]

    def test_provider_404_on_create_is_provider_error(self, api_client, stocked_cart):
        import httpx

        from checkout_service.clients import PaymentClient
        from checkout_service.main import app, get_payment_client

        transport = httpx.MockTransport(lambda request: httpx.Response(404, json={"error": "no route"}))
        http = httpx.Client(base_url="http://payments.test", transport=transport)
        app.dependency_overrides[get_payment_client] = lambda: PaymentClient(api_key="sk_test", client=http)

        response = api_client.post("/api/payments/stripe/payment-intent", headers=USER)
        assert response.status_code == 502
        assert response.json()["message"] == "Payment provider error"
