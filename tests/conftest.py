"""Pytest fixtures for checkout service tests."""

import os

# Keep test runs from writing a log file into the working directory
os.environ.setdefault("CHECKOUT_LOG_FILE", "")

import pytest
from fastapi.testclient import TestClient

from checkout_service.models import Coupon, CouponType, Product, ProductImage, ShippingAddress
from checkout_service.store import InMemoryStore


@pytest.fixture
def store():
    """Create an empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def headphones(store):
    return store.save_product(
        Product(
            id="p-headphones",
            name="Studio Headphones",
            price=99.99,
            stock=5,
            images=[ProductImage(url="https://cdn.example.com/headphones.jpg")],
        )
    )


@pytest.fixture
def cable(store):
    return store.save_product(Product(id="p-cable", name="USB-C Cable", price=10.0, stock=3))


@pytest.fixture
def add_coupon(store):
    """Factory storing a coupon. Defaults to 10% off with no restrictions."""

    def _add(code="SAVE10", type=CouponType.PERCENTAGE, value=10, **kwargs):
        return store.save_coupon(Coupon(code=code, type=type, value=value, **kwargs))

    return _add


@pytest.fixture
def address():
    return ShippingAddress(
        fullName="Erika Mustermann",
        street="Testweg 1",
        city="Berlin",
        postalCode="10115",
        country="DE",
    )


@pytest.fixture
def payment_provider():
    """Test client for the mock payment provider, with a clean intent registry."""
    from mock_services import mock_payment_service

    mock_payment_service.INTENTS.clear()
    with TestClient(mock_payment_service.app) as client:
        yield client
    mock_payment_service.INTENTS.clear()


@pytest.fixture
def api_client(store, payment_provider):
    """Test client for the checkout API backed by the `store` fixture and the mock provider."""
    from checkout_service.clients import PaymentClient
    from checkout_service.main import app, get_payment_client, get_store

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_payment_client] = lambda: PaymentClient(api_key="sk_test", client=payment_provider)
    yield TestClient(app)
    app.dependency_overrides.clear()
