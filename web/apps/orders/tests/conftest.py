"""Shared fixtures for the orders API tests.

Users are created through the custom user model and authenticated with a
real simplejwt access token, so the whole DRF authentication stack runs.
The catalog is served by ``ProductCatalogStub`` through
``settings.CATALOG_STUB_PRODUCTS``.
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.accounts.models import User

PRODUCT_ID = "prod-1"
PRODUCT_PRICE = "49.99"


def _user(email, role, is_active=True):
    return User.objects.create_user(email=email, password="pass12345", role=role, is_active=is_active)


def _client_for(user):
    client = APIClient()
    token = RefreshToken.for_user(user).access_token
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
    return client


@pytest.fixture
def buyer(db):
    return _user("buyer@example.com", User.Role.BUYER)


@pytest.fixture
def other_buyer(db):
    return _user("buyer2@example.com", User.Role.BUYER)


@pytest.fixture
def seller(db):
    return _user("seller@example.com", User.Role.SELLER)


@pytest.fixture
def other_seller(db):
    return _user("seller2@example.com", User.Role.SELLER)


@pytest.fixture
def admin_user(db):
    return _user("admin@example.com", User.Role.ADMIN)


@pytest.fixture
def anon_client():
    return APIClient()


@pytest.fixture
def buyer_client(buyer):
    return _client_for(buyer)


@pytest.fixture
def other_buyer_client(other_buyer):
    return _client_for(other_buyer)


@pytest.fixture
def seller_client(seller):
    return _client_for(seller)


@pytest.fixture
def other_seller_client(other_seller):
    return _client_for(other_seller)


@pytest.fixture
def admin_client(admin_user):
    return _client_for(admin_user)


@pytest.fixture
def product(settings, seller):
    """Register one product sold by ``seller`` in the stub catalog."""
    settings.CATALOG_STUB_PRODUCTS = {
        PRODUCT_ID: {"price": PRODUCT_PRICE, "seller_id": str(seller.pk)},
    }
    return PRODUCT_ID


@pytest.fixture
def order_payload(product):
    return {
        "product_id": product,
        "quantity": 2,
        "shipping_address": {
            "street": "12 Lake Road",
            "city": "Dhaka",
            "postal_code": "1207",
            "country": "Bangladesh",
        },
        "payment_method": "Cash on Delivery",
    }


@pytest.fixture
def placed_order(buyer_client, order_payload):
    """Create an order through the API and return its JSON body."""
    r = buyer_client.post("/api/orders/", order_payload, format="json")
    assert r.status_code == 201, r.content
    return r.json()
