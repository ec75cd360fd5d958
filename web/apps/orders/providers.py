"""Service provider helpers for wiring OrderService with its ports.

``get_order_service`` returns an ``OrderService`` backed by the Django
``OrderRepository``. Product lookups go to the catalog service over HTTP
when ``settings.USE_HTTP_ADAPTERS`` is truthy, or to the in-process
``ProductCatalogStub`` seeded from ``settings.CATALOG_STUB_PRODUCTS``.
"""

from django.conf import settings

from .adapters import ProductCatalogStub
from .domain import OrderService
from .http_adapters import HttpProductCatalogClient
from .repository import OrderRepository


def get_order_service() -> OrderService:
    """Return a configured OrderService instance."""
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        products = HttpProductCatalogClient()
    else:
        products = ProductCatalogStub(getattr(settings, "CATALOG_STUB_PRODUCTS", {}))

    return OrderService(
        products=products,
        store=OrderRepository(),
        max_attempts=getattr(settings, "ORDER_STATUS_MAX_ATTEMPTS", 3),
    )
