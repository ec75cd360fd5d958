import pytest
from django.core.cache import cache


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.CATALOG_STUB_PRODUCTS = {}


@pytest.fixture(autouse=True)
def reset_catalog_circuit():
    # the breaker is module-level state shared by every test
    from apps.orders.http_adapters import catalog_cb

    catalog_cb.on_success()
    yield
    catalog_cb.on_success()


@pytest.fixture(autouse=True)
def clear_throttle_cache():
    cache.clear()
    yield
    cache.clear()
