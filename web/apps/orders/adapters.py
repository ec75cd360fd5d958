"""In-process adapters for the orders domain ports.

These implement ``ProductCatalogPort`` and ``OrderStorePort`` without any
network or database access. They are intended for unit tests and local
development where deterministic behavior is useful and the catalog
service is not running.
"""

import copy
import itertools
import threading
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Mapping, Optional

from .domain import Order, OrderStorePort, ProductCatalogPort, ProductInfo, StatusEntry
from .errors import ConcurrentUpdate


class ProductCatalogStub(ProductCatalogPort):
    """Stub implementation of ``ProductCatalogPort``.

    Products are looked up in a mapping of
    ``{product_id: {"price": ..., "seller_id": ...}}``, usually taken from
    ``settings.CATALOG_STUB_PRODUCTS``.
    """

    def __init__(self, products: Optional[Mapping[str, Mapping]] = None):
        self.products = dict(products or {})

    def get_product(self, product_id: str) -> Optional[ProductInfo]:
        """Return the configured product or None when it is unknown."""
        row = self.products.get(str(product_id))
        if row is None:
            return None
        return ProductInfo(
            id=str(product_id),
            price=Decimal(str(row["price"])),
            seller_id=str(row["seller_id"]),
        )


class InMemoryOrderStore(OrderStorePort):
    """Thread-safe dictionary-backed order store.

    Callers always receive copies, so mutating a returned Order never
    touches the stored one. ``append_status`` performs the same
    compare-and-swap on ``version`` as the database repository.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._orders: Dict[str, Order] = {}
        self._seq: Dict[str, int] = {}
        self._counter = itertools.count(1)

    def add(self, order: Order) -> Order:
        now = datetime.now(timezone.utc)
        stored = copy.deepcopy(order)
        stored.id = str(uuid.uuid4())
        stored.created_at = now
        stored.updated_at = now
        stored.version = len(stored.status_history) - 1
        with self._lock:
            self._orders[stored.id] = stored
            self._seq[stored.id] = next(self._counter)
            return copy.deepcopy(stored)

    def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            stored = self._orders.get(str(order_id))
            return copy.deepcopy(stored) if stored else None

    def list_by_buyer(self, buyer_id: str) -> List[Order]:
        return self._newest_first(lambda o: o.buyer_id == buyer_id)

    def list_by_seller(self, seller_id: str) -> List[Order]:
        return self._newest_first(lambda o: o.seller_id == seller_id)

    def append_status(self, order_id: str, entry: StatusEntry, expected_version: int) -> Order:
        with self._lock:
            stored = self._orders.get(str(order_id))
            if stored is None or stored.version != expected_version:
                raise ConcurrentUpdate(f"Order {order_id} is not at version {expected_version}")
            stored.status_history.append(entry)
            stored.current_status = entry.status
            stored.version += 1
            stored.updated_at = entry.timestamp
            return copy.deepcopy(stored)

    def _newest_first(self, predicate) -> List[Order]:
        with self._lock:
            matches = [o for o in self._orders.values() if predicate(o)]
            matches.sort(key=lambda o: (o.created_at, self._seq[o.id]), reverse=True)
            return [copy.deepcopy(o) for o in matches]
