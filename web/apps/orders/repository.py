"""Repository layer for persisting orders.

This module implements ``OrderStorePort`` on top of the Django ORM so the
domain layer is not coupled to ORM details. Orders are mapped to and from
domain ``Order`` objects; ORM instances never leave this module.
"""

import uuid
from contextlib import contextmanager
from typing import List, Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F, Min, Prefetch
from django.utils import timezone

from .domain import Order, OrderStorePort, PaymentMethod, ShippingAddress, StatusEntry
from .errors import ConcurrentUpdate, ServiceError
from .models import OrderModel, OrderStatusEntryModel
from .policy import OrderStatus


@contextmanager
def _store_errors():
    """Surface database failures as ``ServiceError``."""
    try:
        yield
    except DatabaseError as e:
        raise ServiceError("Order store unavailable") from e


def _parse_id(order_id) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(order_id))
    except (TypeError, ValueError):
        return None


class OrderRepository(OrderStorePort):
    """Repository that persists Order domain objects using Django ORM.

    ``append_status`` is a compare-and-swap on ``OrderModel.version``: the
    conditional UPDATE and the history INSERT run in one transaction, so
    two writers racing on the same order cannot both append.
    """

    def _queryset(self):
        return OrderModel.objects.prefetch_related(
            Prefetch("status_history", queryset=OrderStatusEntryModel.objects.order_by("position"))
        )

    def _newest_first(self, **filters):
        # creation entries get database-assigned ids, which break created_at ties
        return (
            self._queryset()
            .filter(**filters)
            .annotate(first_entry_id=Min("status_history__id"))
            .order_by("-created_at", "-first_entry_id")
        )

    def add(self, order: Order) -> Order:
        """Persist a new order together with its initial history.

        Args:
            order: Domain ``Order`` without an id.

        Returns:
            The stored Order, with id, timestamps and version populated.
        """
        with _store_errors(), transaction.atomic():
            obj = OrderModel.objects.create(
                buyer_id=order.buyer_id,
                seller_id=order.seller_id,
                product_id=order.product_id,
                quantity=order.quantity,
                total_price=order.total_price,
                payment_method=PaymentMethod(order.payment_method).value,
                current_status=order.current_status.value,
                version=len(order.status_history) - 1,
                shipping_street=order.shipping_address.street,
                shipping_city=order.shipping_address.city,
                shipping_postal_code=order.shipping_address.postal_code,
                shipping_country=order.shipping_address.country,
            )
            OrderStatusEntryModel.objects.bulk_create([
                OrderStatusEntryModel(
                    order=obj,
                    position=pos,
                    status=entry.status.value,
                    timestamp=entry.timestamp,
                    updated_by=entry.updated_by,
                )
                for pos, entry in enumerate(order.status_history)
            ])
            return self._to_domain(self._queryset().get(pk=obj.pk))

    def get(self, order_id: str) -> Optional[Order]:
        pk = _parse_id(order_id)
        if pk is None:
            return None
        with _store_errors():
            obj = self._queryset().filter(pk=pk).first()
            return self._to_domain(obj) if obj else None

    def list_by_buyer(self, buyer_id: str) -> List[Order]:
        with _store_errors():
            return [self._to_domain(o) for o in self._newest_first(buyer_id=buyer_id)]

    def list_by_seller(self, seller_id: str) -> List[Order]:
        with _store_errors():
            return [self._to_domain(o) for o in self._newest_first(seller_id=seller_id)]

    def append_status(self, order_id: str, entry: StatusEntry, expected_version: int) -> Order:
        """Append ``entry`` if the order is still at ``expected_version``.

        Raises:
            ConcurrentUpdate: Another writer moved the order first.
            ServiceError: The database is unavailable.
        """
        pk = _parse_id(order_id)
        with _store_errors(), transaction.atomic():
            updated = OrderModel.objects.filter(pk=pk, version=expected_version).update(
                current_status=entry.status.value,
                version=F("version") + 1,
                updated_at=timezone.now(),
            )
            if updated != 1:
                raise ConcurrentUpdate(f"Order {order_id} is not at version {expected_version}")
            try:
                OrderStatusEntryModel.objects.create(
                    order_id=pk,
                    position=expected_version + 1,
                    status=entry.status.value,
                    timestamp=entry.timestamp,
                    updated_by=entry.updated_by,
                )
            except IntegrityError:
                raise ConcurrentUpdate(f"Order {order_id} history position {expected_version + 1} taken") from None
            return self._to_domain(self._queryset().get(pk=pk))

    @staticmethod
    def _to_domain(obj: OrderModel) -> Order:
        return Order(
            id=str(obj.id),
            buyer_id=obj.buyer_id,
            seller_id=obj.seller_id,
            product_id=obj.product_id,
            quantity=obj.quantity,
            total_price=obj.total_price,
            payment_method=PaymentMethod(obj.payment_method),
            current_status=OrderStatus(obj.current_status),
            shipping_address=ShippingAddress(
                street=obj.shipping_street,
                city=obj.shipping_city,
                postal_code=obj.shipping_postal_code,
                country=obj.shipping_country,
            ),
            status_history=[
                StatusEntry(OrderStatus(h.status), h.timestamp, h.updated_by)
                for h in obj.status_history.all()
            ],
            created_at=obj.created_at,
            updated_at=obj.updated_at,
            version=obj.version,
        )
