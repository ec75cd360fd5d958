import uuid
from django.db import models

from .domain import PaymentMethod
from .policy import OrderStatus


class OrderModel(models.Model):
    # UUID PK exposed by the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Status(models.TextChoices):
        PENDING_APPROVAL = OrderStatus.PENDING_APPROVAL.value
        PROCESSING = OrderStatus.PROCESSING.value
        OUT_FOR_DELIVERY = OrderStatus.OUT_FOR_DELIVERY.value
        COMPLETED = OrderStatus.COMPLETED.value
        REJECTED = OrderStatus.REJECTED.value
        CANCELLED = OrderStatus.CANCELLED.value

    class PaymentMethods(models.TextChoices):
        CASH_ON_DELIVERY = PaymentMethod.CASH_ON_DELIVERY.value
        BKASH = PaymentMethod.BKASH.value

    # Snapshot of the product's seller at creation time, not a live reference
    buyer_id = models.CharField(max_length=64)
    seller_id = models.CharField(max_length=64)
    product_id = models.CharField(max_length=64)

    quantity = models.PositiveIntegerField()
    total_price = models.DecimalField(max_digits=14, decimal_places=2)
    payment_method = models.CharField(
        max_length=32, choices=PaymentMethods.choices, default=PaymentMethods.CASH_ON_DELIVERY
    )
    current_status = models.CharField(
        max_length=32, choices=Status.choices, default=Status.PENDING_APPROVAL
    )
    version = models.PositiveIntegerField(default=0)

    shipping_street = models.CharField(max_length=255)
    shipping_city = models.CharField(max_length=128)
    shipping_postal_code = models.CharField(max_length=32)
    shipping_country = models.CharField(max_length=128)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["buyer_id", "-created_at"], name="orders_buyer_created_idx"),
            models.Index(fields=["seller_id", "-created_at"], name="orders_seller_created_idx"),
            models.Index(fields=["product_id"], name="orders_product_idx"),
            models.Index(fields=["current_status"], name="orders_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gte=1), name="orders_quantity_gte_1"),
            models.CheckConstraint(condition=models.Q(total_price__gte=0), name="orders_total_price_gte_0"),
        ]


class OrderStatusEntryModel(models.Model):
    """Append-only status history row.

    ``position`` is 0 for the creation entry and ``order.version`` for the
    latest one; ``(order, position)`` is unique.
    """

    order = models.ForeignKey(OrderModel, related_name="status_history", on_delete=models.CASCADE)
    position = models.PositiveIntegerField()
    status = models.CharField(max_length=32, choices=OrderModel.Status.choices)
    timestamp = models.DateTimeField()
    updated_by = models.CharField(max_length=64, null=True, blank=True)

    class Meta:
        db_table = "order_status_history"
        ordering = ["order", "position"]
        constraints = [
            models.UniqueConstraint(fields=["order", "position"], name="order_status_history_position_uniq"),
        ]


class IdempotencyKey(models.Model):
    """Stored outcome of an order-creation request keyed by client key."""

    owner_id = models.CharField(max_length=64)
    key = models.CharField(max_length=128)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order = models.ForeignKey(OrderModel, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "order_idempotency_keys"
        constraints = [
            models.UniqueConstraint(fields=["owner_id", "key"], name="order_idempotency_owner_key_uniq"),
        ]
