import uuid

import django.db.models.deletion
from django.db import migrations, models

STATUS_CHOICES = [
    ("Pending Approval", "Pending Approval"),
    ("Processing", "Processing"),
    ("Out for Delivery", "Out For Delivery"),
    ("Completed", "Completed"),
    ("Rejected", "Rejected"),
    ("Cancelled", "Cancelled"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="OrderModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("buyer_id", models.CharField(max_length=64)),
                ("seller_id", models.CharField(max_length=64)),
                ("product_id", models.CharField(max_length=64)),
                ("quantity", models.PositiveIntegerField()),
                ("total_price", models.DecimalField(decimal_places=2, max_digits=14)),
                (
                    "payment_method",
                    models.CharField(
                        choices=[("Cash on Delivery", "Cash On Delivery"), ("Bkash", "Bkash")],
                        default="Cash on Delivery",
                        max_length=32,
                    ),
                ),
                (
                    "current_status",
                    models.CharField(choices=STATUS_CHOICES, default="Pending Approval", max_length=32),
                ),
                ("version", models.PositiveIntegerField(default=0)),
                ("shipping_street", models.CharField(max_length=255)),
                ("shipping_city", models.CharField(max_length=128)),
                ("shipping_postal_code", models.CharField(max_length=32)),
                ("shipping_country", models.CharField(max_length=128)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["buyer_id", "-created_at"], name="orders_buyer_created_idx"),
                    models.Index(fields=["seller_id", "-created_at"], name="orders_seller_created_idx"),
                    models.Index(fields=["product_id"], name="orders_product_idx"),
                    models.Index(fields=["current_status"], name="orders_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(quantity__gte=1), name="orders_quantity_gte_1"),
                    models.CheckConstraint(condition=models.Q(total_price__gte=0), name="orders_total_price_gte_0"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderStatusEntryModel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("position", models.PositiveIntegerField()),
                ("status", models.CharField(choices=STATUS_CHOICES, max_length=32)),
                ("timestamp", models.DateTimeField()),
                ("updated_by", models.CharField(blank=True, max_length=64, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="status_history",
                        to="orders.ordermodel",
                    ),
                ),
            ],
            options={
                "db_table": "order_status_history",
                "ordering": ["order", "position"],
                "constraints": [
                    models.UniqueConstraint(fields=("order", "position"), name="order_status_history_position_uniq"),
                ],
            },
        ),
        migrations.CreateModel(
            name="IdempotencyKey",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("owner_id", models.CharField(max_length=64)),
                ("key", models.CharField(max_length=128)),
                ("request_hash", models.CharField(max_length=64)),
                ("response_status", models.PositiveSmallIntegerField(default=0)),
                ("response_body", models.JSONField(default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to="orders.ordermodel",
                    ),
                ),
            ],
            options={
                "db_table": "order_idempotency_keys",
                "constraints": [
                    models.UniqueConstraint(fields=("owner_id", "key"), name="order_idempotency_owner_key_uniq"),
                ],
            },
        ),
    ]
