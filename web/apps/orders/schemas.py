"""Pydantic schemas for orders.

This module exposes the request/validation schemas used by the orders
API and the read DTO used to render orders as JSON.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import MAX_ORDER_QUANTITY, Order, OrderInput, PaymentMethod, ShippingAddress
from .policy import OrderStatus


class ShippingAddressIn(BaseModel):
    """Shipping address; every field is required and must not be blank."""

    model_config = ConfigDict(str_strip_whitespace=True)

    street: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=128)
    postal_code: str = Field(min_length=1, max_length=32)
    country: str = Field(min_length=1, max_length=128)


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    Attributes:
        product_id: Identifier of the product in the catalog.
        quantity: Units to buy (strict integer, 1 to ``MAX_ORDER_QUANTITY``).
        shipping_address: Delivery address.
        payment_method: One of the ``PaymentMethod`` labels; defaults to
            cash on delivery.
    """

    product_id: str = Field(min_length=1, max_length=64)
    quantity: int = Field(ge=1, le=MAX_ORDER_QUANTITY, strict=True)
    shipping_address: ShippingAddressIn
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY

    @field_validator("product_id")
    @classmethod
    def validate_product_id(cls, v: str) -> str:
        """Reject blank product ids.

        Raises:
            ValueError: When the id is only whitespace.
        """
        v2 = v.strip()
        if not v2:
            raise ValueError("Product id is required")
        return v2

    def to_domain(self) -> OrderInput:
        addr = self.shipping_address
        return OrderInput(
            product_id=self.product_id,
            quantity=self.quantity,
            shipping_address=ShippingAddress(
                street=addr.street,
                city=addr.city,
                postal_code=addr.postal_code,
                country=addr.country,
            ),
            payment_method=self.payment_method,
        )


class UpdateStatusDTO(BaseModel):
    """Schema for a status change request."""

    status: OrderStatus


class StatusEntryOut(BaseModel):
    status: OrderStatus
    timestamp: datetime
    updated_by: Optional[str] = None


class ShippingAddressOut(BaseModel):
    street: str
    city: str
    postal_code: str
    country: str


class OrderReadDTO(BaseModel):
    """Read model of an order as returned by the API."""

    id: str
    buyer_id: str
    seller_id: str
    product_id: str
    quantity: int
    total_price: float
    payment_method: PaymentMethod
    current_status: OrderStatus
    status_history: List[StatusEntryOut]
    shipping_address: ShippingAddressOut
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderReadDTO":
        return cls(
            id=str(order.id),
            buyer_id=order.buyer_id,
            seller_id=order.seller_id,
            product_id=order.product_id,
            quantity=order.quantity,
            total_price=float(order.total_price),
            payment_method=order.payment_method,
            current_status=order.current_status,
            status_history=[
                StatusEntryOut(status=e.status, timestamp=e.timestamp, updated_by=e.updated_by)
                for e in order.status_history
            ],
            shipping_address=ShippingAddressOut(
                street=order.shipping_address.street,
                city=order.shipping_address.city,
                postal_code=order.shipping_address.postal_code,
                country=order.shipping_address.country,
            ),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
