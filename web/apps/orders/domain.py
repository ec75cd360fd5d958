"""Domain models, ports and service for orders.

This module contains the dataclasses describing an order and its status
history, protocol definitions (ports) for the external collaborators
(product lookup and order persistence), and the domain service that
creates orders, enforces access control and moves orders through their
lifecycle.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable, List, Optional, Protocol

from .errors import (
    ConcurrentUpdate,
    Forbidden,
    InvalidTransition,
    NotFound,
    OrderValidationError,
    Unauthenticated,
)
from .policy import TERMINAL_STATUSES, OrderStatus, Role, can_transition

logger = logging.getLogger(__name__)

MAX_ORDER_QUANTITY = 10_000
# Largest amount a Decimal(14, 2) column holds
MAX_TOTAL_PRICE = Decimal("999999999999.99")
CENT = Decimal("0.01")


# ---- Enums ----
class PaymentMethod(str, Enum):
    """Accepted payment method labels. No payment is processed."""

    CASH_ON_DELIVERY = "Cash on Delivery"
    BKASH = "Bkash"


# ---- Value objects / entities ----
@dataclass(frozen=True)
class Principal:
    """An authenticated actor as resolved by the authentication layer.

    Attributes:
        id: Identifier of the user.
        role: One of the ``Role`` values. Unknown roles are kept as given
            and are denied by every authorization check.
        active: False for banned or suspended accounts.
    """

    id: str
    role: Role | str | None
    active: bool = True


@dataclass(frozen=True)
class ShippingAddress:
    street: str
    city: str
    postal_code: str
    country: str


@dataclass(frozen=True)
class StatusEntry:
    """One entry of an order's append-only status history.

    Attributes:
        status: Status the order moved into.
        timestamp: When the change was recorded (UTC).
        updated_by: Id of the principal that requested the change, or None
            for the entry written at creation.
    """

    status: OrderStatus
    timestamp: datetime
    updated_by: Optional[str] = None


@dataclass(frozen=True)
class ProductInfo:
    """Snapshot of a product as returned by the catalog.

    Attributes:
        id: Product identifier.
        price: Unit price at lookup time.
        seller_id: Identifier of the seller offering the product.
    """

    id: str
    price: Decimal
    seller_id: str


@dataclass(frozen=True)
class OrderInput:
    """Buyer-supplied data for a new order."""

    product_id: str
    quantity: int
    shipping_address: ShippingAddress
    payment_method: PaymentMethod | str = PaymentMethod.CASH_ON_DELIVERY


@dataclass
class Order:
    """Container for order data.

    Attributes:
        id: Persistent identifier, or None if not yet saved.
        buyer_id: Purchasing principal.
        seller_id: Seller of the product, copied from the catalog at
            creation. It is a snapshot and is never refreshed.
        product_id: Purchased product.
        quantity: Number of units (>= 1).
        total_price: ``unit price * quantity`` computed once at creation.
        payment_method: Label recorded as given.
        current_status: Equal to the status of the last history entry.
        status_history: Append-only audit trail, oldest first.
        shipping_address: Delivery address captured at creation.
        created_at: Set by the store.
        updated_at: Set by the store.
        version: Optimistic-lock counter; ``len(status_history) - 1``.
    """

    id: Optional[str]
    buyer_id: str
    seller_id: str
    product_id: str
    quantity: int
    total_price: Decimal
    payment_method: PaymentMethod
    current_status: OrderStatus
    shipping_address: ShippingAddress
    status_history: List[StatusEntry] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.current_status in TERMINAL_STATUSES


# ---- Ports (DIP) ----
class ProductCatalogPort(Protocol):
    """Port describing the product lookup used at order creation."""

    def get_product(self, product_id: str) -> Optional[ProductInfo]:
        """Return the product snapshot, or None when it does not exist.

        Malformed identifiers are reported as None as well.
        """
        raise NotImplementedError()


class OrderStorePort(Protocol):
    """Port describing order persistence.

    ``get`` returns None both for unknown and for malformed identifiers.
    ``append_status`` must update ``current_status``, ``version`` and the
    history atomically and raise ``ConcurrentUpdate`` when the stored
    version differs from ``expected_version``.
    """

    def add(self, order: Order) -> Order:
        raise NotImplementedError()

    def get(self, order_id: str) -> Optional[Order]:
        raise NotImplementedError()

    def list_by_buyer(self, buyer_id: str) -> List[Order]:
        raise NotImplementedError()

    def list_by_seller(self, seller_id: str) -> List[Order]:
        raise NotImplementedError()

    def append_status(self, order_id: str, entry: StatusEntry, expected_version: int) -> Order:
        raise NotImplementedError()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---- Domain service ----
class OrderService:
    """Domain service for the order lifecycle.

    Creates orders on behalf of buyers, serves them with access control and
    applies status transitions. It is the only component that writes to the
    order store.
    """

    def __init__(
        self,
        products: ProductCatalogPort,
        store: OrderStorePort,
        clock: Callable[[], datetime] = utcnow,
        max_attempts: int = 3,
    ):
        """Initialize the service with required dependencies.

        Args:
            products: ProductCatalogPort used to snapshot price and seller.
            store: OrderStorePort used to persist orders.
            clock: Returns the timestamp written on history entries.
            max_attempts: Attempts made by ``update_status`` when the order
                is modified concurrently.
        """
        self.products = products
        self.store = store
        self.clock = clock
        self.max_attempts = max(1, max_attempts)

    # -- creation --
    def create_order(self, principal: Optional[Principal], data: OrderInput) -> Order:
        """Create a new order for a buyer.

        The product price is read once and ``total_price`` is never
        recomputed afterwards. Stock is neither checked nor decremented.

        Args:
            principal: Authenticated buyer.
            data: Order input.

        Returns:
            The persisted Order in ``PENDING_APPROVAL`` with a single
            history entry.

        Raises:
            Unauthenticated: No (active) principal.
            Forbidden: The principal is not a buyer.
            OrderValidationError: Bad quantity, address or payment method, or a
                total that does not fit the stored amount.
            NotFound: The product does not exist.
        """
        principal = _require_principal(principal)
        if _role_of(principal) is not Role.BUYER:
            raise Forbidden("Only buyers can place orders")

        payment_method = _validate_input(data)

        product = self.products.get_product(data.product_id)
        if product is None:
            raise NotFound(f"Product {data.product_id} not found")

        now = self.clock()
        order = Order(
            id=None,
            buyer_id=principal.id,
            seller_id=product.seller_id,
            product_id=product.id,
            quantity=data.quantity,
            total_price=_total_price(product, data.quantity),
            payment_method=payment_method,
            current_status=OrderStatus.PENDING_APPROVAL,
            shipping_address=data.shipping_address,
            status_history=[StatusEntry(OrderStatus.PENDING_APPROVAL, now)],
        )
        created = self.store.add(order)
        logger.info(
            "order created",
            extra={"order_id": created.id, "buyer_id": created.buyer_id, "seller_id": created.seller_id},
        )
        return created

    # -- reads --
    def get_order(self, principal: Optional[Principal], order_id: str) -> Order:
        """Return an order visible to the principal.

        Raises:
            Unauthenticated: No (active) principal.
            NotFound: Unknown or malformed order id.
            Forbidden: The principal is neither the buyer, the seller nor an admin.
        """
        principal = _require_principal(principal)
        order = self._load(order_id)
        if not can_view(principal, order):
            raise Forbidden("User not authorized to view this order")
        return order

    def list_orders_for_buyer(self, principal: Optional[Principal]) -> List[Order]:
        """Orders placed by the buyer, newest first."""
        principal = _require_principal(principal)
        if _role_of(principal) is not Role.BUYER:
            raise Forbidden("Only buyers have purchase history")
        return self.store.list_by_buyer(principal.id)

    def list_orders_for_seller(self, principal: Optional[Principal]) -> List[Order]:
        """Orders received by the seller, newest first."""
        principal = _require_principal(principal)
        if _role_of(principal) is not Role.SELLER:
            raise Forbidden("Only sellers have incoming orders")
        return self.store.list_by_seller(principal.id)

    # -- status mutation --
    def update_status(
        self, principal: Optional[Principal], order_id: str, requested: OrderStatus | str
    ) -> Order:
        """Move an order to ``requested`` and record the change.

        The order is re-read and the Transition Policy re-evaluated on every
        attempt, so a writer that loses a race sees the winner's status.

        Args:
            principal: Authenticated principal requesting the change.
            order_id: Target order.
            requested: Requested next status (enum or its label).

        Returns:
            The updated Order.

        Raises:
            Unauthenticated: No (active) principal.
            OrderValidationError: ``requested`` is not an OrderStatus.
            NotFound: Unknown or malformed order id.
            Forbidden: The principal may not modify this order.
            InvalidTransition: The policy denies the change.
            ConcurrentUpdate: Lost the race ``max_attempts`` times.
        """
        principal = _require_principal(principal)
        try:
            next_status = OrderStatus(requested)
        except ValueError:
            raise OrderValidationError(f"Unknown order status {requested!r}") from None

        for attempt in range(1, self.max_attempts + 1):
            order = self._load(order_id)
            if not can_modify(principal, order):
                raise Forbidden("User not authorized to update this order status")

            if not can_transition(order.current_status, next_status, principal.role):
                raise InvalidTransition(
                    f"Invalid status transition from {order.current_status.value} "
                    f"to {next_status.value} for role {_role_label(principal)}"
                )

            entry = StatusEntry(next_status, self.clock(), principal.id)
            try:
                updated = self.store.append_status(order.id, entry, expected_version=order.version)
            except ConcurrentUpdate:
                logger.warning(
                    "order status conflict",
                    extra={"order_id": order.id, "attempt": attempt, "expected_version": order.version},
                )
                continue

            logger.info(
                "order status changed",
                extra={
                    "order_id": updated.id,
                    "from_status": order.current_status.value,
                    "to_status": next_status.value,
                    "updated_by": principal.id,
                },
            )
            return updated

        raise ConcurrentUpdate(f"Order {order_id} was modified concurrently")

    def _load(self, order_id: str) -> Order:
        order = self.store.get(order_id)
        if order is None:
            raise NotFound("Order not found")
        return order


# ---- Access control helpers ----
def _role_of(principal: Principal) -> Optional[Role]:
    try:
        return Role(principal.role)
    except ValueError:
        return None


def _role_label(principal: Principal) -> str:
    role = _role_of(principal)
    return role.value if role else str(principal.role)


def _require_principal(principal: Optional[Principal]) -> Principal:
    if principal is None or not principal.id:
        raise Unauthenticated("Not authorized")
    if not principal.active:
        raise Unauthenticated("Account is inactive or banned")
    return principal


def can_view(principal: Principal, order: Order) -> bool:
    """Buyer, seller and admins may read an order."""
    return (
        principal.id == order.buyer_id
        or principal.id == order.seller_id
        or _role_of(principal) is Role.ADMIN
    )


def can_modify(principal: Principal, order: Order) -> bool:
    """Admins, the order's seller and (narrowed by policy) its buyer."""
    role = _role_of(principal)
    if role is Role.ADMIN:
        return True
    if role is Role.SELLER:
        return principal.id == order.seller_id
    if role is Role.BUYER:
        return principal.id == order.buyer_id
    return False


def _validate_input(data: OrderInput) -> PaymentMethod:
    if isinstance(data.quantity, bool) or not isinstance(data.quantity, int) or data.quantity < 1:
        raise OrderValidationError("Quantity must be at least 1")
    if data.quantity > MAX_ORDER_QUANTITY:
        raise OrderValidationError(f"Quantity must be at most {MAX_ORDER_QUANTITY}")
    if not data.product_id:
        raise OrderValidationError("Product id is required")

    address = data.shipping_address
    if address is None:
        raise OrderValidationError("Shipping address is required")
    for name in ("street", "city", "postal_code", "country"):
        value = getattr(address, name, None)
        if not isinstance(value, str) or not value.strip():
            raise OrderValidationError(f"Shipping address field '{name}' is required")

    try:
        return PaymentMethod(data.payment_method)
    except ValueError:
        raise OrderValidationError(f"Unsupported payment method {data.payment_method!r}") from None


def _total_price(product: ProductInfo, quantity: int) -> Decimal:
    total = Decimal(str(product.price)) * quantity
    if not total.is_finite() or total < 0 or total > MAX_TOTAL_PRICE:
        raise OrderValidationError(f"Order total for {quantity} x {product.price} is out of range")
    return total.quantize(CENT, rounding=ROUND_HALF_UP)
