"""Order status state machine and transition policy.

The allowed moves are data: ``TRANSITIONS`` maps each status to the
statuses reachable from it, and ``BUYER_TRANSITIONS`` narrows what a buyer
may request. ``can_transition`` is an allow-list; any status, role or
pair without an explicit entry is denied.
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping, FrozenSet


class OrderStatus(str, Enum):
    """Enumeration of the possible order statuses.

    ``PENDING_APPROVAL`` is the initial state; ``COMPLETED``, ``REJECTED``
    and ``CANCELLED`` are terminal.
    """

    PENDING_APPROVAL = "Pending Approval"
    PROCESSING = "Processing"
    OUT_FOR_DELIVERY = "Out for Delivery"
    COMPLETED = "Completed"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


class Role(str, Enum):
    """Roles a principal can hold."""

    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


TRANSITIONS: Mapping[OrderStatus, FrozenSet[OrderStatus]] = MappingProxyType({
    OrderStatus.PENDING_APPROVAL: frozenset(
        {OrderStatus.PROCESSING, OrderStatus.REJECTED, OrderStatus.CANCELLED}
    ),
    OrderStatus.PROCESSING: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
})

# Buyers may only withdraw an order the seller has not accepted yet.
BUYER_TRANSITIONS: Mapping[OrderStatus, FrozenSet[OrderStatus]] = MappingProxyType({
    OrderStatus.PENDING_APPROVAL: frozenset({OrderStatus.CANCELLED}),
})

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)


def _coerce(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        return None


def allowed_next(current: OrderStatus | str, role: Role | str | None) -> FrozenSet[OrderStatus]:
    """Return the statuses ``role`` may move an order into from ``current``.

    Args:
        current: Current order status.
        role: Role of the requesting principal.

    Returns:
        A (possibly empty) frozenset of reachable statuses.
    """
    status = _coerce(OrderStatus, current)
    role = _coerce(Role, role) if role is not None else None
    if status is None or role is None:
        return frozenset()

    reachable = TRANSITIONS.get(status, frozenset())
    if role is Role.BUYER:
        return reachable & BUYER_TRANSITIONS.get(status, frozenset())
    if role in (Role.SELLER, Role.ADMIN):
        return reachable
    return frozenset()


def can_transition(current: OrderStatus | str, next_status: OrderStatus | str, role: Role | str | None) -> bool:
    """Whether ``role`` may move an order from ``current`` to ``next_status``."""
    target = _coerce(OrderStatus, next_status)
    if target is None:
        return False
    return target in allowed_next(current, role)
