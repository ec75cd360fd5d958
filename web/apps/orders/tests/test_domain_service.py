"""Unit tests for the OrderService domain orchestration.

These tests drive the service through its ports only: products come from
``ProductCatalogStub`` and orders live in ``InMemoryOrderStore``. No
database or network is involved.
"""

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from apps.orders.adapters import InMemoryOrderStore, ProductCatalogStub
from apps.orders.domain import (
    MAX_ORDER_QUANTITY,
    OrderInput,
    OrderService,
    PaymentMethod,
    Principal,
    ShippingAddress,
    StatusEntry,
)
from apps.orders.errors import (
    ConcurrentUpdate,
    Forbidden,
    InvalidTransition,
    NotFound,
    OrderValidationError,
    Unauthenticated,
)
from apps.orders.policy import OrderStatus

BUYER = Principal("b1", "buyer")
OTHER_BUYER = Principal("b2", "buyer")
SELLER = Principal("s1", "seller")
OTHER_SELLER = Principal("s2", "seller")
ADMIN = Principal("a1", "admin")

ADDRESS = ShippingAddress("12 Lake Road", "Dhaka", "1207", "Bangladesh")


class FixedClock:
    """Clock advancing one second per call for deterministic timestamps."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


def make_service(store=None, **kw):
    products = ProductCatalogStub({
        "p1": {"price": 1299, "seller_id": "s1"},
        "p2": {"price": "19.99", "seller_id": "s2"},
    })
    return OrderService(products, store or InMemoryOrderStore(), clock=FixedClock(), **kw)


def new_order(service, principal=BUYER, product_id="p1", quantity=1):
    return service.create_order(principal, OrderInput(product_id, quantity, ADDRESS))


def advance(service, order, *statuses, principal=SELLER):
    for status in statuses:
        order = service.update_status(principal, order.id, status)
    return order


# ---- creation ----

def test_create_order_snapshots_price_and_seller():
    """Scenario A: quantity 3 at price 1299 totals 3897, pending, one entry."""
    service = make_service()
    order = new_order(service, quantity=3)
    assert order.id
    assert order.total_price == Decimal("3897")
    assert order.current_status is OrderStatus.PENDING_APPROVAL
    assert len(order.status_history) == 1
    assert order.status_history[0].status is OrderStatus.PENDING_APPROVAL
    assert order.status_history[0].updated_by is None
    assert order.seller_id == "s1"
    assert order.buyer_id == "b1"
    assert order.payment_method is PaymentMethod.CASH_ON_DELIVERY
    assert order.version == 0


def test_create_order_decimal_price_is_exact():
    service = make_service()
    order = new_order(service, product_id="p2", quantity=3)
    assert order.total_price == Decimal("59.97")


def test_total_price_is_not_recomputed_after_price_change():
    service = make_service()
    order = new_order(service, quantity=2)
    service.products.products["p1"] = {"price": 5, "seller_id": "s1"}
    assert service.get_order(BUYER, order.id).total_price == Decimal("2598")


def test_create_order_accepts_bkash_label():
    service = make_service()
    order = service.create_order(BUYER, OrderInput("p1", 1, ADDRESS, "Bkash"))
    assert order.payment_method is PaymentMethod.BKASH


@pytest.mark.parametrize("principal", [SELLER, ADMIN, Principal("x", "guest")])
def test_only_buyers_create_orders(principal):
    with pytest.raises(Forbidden):
        new_order(make_service(), principal=principal)


@pytest.mark.parametrize("principal", [None, Principal("", "buyer"), Principal("b1", "buyer", active=False)])
def test_create_order_requires_active_principal(principal):
    with pytest.raises(Unauthenticated):
        new_order(make_service(), principal=principal)


@pytest.mark.parametrize("quantity", [0, -1, True, 1.5, "2"])
def test_create_order_rejects_bad_quantity(quantity):
    with pytest.raises(OrderValidationError):
        new_order(make_service(), quantity=quantity)


def test_create_order_quantity_upper_bound():
    service = make_service()
    assert new_order(service, product_id="p2", quantity=MAX_ORDER_QUANTITY).total_price == Decimal("199900.00")
    with pytest.raises(OrderValidationError):
        new_order(service, quantity=MAX_ORDER_QUANTITY + 1)
    with pytest.raises(OrderValidationError):
        new_order(service, quantity=10**13)


@pytest.mark.parametrize("price", ["999999999999.99", "1e20", "NaN", "-1"])
def test_create_order_total_must_fit_stored_amount(price):
    store = InMemoryOrderStore()
    service = make_service(store)
    service.products.products["big"] = {"price": price, "seller_id": "s1"}
    with pytest.raises(OrderValidationError):
        new_order(service, product_id="big", quantity=2)
    assert store.list_by_buyer("b1") == []


def test_create_order_total_is_rounded_to_cents():
    service = make_service()
    service.products.products["odd"] = {"price": "0.125", "seller_id": "s1"}
    assert new_order(service, product_id="odd", quantity=1).total_price == Decimal("0.13")


@pytest.mark.parametrize(
    "address",
    [
        None,
        ShippingAddress("", "Dhaka", "1207", "Bangladesh"),
        ShippingAddress("12 Lake Road", "   ", "1207", "Bangladesh"),
        ShippingAddress("12 Lake Road", "Dhaka", "", "Bangladesh"),
        ShippingAddress("12 Lake Road", "Dhaka", "1207", None),
    ],
)
def test_create_order_rejects_incomplete_address(address):
    with pytest.raises(OrderValidationError):
        make_service().create_order(BUYER, OrderInput("p1", 1, address))


def test_create_order_rejects_unknown_payment_method():
    with pytest.raises(OrderValidationError):
        make_service().create_order(BUYER, OrderInput("p1", 1, ADDRESS, "Credit Card"))


def test_create_order_unknown_product():
    store = InMemoryOrderStore()
    with pytest.raises(NotFound):
        new_order(make_service(store), product_id="missing")
    assert store.list_by_buyer("b1") == []


# ---- reads ----

def test_get_order_visible_to_buyer_seller_and_admin():
    service = make_service()
    order = new_order(service)
    for principal in (BUYER, SELLER, ADMIN):
        assert service.get_order(principal, order.id).id == order.id


@pytest.mark.parametrize("principal", [OTHER_BUYER, OTHER_SELLER])
def test_get_order_forbidden_for_strangers(principal):
    """Scenario E: neither buyer, seller nor admin."""
    service = make_service()
    order = new_order(service)
    with pytest.raises(Forbidden):
        service.get_order(principal, order.id)


@pytest.mark.parametrize("order_id", ["does-not-exist", "", "00000000-0000-0000-0000-000000000000"])
def test_get_order_not_found(order_id):
    with pytest.raises(NotFound):
        make_service().get_order(ADMIN, order_id)


def test_get_order_requires_principal():
    service = make_service()
    order = new_order(service)
    with pytest.raises(Unauthenticated):
        service.get_order(None, order.id)


def test_returned_orders_are_copies():
    service = make_service()
    order = new_order(service)
    order.status_history.clear()
    assert len(service.get_order(BUYER, order.id).status_history) == 1


def test_list_orders_for_buyer_newest_first():
    service = make_service()
    first = new_order(service)
    second = new_order(service, product_id="p2")
    new_order(service, principal=OTHER_BUYER)
    assert [o.id for o in service.list_orders_for_buyer(BUYER)] == [second.id, first.id]


def test_list_orders_for_seller_only_own_products():
    service = make_service()
    mine = new_order(service, product_id="p1")
    new_order(service, product_id="p2")
    later = new_order(service, principal=OTHER_BUYER, product_id="p1")
    assert [o.id for o in service.list_orders_for_seller(SELLER)] == [later.id, mine.id]
    assert len(service.list_orders_for_seller(OTHER_SELLER)) == 1


def test_list_empty_for_new_users():
    service = make_service()
    assert service.list_orders_for_buyer(Principal("fresh", "buyer")) == []
    assert service.list_orders_for_seller(Principal("fresh", "seller")) == []


def test_list_roles_are_enforced():
    service = make_service()
    with pytest.raises(Forbidden):
        service.list_orders_for_buyer(SELLER)
    with pytest.raises(Forbidden):
        service.list_orders_for_seller(BUYER)
    with pytest.raises(Forbidden):
        service.list_orders_for_seller(ADMIN)


# ---- status updates ----

def test_seller_accepts_order():
    """Scenario B: pending -> processing appends a second entry."""
    service = make_service()
    order = new_order(service)
    updated = service.update_status(SELLER, order.id, "Processing")
    assert updated.current_status is OrderStatus.PROCESSING
    assert len(updated.status_history) == 2
    assert updated.status_history[-1].status is OrderStatus.PROCESSING
    assert updated.status_history[-1].updated_by == "s1"
    assert updated.version == 1


def test_buyer_cannot_complete_order():
    """Scenario C: buyers cannot set Completed."""
    service = make_service()
    order = advance(service, new_order(service), OrderStatus.PROCESSING, OrderStatus.OUT_FOR_DELIVERY)
    with pytest.raises(InvalidTransition):
        service.update_status(BUYER, order.id, OrderStatus.COMPLETED)
    assert service.get_order(BUYER, order.id).current_status is OrderStatus.OUT_FOR_DELIVERY


@pytest.mark.parametrize("target", list(OrderStatus))
def test_terminal_order_rejects_everything(target):
    """Scenario D: completed orders are frozen, even for admins."""
    service = make_service()
    order = advance(
        service,
        new_order(service),
        OrderStatus.PROCESSING,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.COMPLETED,
    )
    with pytest.raises(InvalidTransition):
        service.update_status(ADMIN, order.id, target)


def test_full_lifecycle_history_is_append_only():
    service = make_service()
    order = new_order(service)
    prefix = list(order.status_history)
    for status in (OrderStatus.PROCESSING, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.COMPLETED):
        order = service.update_status(SELLER, order.id, status)
        assert order.status_history[: len(prefix)] == prefix
        assert len(order.status_history) == len(prefix) + 1
        assert order.current_status is order.status_history[-1].status
        prefix = list(order.status_history)
    timestamps = [e.timestamp for e in order.status_history]
    assert timestamps == sorted(timestamps)
    assert order.is_terminal


def test_buyer_cancels_pending_order():
    service = make_service()
    order = new_order(service)
    updated = service.update_status(BUYER, order.id, OrderStatus.CANCELLED)
    assert updated.current_status is OrderStatus.CANCELLED
    assert updated.status_history[-1].updated_by == "b1"


def test_buyer_cannot_cancel_after_acceptance():
    service = make_service()
    order = advance(service, new_order(service), OrderStatus.PROCESSING)
    with pytest.raises(InvalidTransition):
        service.update_status(BUYER, order.id, OrderStatus.CANCELLED)


def test_seller_rejects_pending_order():
    service = make_service()
    order = service.update_status(SELLER, new_order(service).id, OrderStatus.REJECTED)
    assert order.is_terminal


def test_admin_can_move_any_order():
    service = make_service()
    order = service.update_status(ADMIN, new_order(service).id, OrderStatus.PROCESSING)
    assert order.status_history[-1].updated_by == "a1"


def test_skipping_states_is_invalid():
    service = make_service()
    with pytest.raises(InvalidTransition):
        service.update_status(SELLER, new_order(service).id, OrderStatus.COMPLETED)


def test_repeating_a_transition_is_rejected():
    service = make_service()
    order = advance(service, new_order(service), OrderStatus.PROCESSING)
    with pytest.raises(InvalidTransition):
        service.update_status(SELLER, order.id, OrderStatus.PROCESSING)
    assert len(service.get_order(SELLER, order.id).status_history) == 2


@pytest.mark.parametrize("principal", [OTHER_SELLER, OTHER_BUYER, Principal("x", "guest")])
def test_strangers_cannot_update(principal):
    service = make_service()
    order = new_order(service)
    with pytest.raises(Forbidden):
        service.update_status(principal, order.id, OrderStatus.CANCELLED)


def test_update_unknown_status_label():
    service = make_service()
    with pytest.raises(OrderValidationError):
        service.update_status(SELLER, new_order(service).id, "Shipped")


def test_update_unknown_order():
    with pytest.raises(NotFound):
        make_service().update_status(ADMIN, "nope", OrderStatus.PROCESSING)


def test_update_inactive_principal():
    service = make_service()
    order = new_order(service)
    with pytest.raises(Unauthenticated):
        service.update_status(Principal("s1", "seller", active=False), order.id, OrderStatus.PROCESSING)


def test_failed_update_leaves_order_untouched():
    service = make_service()
    order = new_order(service)
    with pytest.raises(Forbidden):
        service.update_status(OTHER_SELLER, order.id, OrderStatus.PROCESSING)
    stored = service.get_order(SELLER, order.id)
    assert stored.current_status is OrderStatus.PENDING_APPROVAL
    assert stored.version == 0


# ---- concurrency ----

class RacingStore(InMemoryOrderStore):
    """Store that lets a competing writer win before each of our writes."""

    def __init__(self, competing, races=1):
        super().__init__()
        self.competing = competing
        self.races = races

    def append_status(self, order_id, entry, expected_version):
        if self.races:
            self.races -= 1
            winner = super().get(order_id)
            super().append_status(order_id, self.competing(winner), winner.version)
        return super().append_status(order_id, entry, expected_version)


def test_lost_race_is_re_evaluated_against_winner():
    """Buyer cancel loses to seller accept: the retry sees Processing."""
    store = RacingStore(lambda o: StatusEntry(OrderStatus.PROCESSING, o.updated_at, "s1"))
    service = make_service(store)
    order = new_order(service)
    with pytest.raises(InvalidTransition):
        service.update_status(BUYER, order.id, OrderStatus.CANCELLED)
    stored = service.get_order(BUYER, order.id)
    assert stored.current_status is OrderStatus.PROCESSING
    assert [e.status for e in stored.status_history] == [OrderStatus.PENDING_APPROVAL, OrderStatus.PROCESSING]


def test_retry_succeeds_when_still_allowed():
    store = RacingStore(lambda o: StatusEntry(OrderStatus.PROCESSING, o.updated_at, "a1"))
    service = make_service(store)
    order = new_order(service)
    updated = service.update_status(SELLER, order.id, OrderStatus.CANCELLED)
    assert [e.status for e in updated.status_history] == [
        OrderStatus.PENDING_APPROVAL,
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
    ]


def test_gives_up_after_max_attempts():
    class AlwaysStale(InMemoryOrderStore):
        def append_status(self, order_id, entry, expected_version):
            raise ConcurrentUpdate("stale")

    service = make_service(AlwaysStale(), max_attempts=2)
    order = new_order(service)
    with pytest.raises(ConcurrentUpdate):
        service.update_status(SELLER, order.id, OrderStatus.PROCESSING)


def test_concurrent_writers_cannot_both_win():
    store = InMemoryOrderStore()
    service = make_service(store, max_attempts=5)
    order = new_order(service)
    barrier = threading.Barrier(2)
    outcomes = {}

    def run(name, principal, status):
        barrier.wait()
        try:
            service.update_status(principal, order.id, status)
            outcomes[name] = "ok"
        except InvalidTransition:
            outcomes[name] = "invalid"

    threads = [
        threading.Thread(target=run, args=("buyer", BUYER, OrderStatus.CANCELLED)),
        threading.Thread(target=run, args=("seller", SELLER, OrderStatus.PROCESSING)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes.values()) == ["invalid", "ok"]
    stored = store.get(order.id)
    assert len(stored.status_history) == 2
    assert stored.version == 1
    assert stored.current_status is stored.status_history[-1].status
