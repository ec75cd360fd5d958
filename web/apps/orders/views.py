"""HTTP views for the orders app.

Views are kept intentionally small: they validate requests (via
Pydantic), resolve the authenticated principal, delegate to the domain
service and render the result. Domain errors are mapped to HTTP statuses
here and nowhere else.

The views obtain a configured ``OrderService`` from
``providers.get_order_service()``, which wires the catalog HTTP client or
the in-process catalog stub depending on runtime settings.

Idempotency: when an ``Idempotency-Key`` header is sent with an order
creation, the first request stores its final response; retries with the
same payload replay it (header ``Idempotent-Replay: true``) and reusing the
key with a different payload returns HTTP 409.
"""

import logging

import httpx
from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.accounts.permissions import IsBuyer, IsSeller

from . import providers
from .errors import (
    ConcurrentUpdate,
    Forbidden,
    InvalidTransition,
    NotFound,
    OrderError,
    OrderValidationError,
    ServiceError,
    Unauthenticated,
)
from .http_adapters import UpstreamError
from .idempotency import IdempotencyConflict, finalize, get_or_create_idempotent
from .principals import principal_from_request
from .schemas import CreateOrderDTO, OrderReadDTO, UpdateStatusDTO

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    Unauthenticated: status.HTTP_401_UNAUTHORIZED,
    Forbidden: status.HTTP_403_FORBIDDEN,
    OrderValidationError: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    InvalidTransition: status.HTTP_400_BAD_REQUEST,
    ConcurrentUpdate: status.HTTP_409_CONFLICT,
    ServiceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _error_body(exc: OrderError) -> tuple[int, dict]:
    code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if code >= 500:
        logger.error("order engine failure", extra={"error_code": exc.code}, exc_info=exc)
    return code, {"detail": exc.code, "message": str(exc)}


def _validation_body(exc: ValidationError) -> dict:
    return {
        "detail": OrderValidationError.code,
        "message": "Validation failed",
        "errors": exc.errors(include_url=False, include_context=False, include_input=False),
    }


def _order_body(order) -> dict:
    return OrderReadDTO.from_domain(order).model_dump(mode="json")


class OrdersPingView(APIView):
    """Health-check endpoint for the orders module."""

    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """Create an order on behalf of the authenticated buyer.

    The payload is validated with ``CreateOrderDTO``; the domain service
    snapshots price and seller from the catalog and persists the order in
    ``Pending Approval``.
    """

    permission_classes = [IsAuthenticated, IsBuyer]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_create"

    def post(self, request):
        """Create a new order.

        Returns:
            Response: One of the following responses.
            - 201 with the created order.
            - the stored status and body when the same idempotency key and
              payload are retried.
            - 409 with {detail: "IDEMPOTENCY_CONFLICT"} when the same key is
              reused with a different payload.
            - 409 with {detail: "IDEMPOTENCY_IN_PROGRESS"} while the first
              request with that key has not finished.
            - 400 for validation errors.
            - 404 when the product does not exist.
            - 503 with {detail: "UPSTREAM_UNAVAILABLE"} when the catalog is
              unavailable.
        """
        principal = principal_from_request(request)
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except ValidationError as e:
            return Response(_validation_body(e), status=status.HTTP_400_BAD_REQUEST)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(principal.id, idem_key, dto.model_dump(mode="json"))
            except IdempotencyConflict:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing and not rec.response_status:
                return Response({"detail": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT)
            if existing:
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        try:
            order = providers.get_order_service().create_order(principal, dto.to_domain())
        except OrderError as e:
            status_code, body = _error_body(e)
            if rec:
                finalize(rec, status_code, body)
            return Response(body, status=status_code)
        except (httpx.HTTPError, UpstreamError) as e:
            logger.warning("catalog unavailable", extra={"error": str(e)})
            if rec:
                # transient: let the client retry with the same key
                rec.delete()
            return Response({"detail": "UPSTREAM_UNAVAILABLE"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        except Exception:
            if rec:
                rec.delete()
            raise

        # 4) Response
        body = _order_body(order)
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class BuyerOrdersView(APIView):
    """Orders placed by the authenticated buyer, newest first."""

    permission_classes = [IsAuthenticated, IsBuyer]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_list"

    def get(self, request):
        try:
            orders = providers.get_order_service().list_orders_for_buyer(principal_from_request(request))
        except OrderError as e:
            status_code, body = _error_body(e)
            return Response(body, status=status_code)
        return Response([_order_body(o) for o in orders], status=status.HTTP_200_OK)


class SellerOrdersView(APIView):
    """Orders received by the authenticated seller, newest first."""

    permission_classes = [IsAuthenticated, IsSeller]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_list"

    def get(self, request):
        try:
            orders = providers.get_order_service().list_orders_for_seller(principal_from_request(request))
        except OrderError as e:
            status_code, body = _error_body(e)
            return Response(body, status=status_code)
        return Response([_order_body(o) for o in orders], status=status.HTTP_200_OK)


class RetrieveOrderView(APIView):
    """Order detail for its buyer, its seller or an admin."""

    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid: str):
        try:
            order = providers.get_order_service().get_order(principal_from_request(request), oid)
        except OrderError as e:
            status_code, body = _error_body(e)
            return Response(body, status=status_code)
        return Response(_order_body(order), status=status.HTTP_200_OK)


class OrderStatusView(APIView):
    """Apply a status transition.

    Sellers and admins may perform any move the state machine allows;
    buyers may only cancel their own order while it awaits approval.
    """

    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_status"

    def put(self, request, oid: str):
        try:
            dto = UpdateStatusDTO.model_validate(request.data)
        except ValidationError as e:
            return Response(_validation_body(e), status=status.HTTP_400_BAD_REQUEST)

        try:
            order = providers.get_order_service().update_status(
                principal_from_request(request), oid, dto.status
            )
        except OrderError as e:
            status_code, body = _error_body(e)
            return Response(body, status=status_code)
        return Response(_order_body(order), status=status.HTTP_200_OK)
