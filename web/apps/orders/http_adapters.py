"""HTTP adapter for the product catalog with retries, circuit breaker and context headers.

This module implements ``ProductCatalogPort`` over HTTP using ``httpx``.
It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
    by the gateway middleware.
- A circuit breaker for the catalog service to avoid hammering an
    unhealthy dependency, with HALF_OPEN probing after a timeout.
- A simple retry policy with exponential backoff for transport errors and
    5xx responses.
"""

import logging
import threading
import time
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import quote

import httpx
from django.conf import settings

from gateway.middleware import REQUEST_ID_CTX

from .domain import ProductCatalogPort, ProductInfo

logger = logging.getLogger(__name__)


class UpstreamError(RuntimeError):
    """The catalog could not answer a lookup."""


class CircuitOpenError(UpstreamError):
    """Raised instead of calling a dependency whose circuit is open."""


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; only one probe may be in
      flight; a failed probe opens the circuit again.

    This implementation is thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        """Current breaker state with time-based transition handling."""
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            CircuitOpenError: If the circuit is OPEN or a HALF_OPEN probe is
                already in flight.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CircuitOpenError("CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._half_open_probe_in_flight:
                    raise CircuitOpenError("CIRCUIT_HALF_OPEN_BUSY")
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        """Record a successful call and close/reset the breaker."""
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_probe_in_flight = False

    def on_failure(self):
        """Record a failed call and open the breaker if threshold reached."""
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (
                self._failures >= self.fail_threshold and self._state != "OPEN"
            ):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_probe_in_flight = False
                logger.warning("circuit opened", extra={"circuit": self.name, "failures": self._failures})

    def on_finish(self):
        """Release any HALF_OPEN probe flag after a call finishes."""
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_probe_in_flight = False


catalog_cb = CircuitBreaker(
    "catalog",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_attempts, backoff_base_seconds)."""
    return (
        max(1, getattr(settings, "HTTP_RETRY_MAX", 3)),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport errors or HTTP 5xx."""
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


def _to_product(product_id: str, resp: httpx.Response) -> ProductInfo:
    try:
        data = resp.json()
        price = Decimal(str(data["price"]))
        seller_id = str(data["seller_id"])
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        raise UpstreamError(f"Malformed catalog response for product {product_id}") from e
    return ProductInfo(id=str(data.get("id", product_id)), price=price, seller_id=seller_id)


# ---------------- Catalog Adapter ---------------- #

class HttpProductCatalogClient(ProductCatalogPort):
    """HTTP client for the catalog service with retry and circuit breaker."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.CATALOG_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def get_product(self, product_id: str) -> Optional[ProductInfo]:
        """Look up a product by id.

        Implements circuit-breaker precheck and exponential backoff retries
        for transport errors and HTTP 5xx responses. Maps responses:
        - 200 → ``ProductInfo`` built from ``{price, seller_id}``
        - 404 → None (unknown product), not counted as a circuit failure

        Args:
            product_id: Catalog identifier of the product.

        Returns:
            ProductInfo | None: The product snapshot, or None when unknown.

        Raises:
            CircuitOpenError: When the circuit is open.
            httpx.RequestError: For network/transport errors after retries.
            httpx.HTTPStatusError: For non-retriable non-2xx responses.
        """
        url = f"{self.base_url}/products/{quote(str(product_id), safe='')}"
        max_attempts, backoff = _retry_policy()
        tries = 0

        state = catalog_cb.before_call()
        headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.get(url, headers=headers)
                        if resp.status_code == 200:
                            catalog_cb.on_success()
                            return _to_product(product_id, resp)
                        if resp.status_code == 404:
                            catalog_cb.on_success()  # business outcome, not a circuit failure
                            return None
                        if not _should_retry(resp, None):
                            resp.raise_for_status()
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries >= max_attempts:
                        catalog_cb.on_failure()
                        logger.error(
                            "catalog lookup failed",
                            extra={"product_id": product_id, "attempts": tries},
                        )
                        if exc:
                            raise exc
                        resp.raise_for_status()

                    sleep_s = backoff * (2 ** (tries - 1))
                    cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                    time.sleep(min(sleep_s, cap))
        finally:
            catalog_cb.on_finish()
