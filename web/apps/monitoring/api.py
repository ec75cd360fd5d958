"""Liveness/readiness endpoint for the orders web service."""

import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.orders.http_adapters import catalog_cb

logger = logging.getLogger(__name__)


def health_view(_request):
    """Report database reachability and the catalog circuit state.

    Returns 503 only when the database is down; an open catalog circuit
    degrades order creation but not reads or status changes.
    """
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        logger.exception("health check: database unreachable")
        db_ok = False

    circuit = catalog_cb.state
    return JsonResponse(
        {
            "ok": db_ok,
            "components": {
                "db": {"ok": db_ok},
                "catalog": {"ok": circuit != "OPEN", "circuit": circuit},
            },
        },
        status=200 if db_ok else 503,
    )
