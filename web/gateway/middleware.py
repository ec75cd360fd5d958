"""Gateway middleware: request identifiers and payload size limits.

``RequestIdMiddleware`` ensures every incoming HTTP request receives a
request identifier. The identifier is read from the incoming
``X-Request-Id`` header when the client provides one, or generated
server-side otherwise. It is stored on the ``request`` object and in a
context variable so downstream code (log filters, the catalog HTTP client)
can read it without passing the value explicitly. The response carries the
same id in the ``X-Request-ID`` header.

``ApiSizeLimitMiddleware`` rejects API requests whose declared body is
larger than ``API_MAX_BYTES`` with HTTP 413.
"""

import contextvars
import os
import uuid

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(64 * 1024)))
MAX_REQUEST_ID_LEN = 128


class RequestIdMiddleware(MiddlewareMixin):
    """Django middleware that sets and returns a per-request identifier.

    Attributes:
        HEADER (str): The incoming header name in ``request.META`` casing.
        RESPONSE_HEADER (str): The header returned on responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        """Populate ``request.request_id`` and the request-id ContextVar.

        Client supplied ids longer than ``MAX_REQUEST_ID_LEN`` are replaced
        by a fresh UUIDv4.
        """
        rid = request.META.get(self.HEADER)
        if not rid or len(rid) > MAX_REQUEST_ID_LEN:
            rid = str(uuid.uuid4())
        request.request_id = rid
        request._request_id_token = REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Echo the request id on the response and reset the ContextVar."""
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            REQUEST_ID_CTX.reset(token)
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
                return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
