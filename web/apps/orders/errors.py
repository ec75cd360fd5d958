"""Error kinds raised by the order engine.

Every error carries a stable ``code`` that the HTTP boundary returns as
``detail``. The human readable message (``str(exc)``) may contain extra
context such as the attempted transition.
"""


class OrderError(Exception):
    """Base class for all order engine errors."""

    code = "ORDER_ERROR"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)


class Unauthenticated(OrderError):
    code = "UNAUTHENTICATED"


class Forbidden(OrderError):
    code = "FORBIDDEN"


class OrderValidationError(OrderError):
    code = "VALIDATION_ERROR"


class NotFound(OrderError):
    code = "NOT_FOUND"


class InvalidTransition(OrderError):
    code = "INVALID_TRANSITION"


class ConcurrentUpdate(OrderError):
    """The stored order changed between read and write."""

    code = "CONCURRENT_UPDATE"


class ServiceError(OrderError):
    """Infrastructure failure in the order store."""

    code = "SERVICE_ERROR"
