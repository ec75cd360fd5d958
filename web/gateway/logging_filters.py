"""Logging filter that stamps log records with the current request id.

Add ``RequestIdFilter`` to a handler so formatters can reference
``%(request_id)s``; the value comes from the ContextVar populated by
``RequestIdMiddleware``.
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    Records logged outside a request get ``"-"``. A ``request_id`` passed
    explicitly through ``extra`` is left untouched.
    """

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True
