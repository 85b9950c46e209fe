"""Logging and request correlation for wide.

    from wide.observability import RequestContextMiddleware, configure_logging

    configure_logging()
    app.add_middleware(RequestContextMiddleware)
"""

from .logging import configure_logging, current_request_id, get_logger
from .middleware import REQUEST_ID_HEADER, RequestContextMiddleware

__all__ = [
    "configure_logging",
    "current_request_id",
    "get_logger",
    "REQUEST_ID_HEADER",
    "RequestContextMiddleware",
]
