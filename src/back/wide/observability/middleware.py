"""Request correlation middleware."""

from __future__ import annotations

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Client-supplied ids are reused only if they look like ids.
_VALID_REQUEST_ID = re.compile(r"[A-Za-z0-9\-]{8,128}")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag every HTTP request with a request id and log its completion.

    The id is bound into structlog's context for the lifetime of the request,
    so entries logged by the action dispatcher carry it, and it is echoed on
    the response. WebSocket traffic passes through untouched.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER, "")
        if not _VALID_REQUEST_ID.fullmatch(rid):
            rid = str(uuid.uuid4())

        started = time.perf_counter()
        with structlog.contextvars.bound_contextvars(request_id=rid):
            response = await call_next(request)
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )

        response.headers[REQUEST_ID_HEADER] = rid
        return response
