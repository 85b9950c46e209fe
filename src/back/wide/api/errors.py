"""Error taxonomy for file actions and the shell bridge.

Every validation or filesystem failure is raised as an ``OperationError``
subclass and turned into a structured ``OperationResult`` at the dispatcher
boundary; none of them reach the transport layer as a fault.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Machine-readable failure classes."""

    BAD_REQUEST = "bad_request"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    CONFIG_ERROR = "config_error"
    INTERNAL_ERROR = "internal_error"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.CONFIG_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


class OperationError(Exception):
    """Base class for failures reported back to the client.

    Attributes:
        code: ErrorCode for the failure class
        message: Short human-readable reason (the envelope ``msg``)
        debug: Optional diagnostic detail, limited to the resolved path
    """

    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, debug: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.debug = debug


class BadRequest(OperationError):
    code = ErrorCode.BAD_REQUEST


class Forbidden(OperationError):
    code = ErrorCode.FORBIDDEN


class NotFound(OperationError):
    code = ErrorCode.NOT_FOUND


class Unauthorized(OperationError):
    code = ErrorCode.UNAUTHORIZED


class ConfigurationError(OperationError):
    code = ErrorCode.CONFIG_ERROR
