"""structlog setup for wide.

Every entry carries the bound context of the current request or shell
session (``request_id``, ``connection_id``) via ``structlog.contextvars``.
Records emitted through plain ``logging`` loggers (uvicorn, the registry
loader) are rendered by the same formatter, so the output is one stream of
JSON lines or one console log.

Usage::

    from wide.observability import configure_logging, get_logger

    configure_logging(level="DEBUG", fmt="console")
    logger = get_logger(__name__)
    logger.info("file_action", action="save", status=1)
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

LOG_FORMATS = ("json", "console")

_configured = False


def current_request_id() -> str | None:
    """Request id bound for the running request, if any."""
    return structlog.contextvars.get_contextvars().get("request_id")


def _pre_chain() -> list:
    # Runs for structlog and stdlib records alike.
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _renderer(fmt: str):
    if fmt == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def configure_logging(*, level: str | None = None, fmt: str | None = None) -> None:
    """Route structlog and stdlib logging to stdout. Only the first call has an effect.

    Args:
        level: Level name; defaults to $LOG_LEVEL, then INFO.
        fmt: "json" or "console"; defaults to $LOG_FORMAT, then "json".
    """
    global _configured
    if _configured:
        return
    _configured = True

    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    fmt = (fmt or os.environ.get("LOG_FORMAT") or "json").lower()
    if fmt not in LOG_FORMATS:
        fmt = "json"

    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(fmt),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    level_no = logging.getLevelName(level_name)
    root.setLevel(level_no if isinstance(level_no, int) else logging.INFO)

    # One line per request comes from our own middleware.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to the given name."""
    return structlog.get_logger(name)
