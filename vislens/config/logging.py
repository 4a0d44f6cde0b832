"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

# Chatty third-party loggers that only matter when debugging vislens itself
_QUIET_LOGGERS = ("asyncio", "aiobotocore", "botocore", "PIL", "urllib3")


class _VisLensHandler(logging.StreamHandler):
    """Marker type so repeated setup replaces our handler and leaves others alone."""


def setup_logging(
    log_level: str = "INFO", json_output: bool = False, stream: TextIO | None = None
) -> None:
    """Configure structlog and route stdlib records to ``stream`` (stderr by default).

    Safe to call more than once; each call replaces the previous vislens handler.
    """
    out = stream or sys.stderr
    level = getattr(logging, log_level.upper(), logging.INFO)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if json_output or not out.isatty():
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    for handler in [h for h in root.handlers if isinstance(h, _VisLensHandler)]:
        root.removeHandler(handler)
    handler = _VisLensHandler(out)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level)

    quiet = max(level, logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet)
