"""Structured logging configuration using structlog.

Call setup_logging() once at startup. Modules log through
``structlog.get_logger()``; the command audit trail uses the logger named
AUDIT_LOGGER_NAME so it can be routed to its own stream.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

AUDIT_LOGGER_NAME = "toolgate.audit"


class RoutingLoggerFactory:
    """PrintLogger factory that sends the audit logger to a separate stream."""

    def __init__(self, default: TextIO | None = None, audit: TextIO | None = None) -> None:
        self._default = default
        self._audit = audit

    def __call__(self, *args: object) -> structlog.PrintLogger:
        name = args[0] if args else None
        if name == AUDIT_LOGGER_NAME and self._audit is not None:
            return structlog.PrintLogger(self._audit)
        return structlog.PrintLogger(self._default or sys.stdout)


def setup_logging(
    *,
    json_output: bool = True,
    log_level: str = "INFO",
    audit_stream: TextIO | None = None,
) -> None:
    """Configure structlog for the process.

    Args:
        json_output: JSON lines when True, coloured console output otherwise.
        log_level: Minimum level (DEBUG, INFO, WARNING, ERROR). Unknown names mean INFO.
        audit_stream: Where command audit events go; None keeps them on stdout.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(),
    ]

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=RoutingLoggerFactory(audit=audit_stream),
        cache_logger_on_first_use=False,
    )
