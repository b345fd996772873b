"""
Structured logging configuration using structlog wrapping stdlib.

Console output for operators running the CLI, JSON output for the admin
server when CALHUB_LOG_FORMAT=json. Library modules keep using
``logging.getLogger(__name__)``; their records flow through the same
structlog formatter.

Usage:
    from calhub.logging_config import setup_logging
    setup_logging()
"""

from __future__ import annotations

import logging
import os
import sys

import structlog


LOG_LEVEL_ENV = "CALHUB_LOG_LEVEL"
LOG_FORMAT_ENV = "CALHUB_LOG_FORMAT"

# Chatty third-party loggers that would otherwise echo token endpoint traffic
QUIET_LOGGERS = ("msal", "urllib3", "google_auth_oauthlib", "httpx")


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")

    if json_output is None:
        json_output = os.environ.get(LOG_FORMAT_ENV, "").lower() == "json"

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


__all__ = ["get_logger", "setup_logging"]
