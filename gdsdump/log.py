"""Logging for gdsdump: structlog events carried by stdlib loggers.

Library modules log through get_logger(), which wraps a stdlib logger, so
nothing is printed until an application installs a handler and the stdlib
levels drop debug events by default. The CLI calls configure_logging() to
render events on stderr, as console lines or as JSON (--log-json).
"""
from __future__ import annotations

import logging
import sys

import structlog

PACKAGE_LOGGER = "gdsdump"


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """structlog logger backed by the stdlib logger called name."""
    return structlog.wrap_logger(
        logging.getLogger(name), wrapper_class=structlog.stdlib.BoundLogger,
    )


def _renderer(log_json: bool) -> structlog.types.Processor:
    if log_json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(*, verbose: bool = False, log_json: bool = False) -> None:
    """Route gdsdump events to stderr, at DEBUG when verbose and WARNING otherwise."""
    annotate: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *annotate,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=annotate,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(log_json),
        ],
    ))

    # Third-party loggers stay at WARNING
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.WARNING)
    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if verbose else logging.WARNING)
