"""Structured logging configuration using structlog."""

import logging
import sys

import structlog


def configure_logging(debug: bool = False, silent: bool = False) -> None:
    """Configure structlog for JSON output.

    Args:
        debug: Enable debug-level logging when True.
        silent: Only emit warnings and errors. Ignored when debug is set.
    """
    if debug:
        level = logging.DEBUG
    elif silent:
        level = logging.WARNING
    else:
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=level,
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    for name in ["uvicorn", "uvicorn.error", "uvicorn.access", "watchdog"]:
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True
    logging.getLogger("watchdog").setLevel(max(level, logging.INFO))
