"""Structured logging configuration using structlog."""

import logging
import sys

import structlog
from structlog.types import Processor


def configure_logging(debug: bool = False, json_output: bool = True) -> None:
    """Configure structlog for JSON or console output.

    Args:
        debug: Enable debug-level logging when True. Debug output includes
            the watch failures that are otherwise absorbed silently.
        json_output: Render JSON lines when True, a console layout otherwise.
    """
    level = logging.DEBUG if debug else logging.INFO

    renderer: Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
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

    # watchdog logs every emitted inotify event at debug level.
    logging.getLogger("watchdog").setLevel(max(level, logging.INFO))
