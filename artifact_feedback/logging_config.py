"""Structured logging configuration using structlog."""

import logging
import sys

import structlog


def setup_logging(level: str = "INFO", fmt: str = "json", debug: bool = False) -> None:
    """Configure structlog and the standard library root logger.

    JSON rendering is used unless ``fmt`` is ``console`` or ``debug`` is set,
    in which case the human-readable console renderer is used.
    """
    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)
    use_console = debug or fmt == "console"

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if use_console else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicates on reload
    root_logger.handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(log_level)
    stdout_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(stdout_handler)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a named structured logger."""
    return structlog.get_logger(name)
