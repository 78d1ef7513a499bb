"""
Structured logging setup.

Configures structlog on top of the standard library logger so library
and CLI output share one pipeline.
"""

import logging
import sys

import structlog

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "console")


def configure_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Configure structlog processors and the root log level.

    Args:
        level: Log level name
        fmt: ``"json"`` for machine-readable output, ``"console"`` otherwise

    Raises:
        ValueError: If level or format is unknown
    """
    level = level.upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"log level must be one of: {list(LOG_LEVELS)}")
    if fmt not in LOG_FORMATS:
        raise ValueError(f"log format must be one of: {list(LOG_FORMATS)}")

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=getattr(logging, level), force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if fmt == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
