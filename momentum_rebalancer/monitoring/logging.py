"""
Logging configuration.

structlog over the standard library, console-rendered by default and JSON
when running under a log shipper. Modules obtain loggers via get_logger(__name__).
"""

import logging
import sys

import structlog
from structlog.types import FilteringBoundLogger


def configure_logging(level: str = "INFO", format_json: bool = False) -> None:
    """
    Configure structlog for the whole process.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        format_json: Emit JSON lines instead of human-readable output
    """
    log_level = getattr(logging, level.upper())

    logging.basicConfig(level=log_level, stream=sys.stdout, format="%(message)s")
    logging.getLogger("ccxt").setLevel(max(log_level, logging.WARNING))

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if format_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """
    Get a structlog logger.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)
