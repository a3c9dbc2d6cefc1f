"""
Logging configuration module for the Galaxy Notes knowledge graph.

Configures structlog with appropriate processors for development.
"""

import logging
import sys

import structlog

from .config import settings


def configure_logging(level: str | None = None) -> None:
    """Configure structlog for the application.

    Uses ConsoleRenderer for readable colored output in development. Output
    goes to stderr; stdout carries the MCP stdio protocol.

    Args:
        level: Optional level name overriding GALAXY_LOG_LEVEL
    """
    level_value = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(level_value, int):
        level_value = logging.INFO

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
