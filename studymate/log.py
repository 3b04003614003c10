"""Structured logging setup."""
import logging
import sys

import structlog

from studymate import config


def configure_logging(level: str = None) -> None:
    """Configure structlog to render JSON lines through stdlib logging.

    Args:
        level: Log level name (defaults to config.LOG_LEVEL)
    """
    level = (level or config.LOG_LEVEL).upper()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level, logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
