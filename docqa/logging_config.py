"""Structured logging setup shared by the web app and the CLI."""
import logging

import structlog

from docqa import config


def configure_logging() -> None:
    """Configure structured JSON logging."""
    logging.basicConfig(format="%(message)s", level=config.LOG_LEVEL)
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
