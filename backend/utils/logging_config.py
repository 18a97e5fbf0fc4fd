"""
Structured Logging Configuration using structlog

Application modules log through the standard library (rendered by
structlog); publisher adapters log through loguru. Both sinks share the
configured level and write to stdout.
"""
import structlog
import logging
import sys
from typing import Optional

from loguru import logger as loguru_logger

from config.settings import Settings, settings as default_settings

# These libraries log full request URLs, and Graph API URLs carry access tokens
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3")


def configure_logging(settings: Optional[Settings] = None, log_level: Optional[str] = None):
    """
    Configure structured logging for the application.

    Args:
        settings: Settings to read LOG_LEVEL and ENVIRONMENT from
        log_level: Explicit level overriding settings.LOG_LEVEL

    Features:
    - JSON-formatted output in production, pretty console output otherwise
    - Timestamp in ISO format
    - Logger name and level included
    - Exception info formatted properly

    Usage:
        from utils.logging_config import configure_logging
        configure_logging()
    """
    settings = settings or default_settings
    log_level = (log_level or settings.LOG_LEVEL).upper()
    production = settings.is_production

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if production else structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level),
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # Publisher adapters use loguru
    loguru_logger.remove()
    loguru_logger.add(sys.stdout, level=log_level, serialize=production)

    structlog.get_logger().debug(
        "logging_configured",
        log_level=log_level,
        environment=settings.ENVIRONMENT
    )
