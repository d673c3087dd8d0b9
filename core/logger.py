"""Central logging configuration for the memory plugin host."""

import logging
import sys
from typing import Optional

import structlog


APP_LOGGERS = [
    "routers",
    "services",
    "dependencies",
    "core",
]


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    include_timestamp: bool = True
) -> None:
    """
    Setup application-wide logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string for log messages
        include_timestamp: Whether to include timestamp in log format
    """

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if format_string is None:
        if include_timestamp:
            format_string = (
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
        else:
            format_string = (
                "%(name)s - %(levelname)s - %(message)s"
            )

    logging.basicConfig(
        level=numeric_level,
        format=format_string,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ],
        force=True  # Override any existing configuration
    )

    # structlog events are rendered as key=value and handed to stdlib handlers
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"], sort_keys=True),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    configure_specific_loggers(numeric_level)

    logger = get_logger(__name__)
    logger.info("Logging configured", level=level)


def configure_specific_loggers(base_level: int) -> None:
    """
    Configure specific loggers with appropriate levels.

    Args:
        base_level: Base logging level to use
    """

    for logger_name in APP_LOGGERS:
        logging.getLogger(logger_name).setLevel(base_level)

    # Third-party loggers - request lines would otherwise leak at INFO
    third_party_loggers = [
        "uvicorn.access",
        "fastapi",
        "httpx",
        "httpcore",
    ]

    for logger_name in third_party_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("uvicorn.error").setLevel(logging.INFO)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structured logger bound to the stdlib logger of that name
    """
    return structlog.get_logger(name)
