"""Centralized logging configuration for the poller."""

import logging
import sys
from collections.abc import MutableMapping
from logging.handlers import RotatingFileHandler
from typing import Any

import structlog

from ldap_poller.models.config import LoggingConfig


def encode_binary_values(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Render ``bytes`` values (entity ids, binary attributes) as hex strings.

    Entity ids are opaque bytes and may not be valid UTF-8, so the JSON
    renderer could not serialize them otherwise.
    """
    for key, value in event_dict.items():
        if isinstance(value, (bytes, bytearray)):
            event_dict[key] = bytes(value).hex()
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    log_file: str | None = None,
) -> None:
    """
    Configure structured logging for the poller.

    This function sets up structlog with:
    - JSON formatting for production (when json_logs=True)
    - Console formatting for development (when json_logs=False)
    - Configurable log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - Optional file output with rotation
    - Hex rendering of binary values such as entity ids

    Calling it again replaces the previous configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, output JSON logs. If False, use console format.
        log_file: Optional path to log file. If None, logs only to stdout.

    Example:
        >>> configure_logging(log_level="DEBUG", json_logs=False)
        >>> log = structlog.stdlib.get_logger()
        >>> log.info("cycle_started", entries_seen=0)
    """
    # Convert log level string to logging constant
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # Configure standard library logging, replacing handlers from earlier calls
    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        stream=sys.stdout,
        force=True,
    )

    # Add file handler if log_file is specified
    if log_file:
        # Max size: 10MB, keep 5 backup files
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
        )
        file_handler.setLevel(numeric_level)
        logging.root.addHandler(file_handler)

    # Configure structlog processors
    processors: list[Any] = [
        # Add log level and logger name to event dict
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        # Add timestamp to event dict
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        # Entity ids and binary attribute values become hex strings
        encode_binary_values,
        # Add stack info and format exceptions, e.g. from cycle_crashed
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        # Add call site information (file, line, function)
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ],
        ),
    ]

    if json_logs:
        # JSON renderer for production
        processors.append(structlog.processors.JSONRenderer())
    else:
        # Console renderer for development
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging_from(config: LoggingConfig) -> None:
    """Configure logging from the ``logging`` section of the app config."""
    configure_logging(
        log_level=config.log_level,
        json_logs=config.json_logs,
        log_file=config.log_file,
    )
