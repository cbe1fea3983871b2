"""
Structured logging for contract RPC.

Log records are emitted as one JSON object per line so dispatch outcomes,
rejected calls, and host access logs can be consumed by log pipelines.

Features:
- JSON-formatted log output with fields passed via ``extra`` merged in
- Plain-text format for local development
- All loggers live under the ``contract_rpc`` namespace
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from contract_rpc.config import LoggingConfig

ROOT_LOGGER_NAME = "contract_rpc"

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes every LogRecord carries; anything else came from ``extra``
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """
    A logging formatter that outputs log records as JSON objects.

    Each record has the fields timestamp (ISO 8601, UTC), level, logger and
    message, plus exception text when present and any ``extra`` values.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            JSON-formatted string representation of the log record.
        """
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or value is None:
                continue
            log_entry[key] = value

        return json.dumps(log_entry, default=str)


def setup_logging(
    config: LoggingConfig | None = None,
    *,
    level: str = "INFO",
    json_format: bool = True,
    log_to_stdout: bool = True,
) -> logging.Logger:
    """
    Configure the ``contract_rpc`` logger.

    Args:
        config: Optional LoggingConfig; when given it overrides the keyword
            arguments, and its ``debug_mode`` forces the DEBUG level.
        level: Log level if no config is provided.
        json_format: Whether to use JSON formatting.
        log_to_stdout: Whether to attach a stdout handler.

    Returns:
        The configured package logger.

    Example:
        >>> logger = setup_logging(level="DEBUG", json_format=False)
        >>> logger.info("Server started", extra={"listen": "127.0.0.1:3000"})
    """
    if config is not None:
        level = "debug" if config.debug_mode else config.level
        json_format = config.json_format
        log_to_stdout = config.log_to_stdout

    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level)
    logger.handlers.clear()

    if log_to_stdout:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)
        if json_format:
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        logger.addHandler(handler)

    # Avoid duplicate lines through the root logger
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the ``contract_rpc`` namespace.

    Args:
        name: Typically ``__name__`` of the calling module. The package
            prefix is added when missing.

    Returns:
        The logger instance.
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
