"""Logging for the check, in and out commands.

Diagnostics go to stderr, since stdout carries the command's JSON response,
and to Loki when LOKI_ENABLED is set. Handlers hang off the ``gcs_resource``
logger, so a host process's root configuration is left alone.
"""

import logging
import os
import sys

from loki_logger_handler.loki_logger_handler import LokiLoggerHandler

from gcs_resource.config import Config
from gcs_resource.services.operation_id_service import operation_id_context


PACKAGE_LOGGER = "gcs_resource"
OPERATION_FORMAT = "%(asctime)s - [%(operation_id)s] - %(name)s - %(levelname)s - %(message)s"
PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Handlers from the last setup call; replaced, never stacked
_installed: list[logging.Handler] = []


class OperationIDFilter(logging.Filter):
    """Fill in operation_id from the current operation scope when the record has none."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "operation_id"):
            record.operation_id = operation_id_context.get()
        return True


def _loki_handler(config: Config, command: str) -> LokiLoggerHandler:
    return LokiLoggerHandler(
        url=config.loki_url,
        labels={
            "service": "gcs-resource",
            "command": command,
            "environment": config.environment,
            "host": os.getenv("HOSTNAME", "unknown"),
        },
        timeout=10,
        compressed=True,
    )


def setup_loki_logging(config: Config, command: str, include_operation_id: bool = True) -> logging.Logger:
    """Install stderr and optional Loki handlers on the package logger.

    Args:
        config: Application configuration
        command: The command being run ("check", "in" or "out"); used as a Loki label
        include_operation_id: Prefix each line with the operation ID (default: True)

    Returns:
        The package logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in _installed:
        package_logger.removeHandler(handler)
        handler.close()
    _installed.clear()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.loki_enabled and config.loki_url:
        handlers.append(_loki_handler(config, command))

    formatter = logging.Formatter(OPERATION_FORMAT if include_operation_id else PLAIN_FORMAT)
    operation_filter = OperationIDFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        if include_operation_id:
            handler.addFilter(operation_filter)
        package_logger.addHandler(handler)
        _installed.append(handler)

    package_logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    return package_logger
