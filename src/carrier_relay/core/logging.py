"""
Carrier Relay Structured Logging

Provides consistent logging across the carrier_relay package with:
- Environment-based configuration via CARRIER_RELAY_LOG_LEVEL
- Backward compatibility with CARRIER_RELAY_DEBUG
- JSON-formatted output option for machine parsing
- Module-specific loggers

Usage:
    from carrier_relay.core.logging import get_logger

    logger = get_logger(__name__)
    logger.debug("Processing record")
    logger.info("Carrier updated", extra={"callsign": "XX-001"})
    logger.warning("Unknown carrier id")
    logger.error("Store write failed", exc_info=True)

Environment Variables:
    CARRIER_RELAY_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR)
    CARRIER_RELAY_DEBUG: Legacy - if set, enables DEBUG level
    CARRIER_RELAY_LOG_JSON: If set, output JSON-formatted logs
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from .config import get_settings

PACKAGE_LOGGER = "carrier_relay"

# Attributes present on every LogRecord; anything else came in through extra=
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
    }
)


def _get_log_level() -> int:
    """
    Determine log level from centralized config.

    Priority:
    1. CARRIER_RELAY_LOG_LEVEL (explicit level name)
    2. CARRIER_RELAY_DEBUG (legacy, enables DEBUG)
    3. Default: WARNING
    """
    return get_settings().log_level_int


def _is_json_output() -> bool:
    """Check if JSON output is requested."""
    return get_settings().log_json


class RelayFormatter(logging.Formatter):
    """
    Formatter for relay logs.

    Human-readable output carries level, module and message; JSON output
    additionally carries every extra= field (callsign, event_type, ...).
    """

    def __init__(self, json_output: bool = False) -> None:
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")

        if self.json_output:
            return self._format_json(record, timestamp)
        return self._format_text(record)

    def _format_text(self, record: logging.LogRecord) -> str:
        """Format as human-readable text."""
        module = record.name.split(".")[-1] if "." in record.name else record.name

        msg = f"[RELAY {record.levelname}] [{module}] {record.getMessage()}"

        if record.exc_info:
            exc_text = "".join(traceback.format_exception(*record.exc_info))
            msg += f"\n{exc_text}"

        return msg

    def _format_json(self, record: logging.LogRecord, timestamp: str) -> str:
        """Format as JSON for machine parsing."""
        log_data: dict[str, Any] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_data, default=str)


# Module-level logger cache
_loggers: dict[str, logging.Logger] = {}
_handler: Optional[logging.Handler] = None


def _get_handler() -> logging.Handler:
    """Get or create the shared stderr handler."""
    global _handler
    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(RelayFormatter(json_output=_is_json_output()))
    return _handler


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for the given module name.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(_get_log_level())
    logger.addHandler(_get_handler())
    logger.propagate = False  # Don't bubble up to root logger

    _loggers[name] = logger
    return logger


def reset_logging() -> None:
    """
    Reset all relay loggers to default state.

    Restores propagate=True and level NOTSET on every carrier_relay.* logger
    (cached or not), detaches the shared handler and drops the handler cache.
    Used by test fixtures so caplog sees records and tests do not leak
    logging configuration into each other.
    """
    global _handler

    manager = logging.Logger.manager
    for name in list(manager.loggerDict.keys()):
        if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
            logger_or_placeholder = manager.loggerDict[name]
            # loggerDict can contain Logger objects or PlaceHolder objects
            if isinstance(logger_or_placeholder, logging.Logger):
                logger_or_placeholder.propagate = True
                logger_or_placeholder.setLevel(logging.NOTSET)

    for logger in _loggers.values():
        if _handler is not None:
            logger.removeHandler(_handler)

    # Loggers stay cached to preserve propagate=True
    _handler = None
