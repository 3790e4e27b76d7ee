"""
Carrier Relay core infrastructure.

Configuration, logging and formatting helpers shared by every other module.
"""

from .config import RelaySettings, get_settings, reset_settings
from .formatters import (
    format_credits,
    format_datetime,
    get_utc_now,
    get_utc_timestamp,
)
from .logging import get_logger

__all__ = [
    "RelaySettings",
    "get_settings",
    "reset_settings",
    "get_logger",
    "format_credits",
    "format_datetime",
    "get_utc_now",
    "get_utc_timestamp",
]
