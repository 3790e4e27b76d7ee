"""
Carrier Relay Formatters

Timestamp and credit formatting shared by the CLI and the ingestion pipeline.
"""

from datetime import datetime, timezone

# =============================================================================
# Credit Formatting
# =============================================================================


def format_credits(value: int) -> str:
    """
    Format a credit balance with thousands separators.

    Examples:
        >>> format_credits(1500000000)
        '1,500,000,000 CR'
        >>> format_credits(0)
        '0 CR'
    """
    return f"{value:,} CR"


# =============================================================================
# Time Formatting
# =============================================================================


def format_datetime(dt: datetime) -> str:
    """
    Format datetime for display.

    Args:
        dt: datetime object

    Returns:
        ISO format string
    """
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def get_utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def get_utc_timestamp() -> str:
    """
    Get current UTC timestamp string.

    Returns:
        ISO format timestamp like "2026-01-15T12:30:00Z"
    """
    return format_datetime(get_utc_now())
