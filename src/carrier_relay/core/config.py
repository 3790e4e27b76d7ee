"""
Carrier Relay Centralized Configuration

Provides validated, type-safe access to all environment variables using Pydantic Settings.
All environment variables are validated at first access with helpful error messages.

Usage:
    from carrier_relay.core.config import get_settings

    settings = get_settings()
    if settings.journal_path is None:
        ...

Data Paths:
    All data is stored in {instance_root}/cache/:
    - cache/carrier.db: Carrier state and journal entries

Environment Variables:
    CARRIER_RELAY_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    CARRIER_RELAY_DEBUG: Legacy debug flag (enables DEBUG level if set)
    CARRIER_RELAY_LOG_JSON: Output logs as JSON
    CARRIER_RELAY_INSTANCE_ROOT: Instance root directory override
    CARRIER_RELAY_JOURNAL_PATH: Directory holding the game's Journal.*.log files
    CARRIER_RELAY_JOURNAL_GLOB: File pattern for journal files
    CARRIER_RELAY_DB_PATH: Database file override
    CARRIER_RELAY_SUBSCRIBER_QUEUE_SIZE: Pending deltas buffered per subscriber

Legacy Variables (no CARRIER_RELAY_ prefix):
    ED_JOURNAL_PATH: Journal directory (used when CARRIER_RELAY_JOURNAL_PATH is unset)
    DB_PATH: Database file (used when CARRIER_RELAY_DB_PATH is unset)
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_project_root() -> Path | None:
    """
    Find the project root by searching upward for pyproject.toml.

    Returns:
        Project root directory if found, None otherwise
    """
    current = Path(__file__).resolve().parent

    for _ in range(10):  # Limit search depth
        if (current / "pyproject.toml").exists():
            return current
        parent = current.parent
        if parent == current:
            break  # Reached filesystem root
        current = parent

    return None


def _find_project_env_file() -> Path | None:
    """Return the project's .env file if one exists beside pyproject.toml."""
    root = _find_project_root()
    if root is None:
        return None
    env_file = root / ".env"
    return env_file if env_file.exists() else None


# Resolve paths at module load time
_ENV_FILE = _find_project_env_file()
_INSTANCE_ROOT = _find_project_root() or Path.cwd()


class RelaySettings(BaseSettings):
    """
    Carrier Relay configuration settings with validation.

    Environment variables are automatically loaded with the CARRIER_RELAY_ prefix.
    All settings have sensible defaults and validation.
    """

    model_config = SettingsConfigDict(
        env_prefix="CARRIER_RELAY_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level for relay components",
    )

    debug: bool = Field(
        default=False,
        description="Legacy debug flag (enables DEBUG level if set)",
    )

    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format for machine parsing",
    )

    # =========================================================================
    # Journal Source
    # =========================================================================

    journal_path: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("CARRIER_RELAY_JOURNAL_PATH", "ED_JOURNAL_PATH"),
        description="Directory containing the game's journal files (unset = ingestion disabled)",
    )

    journal_glob: str = Field(
        default="Journal.*.log",
        description="Filename pattern identifying journal files",
    )

    # =========================================================================
    # Data Paths
    # =========================================================================

    instance_root: Path = Field(
        default=_INSTANCE_ROOT,
        description="Instance root directory (project root containing pyproject.toml)",
    )

    db_path: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("CARRIER_RELAY_DB_PATH", "DB_PATH"),
        description="Database file override (default: {instance_root}/cache/carrier.db)",
    )

    # =========================================================================
    # Live Updates
    # =========================================================================

    subscriber_queue_size: int = Field(
        default=100,
        ge=1,
        description="Pending deltas buffered per subscriber before new ones are dropped",
    )

    reprocess_batch_size: int = Field(
        default=500,
        ge=1,
        description="Stored journal entries fetched per page during reprocessing",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("journal_path", "db_path", mode="before")
    @classmethod
    def blank_path_is_unset(cls, v):
        """Treat an empty environment value as not configured."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def effective_log_level(self) -> str:
        """
        Get effective log level, respecting legacy CARRIER_RELAY_DEBUG.

        Priority:
        1. Explicit CARRIER_RELAY_LOG_LEVEL
        2. CARRIER_RELAY_DEBUG=1 -> DEBUG
        3. Default: WARNING
        """
        if self.debug and self.log_level == "WARNING":
            return "DEBUG"
        return self.log_level

    @property
    def log_level_int(self) -> int:
        """Get effective log level as logging constant."""
        return getattr(logging, self.effective_log_level)

    @property
    def cache_dir(self) -> Path:
        """Path to cache directory."""
        return self.instance_root / "cache"

    @property
    def database_path(self) -> Path:
        """Path to the carrier database."""
        if self.db_path is not None:
            return self.db_path
        return self.cache_dir / "carrier.db"


# =============================================================================
# Singleton Accessor
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> RelaySettings:
    """
    Get the singleton settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    The settings are validated at first access.

    Returns:
        RelaySettings instance with validated configuration
    """
    return RelaySettings()


def reset_settings() -> None:
    """
    Reset the settings cache (for testing).

    After calling this, the next get_settings() call will
    reload settings from environment variables.
    """
    get_settings.cache_clear()
