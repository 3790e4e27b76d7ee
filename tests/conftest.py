"""
Carrier Relay Test Suite - Shared Fixtures and Configuration

Provides an initialized store, a wired processor and temporary
journal and database locations for all tests.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from carrier_relay.core.config import reset_settings
from carrier_relay.core.logging import reset_logging
from carrier_relay.journal import JournalEventProcessor
from carrier_relay.journal.service import reset_ingest_service
from carrier_relay.services.broadcaster import ChangeBroadcaster, reset_broadcaster
from carrier_relay.store import SQLiteCarrierStore

# =============================================================================
# Singleton Reset
# =============================================================================


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch):
    """
    Reset settings, logging and service singletons around every test.

    Environment overrides that could leak in from the developer's shell
    are cleared so defaults are predictable.
    """
    for var in (
        "CARRIER_RELAY_JOURNAL_PATH",
        "ED_JOURNAL_PATH",
        "CARRIER_RELAY_DB_PATH",
        "DB_PATH",
        "CARRIER_RELAY_LOG_LEVEL",
        "CARRIER_RELAY_DEBUG",
        "CARRIER_RELAY_LOG_JSON",
    ):
        monkeypatch.delenv(var, raising=False)

    reset_settings()
    reset_logging()
    reset_broadcaster()
    reset_ingest_service()
    yield
    reset_ingest_service()
    reset_broadcaster()
    reset_logging()
    reset_settings()


# =============================================================================
# Store and Pipeline Fixtures
# =============================================================================


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test_carrier.db"


@pytest_asyncio.fixture
async def store(temp_db_path: Path) -> AsyncGenerator[SQLiteCarrierStore, None]:
    """Create and initialize a test store."""
    store = SQLiteCarrierStore(db_path=temp_db_path)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def broadcaster() -> ChangeBroadcaster:
    return ChangeBroadcaster(queue_size=10)


@pytest.fixture
def processor(store: SQLiteCarrierStore, broadcaster: ChangeBroadcaster) -> JournalEventProcessor:
    return JournalEventProcessor(store, broadcaster=broadcaster)


@pytest.fixture
def journal_dir(tmp_path: Path) -> Path:
    """An empty journal directory."""
    directory = tmp_path / "journals"
    directory.mkdir()
    return directory


@pytest.fixture
def relay_env(monkeypatch, journal_dir: Path, temp_db_path: Path) -> dict[str, Path]:
    """Point settings at the temporary journal directory and database."""
    monkeypatch.setenv("CARRIER_RELAY_JOURNAL_PATH", str(journal_dir))
    monkeypatch.setenv("CARRIER_RELAY_DB_PATH", str(temp_db_path))
    reset_settings()
    return {"journal_dir": journal_dir, "db_path": temp_db_path}
