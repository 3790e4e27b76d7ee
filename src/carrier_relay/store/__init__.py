"""
Carrier Store - Persistent Storage for Journal Entries and Carrier State.

Key Components:
- SQLiteCarrierStore: aiosqlite implementation with WAL mode
- MigrationRunner: versioned SQL migrations applied on initialize()
- Protocol classes: Carrier, CarrierFinance, CarrierService, JournalEntry

Usage:
    from carrier_relay.store import SQLiteCarrierStore

    store = SQLiteCarrierStore()
    await store.initialize()

    carrier = await store.find_by_callsign("XX-001")
"""

from .errors import StoreError, StoreNotInitializedError
from .migrations import MigrationRunner
from .protocol import (
    Carrier,
    CarrierFinance,
    CarrierService,
    CarrierStore,
    DockingAccess,
    JournalEntry,
    StoreStats,
)
from .sqlite import SQLiteCarrierStore

__all__ = [
    # Store implementation
    "SQLiteCarrierStore",
    "MigrationRunner",
    # Errors
    "StoreError",
    "StoreNotInitializedError",
    # Protocol
    "CarrierStore",
    "Carrier",
    "CarrierFinance",
    "CarrierService",
    "DockingAccess",
    "JournalEntry",
    "StoreStats",
]
