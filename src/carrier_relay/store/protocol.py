"""
Carrier Store Protocol Interface.

Defines the records persisted by the relay and the abstract store interface
used by the journal pipeline and the read API.

The store holds two concerns behind one interface:
- the journal entry log (append-only, idempotent on identity key)
- the carrier repository (carrier aggregate, finance, services), keyed by callsign
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

# =============================================================================
# Enums
# =============================================================================


class DockingAccess(str, Enum):
    """Who may dock at a carrier."""

    ALL = "all"
    FRIENDS = "friends"
    SQUADRON = "squadron"
    SQUADRON_FRIENDS = "squadronfriends"

    @classmethod
    def parse(cls, value: str | None) -> DockingAccess | None:
        """
        Map a journal DockingAccess value onto the enum.

        Returns:
            Matching member, or None for values the relay does not model
        """
        if not value:
            return None
        try:
            return cls(value.lower())
        except ValueError:
            return None


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class Carrier:
    """Carrier aggregate root. ``callsign`` is the primary key and never changes."""

    callsign: str
    name: str
    internal_id: str | None = None
    current_system: str | None = None
    docking_access: DockingAccess = DockingAccess.ALL
    notorious_access: bool = False
    fuel_level: int = 0
    jump_cooldown: int = 0
    last_updated: str | None = None  # Journal timestamp of last accepted mutation

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the read API."""
        return {
            "callsign": self.callsign,
            "internalId": self.internal_id,
            "name": self.name,
            "currentSystem": self.current_system,
            "dockingAccess": self.docking_access.value,
            "notoriousAccess": self.notorious_access,
            "fuelLevel": self.fuel_level,
            "jumpCooldown": self.jump_cooldown,
            "lastUpdated": self.last_updated,
        }


@dataclass
class CarrierFinance:
    """Persisted finance state. Reserve and available balances are broadcast-only."""

    callsign: str
    balance: int


@dataclass
class CarrierService:
    """Per-service flag, keyed by (callsign, service_type)."""

    callsign: str
    service_type: str
    enabled: bool


@dataclass
class JournalEntry:
    """A raw journal record as stored in the event log."""

    identity_key: str
    timestamp: str
    event_type: str
    event_data: str  # Raw JSON object
    source_file: str | None = None
    callsign: str | None = None  # None when unrelated to a carrier or unresolved
    outcome: str | None = None  # ProcessOutcome value recorded at ingest time
    ingested_at: int | None = None


@dataclass
class StoreStats:
    """Storage statistics for observability."""

    total_entries: int
    entries_by_type: dict[str, int] = field(default_factory=dict)
    unresolved_entries: int = 0
    total_carriers: int = 0
    oldest_entry_time: str | None = None
    newest_entry_time: str | None = None
    database_size_bytes: int = 0


# =============================================================================
# Protocol Interface
# =============================================================================


@runtime_checkable
class CarrierStore(Protocol):
    """
    Abstract interface for carrier storage.

    Design notes:
    - All writes are last-write-wins per field, keyed by callsign
    - There is no optimistic concurrency check: the journal is a single
      ordered stream per installation
    - ``internal_id`` is an index owned by the carrier row and rewritten only
      by stats events
    """

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @abstractmethod
    async def initialize(self) -> None:
        """Open the store and run migrations. Must be called first."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the store and release resources."""
        ...

    # -------------------------------------------------------------------------
    # Journal Entries
    # -------------------------------------------------------------------------

    @abstractmethod
    async def append_entry(self, entry: JournalEntry) -> bool:
        """
        Append a journal entry (idempotent on identity_key).

        Returns:
            True if inserted, False if the identity key was already present
        """
        ...

    @abstractmethod
    async def has_entry(self, identity_key: str) -> bool:
        """Check whether an identity key has already been recorded."""
        ...

    @abstractmethod
    async def set_entry_outcome(
        self, identity_key: str, outcome: str, callsign: str | None = None
    ) -> None:
        """Update the recorded outcome of a stored entry (reprocessing)."""
        ...

    @abstractmethod
    async def iter_entries(
        self,
        event_types: list[str] | None = None,
        batch_size: int = 500,
    ):
        """Yield stored entries in timestamp order (async iterator)."""
        ...

    # -------------------------------------------------------------------------
    # Carrier Repository
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_or_update_by_callsign(
        self,
        callsign: str,
        internal_id: str,
        name: str,
        fuel_level: int,
        jump_cooldown: int,
        timestamp: str,
    ) -> bool:
        """
        Create the carrier or update its stats fields.

        Returns:
            True if a new carrier was created
        """
        ...

    @abstractmethod
    async def update_fields_by_callsign(self, callsign: str, timestamp: str, **fields: Any) -> bool:
        """Update named carrier fields. Returns False if the carrier does not exist."""
        ...

    @abstractmethod
    async def find_by_callsign(self, callsign: str) -> Carrier | None:
        """Get a carrier by callsign."""
        ...

    @abstractmethod
    async def find_by_internal_id(self, internal_id: str) -> Carrier | None:
        """Get the carrier currently associated with an internal id."""
        ...

    @abstractmethod
    async def list_callsigns(self) -> list[str]:
        """All known callsigns, sorted."""
        ...

    @abstractmethod
    async def list_carriers(self) -> list[Carrier]:
        """All carriers, sorted by callsign."""
        ...

    @abstractmethod
    async def upsert_finance(
        self, callsign: str, balance: int, timestamp: str | None = None
    ) -> None:
        """Create or replace the persisted balance; a timestamp stamps last_updated."""
        ...

    @abstractmethod
    async def get_finance(self, callsign: str) -> CarrierFinance | None:
        """Get persisted finance for a carrier."""
        ...

    @abstractmethod
    async def upsert_service(
        self, callsign: str, service_type: str, enabled: bool, timestamp: str | None = None
    ) -> None:
        """Create or replace a service flag; a timestamp stamps last_updated."""
        ...

    @abstractmethod
    async def get_services(self, callsign: str) -> list[CarrierService]:
        """All service flags for a carrier, sorted by service type."""
        ...

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_stats(self) -> StoreStats:
        """Storage statistics."""
        ...
