"""
Journal Event Processor.

Turns one raw journal record into repository mutations and a broadcast
delta. The flow for every record is:

    duplicate check -> classify -> handler -> event log append -> broadcast

The append happens after the mutation: a crash in between leaves the record
unmarked, and the next full-file re-read applies it again. Every handler is
idempotent, so that replay is harmless.
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from ..core.logging import get_logger
from ..services.broadcaster import (
    CarrierDelta,
    CarrierDockingPermissionDelta,
    CarrierFinanceDelta,
    CarrierJumpDelta,
    CarrierLocationDelta,
    CarrierNameChangedDelta,
    CarrierServiceChangedDelta,
    CarrierStatsDelta,
    ChangeBroadcaster,
)
from ..store.protocol import CarrierStore, DockingAccess, JournalEntry
from .events import (
    EVENT_VARIANTS,
    CarrierCrewServicesEvent,
    CarrierDockingPermissionEvent,
    CarrierEvent,
    CarrierFinanceEvent,
    CarrierJumpEvent,
    CarrierLocationEvent,
    CarrierNameChangedEvent,
    CarrierStatsEvent,
    classify,
    is_carrier_event,
)
from .records import RawJournalRecord
from .resolver import IdentityResolver

logger = get_logger(__name__)


class ProcessOutcome(str, Enum):
    """What happened to a record. Stored on the journal entry row."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"  # Not a carrier event
    UNRESOLVED = "unresolved"  # Carrier event for an internal id with no known callsign
    INVALID = "invalid"  # Carrier event missing required fields


@dataclass(frozen=True)
class _Applied:
    """Handler result: the callsign mutated and the delta to broadcast."""

    callsign: str
    delta: CarrierDelta | None


Handler = Callable[["JournalEventProcessor", CarrierEvent], Awaitable["_Applied | None"]]


class JournalEventProcessor:
    """
    Reconciles carrier events against the repository.

    Handlers return None when the carrier's identity is not yet known; that
    is an expected transient state (events can precede the first
    CarrierStats) and is never an error.
    """

    def __init__(
        self,
        store: CarrierStore,
        resolver: IdentityResolver | None = None,
        broadcaster: ChangeBroadcaster | None = None,
    ):
        self.store = store
        self.resolver = resolver or IdentityResolver(store)
        self.broadcaster = broadcaster or ChangeBroadcaster()
        self.counts: Counter[ProcessOutcome] = Counter()

    # -------------------------------------------------------------------------
    # Ingest
    # -------------------------------------------------------------------------

    async def process(
        self, record: RawJournalRecord, source_file: str | None = None
    ) -> ProcessOutcome:
        """
        Apply one record from a journal file.

        Store errors propagate to the caller (the tailer logs and continues).
        """
        if await self.store.has_entry(record.identity_key):
            return self._count(ProcessOutcome.DUPLICATE)

        outcome, applied = await self._apply(record)
        await self.store.append_entry(
            JournalEntry(
                identity_key=record.identity_key,
                timestamp=record.timestamp,
                event_type=record.event_type,
                event_data=record.to_json(),
                source_file=source_file,
                callsign=applied.callsign if applied else None,
                outcome=outcome.value,
            )
        )

        if applied is not None and applied.delta is not None:
            self.broadcaster.publish(applied.callsign, applied.delta)

        return self._count(outcome)

    async def reprocess_entry(self, entry: JournalEntry) -> ProcessOutcome:
        """
        Re-apply a stored entry, bypassing the duplicate check.

        The stored outcome is updated in place. Nothing is broadcast: live
        subscribers re-hydrate from the read API.
        """
        try:
            payload = json.loads(entry.event_data)
            record = RawJournalRecord.from_payload(payload)
        except (json.JSONDecodeError, ValueError, AttributeError):
            logger.warning("Stored entry %s is not a journal object", entry.identity_key)
            return ProcessOutcome.INVALID

        outcome, applied = await self._apply(record)
        callsign = applied.callsign if applied else None
        if outcome.value != entry.outcome or callsign != entry.callsign:
            await self.store.set_entry_outcome(entry.identity_key, outcome.value, callsign)
        return outcome

    async def _apply(self, record: RawJournalRecord) -> tuple[ProcessOutcome, _Applied | None]:
        event = classify(record)
        if event is None:
            if is_carrier_event(record.event_type):
                return ProcessOutcome.INVALID, None
            return ProcessOutcome.IGNORED, None

        handler = _HANDLERS[type(event)]
        applied = await handler(self, event)
        if applied is None:
            return ProcessOutcome.UNRESOLVED, None
        return ProcessOutcome.APPLIED, applied

    def _count(self, outcome: ProcessOutcome) -> ProcessOutcome:
        self.counts[outcome] += 1
        return outcome

    def get_counts(self) -> dict[str, int]:
        """Per-outcome counters, every outcome present."""
        return {outcome.value: self.counts[outcome] for outcome in ProcessOutcome}

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    async def _resolve(self, event: CarrierEvent) -> str | None:
        callsign = await self.resolver.resolve(event.carrier_id)
        if callsign is None:
            logger.warning(
                "No callsign known for carrier %s; dropping %s",
                event.carrier_id,
                event.event,
                extra={"internal_id": event.carrier_id, "event_type": event.event},
            )
        return callsign

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _on_stats(self, event: CarrierStatsEvent) -> _Applied:
        created = await self.store.create_or_update_by_callsign(
            callsign=event.callsign,
            internal_id=event.carrier_id,
            name=event.name,
            fuel_level=event.fuel_level,
            jump_cooldown=event.jump_cooldown,
            timestamp=event.timestamp,
        )
        self.resolver.remember(event.carrier_id, event.callsign)
        if created:
            logger.info(
                "New carrier %s (%s)",
                event.callsign,
                event.name,
                extra={"callsign": event.callsign, "internal_id": event.carrier_id},
            )
        return _Applied(
            event.callsign,
            CarrierStatsDelta(
                carrier_id=event.callsign,
                timestamp=event.timestamp,
                name=event.name,
                fuel_level=event.fuel_level,
                jump_cooldown=event.jump_cooldown,
            ),
        )

    async def _on_jump(self, event: CarrierJumpEvent) -> _Applied | None:
        callsign = await self._resolve(event)
        if callsign is None:
            return None
        await self.store.update_fields_by_callsign(
            callsign, event.timestamp, current_system=event.star_system
        )
        logger.info("Carrier %s jumped to %s", callsign, event.star_system)
        return _Applied(
            callsign,
            CarrierJumpDelta(carrier_id=callsign, timestamp=event.timestamp, system=event.star_system),
        )

    async def _on_location(self, event: CarrierLocationEvent) -> _Applied | None:
        callsign = await self._resolve(event)
        if callsign is None:
            return None
        await self.store.update_fields_by_callsign(
            callsign, event.timestamp, current_system=event.star_system
        )
        return _Applied(
            callsign,
            CarrierLocationDelta(
                carrier_id=callsign, timestamp=event.timestamp, current_system=event.star_system
            ),
        )

    async def _on_finance(self, event: CarrierFinanceEvent) -> _Applied | None:
        callsign = await self._resolve(event)
        if callsign is None:
            return None
        await self.store.upsert_finance(callsign, event.balance, event.timestamp)
        return _Applied(
            callsign,
            CarrierFinanceDelta(
                carrier_id=callsign,
                timestamp=event.timestamp,
                balance=event.balance,
                reserve_balance=event.reserve_balance,
                available_balance=event.available_balance,
            ),
        )

    async def _on_docking_permission(
        self, event: CarrierDockingPermissionEvent
    ) -> _Applied | None:
        callsign = await self._resolve(event)
        if callsign is None:
            return None

        fields: dict[str, object] = {"notorious_access": event.allow_notorious}
        access = DockingAccess.parse(event.docking_access)
        if access is None:
            logger.warning(
                "Unknown docking access %r for %s; keeping stored value",
                event.docking_access,
                callsign,
            )
        else:
            fields["docking_access"] = access

        await self.store.update_fields_by_callsign(callsign, event.timestamp, **fields)
        return _Applied(
            callsign,
            CarrierDockingPermissionDelta(
                carrier_id=callsign,
                timestamp=event.timestamp,
                docking_access=event.docking_access,
                allow_notorious=event.allow_notorious,
            ),
        )

    async def _on_name_changed(self, event: CarrierNameChangedEvent) -> _Applied | None:
        callsign = await self._resolve(event)
        if callsign is None:
            return None
        await self.store.update_fields_by_callsign(callsign, event.timestamp, name=event.name)
        logger.info("Carrier %s renamed to %s", callsign, event.name)
        return _Applied(
            callsign,
            CarrierNameChangedDelta(carrier_id=callsign, timestamp=event.timestamp, name=event.name),
        )

    async def _on_crew_services(self, event: CarrierCrewServicesEvent) -> _Applied | None:
        callsign = await self._resolve(event)
        if callsign is None:
            return None
        await self.store.upsert_service(
            callsign, event.service_type, event.enables, event.timestamp
        )
        return _Applied(
            callsign,
            CarrierServiceChangedDelta(
                carrier_id=callsign,
                timestamp=event.timestamp,
                service_type=event.service_type,
                enabled=event.enables,
                crew_name=event.crew_name,
            ),
        )


_HANDLERS: dict[type, Handler] = {
    CarrierStatsEvent: JournalEventProcessor._on_stats,
    CarrierJumpEvent: JournalEventProcessor._on_jump,
    CarrierLocationEvent: JournalEventProcessor._on_location,
    CarrierFinanceEvent: JournalEventProcessor._on_finance,
    CarrierDockingPermissionEvent: JournalEventProcessor._on_docking_permission,
    CarrierNameChangedEvent: JournalEventProcessor._on_name_changed,
    CarrierCrewServicesEvent: JournalEventProcessor._on_crew_services,
}


def _check_handlers(handlers: dict[type, Handler]) -> None:
    """Fail at import unless every event variant has exactly one handler."""
    missing = sorted(v.__name__ for v in set(EVENT_VARIANTS) - set(handlers))
    unknown = sorted(t.__name__ for t in set(handlers) - set(EVENT_VARIANTS))
    if missing or unknown:
        raise RuntimeError(f"Handler table mismatch: missing={missing} unknown={unknown}")


_check_handlers(_HANDLERS)
