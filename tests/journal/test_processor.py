"""
Tests for JournalEventProcessor.

Covers handler semantics, identity gating, idempotence and broadcasting.
"""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock

import pytest

from carrier_relay.journal.processor import (
    _HANDLERS,
    JournalEventProcessor,
    ProcessOutcome,
    _check_handlers,
)
from carrier_relay.services.broadcaster import (
    CarrierDockingPermissionDelta,
    CarrierFinanceDelta,
    CarrierJumpDelta,
    CarrierStatsDelta,
)
from carrier_relay.store import DockingAccess
from tests.payloads import CALLSIGN, event_payload, record, stats_payload

pytestmark = pytest.mark.asyncio


async def _establish(processor: JournalEventProcessor, **kwargs) -> None:
    assert await processor.process(record(stats_payload(**kwargs))) is ProcessOutcome.APPLIED


async def _entries(store) -> list:
    return [entry async for entry in store.iter_entries()]


class TestScenarios:
    async def test_stats_then_jump(self, processor, store, broadcaster):
        subscription = broadcaster.subscribe(CALLSIGN)

        await processor.process(
            record(
                {
                    "timestamp": "3310-05-01T12:00:00Z",
                    "event": "CarrierStats",
                    "Callsign": "XX-001",
                    "CarrierID": 123,
                    "Name": "Testing",
                    "FuelLevel": 500,
                    "JumpCooldown": 0,
                }
            )
        )
        outcome = await processor.process(
            record(
                {
                    "timestamp": "3310-05-01T12:10:00Z",
                    "event": "CarrierJump",
                    "CarrierID": 123,
                    "StarSystem": "Sol",
                }
            )
        )

        assert outcome is ProcessOutcome.APPLIED
        carrier = await store.find_by_callsign("XX-001")
        assert carrier.current_system == "Sol"

        stats_delta = subscription.get_nowait()
        jump_delta = subscription.get_nowait()
        assert isinstance(stats_delta, CarrierStatsDelta)
        assert isinstance(jump_delta, CarrierJumpDelta)
        assert jump_delta.event == "carrier_jump"
        assert jump_delta.to_payload() == {
            "carrierId": "XX-001",
            "system": "Sol",
            "timestamp": "3310-05-01T12:10:00Z",
        }

    async def test_jump_for_unknown_carrier(self, processor, store, broadcaster, caplog):
        outcome = await processor.process(
            record(
                {
                    "timestamp": "3310-05-01T12:10:00Z",
                    "event": "CarrierJump",
                    "CarrierID": 999,
                    "StarSystem": "Sol",
                }
            )
        )

        assert outcome is ProcessOutcome.UNRESOLVED
        assert await store.list_callsigns() == []
        assert broadcaster.metrics.published == 0
        assert any(
            r.levelno == logging.WARNING and "999" in r.getMessage() for r in caplog.records
        )

    async def test_crew_service_activation(self, processor, store):
        await _establish(processor)

        await processor.process(
            record(
                event_payload(
                    "CarrierCrewServices", CrewRole="refuel", Operation="Activate", CrewName="Bob"
                )
            )
        )

        services = await store.get_services("XX-001")
        assert [(s.service_type, s.enabled) for s in services] == [("refuel", True)]


class TestIdempotence:
    async def test_same_record_twice(self, processor, store, broadcaster):
        subscription = broadcaster.subscribe(CALLSIGN)
        await _establish(processor)
        jump = record(event_payload("CarrierJump", StarSystem="Sol"))

        assert await processor.process(jump) is ProcessOutcome.APPLIED
        before = await store.find_by_callsign(CALLSIGN)
        assert await processor.process(jump) is ProcessOutcome.DUPLICATE

        assert await store.find_by_callsign(CALLSIGN) == before
        assert subscription.pending == 2  # stats + one jump
        assert len(await _entries(store)) == 2

    async def test_replaying_a_handler_leaves_same_state(self, processor, store):
        await _establish(processor)
        await processor.process(record(event_payload("CarrierFinance", CarrierBalance=100)))
        state = (await store.find_by_callsign(CALLSIGN), await store.get_finance(CALLSIGN))

        for entry in await _entries(store):
            await processor.reprocess_entry(entry)
        for entry in await _entries(store):
            await processor.reprocess_entry(entry)

        assert (await store.find_by_callsign(CALLSIGN), await store.get_finance(CALLSIGN)) == state


class TestIdentity:
    async def test_events_before_stats_do_not_mutate(self, processor, store, broadcaster):
        for payload in [
            event_payload("CarrierJump", StarSystem="Sol"),
            event_payload("CarrierLocation", StarSystem="Sol"),
            event_payload("CarrierFinance", CarrierBalance=100),
            event_payload("CarrierDockingPermission", DockingAccess="friends"),
            event_payload("CarrierNameChange", Name="Early"),
            event_payload("CarrierCrewServices", CrewRole="refuel", Operation="Activate"),
        ]:
            assert await processor.process(record(payload)) is ProcessOutcome.UNRESOLVED

        assert await store.list_callsigns() == []
        assert broadcaster.metrics.published == 0

        entries = await _entries(store)
        assert len(entries) == 6
        assert all(e.outcome == "unresolved" and e.callsign is None for e in entries)

    async def test_reassociation_keeps_old_carrier_fields(self, processor, store):
        await _establish(processor, callsign="XX-001", name="First")
        await processor.process(record(event_payload("CarrierJump", StarSystem="Sol")))

        await _establish(
            processor,
            callsign="YY-002",
            name="Second",
            timestamp="3310-05-02T12:00:00Z",
        )
        await processor.process(
            record(
                event_payload(
                    "CarrierJump", timestamp="3310-05-02T12:10:00Z", StarSystem="Achenar"
                )
            )
        )

        old = await store.find_by_callsign("XX-001")
        new = await store.find_by_callsign("YY-002")
        assert (old.callsign, old.name, old.current_system) == ("XX-001", "First", "Sol")
        assert (new.callsign, new.name, new.current_system) == ("YY-002", "Second", "Achenar")

    async def test_failed_stats_keeps_previous_owner(self, processor, store):
        await _establish(processor, callsign="AA-001", carrier_id=7)

        with pytest.raises(OverflowError):
            await processor.process(
                record(
                    stats_payload(
                        callsign="BB-002",
                        carrier_id=7,
                        fuel=10**20,
                        timestamp="3310-05-01T12:01:00Z",
                    )
                )
            )
        outcome = await processor.process(
            record(
                event_payload(
                    "CarrierJump", carrier_id=7, timestamp="3310-05-01T12:02:00Z", StarSystem="Sol"
                )
            )
        )

        assert outcome is ProcessOutcome.APPLIED
        assert (await store.find_by_callsign("AA-001")).current_system == "Sol"
        assert await store.find_by_callsign("BB-002") is None

    async def test_stats_updates_never_change_callsign(self, processor, store):
        await _establish(processor, name="Before")
        await _establish(processor, name="After", fuel=100, timestamp="3310-05-02T00:00:00Z")

        assert await store.list_callsigns() == [CALLSIGN]
        carrier = await store.find_by_callsign(CALLSIGN)
        assert (carrier.name, carrier.fuel_level) == ("After", 100)


class TestHandlers:
    async def test_finance_last_write_wins(self, processor, store, broadcaster):
        subscription = broadcaster.subscribe(CALLSIGN)
        await _establish(processor)

        await processor.process(
            record(
                event_payload(
                    "CarrierFinance",
                    timestamp="3310-05-01T12:01:00Z",
                    CarrierBalance=100,
                    ReserveBalance=10,
                    AvailableBalance=90,
                )
            )
        )
        await processor.process(
            record(event_payload("CarrierFinance", timestamp="3310-05-01T12:02:00Z", CarrierBalance=50))
        )

        assert (await store.get_finance(CALLSIGN)).balance == 50

        subscription.get_nowait()  # stats
        first = subscription.get_nowait()
        assert isinstance(first, CarrierFinanceDelta)
        assert first.to_payload() == {
            "carrierId": CALLSIGN,
            "balance": 100,
            "reserveBalance": 10,
            "availableBalance": 90,
            "timestamp": "3310-05-01T12:01:00Z",
        }

    async def test_finance_and_services_stamp_last_updated(self, processor, store):
        await _establish(processor)

        await processor.process(
            record(event_payload("CarrierFinance", timestamp="3310-05-01T12:01:00Z", CarrierBalance=100))
        )
        assert (await store.find_by_callsign(CALLSIGN)).last_updated == "3310-05-01T12:01:00Z"

        await processor.process(
            record(
                event_payload(
                    "CarrierCrewServices",
                    timestamp="3310-05-01T12:02:00Z",
                    CrewRole="refuel",
                    Operation="Activate",
                    CrewName="Bob",
                )
            )
        )
        assert (await store.find_by_callsign(CALLSIGN)).last_updated == "3310-05-01T12:02:00Z"

    async def test_location_updates_system(self, processor, store, broadcaster):
        subscription = broadcaster.subscribe(CALLSIGN)
        await _establish(processor)

        await processor.process(record(event_payload("CarrierLocation", StarSystem="Achenar")))

        assert (await store.find_by_callsign(CALLSIGN)).current_system == "Achenar"
        subscription.get_nowait()
        assert subscription.get_nowait().to_payload()["currentSystem"] == "Achenar"

    async def test_docking_permission(self, processor, store):
        await _establish(processor)

        await processor.process(
            record(
                event_payload(
                    "CarrierDockingPermission", DockingAccess="SquadronFriends", AllowNotorious=True
                )
            )
        )

        carrier = await store.find_by_callsign(CALLSIGN)
        assert carrier.docking_access is DockingAccess.SQUADRON_FRIENDS
        assert carrier.notorious_access is True

    async def test_unknown_docking_access_keeps_stored_value(
        self, processor, store, broadcaster, caplog
    ):
        subscription = broadcaster.subscribe(CALLSIGN)
        await _establish(processor)

        outcome = await processor.process(
            record(
                event_payload(
                    "CarrierDockingPermission", DockingAccess="nobody", AllowNotorious=True
                )
            )
        )

        assert outcome is ProcessOutcome.APPLIED
        carrier = await store.find_by_callsign(CALLSIGN)
        assert carrier.docking_access is DockingAccess.ALL
        assert carrier.notorious_access is True
        assert any("nobody" in r.getMessage() for r in caplog.records)

        subscription.get_nowait()
        delta = subscription.get_nowait()
        assert isinstance(delta, CarrierDockingPermissionDelta)
        assert delta.docking_access == "nobody"

    async def test_name_change(self, processor, store, broadcaster):
        subscription = broadcaster.subscribe(CALLSIGN)
        await _establish(processor)

        await processor.process(record(event_payload("CarrierNameChanged", Name="Renamed")))

        assert (await store.find_by_callsign(CALLSIGN)).name == "Renamed"
        subscription.get_nowait()
        assert subscription.get_nowait().event == "carrier_name_changed"

    async def test_crew_deactivate(self, processor, store, broadcaster):
        subscription = broadcaster.subscribe(CALLSIGN)
        await _establish(processor)

        await processor.process(
            record(
                event_payload(
                    "CarrierCrewServices",
                    timestamp="3310-05-01T12:01:00Z",
                    CrewRole="refuel",
                    Operation="Activate",
                )
            )
        )
        await processor.process(
            record(
                event_payload(
                    "CarrierCrewServices",
                    timestamp="3310-05-01T12:02:00Z",
                    CrewRole="refuel",
                    Operation="Pause",
                    CrewName="Bob",
                )
            )
        )

        services = await store.get_services(CALLSIGN)
        assert [(s.service_type, s.enabled) for s in services] == [("refuel", False)]

        for _ in range(2):
            subscription.get_nowait()
        assert subscription.get_nowait().to_payload() == {
            "carrierId": CALLSIGN,
            "serviceType": "refuel",
            "enabled": False,
            "crewName": "Bob",
            "timestamp": "3310-05-01T12:02:00Z",
        }


class TestOutcomes:
    async def test_unknown_event_is_stored_and_ignored(self, processor, store):
        outcome = await processor.process(
            record({"timestamp": "3310-05-01T12:00:00Z", "event": "Music", "MusicTrack": "Combat"}),
            source_file="Journal.2026-01-15T120000.01.log",
        )

        assert outcome is ProcessOutcome.IGNORED
        (entry,) = await _entries(store)
        assert entry.event_type == "Music"
        assert entry.outcome == "ignored"
        assert entry.source_file == "Journal.2026-01-15T120000.01.log"

    async def test_invalid_carrier_event(self, processor, store):
        outcome = await processor.process(
            record({"timestamp": "3310-05-01T12:00:00Z", "event": "CarrierJump", "StarSystem": "Sol"})
        )

        assert outcome is ProcessOutcome.INVALID
        assert (await _entries(store))[0].outcome == "invalid"

    async def test_counts(self, processor):
        await _establish(processor)
        await processor.process(record(stats_payload()))
        await processor.process(record(event_payload("CarrierJump", carrier_id=999, StarSystem="Sol")))

        counts = processor.get_counts()

        assert counts["applied"] == 1
        assert counts["duplicate"] == 1
        assert counts["unresolved"] == 1
        assert counts["ignored"] == 0

    async def test_applied_entry_records_callsign(self, processor, store):
        await _establish(processor)

        (entry,) = await _entries(store)

        assert entry.callsign == CALLSIGN
        assert entry.outcome == "applied"


class TestReprocess:
    async def test_unresolved_entry_applies_after_stats(self, processor, store):
        await processor.process(
            record(event_payload("CarrierJump", timestamp="3310-05-01T11:00:00Z", StarSystem="Sol"))
        )
        await _establish(processor)

        outcomes = [await processor.reprocess_entry(e) for e in await _entries(store)]

        assert outcomes == [ProcessOutcome.APPLIED, ProcessOutcome.APPLIED]
        assert (await store.find_by_callsign(CALLSIGN)).current_system == "Sol"
        assert all(e.outcome == "applied" for e in await _entries(store))

    async def test_reprocess_does_not_broadcast(self, processor, store, broadcaster):
        await _establish(processor)
        subscription = broadcaster.subscribe(CALLSIGN)

        for entry in await _entries(store):
            await processor.reprocess_entry(entry)

        assert subscription.pending == 0


class TestErrors:
    async def test_store_errors_propagate(self, broadcaster):
        store = AsyncMock()
        store.has_entry.return_value = False
        store.create_or_update_by_callsign.side_effect = RuntimeError("disk full")
        processor = JournalEventProcessor(store, broadcaster=broadcaster)

        with pytest.raises(RuntimeError):
            await processor.process(record(stats_payload()))

        store.append_entry.assert_not_awaited()


class TestHandlerTable:
    async def test_every_variant_has_a_handler(self):
        _check_handlers(_HANDLERS)

    async def test_missing_handlers_fail(self):
        with pytest.raises(RuntimeError, match="missing"):
            _check_handlers({})

    async def test_unknown_handler_fails(self):
        with pytest.raises(RuntimeError, match="unknown=\\['int'\\]"):
            _check_handlers({**_HANDLERS, int: None})
