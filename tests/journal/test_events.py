"""
Tests for typed carrier events and classification.
"""

from __future__ import annotations

import pytest

from carrier_relay.journal.events import (
    EVENT_TYPES,
    CarrierCrewServicesEvent,
    CarrierDockingPermissionEvent,
    CarrierFinanceEvent,
    CarrierJumpEvent,
    CarrierLocationEvent,
    CarrierNameChangedEvent,
    CarrierStatsEvent,
    classify,
    is_carrier_event,
)
from tests.payloads import event_payload, record, stats_payload


class TestEventTypes:
    def test_known_tags(self):
        assert EVENT_TYPES == {
            "CarrierStats",
            "CarrierJump",
            "CarrierLocation",
            "CarrierFinance",
            "CarrierDockingPermission",
            "CarrierNameChange",
            "CarrierNameChanged",
            "CarrierCrewServices",
        }

    def test_is_carrier_event(self):
        assert is_carrier_event("CarrierJump") is True
        assert is_carrier_event("FSDJump") is False


class TestClassify:
    def test_stats(self):
        event = classify(record(stats_payload()))

        assert isinstance(event, CarrierStatsEvent)
        assert event.callsign == "XX-001"
        assert event.carrier_id == "123"
        assert event.name == "Testing"
        assert event.fuel_level == 500
        assert event.jump_cooldown == 0

    def test_stats_numeric_defaults(self):
        payload = stats_payload()
        del payload["FuelLevel"]
        payload["JumpCooldown"] = None

        event = classify(record(payload))

        assert event.fuel_level == 0
        assert event.jump_cooldown == 0

    def test_stats_without_callsign_is_invalid(self):
        payload = stats_payload()
        del payload["Callsign"]

        assert classify(record(payload)) is None

    def test_jump(self):
        event = classify(record(event_payload("CarrierJump", StarSystem="Sol")))

        assert isinstance(event, CarrierJumpEvent)
        assert event.star_system == "Sol"

    @pytest.mark.parametrize("tag", ["CarrierJump", "CarrierLocation"])
    def test_falls_back_to_market_id(self, tag):
        payload = {
            "timestamp": "3310-05-01T12:00:00Z",
            "event": tag,
            "MarketID": 3700000001,
            "StarSystem": "Sol",
        }

        event = classify(record(payload))

        assert event.event == tag
        assert event.carrier_id == "3700000001"

    def test_carrier_id_preferred_over_market_id(self):
        event = classify(record(event_payload("CarrierLocation", MarketID=3700000001, StarSystem="Sol")))

        assert event.carrier_id == "123"

    def test_jump_without_carrier_id_is_invalid(self):
        payload = {"timestamp": "3310-05-01T12:00:00Z", "event": "CarrierJump", "StarSystem": "Sol"}

        assert classify(record(payload)) is None

    def test_location(self):
        event = classify(record(event_payload("CarrierLocation", StarSystem="Achenar")))

        assert isinstance(event, CarrierLocationEvent)
        assert event.star_system == "Achenar"

    def test_finance(self):
        event = classify(
            record(
                event_payload(
                    "CarrierFinance",
                    CarrierBalance=1000,
                    ReserveBalance=200,
                    AvailableBalance=800,
                )
            )
        )

        assert isinstance(event, CarrierFinanceEvent)
        assert (event.balance, event.reserve_balance, event.available_balance) == (1000, 200, 800)

    def test_docking_permission(self):
        event = classify(
            record(
                event_payload(
                    "CarrierDockingPermission", DockingAccess="squadronfriends", AllowNotorious=True
                )
            )
        )

        assert isinstance(event, CarrierDockingPermissionEvent)
        assert event.docking_access == "squadronfriends"
        assert event.allow_notorious is True

    @pytest.mark.parametrize("tag", ["CarrierNameChange", "CarrierNameChanged"])
    def test_name_change_spellings(self, tag):
        event = classify(record(event_payload(tag, Name="New Name", Callsign="XX-001")))

        assert isinstance(event, CarrierNameChangedEvent)
        assert event.name == "New Name"

    @pytest.mark.parametrize(
        ("operation", "enables"),
        [("Activate", True), ("activate", True), ("Deactivate", False), ("Pause", False)],
    )
    def test_crew_services(self, operation, enables):
        event = classify(
            record(
                event_payload(
                    "CarrierCrewServices", CrewRole="refuel", Operation=operation, CrewName="Bob"
                )
            )
        )

        assert isinstance(event, CarrierCrewServicesEvent)
        assert event.service_type == "refuel"
        assert event.crew_name == "Bob"
        assert event.enables is enables

    def test_unknown_tag_returns_none(self):
        payload = {"timestamp": "3310-05-01T12:00:00Z", "event": "Music", "MusicTrack": "Exploration"}

        assert classify(record(payload)) is None

    def test_string_carrier_id_is_stripped(self):
        event = classify(record(event_payload("CarrierJump", carrier_id=" 42 ", StarSystem="Sol")))

        assert event.carrier_id == "42"

    def test_boolean_carrier_id_rejected(self):
        assert classify(record(event_payload("CarrierJump", carrier_id=True, StarSystem="Sol"))) is None

    def test_events_are_frozen(self):
        event = classify(record(event_payload("CarrierJump", StarSystem="Sol")))

        with pytest.raises(Exception):
            event.star_system = "Achenar"
