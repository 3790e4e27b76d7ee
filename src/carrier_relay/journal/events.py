"""
Typed Carrier Journal Events.

Each carrier-related journal tag maps onto one pydantic model; together they
form a discriminated union on the ``event`` field. ``classify`` turns a raw
record into one of these variants, or None when the tag is not a carrier
event the relay understands (forward compatible with new game events).

Field names follow the game's journal (``CarrierID``, ``StarSystem``...) via
aliases; attributes are snake_case.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union, get_args

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from ..core.logging import get_logger
from .records import RawJournalRecord

logger = get_logger(__name__)


# =============================================================================
# Base
# =============================================================================


class _JournalEvent(BaseModel):
    """Fields shared by every carrier event."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    timestamp: str
    carrier_id: str = Field(alias="CarrierID")

    @field_validator("carrier_id", mode="before")
    @classmethod
    def normalize_carrier_id(cls, v: Any) -> Any:
        """The game writes CarrierID as an integer; the relay keys on strings."""
        if isinstance(v, bool):
            raise ValueError("CarrierID must be a number or string")
        if isinstance(v, int):
            return str(v)
        if isinstance(v, str) and v.strip():
            return v.strip()
        raise ValueError("CarrierID must be a non-empty number or string")


# =============================================================================
# Variants
# =============================================================================


class CarrierStatsEvent(_JournalEvent):
    """The only event that carries a callsign, so the only one that can create a carrier."""

    event: Literal["CarrierStats"]
    callsign: str = Field(alias="Callsign", min_length=1)
    name: str = Field(default="", alias="Name")
    fuel_level: int = Field(default=0, alias="FuelLevel")
    jump_cooldown: int = Field(default=0, alias="JumpCooldown")

    @field_validator("fuel_level", "jump_cooldown", mode="before")
    @classmethod
    def null_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class _MarketIdFallback(_JournalEvent):
    """Events the game may report with MarketID instead of CarrierID."""

    @model_validator(mode="before")
    @classmethod
    def market_id_fallback(cls, data: Any) -> Any:
        # When docked on the carrier the game reports it by MarketID only
        if isinstance(data, dict) and data.get("CarrierID") is None and "MarketID" in data:
            data = {**data, "CarrierID": data["MarketID"]}
        return data


class CarrierJumpEvent(_MarketIdFallback):
    """Jump completed."""

    event: Literal["CarrierJump"]
    star_system: str = Field(alias="StarSystem")


class CarrierLocationEvent(_MarketIdFallback):
    """Explicit location report (e.g. on login)."""

    event: Literal["CarrierLocation"]
    star_system: str = Field(alias="StarSystem")


class CarrierFinanceEvent(_JournalEvent):
    """Balance report. Only ``balance`` is persisted."""

    event: Literal["CarrierFinance"]
    balance: int = Field(alias="CarrierBalance")
    reserve_balance: Optional[int] = Field(default=None, alias="ReserveBalance")
    available_balance: Optional[int] = Field(default=None, alias="AvailableBalance")


class CarrierDockingPermissionEvent(_JournalEvent):
    """Docking rules changed."""

    event: Literal["CarrierDockingPermission"]
    docking_access: str = Field(alias="DockingAccess")
    allow_notorious: bool = Field(default=False, alias="AllowNotorious")


class CarrierNameChangedEvent(_JournalEvent):
    """Display name changed. The game has used both tag spellings."""

    event: Literal["CarrierNameChange", "CarrierNameChanged"]
    name: str = Field(alias="Name")


class CarrierCrewServicesEvent(_JournalEvent):
    """A crew role (service) was activated, deactivated, paused..."""

    event: Literal["CarrierCrewServices"]
    service_type: str = Field(alias="CrewRole", min_length=1)
    operation: str = Field(alias="Operation")
    crew_name: Optional[str] = Field(default=None, alias="CrewName")

    @property
    def enables(self) -> bool:
        """True only for the Activate operation."""
        return self.operation.lower() == "activate"


CarrierEvent = Annotated[
    Union[
        CarrierStatsEvent,
        CarrierJumpEvent,
        CarrierLocationEvent,
        CarrierFinanceEvent,
        CarrierDockingPermissionEvent,
        CarrierNameChangedEvent,
        CarrierCrewServicesEvent,
    ],
    Field(discriminator="event"),
]

EVENT_VARIANTS: tuple[type[_JournalEvent], ...] = (
    CarrierStatsEvent,
    CarrierJumpEvent,
    CarrierLocationEvent,
    CarrierFinanceEvent,
    CarrierDockingPermissionEvent,
    CarrierNameChangedEvent,
    CarrierCrewServicesEvent,
)

_ADAPTER: TypeAdapter[CarrierEvent] = TypeAdapter(CarrierEvent)


def _tags_for(variant: type[_JournalEvent]) -> tuple[str, ...]:
    return get_args(variant.model_fields["event"].annotation)


EVENT_TYPES: frozenset[str] = frozenset(
    tag for variant in EVENT_VARIANTS for tag in _tags_for(variant)
)
"""Every journal tag the relay understands."""


# =============================================================================
# Classification
# =============================================================================


def is_carrier_event(event_type: str) -> bool:
    """Check whether a journal tag is one the relay handles."""
    return event_type in EVENT_TYPES


def classify(record: RawJournalRecord) -> CarrierEvent | None:
    """
    Map a raw record onto its typed event.

    Returns:
        The typed event, or None for unknown tags and for known tags whose
        payload lacks required fields
    """
    if not is_carrier_event(record.event_type):
        return None

    try:
        return _ADAPTER.validate_python(record.payload)
    except ValidationError as e:
        logger.debug(
            "Discarding malformed %s record: %s",
            record.event_type,
            e.errors(include_url=False),
        )
        return None
