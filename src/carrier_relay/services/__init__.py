"""
Carrier Relay Services.

Outward-facing surfaces over the carrier repository:
- ChangeBroadcaster: per-callsign live deltas
- CarrierStateReader: full state for hydration
"""

from .broadcaster import (
    BroadcastMetrics,
    CarrierDelta,
    CarrierDockingPermissionDelta,
    CarrierFinanceDelta,
    CarrierJumpDelta,
    CarrierLocationDelta,
    CarrierNameChangedDelta,
    CarrierServiceChangedDelta,
    CarrierStatsDelta,
    ChangeBroadcaster,
    Subscription,
    get_broadcaster,
    reset_broadcaster,
)
from .carrier_state import CarrierStateReader

__all__ = [
    "ChangeBroadcaster",
    "Subscription",
    "BroadcastMetrics",
    "get_broadcaster",
    "reset_broadcaster",
    "CarrierStateReader",
    "CarrierDelta",
    "CarrierJumpDelta",
    "CarrierLocationDelta",
    "CarrierStatsDelta",
    "CarrierFinanceDelta",
    "CarrierDockingPermissionDelta",
    "CarrierNameChangedDelta",
    "CarrierServiceChangedDelta",
]
