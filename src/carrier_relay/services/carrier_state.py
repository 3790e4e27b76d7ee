"""
Carrier State Read API.

Full current state for hydration. Callers read a snapshot here, then follow
the change broadcaster for deltas.
"""

from __future__ import annotations

from typing import Any

from ..store.protocol import CarrierStore


class CarrierStateReader:
    """Read-only view over the carrier repository."""

    def __init__(self, store: CarrierStore):
        self.store = store

    async def get_carrier(self, callsign: str) -> dict[str, Any] | None:
        """
        Hydrated state for one carrier.

        Returns:
            Carrier fields plus ``finance`` and ``services``, or None if unknown
        """
        carrier = await self.store.find_by_callsign(callsign)
        if carrier is None:
            return None

        finance = await self.store.get_finance(callsign)
        services = await self.store.get_services(callsign)

        state = carrier.to_dict()
        state["finance"] = {"balance": finance.balance} if finance else None
        state["services"] = [
            {"serviceType": s.service_type, "enabled": s.enabled} for s in services
        ]
        return state

    async def list_callsigns(self) -> list[str]:
        return await self.store.list_callsigns()

    async def list_carriers(self) -> list[dict[str, Any]]:
        """Summary rows (carrier fields only) for every carrier."""
        return [carrier.to_dict() for carrier in await self.store.list_carriers()]
