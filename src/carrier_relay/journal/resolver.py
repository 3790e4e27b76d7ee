"""
Identity Resolver.

Most carrier events identify the carrier only by its numeric internal id;
only CarrierStats carries the callsign the repository is keyed on. The
resolver maps internal id -> callsign, in memory first and then through the
store's internal_id index.
"""

from __future__ import annotations

from ..core.logging import get_logger
from ..store.protocol import CarrierStore

logger = get_logger(__name__)


class IdentityResolver:
    """
    Cached internal id -> callsign lookup.

    The cache is only an accelerator: the store's internal_id column is
    authoritative and already one-to-one, so a rebuilt resolver resolves
    exactly what the old one did.
    """

    def __init__(self, store: CarrierStore):
        self._store = store
        self._cache: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._cache)

    async def resolve(self, internal_id: str) -> str | None:
        """
        Find the callsign currently associated with an internal id.

        Returns:
            Callsign, or None if no CarrierStats has yet introduced this id
        """
        cached = self._cache.get(internal_id)
        if cached is not None:
            return cached

        carrier = await self._store.find_by_internal_id(internal_id)
        if carrier is None:
            return None

        self._cache[internal_id] = carrier.callsign
        return carrier.callsign

    def remember(self, internal_id: str, callsign: str) -> None:
        """Record an association just written by a stats event."""
        # A callsign has one internal id: drop any stale mapping onto it
        for stale_id in [k for k, v in self._cache.items() if v == callsign and k != internal_id]:
            del self._cache[stale_id]

        previous = self._cache.get(internal_id)
        if previous is not None and previous != callsign:
            logger.info("Internal id %s moved from %s to %s", internal_id, previous, callsign)
        self._cache[internal_id] = callsign

    def clear(self) -> None:
        """Forget every cached association."""
        self._cache.clear()
