"""
Change Broadcaster.

Per-callsign publish/subscribe for live carrier deltas. Every subscriber owns
a bounded asyncio queue; when it is full the new delta is dropped for that
subscriber only. Delivery is at-most-once and best effort: the carrier store
stays authoritative and late or lagging subscribers re-hydrate from the read
API.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, ClassVar

from ..core.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Deltas
# =============================================================================


@dataclass(frozen=True)
class CarrierDelta:
    """Base for named delta payloads. ``carrier_id`` is the callsign."""

    event: ClassVar[str] = ""

    carrier_id: str
    timestamp: str

    def to_payload(self) -> dict[str, Any]:
        """Wire form: camelCase keys, ``carrierId`` first, ``timestamp`` last."""
        body = {"carrierId": self.carrier_id}
        body.update(self._fields())
        body["timestamp"] = self.timestamp
        return body

    def _fields(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class CarrierJumpDelta(CarrierDelta):
    event: ClassVar[str] = "carrier_jump"

    system: str = ""

    def _fields(self) -> dict[str, Any]:
        return {"system": self.system}


@dataclass(frozen=True)
class CarrierLocationDelta(CarrierDelta):
    event: ClassVar[str] = "carrier_location_changed"

    current_system: str = ""

    def _fields(self) -> dict[str, Any]:
        return {"currentSystem": self.current_system}


@dataclass(frozen=True)
class CarrierStatsDelta(CarrierDelta):
    event: ClassVar[str] = "carrier_stats"

    name: str = ""
    fuel_level: int = 0
    jump_cooldown: int = 0

    def _fields(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "fuelLevel": self.fuel_level,
            "jumpCooldown": self.jump_cooldown,
        }


@dataclass(frozen=True)
class CarrierFinanceDelta(CarrierDelta):
    event: ClassVar[str] = "carrier_finance"

    balance: int = 0
    reserve_balance: int | None = None
    available_balance: int | None = None

    def _fields(self) -> dict[str, Any]:
        return {
            "balance": self.balance,
            "reserveBalance": self.reserve_balance,
            "availableBalance": self.available_balance,
        }


@dataclass(frozen=True)
class CarrierDockingPermissionDelta(CarrierDelta):
    event: ClassVar[str] = "carrier_docking_permission"

    docking_access: str = "all"
    allow_notorious: bool = False

    def _fields(self) -> dict[str, Any]:
        return {
            "dockingAccess": self.docking_access,
            "allowNotorious": self.allow_notorious,
        }


@dataclass(frozen=True)
class CarrierNameChangedDelta(CarrierDelta):
    event: ClassVar[str] = "carrier_name_changed"

    name: str = ""

    def _fields(self) -> dict[str, Any]:
        return {"name": self.name}


@dataclass(frozen=True)
class CarrierServiceChangedDelta(CarrierDelta):
    event: ClassVar[str] = "carrier_service_changed"

    service_type: str = ""
    enabled: bool = False
    crew_name: str | None = None

    def _fields(self) -> dict[str, Any]:
        return {
            "serviceType": self.service_type,
            "enabled": self.enabled,
            "crewName": self.crew_name,
        }


# =============================================================================
# Subscriptions
# =============================================================================


@dataclass
class BroadcastMetrics:
    """Counters for observability."""

    published: int = 0
    delivered: int = 0
    dropped: int = 0


class Subscription:
    """
    One subscriber's view of a callsign topic.

    Iterate with ``async for delta in subscription`` or call ``get()``.
    Iteration ends once the subscription is closed and drained.
    """

    _ids = itertools.count(1)

    def __init__(self, callsign: str, maxsize: int):
        self.id = next(self._ids)
        self.callsign = callsign
        self._queue: asyncio.Queue[CarrierDelta | None] = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, callsign={self.callsign!r}, closed={self.closed})"

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, delta: CarrierDelta) -> bool:
        """Queue a delta without blocking. False if closed or full."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(delta)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def get(self) -> CarrierDelta | None:
        """Wait for the next delta; None once closed and drained."""
        if self.closed and self._queue.empty():
            return None
        delta = await self._queue.get()
        if delta is None:
            # Re-arm the sentinel for any other waiter
            self._queue.put_nowait(None)
        return delta

    def get_nowait(self) -> CarrierDelta | None:
        """Next queued delta, or None if nothing is queued."""
        try:
            delta = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        if delta is None:
            self._queue.put_nowait(None)
        return delta

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Wake waiters; make room for the sentinel if the queue is full
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[CarrierDelta]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[CarrierDelta]:
        while True:
            delta = await self.get()
            if delta is None:
                return
            yield delta


@dataclass
class ChangeBroadcaster:
    """
    Topic-per-callsign fan-out.

    Publishing never blocks and never raises for a slow or closed subscriber.
    """

    queue_size: int = 100
    metrics: BroadcastMetrics = field(default_factory=BroadcastMetrics)
    _topics: dict[str, list[Subscription]] = field(default_factory=lambda: defaultdict(list))

    @classmethod
    def from_settings(cls) -> ChangeBroadcaster:
        from ..core.config import get_settings

        return cls(queue_size=get_settings().subscriber_queue_size)

    def subscribe(self, callsign: str) -> Subscription:
        """Subscribe to deltas for one callsign."""
        subscription = Subscription(callsign, maxsize=self.queue_size)
        self._topics[callsign].append(subscription)
        logger.info("Subscriber %d joined carrier %s", subscription.id, callsign)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription and close it. Unknown subscriptions are ignored."""
        subscribers = self._topics.get(subscription.callsign)
        if subscribers and subscription in subscribers:
            subscribers.remove(subscription)
            if not subscribers:
                del self._topics[subscription.callsign]
            logger.info(
                "Subscriber %d left carrier %s", subscription.id, subscription.callsign
            )
        subscription.close()

    def subscriber_count(self, callsign: str | None = None) -> int:
        if callsign is not None:
            return len(self._topics.get(callsign, ()))
        return sum(len(subs) for subs in self._topics.values())

    def publish(self, callsign: str, delta: CarrierDelta) -> int:
        """
        Deliver a delta to every subscriber of ``callsign``.

        Returns:
            Number of subscribers that accepted the delta
        """
        self.metrics.published += 1
        delivered = 0
        for subscription in list(self._topics.get(callsign, ())):
            if subscription.offer(delta):
                delivered += 1
            else:
                self.metrics.dropped += 1
                logger.warning(
                    "Dropped %s for subscriber %d on %s (queue full)",
                    delta.event,
                    subscription.id,
                    callsign,
                )
        self.metrics.delivered += delivered
        logger.debug("Published %s for %s to %d subscriber(s)", delta.event, callsign, delivered)
        return delivered

    def close(self) -> None:
        """Close every subscription (shutdown)."""
        for subscribers in list(self._topics.values()):
            for subscription in subscribers:
                subscription.close()
        self._topics.clear()


# =============================================================================
# Singleton Accessor
# =============================================================================

_broadcaster: ChangeBroadcaster | None = None


def get_broadcaster() -> ChangeBroadcaster:
    """Get the process-wide broadcaster."""
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = ChangeBroadcaster.from_settings()
    return _broadcaster


def reset_broadcaster() -> None:
    """Close and drop the process-wide broadcaster (for testing)."""
    global _broadcaster
    if _broadcaster is not None:
        _broadcaster.close()
    _broadcaster = None
