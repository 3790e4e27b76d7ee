"""
Carrier CLI Commands.

Read commands over the carrier repository, and a live delta stream.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from ..core import format_credits, get_utc_timestamp
from ..core.logging import get_logger

logger = get_logger(__name__)


def cmd_carrier_list(args: argparse.Namespace) -> dict:
    """List every known carrier."""
    from ..services.carrier_state import CarrierStateReader
    from ..store import SQLiteCarrierStore

    async def run():
        async with SQLiteCarrierStore() as store:
            return await CarrierStateReader(store).list_carriers()

    carriers = asyncio.run(run())
    return {
        "carriers": carriers,
        "count": len(carriers),
        "query_timestamp": get_utc_timestamp(),
    }


def cmd_carrier_show(args: argparse.Namespace) -> dict:
    """Show the full state of one carrier."""
    from ..services.carrier_state import CarrierStateReader
    from ..store import SQLiteCarrierStore

    callsign = args.callsign.strip().upper()

    async def run():
        async with SQLiteCarrierStore() as store:
            return await CarrierStateReader(store).get_carrier(callsign)

    state = asyncio.run(run())
    if state is None:
        return {
            "error": "carrier_not_found",
            "message": f"No carrier with callsign {callsign}",
            "query_timestamp": get_utc_timestamp(),
        }

    finance = state.get("finance")
    if finance is not None:
        finance["balance_display"] = format_credits(finance["balance"])

    return {
        "carrier": state,
        "query_timestamp": get_utc_timestamp(),
    }


def cmd_carrier_watch(args: argparse.Namespace) -> dict:
    """
    Stream live deltas for one carrier as JSON lines (tail -f style).

    Runs journal ingestion in the foreground. Use Ctrl+C to stop.
    """
    from ..journal.service import JournalIngestService
    from ..services.carrier_state import CarrierStateReader
    from .journal import wait_for_shutdown

    callsign = args.callsign.strip().upper()
    service = JournalIngestService()
    if service.journal_path is None or not service.journal_path.is_dir():
        return {
            "error": "journal_path_missing",
            "message": f"Journal directory not available: {service.journal_path}",
            "query_timestamp": get_utc_timestamp(),
        }

    def emit(data: dict) -> None:
        print(json.dumps(data, separators=(",", ":")), flush=True)

    async def pump(subscription) -> None:
        async for delta in subscription:
            emit({"event": delta.event, **delta.to_payload()})

    async def run() -> None:
        subscription = service.broadcaster.subscribe(callsign)
        pump_task = asyncio.create_task(pump(subscription))
        try:
            await service.start(watch=True)
            snapshot = await CarrierStateReader(service.store).get_carrier(callsign)
            emit({"event": "carrier_state", "carrierId": callsign, "state": snapshot})
            await wait_for_shutdown()
        finally:
            service.broadcaster.unsubscribe(subscription)
            await pump_task
            await service.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
    return {}


# =============================================================================
# Parser Registration
# =============================================================================


def register_parsers(subparsers) -> None:
    """Register carrier command parsers."""

    # carrier-list
    list_parser = subparsers.add_parser(
        "carrier-list",
        help="List known carriers",
    )
    list_parser.set_defaults(func=cmd_carrier_list)

    # carrier-show
    show_parser = subparsers.add_parser(
        "carrier-show",
        help="Show full carrier state",
    )
    show_parser.add_argument("callsign", help="Carrier callsign (e.g. XX-001)")
    show_parser.set_defaults(func=cmd_carrier_show)

    # carrier-watch
    watch_parser = subparsers.add_parser(
        "carrier-watch",
        help="Stream live carrier deltas as JSON lines",
    )
    watch_parser.add_argument("callsign", help="Carrier callsign (e.g. XX-001)")
    watch_parser.set_defaults(func=cmd_carrier_watch)
