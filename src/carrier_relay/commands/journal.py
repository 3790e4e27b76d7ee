"""
Journal CLI Commands.

Commands for running and inspecting the journal ingestion pipeline.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from ..core import get_utc_timestamp
from ..core.logging import get_logger

logger = get_logger(__name__)


async def wait_for_shutdown() -> None:
    """Block until SIGINT or SIGTERM."""
    stop_event = asyncio.Event()

    def signal_handler():
        logger.info("Shutdown signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    await stop_event.wait()


def cmd_journal_ingest(args: argparse.Namespace) -> dict:
    """
    Ingest journal files.

    Without --once, runs as a foreground process watching the journal
    directory. Use Ctrl+C to stop.
    """
    from ..journal.service import JournalIngestService

    service = JournalIngestService(journal_path=args.journal_path)
    if service.journal_path is None:
        return {
            "error": "journal_path_not_configured",
            "message": "Set CARRIER_RELAY_JOURNAL_PATH or pass --journal-path",
            "query_timestamp": get_utc_timestamp(),
        }
    if not service.journal_path.is_dir():
        return {
            "error": "journal_path_missing",
            "message": f"Journal directory does not exist: {service.journal_path}",
            "query_timestamp": get_utc_timestamp(),
        }

    async def run_once() -> dict:
        await service.start(watch=False)
        try:
            return service.get_status().to_dict()
        finally:
            await service.stop()

    async def run_watch() -> None:
        await service.start(watch=True)
        print(f"Watching {service.journal_path} ({service.journal_glob})", file=sys.stderr)
        print("Press Ctrl+C to stop", file=sys.stderr)
        try:
            await wait_for_shutdown()
        finally:
            await service.stop()

    if args.once:
        status = asyncio.run(run_once())
        return {
            "status": "ok",
            "ingest": status,
            "query_timestamp": get_utc_timestamp(),
        }

    try:
        asyncio.run(run_watch())
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
    return {}


def cmd_journal_reprocess(args: argparse.Namespace) -> dict:
    """Replay stored journal entries through the event handlers."""
    from ..journal.events import EVENT_TYPES
    from ..journal.service import JournalIngestService

    event_types = args.event_types or None
    if event_types:
        unknown = sorted(set(event_types) - EVENT_TYPES)
        if unknown:
            return {
                "error": "unknown_event_type",
                "message": f"Not a carrier event: {', '.join(unknown)}",
                "valid_event_types": sorted(EVENT_TYPES),
                "query_timestamp": get_utc_timestamp(),
            }

    service = JournalIngestService()

    async def run() -> dict[str, int]:
        try:
            return await service.reprocess(event_types)
        finally:
            await service.store.close()

    outcomes = asyncio.run(run())
    return {
        "status": "ok",
        "event_types": event_types or "all",
        "reprocessed": sum(outcomes.values()),
        "outcomes": outcomes,
        "query_timestamp": get_utc_timestamp(),
    }


def cmd_journal_status(args: argparse.Namespace) -> dict:
    """Show event store statistics and journal configuration."""
    from ..core.config import get_settings
    from ..store import SQLiteCarrierStore

    settings = get_settings()

    async def run():
        async with SQLiteCarrierStore() as store:
            return await store.get_stats()

    stats = asyncio.run(run())
    return {
        "status": "ok",
        "journal_path": str(settings.journal_path) if settings.journal_path else None,
        "journal_path_exists": bool(settings.journal_path and settings.journal_path.is_dir()),
        "journal_glob": settings.journal_glob,
        "database_path": str(settings.database_path),
        "database_size_bytes": stats.database_size_bytes,
        "total_entries": stats.total_entries,
        "entries_by_type": stats.entries_by_type,
        "unresolved_entries": stats.unresolved_entries,
        "total_carriers": stats.total_carriers,
        "oldest_entry_time": stats.oldest_entry_time,
        "newest_entry_time": stats.newest_entry_time,
        "query_timestamp": get_utc_timestamp(),
    }


# =============================================================================
# Parser Registration
# =============================================================================


def register_parsers(subparsers) -> None:
    """Register journal command parsers."""

    # journal-ingest
    ingest_parser = subparsers.add_parser(
        "journal-ingest",
        help="Ingest journal files (watch until Ctrl+C)",
    )
    ingest_parser.add_argument(
        "--once",
        action="store_true",
        help="Process existing journal files and exit",
    )
    ingest_parser.add_argument(
        "--journal-path",
        help="Journal directory (default: CARRIER_RELAY_JOURNAL_PATH)",
    )
    ingest_parser.set_defaults(func=cmd_journal_ingest)

    # journal-reprocess
    reprocess_parser = subparsers.add_parser(
        "journal-reprocess",
        help="Replay stored journal entries through the handlers",
    )
    reprocess_parser.add_argument(
        "--event-type",
        dest="event_types",
        action="append",
        metavar="EVENT",
        help="Only replay this journal event (repeatable)",
    )
    reprocess_parser.set_defaults(func=cmd_journal_reprocess)

    # journal-status
    status_parser = subparsers.add_parser(
        "journal-status",
        help="Show event store statistics",
    )
    status_parser.set_defaults(func=cmd_journal_status)
