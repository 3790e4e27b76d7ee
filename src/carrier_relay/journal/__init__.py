"""
Journal Ingestion Pipeline.

Key Components:
- RawJournalRecord / parse_line: one decoded journal line
- classify: typed carrier events (pydantic discriminated union)
- IdentityResolver: internal id -> callsign
- JournalEventProcessor: handlers, event log append and broadcast
- JournalTailer: watchdog-driven journal directory reader
- JournalIngestService: the wired pipeline
"""

from .events import EVENT_TYPES, CarrierEvent, classify, is_carrier_event
from .processor import JournalEventProcessor, ProcessOutcome
from .records import RawJournalRecord, parse_line
from .resolver import IdentityResolver
from .service import (
    IngestStatus,
    JournalIngestService,
    get_ingest_service,
    reset_ingest_service,
)
from .tailer import JournalTailer, TailerStats

__all__ = [
    "EVENT_TYPES",
    "CarrierEvent",
    "classify",
    "is_carrier_event",
    "RawJournalRecord",
    "parse_line",
    "IdentityResolver",
    "JournalEventProcessor",
    "ProcessOutcome",
    "JournalTailer",
    "TailerStats",
    "JournalIngestService",
    "IngestStatus",
    "get_ingest_service",
    "reset_ingest_service",
]
