"""
Carrier Relay - Fleet Carrier Journal Ingestion

Watches the game's journal directory, reconciles fleet carrier events into a
SQLite carrier repository keyed by callsign, and publishes per-carrier
deltas to live subscribers.

Usage as library:
    from carrier_relay.journal import JournalIngestService

    service = JournalIngestService(journal_path="~/Saved Games/Frontier Developments/Elite Dangerous")
    subscription = service.broadcaster.subscribe("XX-001")
    await service.start()

    async for delta in subscription:
        print(delta.event, delta.to_payload())

Usage as CLI:
    python -m carrier_relay journal-ingest
    python -m carrier_relay carrier-show XX-001
    python -m carrier_relay carrier-watch XX-001

Package structure:
    carrier_relay/
    ├── core/           # Config, logging, formatters
    ├── store/          # SQLite event store and carrier repository
    ├── journal/        # Records, typed events, processor, tailer
    ├── services/       # Change broadcaster, read API
    └── commands/       # CLI command implementations
"""

__version__ = "0.3.0"
