"""
Journal Ingest Service.

Wires the pipeline together: store -> resolver -> processor -> tailer, with
deltas going out through the change broadcaster. One instance per process.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from ..core.logging import get_logger
from ..services.broadcaster import ChangeBroadcaster, get_broadcaster
from ..store.sqlite import SQLiteCarrierStore
from .processor import JournalEventProcessor, ProcessOutcome
from .resolver import IdentityResolver
from .tailer import JournalTailer

logger = get_logger(__name__)


@dataclass
class IngestStatus:
    """
    Status snapshot of the ingest pipeline.

    Used by the journal-status command and health checks.
    """

    is_running: bool = False
    is_watching: bool = False
    journal_path: str | None = None
    journal_glob: str = ""
    database_path: str = ""
    tailer: dict[str, int] = field(default_factory=dict)
    outcomes: dict[str, int] = field(default_factory=dict)
    subscribers: int = 0
    deltas_published: int = 0
    deltas_dropped: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class JournalIngestService:
    """
    Journal ingestion pipeline.

    Usage:
        service = JournalIngestService()
        await service.start()          # existing files, then watch
        ...
        await service.stop()
    """

    def __init__(
        self,
        store: SQLiteCarrierStore | None = None,
        broadcaster: ChangeBroadcaster | None = None,
        journal_path: Path | str | None = None,
        journal_glob: str | None = None,
    ):
        from ..core.config import get_settings

        settings = get_settings()

        self.store = store or SQLiteCarrierStore()
        self.broadcaster = broadcaster or get_broadcaster()
        self.journal_path = Path(journal_path) if journal_path else settings.journal_path
        self.journal_glob = journal_glob or settings.journal_glob
        self.batch_size = settings.reprocess_batch_size

        self.resolver = IdentityResolver(self.store)
        self.processor = JournalEventProcessor(self.store, self.resolver, self.broadcaster)
        self.tailer = JournalTailer(self.journal_path, self.processor.process, self.journal_glob)
        self._running = False

    async def start(self, watch: bool = True) -> bool:
        """
        Open the store and ingest existing journal files.

        Args:
            watch: Keep watching the directory for changes afterwards

        Returns:
            True if the journal directory is being watched
        """
        if self._running:
            logger.warning("Ingest service already running")
            return self.tailer.is_active

        await self.store.initialize()
        self._running = True

        if watch:
            watching = await self.tailer.start()
        else:
            await self.ingest_existing()
            watching = False

        logger.info(
            "Journal ingest started (path=%s, watching=%s)",
            self.journal_path,
            watching,
        )
        return watching

    async def ingest_existing(self) -> int:
        """Process journal files already on disk without watching."""
        if self.journal_path is None or not self.journal_path.is_dir():
            logger.warning("Journal directory %s not available; nothing to ingest", self.journal_path)
            return 0
        return await self.tailer.process_existing()

    async def stop(self) -> None:
        """Stop watching and close the store."""
        if not self._running:
            return
        self._running = False

        await self.tailer.stop()
        await self.store.close()

        counts = self.processor.get_counts()
        logger.info(
            "Journal ingest stopped (applied=%d, unresolved=%d, duplicate=%d)",
            counts["applied"],
            counts["unresolved"],
            counts["duplicate"],
        )

    async def reprocess(self, event_types: list[str] | None = None) -> dict[str, int]:
        """
        Replay stored journal entries through the handlers in timestamp order.

        Records dropped as unresolved while their carrier was unknown are
        applied once a later CarrierStats has established identity.

        Args:
            event_types: Restrict the replay to these journal tags

        Returns:
            Count of entries per outcome
        """
        await self.store.initialize()
        self.resolver.clear()

        counts: Counter[str] = Counter()
        async for entry in self.store.iter_entries(event_types, batch_size=self.batch_size):
            outcome = await self.processor.reprocess_entry(entry)
            counts[outcome.value] += 1

        result = {outcome.value: counts[outcome.value] for outcome in ProcessOutcome}
        result.pop(ProcessOutcome.DUPLICATE.value)
        logger.info("Reprocessed %d journal entries", sum(counts.values()))
        return result

    def get_status(self) -> IngestStatus:
        """
        Get current pipeline status.

        Returns:
            IngestStatus snapshot
        """
        metrics = self.broadcaster.metrics
        return IngestStatus(
            is_running=self._running,
            is_watching=self.tailer.is_active,
            journal_path=str(self.journal_path) if self.journal_path else None,
            journal_glob=self.journal_glob,
            database_path=str(self.store.db_path),
            tailer=self.tailer.stats.to_dict(),
            outcomes=self.processor.get_counts(),
            subscribers=self.broadcaster.subscriber_count(),
            deltas_published=metrics.published,
            deltas_dropped=metrics.dropped,
        )


# =============================================================================
# Module-level singleton
# =============================================================================

_service: JournalIngestService | None = None


def get_ingest_service() -> JournalIngestService:
    """Get or create the ingest service singleton."""
    global _service
    if _service is None:
        _service = JournalIngestService()
    return _service


def reset_ingest_service() -> None:
    """Reset the ingest service singleton."""
    global _service
    _service = None
