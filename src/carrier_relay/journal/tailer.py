"""
Journal Log Tailer.

Watches the journal directory with watchdog and re-reads a whole journal
file each time it is created or modified. The observer runs on its own
thread; it only posts file paths onto the asyncio loop, where files are read
and records dispatched one at a time in file order.

Re-reading whole files means records are delivered more than once. The sink
is expected to be idempotent (the processor deduplicates on identity key).
"""

from __future__ import annotations

import asyncio
import fnmatch
import os
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..core.logging import get_logger
from .records import iter_records

logger = get_logger(__name__)

RecordSink = Callable[..., Awaitable[Any]]
"""Called as ``await sink(record, source_file)`` for each record."""


@dataclass
class TailerStats:
    """Counters for observability."""

    files_processed: int = 0
    lines_read: int = 0
    malformed_skipped: int = 0
    records_dispatched: int = 0
    sink_errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class _JournalFileHandler(FileSystemEventHandler):
    """Forwards journal file notifications from the observer thread to the loop."""

    def __init__(self, tailer: JournalTailer, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self._tailer = tailer
        self._loop = loop

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._forward(event)

    def _forward(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = os.fsdecode(event.src_path)
        if not self._tailer.matches(path):
            return
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._tailer.schedule, path)


class JournalTailer:
    """
    Directory watcher feeding journal records to an async sink.

    Usage:
        tailer = JournalTailer(journal_dir, processor.process)
        await tailer.start()
        ...
        await tailer.stop()
    """

    def __init__(
        self,
        directory: Path | str | None,
        sink: RecordSink,
        pattern: str = "Journal.*.log",
    ):
        self.directory = Path(directory) if directory is not None else None
        self.pattern = pattern
        self.stats = TailerStats()
        self._sink = sink
        self._observer: Observer | None = None
        self._running: dict[str, asyncio.Task] = {}
        self._rerun: set[str] = set()

    @property
    def is_active(self) -> bool:
        """True while the observer is watching the directory."""
        return self._observer is not None and self._observer.is_alive()

    def matches(self, path: Path | str) -> bool:
        """Check whether a path names a journal file."""
        return fnmatch.fnmatch(Path(path).name, self.pattern)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Start watching, then process the journal files already present.

        The observer starts first so nothing written during the initial pass
        goes unnoticed; overlapping reads of a file are coalesced.

        Returns:
            False (and stays idle) if the directory is unset or missing
        """
        if self.is_active:
            return True

        if self.directory is None:
            logger.warning("Journal directory not configured; ingestion idle")
            return False
        if not self.directory.is_dir():
            logger.warning("Journal directory %s does not exist; ingestion idle", self.directory)
            return False

        handler = _JournalFileHandler(self, asyncio.get_running_loop())
        observer = Observer()
        observer.schedule(handler, str(self.directory), recursive=False)
        observer.start()
        self._observer = observer
        logger.info("Watching %s for %s", self.directory, self.pattern)

        await self.process_existing()
        return True

    async def stop(self) -> None:
        """Stop the observer and wait for in-flight file reads to finish."""
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            await asyncio.to_thread(observer.join)
            logger.info("Stopped watching %s", self.directory)

        self._rerun.clear()
        if self._running:
            await asyncio.gather(*self._running.values(), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def schedule(self, path: str) -> None:
        """
        Queue a re-read of ``path`` (loop thread only).

        While a file is being read, further notifications collapse into a
        single follow-up read.
        """
        if path in self._running:
            self._rerun.add(path)
            return
        self._running[path] = asyncio.create_task(self._drain(path))

    async def _drain(self, path: str) -> int:
        dispatched = 0
        try:
            while True:
                self._rerun.discard(path)
                dispatched += await self.process_file(path)
                if path not in self._rerun:
                    return dispatched
        finally:
            self._running.pop(path, None)

    async def wait_idle(self) -> None:
        """Wait until no file reads are pending."""
        while self._running:
            await asyncio.gather(*list(self._running.values()), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    async def process_existing(self) -> int:
        """
        Process every journal file already present, oldest first.

        Returns:
            Number of records dispatched
        """
        if self.directory is None or not self.directory.is_dir():
            return 0

        files = [p for p in self.directory.iterdir() if p.is_file() and self.matches(p)]
        files.sort(key=_mtime)

        dispatched = 0
        for path in files:
            key = str(path)
            self.schedule(key)
            dispatched += await self._running[key]
        return dispatched

    async def process_file(self, path: Path | str) -> int:
        """
        Read a whole journal file and dispatch its records in file order.

        Returns:
            Number of records dispatched to the sink
        """
        path = Path(path)
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("Cannot read journal file %s: %s", path, e)
            return 0

        self.stats.files_processed += 1
        dispatched = 0
        for record, _line in iter_records(content):
            self.stats.lines_read += 1
            if record is None:
                self.stats.malformed_skipped += 1
                continue

            try:
                await self._sink(record, path.name)
            except Exception:
                self.stats.sink_errors += 1
                logger.error(
                    "Failed to process %s record from %s",
                    record.event_type,
                    path.name,
                    exc_info=True,
                    extra={"event_type": record.event_type},
                )
                continue

            dispatched += 1
            self.stats.records_dispatched += 1

        logger.debug("Read %s: %d record(s) dispatched", path.name, dispatched)
        return dispatched


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0
