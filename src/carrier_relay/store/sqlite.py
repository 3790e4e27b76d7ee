"""
SQLite Implementation of the Carrier Store.

Uses aiosqlite with WAL mode so the read API can query while the ingestion
pipeline writes. Schema is managed by versioned migrations (see migrations.py).
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiosqlite

from ..core.logging import get_logger
from .errors import StoreNotInitializedError
from .migrations import MigrationRunner
from .protocol import (
    Carrier,
    CarrierFinance,
    CarrierService,
    DockingAccess,
    JournalEntry,
    StoreStats,
)

logger = get_logger(__name__)

# Columns update_fields_by_callsign may write (internal_id is set by stats only)
UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "current_system",
        "docking_access",
        "notorious_access",
        "fuel_level",
        "jump_cooldown",
    }
)


def _row_to_carrier(row: aiosqlite.Row) -> Carrier:
    return Carrier(
        callsign=row["callsign"],
        internal_id=row["internal_id"],
        name=row["name"],
        current_system=row["current_system"],
        docking_access=DockingAccess(row["docking_access"]),
        notorious_access=bool(row["notorious_access"]),
        fuel_level=row["fuel_level"],
        jump_cooldown=row["jump_cooldown"],
        last_updated=row["last_updated"],
    )


def _row_to_entry(row: aiosqlite.Row) -> JournalEntry:
    return JournalEntry(
        identity_key=row["identity_key"],
        timestamp=row["timestamp"],
        event_type=row["event_type"],
        event_data=row["event_data"],
        source_file=row["source_file"],
        callsign=row["callsign"],
        outcome=row["outcome"],
        ingested_at=row["ingested_at"],
    )


class SQLiteCarrierStore:
    """
    SQLite implementation of CarrierStore.

    Connection configuration:
        PRAGMA journal_mode=WAL
        PRAGMA busy_timeout=5000
        PRAGMA synchronous=NORMAL
        PRAGMA foreign_keys=ON
    """

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize the store.

        Args:
            db_path: Path to database file. Defaults to settings.database_path.
                     ":memory:" is accepted for tests.
        """
        if db_path is None:
            from ..core.config import get_settings

            db_path = get_settings().database_path

        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the database and run migrations. Safe to call on an existing file."""
        if self._db is not None:
            return

        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA busy_timeout=5000")
        await self._db.execute("PRAGMA synchronous=NORMAL")
        await self._db.execute("PRAGMA foreign_keys=ON")

        runner = MigrationRunner(self._db)
        await runner.run_migrations()

        self._db.row_factory = aiosqlite.Row
        logger.info("Carrier store initialized: %s", self.db_path)

    async def close(self) -> None:
        """Close the store and release resources."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Carrier store closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection, raising if not initialized."""
        if self._db is None:
            raise StoreNotInitializedError()
        return self._db

    async def __aenter__(self) -> SQLiteCarrierStore:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Commit on success; roll back every statement of the block on failure."""
        db = self.db
        try:
            yield db
        except BaseException:
            await db.rollback()
            raise
        await db.commit()

    # -------------------------------------------------------------------------
    # Journal Entries
    # -------------------------------------------------------------------------

    async def append_entry(self, entry: JournalEntry) -> bool:
        """Insert a journal entry; a repeated identity key is ignored."""
        async with self._transaction() as db:
            cursor = await db.execute(
                """
                INSERT OR IGNORE INTO journal_entries (
                    identity_key, timestamp, event_type, event_data,
                    source_file, callsign, outcome, ingested_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.identity_key,
                    entry.timestamp,
                    entry.event_type,
                    entry.event_data,
                    entry.source_file,
                    entry.callsign,
                    entry.outcome,
                    entry.ingested_at if entry.ingested_at is not None else int(time.time()),
                ),
            )
        return cursor.rowcount > 0

    async def has_entry(self, identity_key: str) -> bool:
        cursor = await self.db.execute(
            "SELECT 1 FROM journal_entries WHERE identity_key = ?",
            (identity_key,),
        )
        return await cursor.fetchone() is not None

    async def set_entry_outcome(
        self, identity_key: str, outcome: str, callsign: str | None = None
    ) -> None:
        """Record a new outcome (and resolved callsign) for a stored entry."""
        async with self._transaction() as db:
            await db.execute(
                "UPDATE journal_entries SET outcome = ?, callsign = ? WHERE identity_key = ?",
                (outcome, callsign, identity_key),
            )

    async def iter_entries(
        self,
        event_types: list[str] | None = None,
        batch_size: int = 500,
    ) -> AsyncIterator[JournalEntry]:
        """
        Yield stored entries ordered by journal timestamp, then insertion order.

        Keyset pagination on (timestamp, id) keeps memory bounded and the
        order stable while new rows are appended.
        """
        last_ts = ""
        last_id = 0
        while True:
            params: list[Any] = [last_ts, last_ts, last_id]
            type_clause = ""
            if event_types:
                placeholders = ",".join("?" * len(event_types))
                type_clause = f"AND event_type IN ({placeholders})"
                params.extend(event_types)
            params.append(batch_size)

            cursor = await self.db.execute(
                f"""
                SELECT * FROM journal_entries
                WHERE (timestamp > ? OR (timestamp = ? AND id > ?)) {type_clause}
                ORDER BY timestamp, id
                LIMIT ?
                """,
                params,
            )
            rows = list(await cursor.fetchall())
            if not rows:
                return

            last_ts = rows[-1]["timestamp"]
            last_id = rows[-1]["id"]
            for row in rows:
                yield _row_to_entry(row)

    async def count_entries(self, event_type: str | None = None) -> int:
        if event_type is None:
            cursor = await self.db.execute("SELECT COUNT(*) FROM journal_entries")
        else:
            cursor = await self.db.execute(
                "SELECT COUNT(*) FROM journal_entries WHERE event_type = ?",
                (event_type,),
            )
        row = await cursor.fetchone()
        return row[0] if row else 0

    # -------------------------------------------------------------------------
    # Carrier Repository
    # -------------------------------------------------------------------------

    async def create_or_update_by_callsign(
        self,
        callsign: str,
        internal_id: str,
        name: str,
        fuel_level: int,
        jump_cooldown: int,
        timestamp: str,
    ) -> bool:
        """
        Create the carrier or refresh its stats fields and internal id.

        The internal id is released from any other carrier first, so the
        internal_id -> callsign index always points at the latest reporter.
        Nothing else on the other carrier is touched. Either every statement
        is committed or none is.
        """
        async with self._transaction() as db:
            await db.execute(
                "UPDATE carriers SET internal_id = NULL WHERE internal_id = ? AND callsign != ?",
                (internal_id, callsign),
            )

            cursor = await db.execute(
                """
                INSERT INTO carriers (
                    callsign, internal_id, name, fuel_level, jump_cooldown, last_updated
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (callsign) DO NOTHING
                """,
                (callsign, internal_id, name, fuel_level, jump_cooldown, timestamp),
            )
            created = cursor.rowcount > 0

            if not created:
                await db.execute(
                    """
                    UPDATE carriers
                    SET internal_id = ?, name = ?, fuel_level = ?, jump_cooldown = ?,
                        last_updated = ?
                    WHERE callsign = ?
                    """,
                    (internal_id, name, fuel_level, jump_cooldown, timestamp, callsign),
                )

        return created

    async def update_fields_by_callsign(self, callsign: str, timestamp: str, **fields: Any) -> bool:
        """
        Update the given carrier columns and stamp last_updated.

        Raises:
            ValueError: For callsign, internal_id or unknown columns
        """
        if not fields:
            return await self.find_by_callsign(callsign) is not None

        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update carrier fields: {', '.join(sorted(unknown))}")

        values = []
        for column, value in fields.items():
            if isinstance(value, DockingAccess):
                value = value.value
            elif isinstance(value, bool):
                value = int(value)
            values.append(value)

        assignments = ", ".join(f"{column} = ?" for column in fields)
        async with self._transaction() as db:
            cursor = await db.execute(
                f"UPDATE carriers SET {assignments}, last_updated = ? WHERE callsign = ?",
                (*values, timestamp, callsign),
            )
        return cursor.rowcount > 0

    async def _touch(self, db: aiosqlite.Connection, callsign: str, timestamp: str | None) -> None:
        if timestamp is not None:
            await db.execute(
                "UPDATE carriers SET last_updated = ? WHERE callsign = ?",
                (timestamp, callsign),
            )

    async def find_by_callsign(self, callsign: str) -> Carrier | None:
        cursor = await self.db.execute(
            "SELECT * FROM carriers WHERE callsign = ?",
            (callsign,),
        )
        row = await cursor.fetchone()
        return _row_to_carrier(row) if row else None

    async def find_by_internal_id(self, internal_id: str) -> Carrier | None:
        cursor = await self.db.execute(
            "SELECT * FROM carriers WHERE internal_id = ?",
            (internal_id,),
        )
        row = await cursor.fetchone()
        return _row_to_carrier(row) if row else None

    async def list_callsigns(self) -> list[str]:
        cursor = await self.db.execute("SELECT callsign FROM carriers ORDER BY callsign")
        return [row["callsign"] for row in await cursor.fetchall()]

    async def list_carriers(self) -> list[Carrier]:
        cursor = await self.db.execute("SELECT * FROM carriers ORDER BY callsign")
        return [_row_to_carrier(row) for row in await cursor.fetchall()]

    # -------------------------------------------------------------------------
    # Finance and Services
    # -------------------------------------------------------------------------

    async def upsert_finance(
        self, callsign: str, balance: int, timestamp: str | None = None
    ) -> None:
        async with self._transaction() as db:
            await db.execute(
                """
                INSERT INTO carrier_finance (callsign, balance) VALUES (?, ?)
                ON CONFLICT (callsign) DO UPDATE SET balance = excluded.balance
                """,
                (callsign, balance),
            )
            await self._touch(db, callsign, timestamp)

    async def get_finance(self, callsign: str) -> CarrierFinance | None:
        cursor = await self.db.execute(
            "SELECT callsign, balance FROM carrier_finance WHERE callsign = ?",
            (callsign,),
        )
        row = await cursor.fetchone()
        return CarrierFinance(callsign=row["callsign"], balance=row["balance"]) if row else None

    async def upsert_service(
        self, callsign: str, service_type: str, enabled: bool, timestamp: str | None = None
    ) -> None:
        async with self._transaction() as db:
            await db.execute(
                """
                INSERT INTO carrier_services (callsign, service_type, enabled) VALUES (?, ?, ?)
                ON CONFLICT (callsign, service_type) DO UPDATE SET enabled = excluded.enabled
                """,
                (callsign, service_type, int(enabled)),
            )
            await self._touch(db, callsign, timestamp)

    async def get_services(self, callsign: str) -> list[CarrierService]:
        cursor = await self.db.execute(
            """
            SELECT callsign, service_type, enabled FROM carrier_services
            WHERE callsign = ?
            ORDER BY service_type
            """,
            (callsign,),
        )
        return [
            CarrierService(
                callsign=row["callsign"],
                service_type=row["service_type"],
                enabled=bool(row["enabled"]),
            )
            for row in await cursor.fetchall()
        ]

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    async def get_stats(self) -> StoreStats:
        db = self.db

        cursor = await db.execute(
            "SELECT event_type, COUNT(*) AS n FROM journal_entries GROUP BY event_type"
        )
        by_type = {row["event_type"]: row["n"] for row in await cursor.fetchall()}

        cursor = await db.execute(
            "SELECT COUNT(*) AS n FROM journal_entries WHERE outcome = 'unresolved'"
        )
        unresolved = (await cursor.fetchone())["n"]

        cursor = await db.execute("SELECT COUNT(*) AS n FROM carriers")
        carriers = (await cursor.fetchone())["n"]

        cursor = await db.execute(
            "SELECT MIN(timestamp) AS oldest, MAX(timestamp) AS newest FROM journal_entries"
        )
        bounds = await cursor.fetchone()

        size = 0
        if isinstance(self.db_path, Path) and self.db_path.exists():
            size = self.db_path.stat().st_size

        return StoreStats(
            total_entries=sum(by_type.values()),
            entries_by_type=by_type,
            unresolved_entries=unresolved,
            total_carriers=carriers,
            oldest_entry_time=bounds["oldest"],
            newest_entry_time=bounds["newest"],
            database_size_bytes=size,
        )
