"""
Record store: the single entry point for persisted state.

Combines the record, source and ticker repositories behind one API.
Every mutation goes through the StoreWriter; reads go straight to the
pool. Driver failures surface as PersistenceError, uniqueness
violations as ConflictError.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

import asyncpg

from tabloid.ingestion.schemas import Record
from tabloid.sources.repository import SourcesRepository, TickerRepository
from tabloid.sources.schemas import Source, TickerConfig
from tabloid.storage.database import Database
from tabloid.storage.errors import PersistenceError
from tabloid.storage.repository import RecordRepository
from tabloid.storage.writer import StoreWriter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _persistence(operation: str) -> AsyncIterator[None]:
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
        logger.error(f"Store operation '{operation}' failed: {e}")
        raise PersistenceError(f"{operation} failed: {e}") from e


class RecordStore:
    """
    Durable, deduplicated storage for sources, records and tickers.

    Usage:
        store = RecordStore(db)
        await store.create_tables()
        await store.writer.start()

        inserted = await store.store_batch(source.id, records)
        removed = await store.remove_source(source.id)
    """

    def __init__(self, database: Database, writer: StoreWriter | None = None):
        self._db = database
        self._records = RecordRepository(database)
        self._sources = SourcesRepository(database)
        self._tickers = TickerRepository(database)
        self._writer = writer or StoreWriter()

    @property
    def writer(self) -> StoreWriter:
        return self._writer

    @property
    def records(self) -> RecordRepository:
        return self._records

    @property
    def sources(self) -> SourcesRepository:
        return self._sources

    @property
    def tickers(self) -> TickerRepository:
        return self._tickers

    async def create_tables(self) -> None:
        """Create all tables. Sources first, records reference them."""
        async with _persistence("create_tables"):
            await self._sources.create_table()
            await self._tickers.create_table()
            await self._records.create_tables()

    async def health_check(self) -> bool:
        return await self._db.health_check()

    # ── Records ─────────────────────────────────────────────────

    async def upsert_records(self, records: list[Record]) -> int:
        """Insert records, ignoring duplicate ids. Returns the number newly inserted."""
        if not records:
            return 0

        async def _op() -> int:
            async with _persistence("upsert_records"):
                return await self._records.upsert_records(records)

        return await self._writer.submit(_op, "upsert_records")

    async def records_since(self, source_id: str, limit: int = 20) -> list[Record]:
        async with _persistence("records_since"):
            return await self._records.records_since(source_id, limit)

    async def records_by_source(self, limit_per_source: int = 50) -> dict[str, list[Record]]:
        async with _persistence("records_by_source"):
            return await self._records.records_by_source(limit_per_source)

    async def advance_cursor(self, source_id: str, newest_id: str) -> bool:
        """Move a source's cursor forward. Returns False if it did not move."""

        async def _op() -> bool:
            async with _persistence("advance_cursor"):
                return await self._sources.advance_cursor(source_id, newest_id)

        return await self._writer.submit(_op, "advance_cursor")

    async def store_batch(self, source_id: str, records: list[Record]) -> int:
        """
        Persist a fetched batch and advance the source's cursor atomically.

        `records` are newest first; the cursor moves to the first id. If the
        insert fails the transaction rolls back and the cursor stays put.

        Returns:
            Number of records newly inserted
        """
        if not records:
            return 0

        batch = [r.for_source(source_id) for r in records]
        newest_id = batch[0].id

        async def _op() -> int:
            async with _persistence("store_batch"):
                async with self._db.transaction() as conn:
                    inserted = await self._records.upsert_records(batch, conn=conn)
                    await self._sources.advance_cursor(source_id, newest_id, conn=conn)
                    return inserted

        inserted = await self._writer.submit(_op, f"store_batch:{source_id}")
        logger.debug(
            f"Stored {inserted}/{len(batch)} records for {source_id}, cursor -> {newest_id}"
        )
        return inserted

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete records created before `cutoff`. Returns the number removed."""

        async def _op() -> int:
            async with _persistence("delete_older_than"):
                return await self._records.delete_older_than(cutoff)

        return await self._writer.submit(_op, "delete_older_than")

    async def count_older_than(self, cutoff: datetime) -> int:
        async with _persistence("count_older_than"):
            return await self._records.count_older_than(cutoff)

    # ── Sources ─────────────────────────────────────────────────

    async def list_sources(self) -> list[Source]:
        """All sources ordered by slot."""
        async with _persistence("list_sources"):
            return await self._sources.list_sources()

    async def add_source(self, source: Source) -> str:
        """
        Add a source.

        Raises:
            ConflictError: the slot or id is already taken; nothing is written
        """

        async def _op() -> str:
            async with _persistence("add_source"):
                return await self._sources.add(source)

        return await self._writer.submit(_op, f"add_source:{source.id}")

    async def remove_source(self, source_id: str) -> int:
        """
        Delete a source together with all of its records, in one transaction.

        Returns:
            Number of records removed with the source
        """

        async def _op() -> int:
            async with _persistence("remove_source"):
                async with self._db.transaction() as conn:
                    removed = await self._records.delete_by_source(source_id, conn=conn)
                    await self._sources.delete(source_id, conn=conn)
                    return removed

        removed = await self._writer.submit(_op, f"remove_source:{source_id}")
        logger.info(f"Removed source {source_id} and {removed} records")
        return removed

    # ── Tickers ─────────────────────────────────────────────────

    async def list_ticker_configs(self) -> list[TickerConfig]:
        """All tickers ordered by display order."""
        async with _persistence("list_ticker_configs"):
            return await self._tickers.list_tickers()

    # ── Seeding ─────────────────────────────────────────────────

    async def seed_defaults(
        self,
        sources: list[Source],
        tickers: list[TickerConfig],
    ) -> tuple[int, int]:
        """
        Seed sources and tickers into tables that are still empty.

        Returns:
            (sources seeded, tickers seeded)
        """

        async def _op() -> tuple[int, int]:
            async with _persistence("seed_defaults"):
                seeded_sources = 0
                seeded_tickers = 0
                if await self._sources.count() == 0:
                    seeded_sources = await self._sources.bulk_insert(sources)
                if await self._tickers.count() == 0:
                    seeded_tickers = await self._tickers.bulk_insert(tickers)
                return seeded_sources, seeded_tickers

        return await self._writer.submit(_op, "seed_defaults")
