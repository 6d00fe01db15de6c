"""Database repositories for the sources and tickers tables."""

import logging
from typing import Any

import asyncpg

from tabloid.sources.schemas import Source, TickerConfig
from tabloid.storage.database import Database, affected_rows
from tabloid.storage.errors import ConflictError, ConflictKind

logger = logging.getLogger(__name__)

# Constraint names are matched by ConflictError.from_constraint
_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS sources (
    id                  TEXT NOT NULL,
    name                TEXT NOT NULL,
    handle              TEXT,
    kind                TEXT NOT NULL DEFAULT 'twitter',
    slot                INTEGER NOT NULL CHECK (slot >= 0),
    logo_url            TEXT,
    upstream_account_id TEXT,
    last_record_id      TEXT,
    created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT sources_pkey PRIMARY KEY (id),
    CONSTRAINT sources_slot_key UNIQUE (slot)
);
"""

_CREATE_TICKERS_SQL = """
CREATE TABLE IF NOT EXISTS tickers (
    id            TEXT NOT NULL,
    symbol        TEXT NOT NULL,
    name          TEXT NOT NULL DEFAULT '',
    display_order INTEGER NOT NULL,
    CONSTRAINT tickers_pkey PRIMARY KEY (id),
    CONSTRAINT tickers_display_order_key UNIQUE (display_order)
);
"""

_INSERT_SQL = """
INSERT INTO sources (id, name, handle, kind, slot, logo_url, upstream_account_id, last_record_id)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
"""

# Ids are numeric strings; longer means newer, equal length compares lexically
ADVANCE_CURSOR_SQL = """
UPDATE sources
SET last_record_id = $2, updated_at = NOW()
WHERE id = $1
  AND (
    last_record_id IS NULL
    OR length($2) > length(last_record_id)
    OR (length($2) = length(last_record_id) AND $2 > last_record_id)
  )
"""

DELETE_SOURCE_SQL = "DELETE FROM sources WHERE id = $1"


def _record_to_source(record) -> Source:
    """Convert an asyncpg Record to a Source dataclass."""
    return Source(
        id=record["id"],
        name=record["name"],
        slot=record["slot"],
        kind=record["kind"],
        handle=record["handle"],
        logo_url=record["logo_url"],
        upstream_account_id=record["upstream_account_id"],
        cursor=record["last_record_id"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


def _record_to_ticker(record) -> TickerConfig:
    return TickerConfig(
        id=record["id"],
        symbol=record["symbol"],
        name=record["name"] or "",
        display_order=record["display_order"],
    )


class SourcesRepository:
    """CRUD operations for the sources table.

    Uniqueness of id and slot is enforced here; violations surface as
    ConflictError with a kind telling which rule was broken.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the sources table (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Sources table ensured")

    async def list_sources(self) -> list[Source]:
        """All sources in display order."""
        rows = await self._db.fetch("SELECT * FROM sources ORDER BY slot ASC")
        return [_record_to_source(r) for r in rows]

    async def count(self) -> int:
        return await self._db.fetchval("SELECT COUNT(*) FROM sources") or 0

    async def add(self, source: Source, conn: Any = None) -> str:
        """
        Insert a new source.

        Returns:
            The new source id

        Raises:
            ConflictError: slot already in use (SLOT) or id already present (ID)
        """
        executor = conn or self._db
        try:
            await executor.execute(
                _INSERT_SQL,
                source.id,
                source.name,
                source.handle,
                source.kind,
                source.slot,
                source.logo_url,
                source.upstream_account_id,
                source.cursor,
            )
        except asyncpg.UniqueViolationError as e:
            conflict = ConflictError.from_constraint(
                getattr(e, "constraint_name", None), str(e)
            )
            if conflict.kind == ConflictKind.SLOT:
                conflict.args = (f"Slot {source.slot} is already in use.",)
            elif conflict.kind == ConflictKind.ID:
                conflict.args = (f"Source with id {source.id} already exists.",)
            logger.warning(f"Rejected source {source.id}: {conflict} ({conflict.kind.value})")
            raise conflict from e

        logger.info(f"Source '{source.name}' added with id {source.id} in slot {source.slot}")
        return source.id

    async def bulk_insert(self, sources: list[Source]) -> int:
        """Insert multiple sources in one statement, skipping existing ids or slots.

        Returns the number of sources processed.
        """
        if not sources:
            return 0

        await self._db.execute(
            """
            INSERT INTO sources (id, name, handle, kind, slot, logo_url, upstream_account_id)
            SELECT * FROM unnest(
                $1::text[], $2::text[], $3::text[], $4::text[],
                $5::int[], $6::text[], $7::text[]
            )
            ON CONFLICT DO NOTHING
            """,
            [s.id for s in sources],
            [s.name for s in sources],
            [s.handle for s in sources],
            [s.kind for s in sources],
            [s.slot for s in sources],
            [s.logo_url for s in sources],
            [s.upstream_account_id for s in sources],
        )
        logger.info("Bulk inserted %d sources", len(sources))
        return len(sources)

    async def advance_cursor(self, source_id: str, record_id: str, conn: Any = None) -> bool:
        """
        Move the source's cursor forward to `record_id`.

        Returns:
            True if the cursor changed; False if the source is missing or
            already at or past `record_id`
        """
        executor = conn or self._db
        status = await executor.execute(ADVANCE_CURSOR_SQL, source_id, record_id)
        return affected_rows(status) > 0

    async def delete(self, source_id: str, conn: Any = None) -> bool:
        """Delete the source row. Returns True if a row was removed."""
        executor = conn or self._db
        status = await executor.execute(DELETE_SOURCE_SQL, source_id)
        return affected_rows(status) > 0


class TickerRepository:
    """Read access and seeding for the tickers table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the tickers table (idempotent)."""
        await self._db.execute(_CREATE_TICKERS_SQL)
        logger.info("Tickers table ensured")

    async def list_tickers(self) -> list[TickerConfig]:
        """All tickers in display order."""
        rows = await self._db.fetch(
            "SELECT id, symbol, name, display_order FROM tickers ORDER BY display_order ASC"
        )
        return [_record_to_ticker(r) for r in rows]

    async def count(self) -> int:
        return await self._db.fetchval("SELECT COUNT(*) FROM tickers") or 0

    async def bulk_insert(self, tickers: list[TickerConfig]) -> int:
        """Insert tickers, skipping ids that already exist.

        Returns the number of tickers processed.
        """
        if not tickers:
            return 0

        await self._db.execute(
            """
            INSERT INTO tickers (id, symbol, name, display_order)
            SELECT * FROM unnest($1::text[], $2::text[], $3::text[], $4::int[])
            ON CONFLICT DO NOTHING
            """,
            [t.id for t in tickers],
            [t.symbol for t in tickers],
            [t.name for t in tickers],
            [t.display_order for t in tickers],
        )
        logger.info("Inserted %d tickers", len(tickers))
        return len(tickers)
