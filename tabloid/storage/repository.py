"""
Record repository for the records table.

Inserts are idempotent on the upstream id. Reads are always newest first
by upstream creation time, which is also the column retention prunes on.
"""

import json
import logging
from datetime import datetime
from typing import Any

from tabloid.ingestion.schemas import Author, EngagementMetrics, Media, Record
from tabloid.storage.database import Database, affected_rows

logger = logging.getLogger(__name__)


class RecordRepository:
    """
    Repository for fetched posts.

    Provides:
    - Batch inserts that ignore duplicate ids
    - Recency queries per source and grouped across all sources
    - Bulk deletes by age or by owning source

    Tables:
        - records: one row per upstream post, owned by a source
    """

    def __init__(self, database: Database):
        """
        Initialize repository.

        Args:
            database: Connected Database instance
        """
        self._db = database

    async def create_tables(self) -> None:
        """
        Create the records table and its indexes if they don't exist.

        Requires the sources table to exist first.
        """
        create_sql = """
        CREATE TABLE IF NOT EXISTS records (
            id TEXT PRIMARY KEY,
            source_id TEXT NOT NULL REFERENCES sources(id),
            author_name TEXT NOT NULL,
            author_handle TEXT NOT NULL,
            author_avatar_url TEXT,
            content TEXT NOT NULL DEFAULT '',
            media JSONB NOT NULL DEFAULT '[]',
            likes INTEGER NOT NULL DEFAULT 0 CHECK (likes >= 0),
            shares INTEGER NOT NULL DEFAULT 0 CHECK (shares >= 0),
            created_at TIMESTAMPTZ NOT NULL,
            fetched_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_records_source_created
            ON records(source_id, created_at DESC);
        CREATE INDEX IF NOT EXISTS idx_records_created
            ON records(created_at DESC);
        """
        await self._db.execute(create_sql)
        logger.info("Records table ensured")

    async def upsert_records(self, records: list[Record], conn: Any = None) -> int:
        """
        Insert records, ignoring ids that already exist.

        Args:
            records: Records to insert
            conn: Optional connection of an open transaction

        Returns:
            Number of records newly inserted
        """
        if not records:
            return 0

        # First occurrence wins for ids repeated within the batch
        unique: dict[str, Record] = {}
        for record in records:
            unique.setdefault(record.id, record)
        batch = list(unique.values())

        executor = conn or self._db
        rows = await executor.fetch(
            """
            INSERT INTO records (
                id, source_id, author_name, author_handle, author_avatar_url,
                content, media, likes, shares, created_at, fetched_at
            )
            SELECT * FROM unnest(
                $1::text[], $2::text[], $3::text[], $4::text[], $5::text[],
                $6::text[], $7::jsonb[], $8::int[], $9::int[],
                $10::timestamptz[], $11::timestamptz[]
            )
            ON CONFLICT (id) DO NOTHING
            RETURNING id
            """,
            [r.id for r in batch],
            [r.source_id for r in batch],
            [r.author.name for r in batch],
            [r.author.handle for r in batch],
            [r.author.avatar_url for r in batch],
            [r.content for r in batch],
            [json.dumps([m.model_dump(mode="json") for m in r.media]) for r in batch],
            [r.metrics.likes for r in batch],
            [r.metrics.shares for r in batch],
            [r.created_at for r in batch],
            [r.fetched_at for r in batch],
        )
        inserted = len(rows)
        logger.debug(f"Inserted {inserted}/{len(batch)} records")
        return inserted

    async def records_since(self, source_id: str, limit: int = 20) -> list[Record]:
        """Most recent records for one source, newest first."""
        rows = await self._db.fetch(
            """
            SELECT * FROM records
            WHERE source_id = $1
            ORDER BY created_at DESC, id DESC
            LIMIT $2
            """,
            source_id,
            limit,
        )
        return [self._row_to_record(row) for row in rows]

    async def records_by_source(self, limit_per_source: int = 50) -> dict[str, list[Record]]:
        """
        The newest `limit_per_source` records of every source.

        Sources without records are absent from the result.
        """
        rows = await self._db.fetch(
            """
            SELECT * FROM (
                SELECT r.*,
                       ROW_NUMBER() OVER (
                           PARTITION BY r.source_id
                           ORDER BY r.created_at DESC, r.id DESC
                       ) AS rn
                FROM records r
            ) ranked
            WHERE rn <= $1
            ORDER BY source_id, created_at DESC, id DESC
            """,
            limit_per_source,
        )
        grouped: dict[str, list[Record]] = {}
        for row in rows:
            record = self._row_to_record(row)
            grouped.setdefault(record.source_id, []).append(record)
        return grouped

    async def delete_older_than(self, cutoff: datetime, conn: Any = None) -> int:
        """Delete records created strictly before `cutoff`. Returns the count."""
        executor = conn or self._db
        status = await executor.execute(
            "DELETE FROM records WHERE created_at < $1",
            cutoff,
        )
        return affected_rows(status)

    async def count_older_than(self, cutoff: datetime) -> int:
        return await self._db.fetchval(
            "SELECT COUNT(*) FROM records WHERE created_at < $1",
            cutoff,
        ) or 0

    async def delete_by_source(self, source_id: str, conn: Any = None) -> int:
        executor = conn or self._db
        status = await executor.execute(
            "DELETE FROM records WHERE source_id = $1",
            source_id,
        )
        return affected_rows(status)

    def _row_to_record(self, row) -> Record:
        """Convert database row to Record."""
        media = row["media"]
        if isinstance(media, str):
            media = json.loads(media)

        return Record(
            id=row["id"],
            source_id=row["source_id"],
            author=Author(
                name=row["author_name"],
                handle=row["author_handle"],
                avatar_url=row["author_avatar_url"],
            ),
            content=row["content"],
            created_at=row["created_at"],
            fetched_at=row["fetched_at"],
            metrics=EngagementMetrics(likes=row["likes"], shares=row["shares"]),
            media=[Media(**m) for m in media or []],
        )
