"""Tests for RecordRepository with a mocked Database."""

import json
from datetime import datetime, timezone

import pytest

from tabloid.ingestion.schemas import MediaType
from tabloid.storage.repository import RecordRepository


def _row(record_id: str, source_id: str = "3437070832", hour: int = 12, media=None) -> dict:
    """A dict mimicking an asyncpg Record from the records table."""
    return {
        "id": record_id,
        "source_id": source_id,
        "author_name": "Coinbase",
        "author_handle": "coinbase",
        "author_avatar_url": None,
        "content": "gm",
        "media": json.dumps(media or []),
        "likes": 3,
        "shares": 1,
        "created_at": datetime(2025, 3, 1, hour, tzinfo=timezone.utc),
        "fetched_at": datetime(2025, 3, 1, 13, tzinfo=timezone.utc),
    }


class TestCreateTables:

    @pytest.mark.asyncio
    async def test_creates_table_and_indexes(self, mock_database):
        repo = RecordRepository(mock_database)
        await repo.create_tables()

        sql = mock_database.execute.call_args[0][0]
        assert "CREATE TABLE IF NOT EXISTS records" in sql
        assert "REFERENCES sources(id)" in sql
        assert "idx_records_source_created" in sql
        assert "ON records(source_id, created_at DESC)" in sql
        assert "idx_records_created" in sql


class TestUpsertRecords:

    @pytest.mark.asyncio
    async def test_empty_batch_skips_database(self, mock_database):
        repo = RecordRepository(mock_database)

        assert await repo.upsert_records([]) == 0
        mock_database.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_returns_newly_inserted_count(self, mock_database, make_record):
        mock_database.fetch.return_value = [{"id": "101"}, {"id": "102"}]
        repo = RecordRepository(mock_database)

        inserted = await repo.upsert_records(
            [make_record("101"), make_record("102"), make_record("100")]
        )

        assert inserted == 2
        sql = mock_database.fetch.call_args[0][0]
        assert "ON CONFLICT (id) DO NOTHING" in sql
        assert "RETURNING id" in sql

    @pytest.mark.asyncio
    async def test_duplicate_ids_in_batch_are_sent_once(self, mock_database, make_record):
        repo = RecordRepository(mock_database)

        await repo.upsert_records(
            [make_record("101", content="first"), make_record("101", content="second")]
        )

        args = mock_database.fetch.call_args[0]
        assert args[1] == ["101"]
        assert args[6] == ["first"]

    @pytest.mark.asyncio
    async def test_serializes_media_as_json(self, mock_database, sample_record):
        repo = RecordRepository(mock_database)

        await repo.upsert_records([sample_record])

        media_arg = mock_database.fetch.call_args[0][7]
        assert json.loads(media_arg[0]) == [
            {"type": "photo", "url": "https://pbs.twimg.com/media/a.jpg", "preview_url": None}
        ]

    @pytest.mark.asyncio
    async def test_uses_transaction_connection(self, mock_database, make_record):
        repo = RecordRepository(mock_database)
        conn = mock_database.conn
        conn.fetch.return_value = [{"id": "1"}]

        inserted = await repo.upsert_records([make_record("1")], conn=conn)

        assert inserted == 1
        conn.fetch.assert_called_once()
        mock_database.fetch.assert_not_called()


class TestQueries:

    @pytest.mark.asyncio
    async def test_records_since_orders_newest_first(self, mock_database):
        mock_database.fetch.return_value = [_row("2", hour=12), _row("1", hour=11)]
        repo = RecordRepository(mock_database)

        records = await repo.records_since("3437070832", limit=5)

        sql, source_id, limit = mock_database.fetch.call_args[0]
        assert "ORDER BY created_at DESC" in sql
        assert (source_id, limit) == ("3437070832", 5)
        assert [r.id for r in records] == ["2", "1"]
        assert records[0].author.handle == "coinbase"
        assert records[0].metrics.likes == 3

    @pytest.mark.asyncio
    async def test_row_media_is_decoded(self, mock_database):
        mock_database.fetch.return_value = [
            _row("1", media=[{"type": "gif", "url": "u", "preview_url": "p"}])
        ]
        repo = RecordRepository(mock_database)

        records = await repo.records_since("3437070832")

        assert records[0].media[0].type == MediaType.GIF
        assert records[0].media[0].preview_url == "p"

    @pytest.mark.asyncio
    async def test_records_by_source_groups_rows(self, mock_database):
        mock_database.fetch.return_value = [
            _row("3", source_id="a", hour=12),
            _row("2", source_id="a", hour=11),
            _row("9", source_id="b", hour=10),
        ]
        repo = RecordRepository(mock_database)

        grouped = await repo.records_by_source(limit_per_source=2)

        sql, limit = mock_database.fetch.call_args[0]
        assert "ROW_NUMBER()" in sql
        assert "PARTITION BY r.source_id" in sql
        assert limit == 2
        assert {k: [r.id for r in v] for k, v in grouped.items()} == {"a": ["3", "2"], "b": ["9"]}


class TestDeletes:

    @pytest.mark.asyncio
    async def test_delete_older_than_uses_strict_bound(self, mock_database):
        mock_database.execute.return_value = "DELETE 4"
        repo = RecordRepository(mock_database)
        cutoff = datetime(2025, 3, 1, tzinfo=timezone.utc)

        deleted = await repo.delete_older_than(cutoff)

        sql, arg = mock_database.execute.call_args[0]
        assert "created_at < $1" in sql
        assert arg == cutoff
        assert deleted == 4

    @pytest.mark.asyncio
    async def test_delete_by_source(self, mock_database):
        mock_database.conn.execute.return_value = "DELETE 7"
        repo = RecordRepository(mock_database)

        removed = await repo.delete_by_source("a", conn=mock_database.conn)

        assert removed == 7
        assert mock_database.conn.execute.call_args[0][1] == "a"

    @pytest.mark.asyncio
    async def test_count_older_than(self, mock_database):
        mock_database.fetchval.return_value = 12
        repo = RecordRepository(mock_database)

        assert await repo.count_older_than(datetime.now(timezone.utc)) == 12
