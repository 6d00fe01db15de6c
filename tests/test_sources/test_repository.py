"""Tests for SourcesRepository and TickerRepository."""

import asyncpg
import pytest

from tabloid.sources.repository import (
    ADVANCE_CURSOR_SQL,
    SourcesRepository,
    TickerRepository,
)
from tabloid.sources.schemas import TickerConfig
from tabloid.storage.errors import ConflictError, ConflictKind


def _unique_violation(constraint: str | None) -> asyncpg.UniqueViolationError:
    error = asyncpg.UniqueViolationError("duplicate key value violates unique constraint")
    error.constraint_name = constraint
    return error


class TestSourcesRepository:

    @pytest.mark.asyncio
    async def test_create_table_declares_named_constraints(self, mock_database):
        repo = SourcesRepository(mock_database)
        await repo.create_table()

        sql = mock_database.execute.call_args[0][0]
        assert "CONSTRAINT sources_pkey PRIMARY KEY (id)" in sql
        assert "CONSTRAINT sources_slot_key UNIQUE (slot)" in sql

    @pytest.mark.asyncio
    async def test_list_sources_ordered_by_slot(
        self, mock_database, sample_db_row, sample_news_row
    ):
        mock_database.fetch.return_value = [sample_db_row, sample_news_row]
        repo = SourcesRepository(mock_database)

        sources = await repo.list_sources()

        assert "ORDER BY slot ASC" in mock_database.fetch.call_args[0][0]
        assert [s.id for s in sources] == ["3437070832", "news-desk"]
        assert sources[0].cursor == "1790000000000000003"
        assert sources[0].is_pollable
        assert not sources[1].is_pollable

    @pytest.mark.asyncio
    async def test_add_inserts_source(self, mock_database, sample_source):
        repo = SourcesRepository(mock_database)

        source_id = await repo.add(sample_source)

        assert source_id == "3437070832"
        args = mock_database.execute.call_args[0]
        assert "INSERT INTO sources" in args[0]
        assert args[1:6] == ("3437070832", "Coinbase", "coinbase", "twitter", 0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "constraint,kind",
        [
            ("sources_slot_key", ConflictKind.SLOT),
            ("sources_pkey", ConflictKind.ID),
            ("something_else", ConflictKind.OTHER),
            (None, ConflictKind.OTHER),
        ],
    )
    async def test_add_maps_constraint_to_kind(
        self, mock_database, sample_source, constraint, kind
    ):
        mock_database.execute.side_effect = _unique_violation(constraint)
        repo = SourcesRepository(mock_database)

        with pytest.raises(ConflictError) as exc_info:
            await repo.add(sample_source)

        assert exc_info.value.kind == kind
        assert exc_info.value.constraint == constraint

    @pytest.mark.asyncio
    async def test_advance_cursor_reports_movement(self, mock_database):
        repo = SourcesRepository(mock_database)

        mock_database.execute.return_value = "UPDATE 1"
        assert await repo.advance_cursor("3437070832", "103") is True

        mock_database.execute.return_value = "UPDATE 0"
        assert await repo.advance_cursor("3437070832", "100") is False

        mock_database.execute.assert_called_with(ADVANCE_CURSOR_SQL, "3437070832", "100")

    def test_advance_cursor_sql_only_moves_forward(self):
        assert "last_record_id IS NULL" in ADVANCE_CURSOR_SQL
        assert "length($2) > length(last_record_id)" in ADVANCE_CURSOR_SQL
        assert "$2 > last_record_id" in ADVANCE_CURSOR_SQL

    @pytest.mark.asyncio
    async def test_delete_missing_source(self, mock_database):
        mock_database.execute.return_value = "DELETE 0"
        repo = SourcesRepository(mock_database)

        assert await repo.delete("nope") is False

    @pytest.mark.asyncio
    async def test_bulk_insert(self, mock_database, sample_source):
        repo = SourcesRepository(mock_database)

        assert await repo.bulk_insert([sample_source]) == 1
        args = mock_database.execute.call_args[0]
        assert "ON CONFLICT DO NOTHING" in args[0]
        assert args[1] == ["3437070832"]
        assert args[5] == [0]

    @pytest.mark.asyncio
    async def test_count_handles_null(self, mock_database):
        mock_database.fetchval.return_value = None
        assert await SourcesRepository(mock_database).count() == 0


class TestTickerRepository:

    @pytest.mark.asyncio
    async def test_list_tickers_ordered(self, mock_database):
        mock_database.fetch.return_value = [
            {"id": "bitcoin", "symbol": "BTC", "name": "Bitcoin", "display_order": 0},
            {"id": "solana", "symbol": "sol", "name": "", "display_order": 2},
        ]
        repo = TickerRepository(mock_database)

        tickers = await repo.list_tickers()

        assert "ORDER BY display_order ASC" in mock_database.fetch.call_args[0][0]
        assert [t.id for t in tickers] == ["bitcoin", "solana"]
        assert tickers[0].display_name == "Bitcoin"
        assert tickers[1].display_name == "SOL"

    @pytest.mark.asyncio
    async def test_bulk_insert_empty(self, mock_database):
        assert await TickerRepository(mock_database).bulk_insert([]) == 0
        mock_database.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_bulk_insert(self, mock_database):
        tickers = [
            TickerConfig(id="bitcoin", symbol="BTC", name="Bitcoin", display_order=0),
            TickerConfig(id="ethereum", symbol="ETH", name="Ethereum", display_order=1),
        ]

        assert await TickerRepository(mock_database).bulk_insert(tickers) == 2
        args = mock_database.execute.call_args[0]
        assert args[1] == ["bitcoin", "ethereum"]
        assert args[4] == [0, 1]
