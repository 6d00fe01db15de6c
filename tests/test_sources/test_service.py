"""Tests for the SourcesService command layer."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tabloid.sources.config import SourcesConfig
from tabloid.sources.schemas import NewSourcePayload, Source, TickerConfig
from tabloid.sources.service import SourcesService
from tabloid.storage.errors import ConflictError, ConflictKind, PersistenceError


@pytest.fixture
def mock_store(sample_source) -> AsyncMock:
    """Mock RecordStore matching the RecordStore API."""
    store = AsyncMock()
    store.list_sources = AsyncMock(return_value=[sample_source])
    store.records_by_source = AsyncMock(return_value={})
    store.list_ticker_configs = AsyncMock(
        return_value=[TickerConfig(id="bitcoin", symbol="BTC", name="Bitcoin", display_order=0)]
    )
    store.records_since = AsyncMock(return_value=[])
    store.seed_defaults = AsyncMock(return_value=(6, 3))
    return store


@pytest.fixture
def mock_network() -> MagicMock:
    network = MagicMock()
    network.is_online = True
    network.check = AsyncMock(return_value=False)
    return network


@pytest.fixture
def service(mock_store, mock_network) -> SourcesService:
    return SourcesService(mock_store, network=mock_network, config=SourcesConfig())


class TestSeeding:

    @pytest.mark.asyncio
    async def test_ensure_seeded_passes_defaults(self, service, mock_store):
        assert await service.ensure_seeded() == (6, 3)

        sources, tickers = mock_store.seed_defaults.call_args[0]
        assert len(sources) == 6
        assert sorted(s.slot for s in sources) == [0, 1, 2, 3, 4, 5]
        assert all(s.id == s.upstream_account_id for s in sources)
        assert [t.id for t in tickers] == ["bitcoin", "ethereum", "solana"]

    @pytest.mark.asyncio
    async def test_ensure_seeded_disabled(self, mock_store, mock_network):
        service = SourcesService(
            mock_store, network=mock_network, config=SourcesConfig(seed_on_init=False)
        )

        assert await service.ensure_seeded() == (0, 0)
        mock_store.seed_defaults.assert_not_called()


class TestAddSource:

    @pytest.mark.asyncio
    async def test_success_returns_refreshed_list(self, service, mock_store):
        result = await service.add_source(
            {"name": "Hsaka", "upstream_account_id": "971400609640239104", "slot": 6}
        )

        assert result.success is True
        assert result.error is None
        added = mock_store.add_source.call_args[0][0]
        assert added.id == "971400609640239104"
        assert added.kind == "twitter"
        mock_store.list_sources.assert_called_once()

    @pytest.mark.asyncio
    async def test_accepts_payload_model(self, service, mock_store):
        payload = NewSourcePayload(name="A", upstream_account_id="1", slot=7)

        result = await service.add_source(payload)

        assert result.success is True
        assert mock_store.add_source.call_args[0][0].slot == 7

    @pytest.mark.asyncio
    async def test_slot_conflict_reports_kind(self, service, mock_store, sample_source):
        mock_store.add_source.side_effect = ConflictError(
            ConflictKind.SLOT, "Slot 0 is already in use.", constraint="sources_slot_key"
        )

        result = await service.add_source(
            {"name": "Dup", "upstream_account_id": "42", "slot": 0}
        )

        assert result.success is False
        assert result.conflict == ConflictKind.SLOT
        assert result.error == "Slot 0 is already in use."
        assert result.sources == [sample_source]
        assert result.to_dict()["conflict"] == "slot"

    @pytest.mark.asyncio
    async def test_invalid_payload_never_reaches_store(self, service, mock_store):
        result = await service.add_source({"name": "", "upstream_account_id": "abc", "slot": 1})

        assert result.success is False
        assert "upstream_account_id" in result.error
        mock_store.add_source.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_failure_still_returns_result(self, service, mock_store):
        mock_store.add_source.side_effect = PersistenceError("add_source failed")
        mock_store.list_sources.side_effect = PersistenceError("list_sources failed")

        result = await service.add_source({"name": "A", "upstream_account_id": "1", "slot": 9})

        assert result.success is False
        assert result.sources == []
        assert result.conflict is None


class TestRemoveSource:

    @pytest.mark.asyncio
    async def test_remove_success(self, service, mock_store):
        mock_store.list_sources.return_value = []

        result = await service.remove_source("3437070832")

        assert result.success is True
        assert result.sources == []
        mock_store.remove_source.assert_called_once_with("3437070832")

    @pytest.mark.asyncio
    async def test_remove_failure(self, service, mock_store, sample_source):
        mock_store.remove_source.side_effect = PersistenceError("remove_source failed")

        result = await service.remove_source("3437070832")

        assert result.success is False
        assert result.error == "remove_source failed"
        assert result.sources == [sample_source]


class TestQueries:

    @pytest.mark.asyncio
    async def test_get_records_since_default_limit(self, service, mock_store):
        await service.get_records_since("3437070832")
        mock_store.records_since.assert_called_once_with("3437070832", 20)

    @pytest.mark.asyncio
    async def test_initial_load_has_entry_for_every_source(
        self, service, mock_store, sample_source, make_record
    ):
        other = Source(id="902926941413453824", name="CZ", slot=1, upstream_account_id="902926941413453824")
        mock_store.list_sources.return_value = [sample_source, other]
        mock_store.records_by_source.return_value = {
            sample_source.id: [make_record("2", source_id=sample_source.id)]
        }

        load = await service.initial_load()

        mock_store.records_by_source.assert_called_once_with(100)
        assert set(load.records_by_source) == {sample_source.id, other.id}
        assert load.records_by_source[other.id] == []
        assert load.is_online is True
        assert load.to_dict()["ticker_configs"][0]["display_name"] == "Bitcoin"

    @pytest.mark.asyncio
    async def test_initial_load_store_down(self, service, mock_store):
        mock_store.records_by_source.side_effect = PersistenceError("down")

        load = await service.initial_load()

        assert load.sources == []
        assert load.records_by_source == {}
        assert load.ticker_configs == []

    @pytest.mark.asyncio
    async def test_check_network_status_rechecks(self, service, mock_network):
        assert await service.check_network_status() is False
        mock_network.check.assert_called_once()
